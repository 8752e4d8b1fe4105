"""
Client implementation for the Marketo REST API.

This module defines the :class:`Client` class which authenticates
against the Marketo identity service using the OAuth2 client
credentials grant and performs the operations described by the
bundled operation catalog.  The access token is cached for the
duration given by ``expires_in`` and refreshed automatically when
needed.

Usage
-----

.. code-block:: python

    from marketo_rest_client import Client

    client = Client(
        client_id="abc123",
        client_secret="shhsecret",
        munchkin_id="123-ABC-456",
    )

    response = client.get_lead(318581, fields=["email", "firstName"])
    if response.is_success():
        print(response.get_lead()["email"])
    else:
        print(response.get_error())

Every operation method accepts ``return_raw=True`` to get the response
body bytes instead of a decoded :class:`~marketo_rest_client.response.Response`.
Pagination is left to the caller: pass ``response.get_next_page_token()``
back in as ``nextPageToken`` until ``response.more_result()`` is false.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import requests

from .auth import TokenProvider
from .catalog import OperationCatalog, load_catalog
from .dispatcher import Dispatcher
from .exceptions import BuildError, ConfigError
from .request import RequestBuilder
from .response import Response, ResponseDecoder
from .transport import HttpExecutor

logger = logging.getLogger(__name__)

Result = Union[Response, bytes]
Args = Optional[Mapping[str, Any]]
Ids = Union[int, str, Sequence[Union[int, str]]]

# Object families that can be described, keyed by the name callers use.
DESCRIBE_OPERATIONS = {
    "leads": "describeLeads",
    "companies": "describeCompanies",
    "opportunities": "describeOpportunities",
    "customobjects": "describeCustomObject",
}

CUSTOM_ACTIVITY_FIELDS = ("leadId", "activityDate", "activityTypeId", "primaryAttributeValue")


def _check_batch_id(batch_id: Any, method: str) -> None:
    if isinstance(batch_id, bool) or not isinstance(batch_id, int) or batch_id <= 0:
        raise BuildError(f"Invalid batch_id provided to {method}: {batch_id!r}")


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


class Client:
    """A client for the Marketo REST API.

    Parameters
    ----------
    client_id : str
        Client id of a LaunchPoint custom service.
    client_secret : str
        Client secret of the same service.
    url : str, optional
        The instance base URL, e.g. ``https://123-ABC-456.mktorest.com``.
    munchkin_id : str, optional
        The Munchkin account id.  Used to derive the base URL when
        ``url`` is not given.  One of ``url`` or ``munchkin_id`` is
        required.
    version : int, optional
        API major version.  Defaults to ``1``.
    bulk : bool, optional
        Use the bulk API root (``/bulk/v<version>``) instead of the REST
        root (``/rest/v<version>``) for operations not tied to either.
        Operations flagged ``bulk`` in the catalog always use the bulk
        root.
    timeout : float, optional
        Timeout in seconds for token grants and API calls.  Defaults to
        30 seconds.
    catalog : mapping or path, optional
        Operation catalog to use instead of the bundled one.
    session : requests.Session, optional
        Session used for every HTTP call.  When omitted the client
        creates one and closes it in :meth:`close`.

    Raises
    ------
    ConfigError
        If credentials are missing or neither ``url`` nor
        ``munchkin_id`` is given.
    """

    _DEFAULT_URL = "https://{munchkin_id}.mktorest.com"

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        url: Optional[str] = None,
        munchkin_id: Optional[str] = None,
        version: int = 1,
        bulk: bool = False,
        timeout: Optional[float] = 30.0,
        catalog: Optional[Union[str, os.PathLike, Mapping[str, Any]]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not client_id:
            raise ConfigError("client_id must be provided")
        if not client_secret:
            raise ConfigError("client_secret must be provided")
        if not url:
            if not munchkin_id:
                raise ConfigError("Must provide either a URL or Munchkin code")
            url = self._DEFAULT_URL.format(munchkin_id=munchkin_id)
        try:
            version = int(version)
        except (TypeError, ValueError):
            raise ConfigError(f"version must be an integer, got {version!r}") from None

        self.client_id = client_id
        self.munchkin_id = munchkin_id
        self.version = version
        self.bulk = bulk
        self.timeout = timeout
        self.base_url = url.rstrip("/")
        self.rest_url = f"{self.base_url}/rest/v{version}"
        self.bulk_url = f"{self.base_url}/bulk/v{version}"
        self.api_url = self.bulk_url if bulk else self.rest_url

        self._owns_session = session is None
        self.session = session or requests.Session()
        self.catalog: OperationCatalog = load_catalog(catalog)
        self.tokens = TokenProvider(
            self.base_url,
            client_id,
            client_secret,
            session=self.session,
            timeout=timeout,
        )
        self.dispatcher = Dispatcher(
            self.catalog,
            RequestBuilder(self.api_url, self.bulk_url, self.base_url),
            HttpExecutor(self.session, timeout=timeout),
            self.tokens,
            ResponseDecoder(),
        )
        logger.debug("Marketo client configured for %s", self.api_url)

    @classmethod
    def from_env(cls, **overrides: Any) -> "Client":
        """Create a client from ``MARKETO_*`` environment variables.

        Reads ``MARKETO_CLIENT_ID``, ``MARKETO_CLIENT_SECRET``,
        ``MARKETO_URL``, ``MARKETO_MUNCHKIN_ID``, ``MARKETO_API_VERSION``
        and ``MARKETO_BULK``.  Keyword arguments take precedence.
        """
        env = os.environ
        config: Dict[str, Any] = {
            "client_id": env.get("MARKETO_CLIENT_ID"),
            "client_secret": env.get("MARKETO_CLIENT_SECRET"),
            "url": env.get("MARKETO_URL"),
            "munchkin_id": env.get("MARKETO_MUNCHKIN_ID"),
            "version": env.get("MARKETO_API_VERSION", 1),
            "bulk": env.get("MARKETO_BULK", "").strip().lower() in {"1", "true", "yes"},
        }
        config.update(overrides)
        return cls(**config)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def execute(
        self,
        operation: str,
        args: Optional[Mapping[str, Any]] = None,
        *,
        repeated_keys: bool = False,
        return_raw: bool = False,
    ) -> Result:
        """Execute a catalog operation by name.

        See :meth:`marketo_rest_client.dispatcher.Dispatcher.execute`.
        """
        return self.dispatcher.execute(
            operation, args, repeated_keys=repeated_keys, return_raw=return_raw
        )

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------
    def import_leads_csv(
        self, file: str, format: str = "csv", args: Args = None, return_raw: bool = False
    ) -> Result:
        """Import leads from a local file through the bulk API.

        Raises
        ------
        BuildError
            If ``file`` is not a readable file.
        """
        if not file or not os.path.isfile(file) or not os.access(file, os.R_OK):
            raise BuildError(f"Cannot read file: {file}")
        args = dict(args or {})
        args["file"] = file
        args["format"] = format or "csv"
        return self.execute("importLeadsCsv", args, return_raw=return_raw)

    def get_bulk_upload_status(self, batch_id: int, return_raw: bool = False) -> Result:
        """Status of the bulk import ``batch_id``.

        Raises
        ------
        BuildError
            If ``batch_id`` is not a positive integer.
        """
        _check_batch_id(batch_id, "get_bulk_upload_status")
        return self.execute("getBulkUploadStatus", {"batchId": batch_id}, return_raw=return_raw)

    def get_bulk_upload_failures(self, batch_id: int, return_raw: bool = False) -> Result:
        """Failure file of an import; usually wanted with ``return_raw=True``."""
        _check_batch_id(batch_id, "get_bulk_upload_failures")
        return self.execute("getBulkUploadFailures", {"batchId": batch_id}, return_raw=return_raw)

    def get_bulk_upload_warnings(self, batch_id: int, return_raw: bool = False) -> Result:
        """Warning file of an import; usually wanted with ``return_raw=True``."""
        _check_batch_id(batch_id, "get_bulk_upload_warnings")
        return self.execute("getBulkUploadWarnings", {"batchId": batch_id}, return_raw=return_raw)

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------
    def _create_or_update_leads(
        self,
        action: str,
        leads: List[Dict[str, Any]],
        lookup_field: Optional[str],
        args: Args,
        return_raw: bool,
    ) -> Result:
        args = dict(args or {})
        args["input"] = leads
        args["action"] = action
        if lookup_field is not None:
            args["lookupField"] = lookup_field
        return self.execute("createOrUpdateLeads", args, return_raw=return_raw)

    def create_leads(
        self,
        leads: List[Dict[str, Any]],
        lookup_field: Optional[str] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Create leads; existing leads are reported as skipped.

        Parameters
        ----------
        leads : list of dict
            Lead records keyed by field API name.
        lookup_field : str, optional
            Field used to deduplicate, ``email`` when omitted.
        """
        return self._create_or_update_leads("createOnly", leads, lookup_field, args, return_raw)

    def create_or_update_leads(
        self,
        leads: List[Dict[str, Any]],
        lookup_field: Optional[str] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Create new leads and update existing ones (upsert)."""
        return self._create_or_update_leads("createOrUpdate", leads, lookup_field, args, return_raw)

    def update_leads(
        self,
        leads: List[Dict[str, Any]],
        lookup_field: Optional[str] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Update existing leads only."""
        return self._create_or_update_leads("updateOnly", leads, lookup_field, args, return_raw)

    def create_duplicate_leads(
        self,
        leads: List[Dict[str, Any]],
        lookup_field: Optional[str] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Create leads even when a lead with the same lookup value exists."""
        return self._create_or_update_leads("createDuplicate", leads, lookup_field, args, return_raw)

    def get_leads_by_filter_type(
        self,
        filter_type: str,
        filter_values: Union[str, List[Any]],
        fields: Optional[List[str]] = None,
        next_page_token: Optional[str] = None,
        return_raw: bool = False,
    ) -> Result:
        """Get leads matching ``filter_type`` (e.g. ``"email"``, ``"id"``).

        ``filter_values`` is a comma separated string or a list.
        """
        args: Dict[str, Any] = {
            "filterType": filter_type,
            "filterValues": ",".join(map(str, filter_values)) if _is_list(filter_values) else filter_values,
        }
        if next_page_token:
            args["nextPageToken"] = next_page_token
        if fields:
            args["fields"] = fields
        return self.execute("getLeadsByFilterType", args, return_raw=return_raw)

    def get_lead_by_filter_type(
        self,
        filter_type: str,
        filter_value: Any,
        fields: Optional[List[str]] = None,
        return_raw: bool = False,
    ) -> Result:
        """Like :meth:`get_leads_by_filter_type`, but only the first lead matters.

        The response is unsuccessful when no lead matches.
        """
        args: Dict[str, Any] = {"filterType": filter_type, "filterValues": filter_value}
        if fields:
            args["fields"] = fields
        return self.execute("getLeadByFilterType", args, return_raw=return_raw)

    def get_lead_partitions(self, args: Args = None, return_raw: bool = False) -> Result:
        """List the lead partitions of the instance."""
        return self.execute("getLeadPartitions", args, return_raw=return_raw)

    def get_leads_by_list(self, list_id: int, args: Args = None, return_raw: bool = False) -> Result:
        """Leads that are members of static list ``list_id``."""
        args = dict(args or {})
        args["listId"] = list_id
        return self.execute("getLeadsByList", args, return_raw=return_raw)

    def get_lead(
        self,
        id: int,
        fields: Optional[List[str]] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Get a single lead by id.

        The response is unsuccessful when the lead does not exist.
        """
        args = dict(args or {})
        args["id"] = id
        if _is_list(fields):
            args["fields"] = fields
        return self.execute("getLead", args, return_raw=return_raw)

    def delete_lead(self, leads: Ids, args: Args = None, return_raw: bool = False) -> Result:
        """Delete one lead or a list of leads by id."""
        args = dict(args or {})
        args["id"] = list(leads) if _is_list(leads) else [leads]
        return self.execute("deleteLead", args, repeated_keys=True, return_raw=return_raw)

    def associate_lead(
        self, id: int, cookie: Optional[str] = None, args: Args = None, return_raw: bool = False
    ) -> Result:
        """Associate a Munchkin tracking cookie with lead ``id``."""
        args = dict(args or {})
        args["id"] = id
        if cookie:
            args["cookie"] = cookie
        return self.execute("associateLead", args, return_raw=return_raw)

    def get_paging_token(
        self, since_datetime: Union[str, datetime], args: Args = None, return_raw: bool = False
    ) -> Result:
        """Get a paging token for activities since ``since_datetime``."""
        args = dict(args or {})
        if isinstance(since_datetime, datetime):
            since_datetime = since_datetime.isoformat()
        args["sinceDatetime"] = since_datetime
        return self.execute("getPagingToken", args, return_raw=return_raw)

    def get_lead_changes(
        self,
        next_page_token: str,
        fields: Union[str, List[str]],
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Lead field changes since ``next_page_token``; see :meth:`get_paging_token`.

        Raises
        ------
        BuildError
            If ``fields`` is empty.
        """
        fields = list(fields) if _is_list(fields) else [fields]
        if not fields or any(field in (None, "") for field in fields):
            raise BuildError("get_lead_changes needs at least one field name")
        args = dict(args or {})
        args["nextPageToken"] = next_page_token
        args["fields"] = fields
        return self.execute("getLeadChanges", args, repeated_keys=True, return_raw=return_raw)

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------
    def get_lists(self, ids: Optional[Ids] = None, args: Args = None, return_raw: bool = False) -> Result:
        """Get static lists, optionally restricted to ``ids``."""
        args = dict(args or {})
        if ids:
            args["id"] = ids
        return self.execute("getLists", args, repeated_keys=_is_list(ids), return_raw=return_raw)

    def get_list(self, id: int, args: Args = None, return_raw: bool = False) -> Result:
        """Get static list ``id``; unsuccessful when it does not exist."""
        args = dict(args or {})
        args["id"] = id
        return self.execute("getList", args, return_raw=return_raw)

    def is_member_of_list(self, list_id: int, id: Ids, args: Args = None, return_raw: bool = False) -> Result:
        """Check whether one or more leads are members of list ``list_id``.

        See :meth:`Response.is_member_of_list
        <marketo_rest_client.response.Response.is_member_of_list>`.
        """
        args = dict(args or {})
        args["listId"] = list_id
        args["id"] = id
        return self.execute("isMemberOfList", args, repeated_keys=_is_list(id), return_raw=return_raw)

    def add_leads_to_list(self, list_id: int, leads: Ids, args: Args = None, return_raw: bool = False) -> Result:
        """Add one lead or a list of leads to static list ``list_id``."""
        args = dict(args or {})
        args["listId"] = list_id
        args["id"] = list(leads) if _is_list(leads) else [leads]
        return self.execute("addLeadsToList", args, repeated_keys=True, return_raw=return_raw)

    def remove_leads_from_list(
        self, list_id: int, leads: Ids, args: Args = None, return_raw: bool = False
    ) -> Result:
        """Remove one lead or a list of leads from static list ``list_id``."""
        args = dict(args or {})
        args["listId"] = list_id
        args["id"] = list(leads) if _is_list(leads) else [leads]
        return self.execute("removeLeadsFromList", args, repeated_keys=True, return_raw=return_raw)

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------
    def get_campaign(self, id: int, args: Args = None, return_raw: bool = False) -> Result:
        """Get campaign ``id``; unsuccessful when it does not exist."""
        args = dict(args or {})
        args["id"] = id
        return self.execute("getCampaign", args, return_raw=return_raw)

    def get_campaigns(self, ids: Optional[Ids] = None, args: Args = None, return_raw: bool = False) -> Result:
        """Get campaigns, optionally restricted to ``ids``."""
        args = dict(args or {})
        if ids:
            args["id"] = ids
        return self.execute("getCampaigns", args, repeated_keys=_is_list(ids), return_raw=return_raw)

    def request_campaign(
        self,
        id: int,
        leads: Ids,
        tokens: Optional[List[Dict[str, Any]]] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Trigger campaign ``id`` for one or more leads.

        ``tokens`` is a list of ``{"name": "{{my.token}}", "value": ...}``
        overrides.
        """
        args = dict(args or {})
        args["id"] = id
        leads = leads if _is_list(leads) else [leads]
        args["input"] = {"leads": [{"id": lead} for lead in leads]}
        if tokens:
            args["input"]["tokens"] = tokens
        return self.execute("requestCampaign", args, return_raw=return_raw)

    def schedule_campaign(
        self,
        id: int,
        run_at: Optional[datetime] = None,
        tokens: Optional[List[Dict[str, Any]]] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Schedule a batch campaign.  Marketo runs it in five minutes when ``run_at`` is omitted."""
        if run_at is not None and not isinstance(run_at, datetime):
            raise BuildError(f"run_at must be a datetime, got {type(run_at).__name__}")
        args = dict(args or {})
        args["id"] = id
        campaign_input: Dict[str, Any] = {}
        if run_at is not None:
            campaign_input["runAt"] = run_at.isoformat()
        if tokens:
            campaign_input["tokens"] = tokens
        if campaign_input:
            args["input"] = campaign_input
        return self.execute("scheduleCampaign", args, return_raw=return_raw)

    # ------------------------------------------------------------------
    # Email assets
    # ------------------------------------------------------------------
    def update_email_content(self, email_id: int, args: Args = None, return_raw: bool = False) -> Result:
        """Update subject, sender or reply-to of email ``email_id``."""
        args = dict(args or {})
        args["id"] = email_id
        return self.execute("updateEmailContent", args, return_raw=return_raw)

    def update_email_content_in_editable_section(
        self, email_id: int, html_id: str, args: Args = None, return_raw: bool = False
    ) -> Result:
        """Replace the content of editable section ``html_id`` of an email."""
        args = dict(args or {})
        args["id"] = email_id
        args["htmlId"] = html_id
        return self.execute("updateEmailContentInEditableSection", args, return_raw=return_raw)

    def approve_email(self, email_id: int, args: Args = None, return_raw: bool = False) -> Result:
        """Approve the draft of email ``email_id``."""
        args = dict(args or {})
        args["id"] = email_id
        return self.execute("approveEmailbyId", args, return_raw=return_raw)

    # ------------------------------------------------------------------
    # Custom objects, companies, opportunities
    # ------------------------------------------------------------------
    def get_custom_objects_by_filter_type(
        self,
        object_name: str,
        filter_type: str,
        filter_value: Any,
        fields: Optional[List[str]] = None,
        return_raw: bool = False,
    ) -> Result:
        """Look up records of custom object ``object_name``.

        The response is unsuccessful when nothing matches, even though
        Marketo itself reports success.
        """
        args: Dict[str, Any] = {
            "objectName": object_name,
            "filterType": filter_type,
            "filterValues": filter_value,
        }
        if fields:
            args["fields"] = fields
        return self.execute("getCustomObjectsByFilterType", args, return_raw=return_raw)

    def get_companies_by_filter_type(
        self,
        filter_type: str,
        filter_values: Any,
        fields: Optional[List[str]] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Look up companies; unsuccessful when nothing matches."""
        args = dict(args or {})
        args["filterType"] = filter_type
        args["filterValues"] = filter_values
        if fields:
            args["fields"] = fields
        return self.execute("getCompaniesByFilterType", args, return_raw=return_raw)

    def sync_companies(
        self,
        companies: List[Dict[str, Any]],
        action: str = "createOrUpdate",
        dedupe_by: Optional[str] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Create or update company records."""
        args = dict(args or {})
        args["input"] = companies
        args["action"] = action
        if dedupe_by:
            args["dedupeBy"] = dedupe_by
        return self.execute("syncCompanies", args, return_raw=return_raw)

    def get_opportunities_by_filter_type(
        self,
        filter_type: str,
        filter_values: Any,
        fields: Optional[List[str]] = None,
        args: Args = None,
        return_raw: bool = False,
    ) -> Result:
        """Look up opportunities; unsuccessful when nothing matches."""
        args = dict(args or {})
        args["filterType"] = filter_type
        args["filterValues"] = filter_values
        if fields:
            args["fields"] = fields
        return self.execute("getOpportunitiesByFilterType", args, return_raw=return_raw)

    def describe(self, object_family: str, object_name: Optional[str] = None, return_raw: bool = False) -> Result:
        """Describe the fields of an object family.

        ``object_family`` is one of ``leads``, ``companies``,
        ``opportunities`` or ``customobjects``; the latter needs
        ``object_name``.
        """
        operation = DESCRIBE_OPERATIONS.get(str(object_family).lower())
        if operation is None:
            raise BuildError(f"Unknown object family: {object_family!r}")
        args: Dict[str, Any] = {}
        if operation == "describeCustomObject":
            if not object_name:
                raise BuildError("object_name is required to describe a custom object")
            args["objectName"] = object_name
        return self.execute(operation, args, return_raw=return_raw)

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------
    def add_custom_activities(
        self, activities: List[Dict[str, Any]], args: Args = None, return_raw: bool = False
    ) -> Result:
        """Record custom activities.

        Raises
        ------
        BuildError
            If an activity lacks one of ``leadId``, ``activityDate``,
            ``activityTypeId`` or ``primaryAttributeValue``.
        """
        if not activities:
            raise BuildError("At least one activity must be provided")
        for index, activity in enumerate(activities):
            missing = [name for name in CUSTOM_ACTIVITY_FIELDS if activity.get(name) in (None, "")]
            if missing:
                raise BuildError(f"Activity {index} is missing required field(s): {', '.join(missing)}")
        args = dict(args or {})
        args["input"] = activities
        return self.execute("addCustomActivities", args, return_raw=return_raw)
