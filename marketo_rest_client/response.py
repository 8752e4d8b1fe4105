"""
Decoded Marketo responses.

Every Marketo call answers with the same JSON envelope::

    {"requestId": "...", "success": true, "result": [...], "errors": [...]}

but the meaning of ``success`` is not uniform.  Several lookups report
``success: true`` with an empty ``result`` when nothing matched, which
makes them inconsistent with calls such as ``getList`` that report a
proper error.  Rather than subclassing a response type per endpoint,
each operation is mapped to an :class:`InterpretationRule` and a single
:class:`Response` type applies it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from .exceptions import ApiError, DecodeError
from .transport import RawResponse


@dataclass(frozen=True)
class InterpretationRule:
    """How to read ``success`` for an operation.

    When ``require_result`` is set, the envelope's ``success`` flag is
    necessary but not sufficient: the result must also be non-empty.
    ``not_found_message`` is reported when such a response fails and
    Marketo supplied no error of its own.
    """

    require_result: bool = False
    not_found_message: Optional[str] = None


DEFAULT_RULE = InterpretationRule()


def not_found(message: str) -> InterpretationRule:
    return InterpretationRule(require_result=True, not_found_message=message)


RULES: Mapping[str, InterpretationRule] = {
    "getLead": not_found("Lead not found"),
    "getLeadByFilterType": not_found("Lead not found"),
    "getList": not_found("List not found"),
    "getCampaign": not_found("Campaign not found"),
    "getCustomObjectsByFilterType": not_found("Custom Objects not found"),
    "getCompaniesByFilterType": not_found("Companies not found"),
    "getOpportunitiesByFilterType": not_found("Opportunities not found"),
}


class Response:
    """A decoded Marketo response envelope.

    Parameters
    ----------
    data : dict
        The parsed envelope.
    rule : InterpretationRule, optional
        Success interpretation for the operation that produced it.
    status : int, optional
        HTTP status code of the response.
    """

    def __init__(
        self,
        data: Dict[str, Any],
        rule: InterpretationRule = DEFAULT_RULE,
        status: Optional[int] = None,
    ) -> None:
        self.data = data
        self.rule = rule
        self.status = status

    def __repr__(self) -> str:
        return f"<Response success={self.is_success()} requestId={self.get_request_id()!r}>"

    def __str__(self) -> str:
        return json.dumps(self.data)

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------
    def get_request_id(self) -> Optional[str]:
        return self.data.get("requestId")

    def get_result(self) -> Any:
        return self.data.get("result")

    def get_errors(self) -> List[Dict[str, Any]]:
        return list(self.data.get("errors") or [])

    def get_warnings(self) -> List[Any]:
        return list(self.data.get("warnings") or [])

    def get_next_page_token(self) -> Optional[str]:
        return self.data.get("nextPageToken")

    def more_result(self) -> bool:
        return bool(self.data.get("moreResult", False))

    def is_success(self) -> bool:
        if self.data.get("success") is not True:
            return False
        if self.rule.require_result:
            return bool(self.get_result())
        return True

    def get_error(self) -> Optional[Dict[str, Any]]:
        """Return the first error, or ``None``.

        For operations with a not-found rule, a successful response has
        no error, and an unsuccessful one without a Marketo error gets
        ``{"code": "", "message": <not found message>}``.
        """
        errors = self.get_errors()
        if self.rule.not_found_message is None:
            return errors[0] if errors else None
        if self.is_success():
            return None
        if errors:
            return errors[0]
        return {"code": "", "message": self.rule.not_found_message}

    def raise_for_error(self) -> None:
        """Raise :class:`ApiError` if the response is not successful."""
        if self.is_success():
            return
        errors = self.get_errors()
        if not errors:
            error = self.get_error()
            errors = [error] if error else [{"code": "", "message": "Request was not successful"}]
        raise ApiError(errors, request_id=self.get_request_id())

    # ------------------------------------------------------------------
    # Result accessors
    # ------------------------------------------------------------------
    def _first(self) -> Optional[Dict[str, Any]]:
        if not self.is_success():
            return None
        result = self.get_result()
        if isinstance(result, list):
            return result[0] if result else None
        return result

    def _all(self) -> Optional[List[Dict[str, Any]]]:
        if not self.is_success():
            return None
        result = self.get_result()
        if result is None:
            return []
        return result if isinstance(result, list) else [result]

    def get_lead(self) -> Optional[Dict[str, Any]]:
        return self._first()

    def get_leads(self) -> Optional[List[Dict[str, Any]]]:
        return self._all()

    def get_list(self) -> Optional[Dict[str, Any]]:
        return self._first()

    def get_lists(self) -> Optional[List[Dict[str, Any]]]:
        return self._all()

    def get_campaign(self) -> Optional[Dict[str, Any]]:
        return self._first()

    def get_campaigns(self) -> Optional[List[Dict[str, Any]]]:
        return self._all()

    def get_custom_objects(self) -> Optional[List[Dict[str, Any]]]:
        return self._all()

    def get_lead_partitions(self) -> Optional[List[Dict[str, Any]]]:
        return self._all()

    def get_lead_changes(self) -> Optional[List[Dict[str, Any]]]:
        return self._all()

    def _entries(self) -> List[Dict[str, Any]]:
        return [entry for entry in self._all() or [] if isinstance(entry, Mapping)]

    def _entry_for(self, lead_id: Any) -> Optional[Dict[str, Any]]:
        entries = self._entries()
        if lead_id is None:
            return entries[0] if len(entries) == 1 else None
        for entry in entries:
            if str(entry.get("id")) == str(lead_id):
                return entry
        return None

    def get_status(self, lead_id: Any = None) -> Optional[str]:
        """Status reported for ``lead_id``, e.g. ``"added"`` or ``"updated"``.

        Without ``lead_id`` the status of the only result is returned.
        """
        entry = self._entry_for(lead_id)
        return entry.get("status") if entry else None

    def get_id(self) -> Optional[Any]:
        entry = self._entry_for(None)
        return entry.get("id") if entry else None

    def get_batch_id(self) -> Optional[int]:
        entry = self._entry_for(None)
        return entry.get("batchId") if entry else None

    def is_member_of_list(self, lead_id: Any = None) -> Optional[Union[bool, Dict[Any, bool]]]:
        """Membership as reported by ``isMemberOfList``.

        With ``lead_id``, or a single lead in the result, a bool is
        returned; otherwise a mapping of lead id to membership.
        ``None`` means the call was not successful or the lead was not
        part of the request.
        """
        if not self.is_success():
            return None
        entries = self._entries()
        if lead_id is not None or len(entries) == 1:
            entry = self._entry_for(lead_id)
            return entry.get("status") == "memberof" if entry else None
        return {entry.get("id"): entry.get("status") == "memberof" for entry in entries}


class ResponseDecoder:
    """Parse raw responses into :class:`Response` objects."""

    def __init__(self, rules: Optional[Mapping[str, InterpretationRule]] = None) -> None:
        self.rules = dict(RULES if rules is None else rules)

    def rule_for(self, operation_name: str) -> InterpretationRule:
        return self.rules.get(operation_name, DEFAULT_RULE)

    def decode(self, operation_name: str, raw: RawResponse) -> Response:
        """Decode ``raw`` using the rule registered for ``operation_name``.

        Raises
        ------
        DecodeError
            If the body is not a JSON object with a ``success`` field.
        """
        try:
            data = json.loads(raw.body.decode("utf-8") if isinstance(raw.body, bytes) else raw.body)
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecodeError(
                f"{operation_name}: response body (HTTP {raw.status}) is not valid JSON"
            ) from exc
        if not isinstance(data, dict) or "success" not in data:
            raise DecodeError(
                f"{operation_name}: response (HTTP {raw.status}) is missing the 'success' field"
            )
        return Response(data, self.rule_for(operation_name), status=raw.status)
