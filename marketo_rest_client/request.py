"""
Request construction.

:class:`RequestBuilder` turns an :class:`~marketo_rest_client.catalog.Operation`
and a loose argument map into a fully formed :class:`HttpRequest`:
path placeholders are substituted, the remaining arguments are placed
in the query string, the JSON body or a multipart file part according
to the operation's schema, and the authorization headers are attached.

Query strings use indexed bracket notation for nested values
(``id[0]=1&id[1]=2``).  Marketo wants most list parameters as repeated
keys instead (``id=1&id=2``), so when asked to, the builder rewrites
the bracketed form of the operation's repeated-key parameters after
encoding.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

from .catalog import Operation
from .exceptions import BuildError

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    files: Optional[Mapping[str, Tuple[str, bytes, str]]] = None


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _flatten(prefix: str, value: Any) -> Iterable[Tuple[str, str]]:
    """Yield ``(key, value)`` pairs in indexed bracket notation."""
    if isinstance(value, Mapping):
        for key, item in value.items():
            yield from _flatten(f"{prefix}[{key}]", item)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            yield from _flatten(f"{prefix}[{index}]", item)
    elif value is not None:
        yield prefix, _scalar(value)


def encode_query(params: Mapping[str, Any]) -> str:
    """Encode ``params`` as a form-style query string.

    >>> encode_query({"id": [1, 2], "fields": "email,firstName"})
    'id%5B0%5D=1&id%5B1%5D=2&fields=email%2CfirstName'
    """
    pairs: List[Tuple[str, str]] = []
    for name, value in params.items():
        pairs.extend(_flatten(name, value))
    return urlencode(pairs)


def repeat_keys(query: str, names: Iterable[str]) -> str:
    """Rewrite ``name%5B<n>%5D=`` components of ``query`` to ``name=``.

    Only top-level indexes of the given parameter names are touched;
    component order and every other component are preserved.

    >>> repeat_keys("id%5B0%5D=1&id%5B1%5D=2&listId=7", ["id"])
    'id=1&id=2&listId=7'
    """
    names = list(names)
    if not query or not names:
        return query
    alternation = "|".join(re.escape(quote(name, safe="")) for name in names)
    pattern = re.compile(rf"(^|&)({alternation})%5B[0-9]+%5D=")
    return pattern.sub(r"\1\2=", query)


class RequestBuilder:
    """Build :class:`HttpRequest` objects for catalog operations.

    Parameters
    ----------
    api_url : str
        Root for regular operations, e.g. ``https://host/rest/v1``.
    bulk_url : str
        Root for operations flagged ``bulk`` in the catalog.
    base_url : str
        Instance base URL; paths starting with ``/`` are joined to it.
    """

    def __init__(self, api_url: str, bulk_url: str, base_url: str) -> None:
        self.api_url = api_url.rstrip("/")
        self.bulk_url = bulk_url.rstrip("/")
        self.base_url = base_url.rstrip("/")

    def build(
        self,
        operation: Operation,
        args: Optional[Mapping[str, Any]],
        token: Optional[str] = None,
        *,
        repeated_keys: bool = False,
    ) -> HttpRequest:
        """Build the request for ``operation`` with the given arguments.

        When ``token`` is omitted the request carries no Authorization
        header yet; see :meth:`authorize`.

        Raises
        ------
        BuildError
            If a required parameter or path placeholder has no value, or
            a file parameter does not name a readable file.
        """
        args = dict(args or {})
        self._check_required(operation, args)

        path, consumed = self._expand_path(operation, args)

        query: Dict[str, Any] = {}
        body: Dict[str, Any] = {}
        files: Dict[str, Tuple[str, bytes, str]] = {}
        for name, value in args.items():
            if name in consumed or value is None:
                continue
            if operation.is_csv(name) and isinstance(value, (list, tuple)):
                value = ",".join(str(item) for item in value)
            location = operation.location_of(name)
            if location == "query":
                query[name] = value
            elif location == "json":
                body[name] = value
            elif location == "file":
                files[name] = self._read_file(name, value)

        url = self._root_for(operation, path)
        query_string = encode_query(query)
        if repeated_keys:
            query_string = repeat_keys(query_string, operation.repeated_keys)
        if query_string:
            url = f"{url}?{query_string}"

        req_headers: Dict[str, str] = {}
        if not files:
            # requests generates the multipart boundary header itself
            req_headers["Content-Type"] = "application/json"
        if token is not None:
            req_headers["Authorization"] = f"Bearer {token}"

        return HttpRequest(
            method=operation.method,
            url=url,
            headers=req_headers,
            body=json.dumps(body).encode("utf-8") if body else None,
            files=files or None,
        )

    @staticmethod
    def _check_required(operation: Operation, args: Mapping[str, Any]) -> None:
        missing = [
            name
            for name, param in operation.parameters.items()
            if param.required and args.get(name) is None
        ]
        if missing:
            raise BuildError(
                f"Missing required parameter(s) for {operation.name}: {', '.join(missing)}"
            )

    @staticmethod
    def _expand_path(operation: Operation, args: Mapping[str, Any]) -> Tuple[str, set]:
        """Substitute ``{name}`` placeholders, returning the path and consumed names.

        A placeholder argument declared with a non-``uri`` location is
        also sent in that location.
        """
        consumed = set()

        def substitute(match: "re.Match[str]") -> str:
            name = match.group(1)
            value = args.get(name)
            if value is None:
                raise BuildError(f"Missing path parameter {name!r} for {operation.name}")
            if operation.location_of(name) == "uri" or name not in operation.parameters:
                consumed.add(name)
            return quote(_scalar(value), safe="")

        return _PLACEHOLDER.sub(substitute, operation.path), consumed

    def _root_for(self, operation: Operation, path: str) -> str:
        if path.startswith("/"):
            return f"{self.base_url}{path}"
        root = self.bulk_url if operation.bulk else self.api_url
        return f"{root}/{path}"

    @staticmethod
    def _read_file(name: str, path: Any) -> Tuple[str, bytes, str]:
        try:
            with open(path, "rb") as handle:
                content = handle.read()
        except (OSError, TypeError) as exc:
            raise BuildError(f"Cannot read file for parameter {name!r}: {path}") from exc
        return os.path.basename(str(path)), content, "text/plain"

    @staticmethod
    def authorize(request: HttpRequest, token: str) -> HttpRequest:
        """Return a copy of ``request`` carrying ``token`` as its bearer token."""
        headers = dict(request.headers)
        headers["Authorization"] = f"Bearer {token}"
        return replace(request, headers=headers)
