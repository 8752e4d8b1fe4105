"""
Orchestration of a single API call.

:class:`Dispatcher` runs build -> send -> decode for one operation.
The only recovery it performs is a single token refresh and retry when
Marketo rejects the bearer token mid flight; every other failure is
raised to the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional, Union

from .auth import TokenProvider
from .catalog import OperationCatalog
from .request import RequestBuilder
from .response import Response, ResponseDecoder
from .transport import HttpExecutor, RawResponse

logger = logging.getLogger(__name__)

# 601: access token invalid, 602: access token expired
AUTH_ERROR_CODES = frozenset({"601", "602"})


def is_auth_failure(raw: RawResponse) -> bool:
    """Return True if ``raw`` says the bearer token was not accepted."""
    if raw.status == 401:
        return True
    try:
        data = json.loads(raw.body)
    except ValueError:
        return False
    if not isinstance(data, dict) or data.get("success") is not False:
        return False
    return any(
        isinstance(error, dict) and str(error.get("code")) in AUTH_ERROR_CODES
        for error in data.get("errors") or []
    )


class Dispatcher:
    """Execute catalog operations.

    Parameters
    ----------
    catalog : OperationCatalog
        Operation descriptions.
    builder : RequestBuilder
        Builds requests against the configured API roots.
    executor : HttpExecutor
        Sends built requests.
    tokens : TokenProvider
        Supplies bearer tokens.
    decoder : ResponseDecoder, optional
        Decodes responses; a default decoder is used when omitted.
    """

    def __init__(
        self,
        catalog: OperationCatalog,
        builder: RequestBuilder,
        executor: HttpExecutor,
        tokens: TokenProvider,
        decoder: Optional[ResponseDecoder] = None,
    ) -> None:
        self.catalog = catalog
        self.builder = builder
        self.executor = executor
        self.tokens = tokens
        self.decoder = decoder or ResponseDecoder()

    def execute(
        self,
        operation_name: str,
        args: Optional[Mapping[str, Any]] = None,
        *,
        repeated_keys: bool = False,
        return_raw: bool = False,
    ) -> Union[Response, bytes]:
        """Run ``operation_name`` with ``args``.

        Parameters
        ----------
        operation_name : str
            Name of a catalog operation, e.g. ``"getLead"``.
        args : mapping, optional
            Operation arguments.
        repeated_keys : bool, optional
            Send list values of the operation's repeated-key parameters
            as ``id=1&id=2`` instead of ``id[0]=1&id[1]=2``.
        return_raw : bool, optional
            Return the response body bytes without decoding.

        Returns
        -------
        Response or bytes
            The decoded response, or the raw body in raw mode.

        Raises
        ------
        BuildError, AuthError, TransportError, DecodeError
        """
        operation = self.catalog.operation(operation_name)
        # BuildError must surface before any token grant.
        request = self.builder.build(operation, args, repeated_keys=repeated_keys)

        token = self.tokens.token()
        raw = self.executor.send(self.builder.authorize(request, token.value))

        if is_auth_failure(raw):
            logger.warning("%s: access token rejected, refreshing and retrying once", operation_name)
            self.tokens.invalidate(token)
            token = self.tokens.token()
            raw = self.executor.send(self.builder.authorize(request, token.value))

        if return_raw:
            return raw.body
        return self.decoder.decode(operation_name, raw)
