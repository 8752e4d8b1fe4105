"""
HTTP transport for built requests.

:class:`HttpExecutor` is the only component that talks to the API
hosts.  It sends an :class:`~marketo_rest_client.request.HttpRequest`
over a shared :class:`requests.Session` and hands back the status,
headers and body untouched; deciding what a response means is left
to the decoder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

import requests

from .exceptions import TransportError
from .request import HttpRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawResponse:
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


class HttpExecutor:
    """Send requests with a :class:`requests.Session`.

    Parameters
    ----------
    session : requests.Session, optional
        The session to send requests with.  A new one is created when
        omitted.
    timeout : float, optional
        Timeout in seconds applied to every request.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, request: HttpRequest) -> RawResponse:
        """Send ``request`` and return the raw response.

        Raises
        ------
        TransportError
            On connection failures, timeouts and DNS errors.
        """
        logger.debug("%s %s", request.method, request.url)
        try:
            response = self.session.request(
                method=request.method,
                url=request.url,
                headers=dict(request.headers),
                data=request.body,
                files=dict(request.files) if request.files else None,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Failed to connect to {request.url}: {exc}") from exc

        logger.debug("%s %s -> %s", request.method, request.url, response.status_code)
        return RawResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )
