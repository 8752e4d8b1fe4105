"""
OAuth2 client credentials authentication for the Marketo REST API.

:class:`TokenProvider` fetches an access token from the Marketo
identity service and caches it until shortly before it expires.  The
cached token lives behind a lock so that concurrent callers observe
either the old token or the refreshed one, and so that an expired
token is refreshed exactly once no matter how many threads notice it
at the same time.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from .exceptions import AuthError

logger = logging.getLogger(__name__)

IDENTITY_PATH = "/identity/oauth/token"


@dataclass(frozen=True)
class AuthToken:
    """A bearer token and the epoch second at which it stops being valid.

    ``margin`` is how many seconds before ``expires_at`` the token is
    already treated as expired.
    """

    value: str
    expires_at: float
    margin: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at - self.margin


class TokenProvider:
    """Obtain and cache Marketo access tokens.

    Parameters
    ----------
    base_url : str
        The instance base URL, e.g. ``https://123-ABC-456.mktorest.com``.
        The token endpoint is derived from it.
    client_id : str
        The LaunchPoint service client id.
    client_secret : str
        The LaunchPoint service client secret.
    session : requests.Session, optional
        Session used for the grant request.  A new one is created when
        omitted.
    timeout : float, optional
        Timeout in seconds for the grant request.
    expiry_margin : float, optional
        A cached token is considered expired this many seconds before
        its real expiry.  Defaults to 60 seconds.  For a token granted
        with less than twice that lifetime left, half its lifetime is
        used instead.
    clock : callable, optional
        Returns the current epoch time.  Defaults to :func:`time.time`.

    Notes
    -----
    Refreshes are coalesced: the expiry check and the grant request
    both run under a single lock, so callers that arrive while a
    refresh is in flight wait for it and reuse its result instead of
    issuing grants of their own.
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        expiry_margin: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.token_url = f"{base_url.rstrip('/')}{IDENTITY_PATH}"
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session or requests.Session()
        self.timeout = timeout
        self.expiry_margin = expiry_margin
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[AuthToken] = None

    def token(self) -> AuthToken:
        """Return a valid access token, refreshing it if expired."""
        with self._lock:
            cached = self._token
            if cached is not None and not cached.is_expired(self._clock()):
                return cached
            self._token = self._grant()
            return self._token

    def invalidate(self, stale: Optional[AuthToken] = None) -> None:
        """Forget the cached token so the next :meth:`token` call refreshes.

        When ``stale`` is given the cache is only cleared if it still
        holds that token; a token already replaced by another caller's
        refresh is kept.
        """
        with self._lock:
            if stale is None or self._token == stale:
                self._token = None

    def _grant(self) -> AuthToken:
        """Perform the client credentials grant.

        Must be called with ``self._lock`` held.
        """
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
        }
        logger.debug("Requesting access token from %s", self.token_url)
        try:
            response = self.session.post(
                self.token_url, data=payload, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise AuthError(f"Failed to connect to identity service: {exc}") from exc

        if not response.ok:
            raise AuthError(
                f"Authentication failed with status {response.status_code}: {response.text}"
            )

        try:
            token_info: Dict[str, Any] = response.json()
        except ValueError as exc:
            raise AuthError("Authentication response was not valid JSON") from exc
        if not isinstance(token_info, dict):
            raise AuthError("Authentication response was not a JSON object")

        access_token = token_info.get("access_token")
        if not access_token:
            raise AuthError("Authentication response did not contain an access_token")
        expires_in = token_info.get("expires_in")
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            raise AuthError("Authentication response did not contain a numeric expires_in")

        logger.info("Acquired access token valid for %s seconds", expires_in)
        lifetime = float(expires_in)
        return AuthToken(
            value=access_token,
            expires_at=self._clock() + lifetime,
            margin=min(self.expiry_margin, lifetime / 2),
        )
