"""Shared test fixtures.

Provides:
  - MockAdapter: a fake requests transport adapter that records every
    outgoing request and replays queued responses
  - a requests.Session with the adapter mounted
  - a Client wired to that session
"""

import json
import threading
import time
from typing import Any, List, Optional, Tuple, Union
from urllib.parse import parse_qsl, urlsplit

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from marketo_rest_client import Client

TEST_MUNCHKIN = "123-abc-456"
BASE_URL = f"https://{TEST_MUNCHKIN}.mktorest.com"
REST_URL = f"{BASE_URL}/rest/v1"
BULK_URL = f"{BASE_URL}/bulk/v1"
TOKEN_URL = f"{BASE_URL}/identity/oauth/token"

OK_EMPTY = {"requestId": "a1#1", "success": True, "result": []}

Reply = Union[Tuple[int, Any], Exception]


def make_response(request: requests.PreparedRequest, status: int, payload: Any) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = "OK" if status < 400 else "Error"
    if isinstance(payload, (bytes, str)):
        body = payload.encode("utf-8") if isinstance(payload, str) else payload
        content_type = "text/plain"
    else:
        body = json.dumps(payload).encode("utf-8")
        content_type = "application/json"
    response._content = body
    response.encoding = "utf-8"
    response.headers = CaseInsensitiveDict({"Content-Type": content_type})
    response.url = request.url
    response.request = request
    return response


def query_pairs(request: requests.PreparedRequest) -> List[Tuple[str, str]]:
    """Decoded query components of ``request`` in order."""
    return parse_qsl(urlsplit(request.url).query, keep_blank_values=True)


class MockAdapter(BaseAdapter):
    """Transport adapter that never touches the network.

    Token grant requests are answered from ``token_replies`` (or a fresh
    numbered token when that queue is empty); every other request pops
    the next entry of ``replies`` (or ``default`` when empty).  A reply
    that is an exception instance is raised instead of returned.
    """

    def __init__(
        self,
        replies: Optional[List[Reply]] = None,
        token_replies: Optional[List[Reply]] = None,
        default: Tuple[int, Any] = (200, OK_EMPTY),
        grant_delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.replies = list(replies or [])
        self.token_replies = list(token_replies or [])
        self.default = default
        self.grant_delay = grant_delay
        self.requests: List[requests.PreparedRequest] = []
        self.token_requests: List[requests.PreparedRequest] = []
        self.timeouts: List[Any] = []
        self._lock = threading.Lock()

    def send(self, request, **kwargs):
        self.timeouts.append(kwargs.get("timeout"))
        # requests lowercases the host when preparing the URL
        if request.url.lower().startswith(TOKEN_URL.lower()):
            with self._lock:
                self.token_requests.append(request)
                number = len(self.token_requests)
                reply = self.token_replies.pop(0) if self.token_replies else None
            if self.grant_delay:
                time.sleep(self.grant_delay)
            if reply is None:
                reply = (200, {"access_token": f"token-{number}", "token_type": "bearer", "expires_in": 3599})
        else:
            with self._lock:
                self.requests.append(request)
                reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        status, payload = reply
        return make_response(request, status, payload)

    def close(self):
        pass


@pytest.fixture
def adapter():
    return MockAdapter()


@pytest.fixture
def session(adapter):
    s = requests.Session()
    s.mount("https://", adapter)
    return s


@pytest.fixture
def client(session):
    return Client(
        client_id="test-client",
        client_secret="test-secret",
        munchkin_id=TEST_MUNCHKIN,
        session=session,
    )
