"""
Custom exception types for the Marketo REST API client.

These exceptions allow callers to distinguish between failures
occurring at construction, during authentication, while building a
request, on the wire, while decoding a response, and those reported
by Marketo itself inside a well-formed response envelope.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class MarketoError(Exception):
    """Base exception for all Marketo client errors."""


class ConfigError(MarketoError, ValueError):
    """Raised when a required construction parameter is missing or invalid."""


class AuthError(MarketoError):
    """Raised when the client credentials grant fails or returns a malformed token."""


class BuildError(MarketoError, ValueError):
    """Raised when a request cannot be built from the supplied arguments.

    This is always raised before any network I/O takes place.
    """


class TransportError(MarketoError):
    """Raised on connection failures, timeouts and DNS errors."""


class DecodeError(MarketoError):
    """Raised when a response body is not a valid Marketo envelope."""


class ApiError(MarketoError):
    """Raised for a well-formed envelope that reports failure.

    ``errors`` holds the ``{"code": ..., "message": ...}`` entries
    supplied by Marketo, or a single synthesized entry when Marketo
    supplied none.
    """

    def __init__(self, errors: List[Dict[str, Any]], request_id: Optional[str] = None) -> None:
        self.errors = list(errors)
        self.request_id = request_id
        first = self.errors[0] if self.errors else {}
        self.code = str(first.get("code", ""))
        self.message = first.get("message", "Unknown error")
        super().__init__(f"[{self.code}] {self.message}" if self.code else self.message)
