"""
Python client for interacting with the Marketo REST API.

This package provides a `Client` class that handles OAuth2
client-credentials authentication against the Marketo identity
service, builds requests from a declarative operation catalog and
decodes Marketo's response envelopes.

The client caches access tokens for their lifetime and requests a new
token when the current one expires or is rejected.

Examples
--------

```python
from marketo_rest_client import Client

client = Client(
    client_id="YOUR_CLIENT_ID",
    client_secret="YOUR_CLIENT_SECRET",
    munchkin_id="123-ABC-456",
)

response = client.get_leads_by_filter_type("email", "jane@example.com")
if response.is_success():
    for lead in response.get_leads():
        print(lead["id"])
```

See Also
--------
Marketo's REST API documentation describes the identity endpoint
(``/identity/oauth/token``), the ``{requestId, success, result, errors}``
response envelope and the available endpoints.
"""

from .catalog import Operation, OperationCatalog, Parameter, load_catalog
from .client import Client
from .exceptions import (
    ApiError,
    AuthError,
    BuildError,
    ConfigError,
    DecodeError,
    MarketoError,
    TransportError,
)
from .response import InterpretationRule, Response

__all__ = [
    "Client",
    "Operation",
    "OperationCatalog",
    "Parameter",
    "load_catalog",
    "Response",
    "InterpretationRule",
    "MarketoError",
    "ConfigError",
    "AuthError",
    "BuildError",
    "TransportError",
    "DecodeError",
    "ApiError",
]
