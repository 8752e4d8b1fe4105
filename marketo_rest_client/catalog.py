"""
The operation catalog.

Every API call the client can make is described by an
:class:`Operation`: an HTTP verb, a path template relative to the API
root and a schema saying where each parameter goes.  The descriptions
are plain data, shipped as ``service.json`` next to this module, and
are loaded once into a read-only :class:`OperationCatalog` when a
client is created.

Catalog format
--------------

.. code-block:: json

    {
      "operations": {
        "getList": {
          "method": "GET",
          "path": "lists/{id}.json",
          "parameters": {
            "id": {"location": "uri", "required": true},
            "batchSize": {"location": "query"}
          }
        }
      }
    }

``location`` is one of ``uri``, ``query``, ``json`` or ``file``.  An
operation may also set ``"bulk": true`` to target the bulk API root and
``"repeatedKeys"`` to list the parameters that are sent as repeated
``name=value`` pairs when repeated-key encoding is requested.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Tuple, Union

from .exceptions import ConfigError, BuildError

LOCATIONS = frozenset({"uri", "query", "json", "file"})

# Parameters whose list values are sent comma separated.
CSV_PARAMETERS = frozenset({"fields"})

DEFAULT_REPEATED_KEYS: Tuple[str, ...] = ("id",)


@dataclass(frozen=True)
class Parameter:
    name: str
    location: str
    required: bool = False
    csv: bool = False


@dataclass(frozen=True)
class Operation:
    """A single catalog entry."""

    name: str
    method: str
    path: str
    parameters: Mapping[str, Parameter] = field(default_factory=lambda: MappingProxyType({}))
    bulk: bool = False
    repeated_keys: Tuple[str, ...] = DEFAULT_REPEATED_KEYS

    @property
    def default_location(self) -> str:
        """Where arguments missing from the schema are placed."""
        return "query" if self.method in ("GET", "DELETE") else "json"

    def location_of(self, name: str) -> str:
        param = self.parameters.get(name)
        return param.location if param is not None else self.default_location

    def is_csv(self, name: str) -> bool:
        param = self.parameters.get(name)
        if param is not None and param.csv:
            return True
        return name in CSV_PARAMETERS


class OperationCatalog(Mapping[str, Operation]):
    """Immutable mapping of operation name to :class:`Operation`."""

    def __init__(self, operations: Mapping[str, Operation]) -> None:
        self._operations = MappingProxyType(dict(operations))

    def __getitem__(self, name: str) -> Operation:
        return self._operations[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def operation(self, name: str) -> Operation:
        """Return the operation called ``name`` or raise :class:`BuildError`."""
        try:
            return self._operations[name]
        except KeyError:
            raise BuildError(f"Unknown operation: {name!r}") from None


def _parse_operation(name: str, entry: Mapping[str, Any]) -> Operation:
    method = str(entry.get("method", "")).upper()
    path = entry.get("path")
    if not method or not path:
        raise ConfigError(f"Operation {name!r} must define a method and a path")

    parameters = {}
    for param_name, param_entry in (entry.get("parameters") or {}).items():
        location = param_entry.get("location", "query")
        if location not in LOCATIONS:
            raise ConfigError(
                f"Operation {name!r} parameter {param_name!r} has unknown location {location!r}"
            )
        parameters[param_name] = Parameter(
            name=param_name,
            location=location,
            required=bool(param_entry.get("required", False)),
            csv=bool(param_entry.get("csv", False)),
        )

    repeated = entry.get("repeatedKeys")
    return Operation(
        name=name,
        method=method,
        path=path,
        parameters=MappingProxyType(parameters),
        bulk=bool(entry.get("bulk", False)),
        repeated_keys=tuple(repeated) if repeated else DEFAULT_REPEATED_KEYS,
    )


def load_catalog(source: Optional[Union[str, Path, Mapping[str, Any]]] = None) -> OperationCatalog:
    """Load an operation catalog.

    Parameters
    ----------
    source : str, Path or mapping, optional
        A path to a catalog JSON file, an already parsed catalog
        document, or ``None`` to load the ``service.json`` bundled with
        this package.

    Raises
    ------
    ConfigError
        If the document cannot be read or an entry is malformed.
    """
    if isinstance(source, OperationCatalog):
        return source
    if source is None:
        text = resources.files(__package__).joinpath("service.json").read_text(encoding="utf-8")
        document = json.loads(text)
    elif isinstance(source, (str, Path)):
        try:
            document = json.loads(Path(source).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot load operation catalog from {source}: {exc}") from exc
    else:
        document = source

    operations = document.get("operations")
    if not isinstance(operations, Mapping):
        raise ConfigError("Operation catalog must contain an 'operations' object")
    return OperationCatalog(
        {name: _parse_operation(name, entry) for name, entry in operations.items()}
    )
