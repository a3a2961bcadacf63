"""
neurontainer Core

Action catalog, permission store, schema validation and the dispatch
engine. Transport- and Docker-agnostic except for the thin Engine client.
"""

from .types import (
    ActionData,
    ActionResult,
    ActionValidationResult,
    PermissionLevel,
    RCEAction,
    WireAction,
)
from .catalog import ActionCatalog
from .permissions import PermissionStore, read_config, validate_incoming_config, write_config
from .schema_validator import format_schema_failure, validate
from .dispatcher import DispatchEngine, DispatchOutcome
from .errors import (
    ConfigValidationError,
    ConfigWriteError,
    ConnectionFailedError,
    ConnectionTimeoutError,
    DockerAPIError,
    DockerNotReadyError,
    NeurontainerError,
    TransportNotConnectedError,
)

__all__ = [
    # Types
    "ActionData",
    "ActionResult",
    "ActionValidationResult",
    "PermissionLevel",
    "RCEAction",
    "WireAction",
    # Catalog / permissions
    "ActionCatalog",
    "PermissionStore",
    "read_config",
    "write_config",
    "validate_incoming_config",
    # Validation / dispatch
    "validate",
    "format_schema_failure",
    "DispatchEngine",
    "DispatchOutcome",
    # Errors
    "NeurontainerError",
    "ConfigValidationError",
    "ConfigWriteError",
    "ConnectionFailedError",
    "ConnectionTimeoutError",
    "TransportNotConnectedError",
    "DockerNotReadyError",
    "DockerAPIError",
]
