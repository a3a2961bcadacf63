"""
Action Types

Data model shared by the catalog, the permission store and the dispatcher.
An action is declared once at import time and never mutated afterwards;
ActionData / ActionResult live for the duration of one request.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


class PermissionLevel(str, Enum):
    """
    Per-action enablement tier, ordered by increasing autonomy.

    OFF actions are never advertised to the caller and are always rejected
    by the dispatcher. FORCE / AUTOPILOT only matter to the transport layer.
    """
    OFF = "OFF"
    FORCE = "FORCE"
    AUTOPILOT = "AUTOPILOT"

    @property
    def enabled(self) -> bool:
        return self is not PermissionLevel.OFF


@dataclass
class ActionData:
    """One inbound action request from the caller."""
    id: str
    name: str
    params: Any = field(default_factory=dict)


@dataclass
class ActionResult:
    """Outcome of an action handler."""
    success: bool
    message: str
    silent: Optional[bool] = None


@dataclass
class ActionValidationResult:
    """
    Outcome of a custom validator.

    success=False stops the pipeline before the handler runs. This is not
    the success flag sent back to the caller; that one is derived from
    `retry` (see DispatchEngine).
    """
    success: bool
    message: Optional[str] = None
    retry: Optional[bool] = None


ActionHandler = Callable[[ActionData], Awaitable[ActionResult]]
ActionValidator = Callable[
    [ActionData],
    Union[ActionValidationResult, Awaitable[ActionValidationResult]]
]


@dataclass(frozen=True)
class WireAction:
    """The part of an action the caller is allowed to see."""
    name: str
    description: str
    schema: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "description": self.description}
        if self.schema is not None:
            data["schema"] = self.schema
        return data


@dataclass(frozen=True)
class RCEAction:
    """
    A named operation the caller may request.

    The handler is the only place side effects on the Docker daemon occur.
    """
    name: str
    description: str
    handler: ActionHandler
    default_permission: PermissionLevel = PermissionLevel.OFF
    schema: Optional[Dict[str, Any]] = None
    validators: List[ActionValidator] = field(default_factory=list)
    display_name: Optional[str] = None

    def to_wire(self) -> WireAction:
        return WireAction(name=self.name, description=self.description, schema=self.schema)
