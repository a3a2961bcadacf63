"""
RCE Dispatch Engine

Runs one inbound action request through:

    docker readiness -> lookup -> permission gate -> schema validation
        -> custom validators -> ack -> handler -> outcome report

Results go out on two separate ports of the transport:
- the result port (`send_action_result`), tied to the request id and used
  exactly once per consumed request
- the context port (`send_context`), free-form text not tied to any id

Nothing raised by a handler, a validator or the transport escapes
`handle()`; failures are logged and turned into caller-facing messages.
"""

import inspect
import logging
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from .catalog import ActionCatalog
from .permissions import PermissionStore
from .schema_validator import format_schema_failure, validate
from .types import ActionData, ActionResult, ActionValidationResult, PermissionLevel

logger = logging.getLogger(__name__)

ERROR_MSG_REFERENCE = "please ask the operator to check the neurontainer logs."
UNKNOWN_ACTION_MESSAGE = "Unknown action."


class ActionTransport(Protocol):
    """The two output ports the dispatcher reports through"""

    async def send_action_result(self, action_id: str, success: bool, message: Optional[str] = None) -> None:
        ...

    async def send_context(self, message: str, silent: bool = False) -> None:
        ...


class DispatchOutcome(str, Enum):
    """Where a request left the pipeline"""
    DOCKER_NOT_READY = "docker_not_ready"
    UNKNOWN_ACTION = "unknown_action"
    PERMISSION_DENIED = "permission_denied"
    SCHEMA_INVALID = "schema_invalid"
    VALIDATOR_REJECTED = "validator_rejected"
    EXECUTED = "executed"
    HANDLER_FAILED = "handler_failed"
    HANDLER_EXCEPTION = "handler_exception"


class DispatchEngine:
    """
    Validate -> execute -> report pipeline for action requests.

    Requests are independent: the engine keeps no per-request state, so
    concurrent calls to `handle()` for different ids never block each other.
    """

    def __init__(
        self,
        catalog: ActionCatalog,
        store: PermissionStore,
        transport: ActionTransport,
        docker_ready: Callable[[], bool],
    ):
        self.catalog = catalog
        self.store = store
        self.transport = transport
        self.docker_ready = docker_ready

    async def handle(self, action_data: ActionData) -> DispatchOutcome:
        """Run a single request through the pipeline"""
        logger.info(f"Received action from Neuro: {action_data.name} {action_data.params!r}")

        if not self.docker_ready():
            # Pre-dispatch failure: the id is left unacknowledged
            await self._send_context(f"Docker client not initialized, {ERROR_MSG_REFERENCE}", silent=False)
            return DispatchOutcome.DOCKER_NOT_READY

        action = self.catalog.find_by_name(action_data.name)
        if action is None:
            # Unknown actions are a no-op success so a stale action list is not punished
            await self._send_result(action_data.id, True, UNKNOWN_ACTION_MESSAGE)
            return DispatchOutcome.UNKNOWN_ACTION

        level = self.store.level_for(action.name)
        if level is PermissionLevel.OFF:
            message = f"Action {action.name} is disabled (permission OFF) and cannot be executed."
            logger.warning(message)
            await self._send_result(action_data.id, False, message)
            return DispatchOutcome.PERMISSION_DENIED

        if action.schema is not None:
            result = validate(action_data.params, action.schema)
            if not result.valid:
                await self._send_result(action_data.id, False, format_schema_failure(result.errors))
                return DispatchOutcome.SCHEMA_INVALID

        for validator in action.validators:
            try:
                verdict = await self._run_validator(validator, action_data)
            except Exception as e:
                logger.exception(f"Validator for action {action.name} raised: {e}")
                await self._send_result(
                    action_data.id, False, f"Action validation threw an exception! {ERROR_MSG_REFERENCE}"
                )
                return DispatchOutcome.VALIDATOR_REJECTED

            if not verdict.success:
                # The sent success flag tells Neuro whether a retry is sanctioned
                await self._send_result(action_data.id, not verdict.retry, verdict.message)
                return DispatchOutcome.VALIDATOR_REJECTED

        await self._send_result(action_data.id, True)

        try:
            action_result = await action.handler(action_data)
            if not isinstance(action_result, ActionResult):
                raise TypeError(f"handler returned {type(action_result).__name__}, expected ActionResult")
        except Exception as e:
            logger.exception(f"Action {action.name} threw an exception during execution: {e}")
            await self._send_context(f"Action threw an exception during execution! {ERROR_MSG_REFERENCE}", silent=False)
            return DispatchOutcome.HANDLER_EXCEPTION

        if not action_result.success:
            logger.error(f"Action {action.name} failed! Full reason: {action_result.message}")

        message = action_result.message if action_result.success else f"Action failed: {action_result.message}"
        await self._send_context(message, silent=bool(action_result.silent))
        return DispatchOutcome.EXECUTED if action_result.success else DispatchOutcome.HANDLER_FAILED

    async def _run_validator(self, validator: Callable[[ActionData], Any], action_data: ActionData) -> ActionValidationResult:
        verdict = validator(action_data)
        if inspect.isawaitable(verdict):
            verdict = await verdict
        if not isinstance(verdict, ActionValidationResult):
            raise TypeError(f"validator returned {type(verdict).__name__}, expected ActionValidationResult")
        return verdict

    async def _send_result(self, action_id: str, success: bool, message: Optional[str] = None) -> None:
        try:
            if message is None:
                await self.transport.send_action_result(action_id, success)
            else:
                await self.transport.send_action_result(action_id, success, message)
        except Exception as e:
            logger.error(f"Failed to send action result for {action_id}: {e}")

    async def _send_context(self, message: str, silent: bool = False) -> None:
        try:
            await self.transport.send_context(message, silent)
        except Exception as e:
            logger.error(f"Failed to send context to Neuro: {e}")
