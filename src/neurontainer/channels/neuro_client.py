"""
Neuro API Client

WebSocket client for the Neuro game API. Neurontainer connects as a
"game", advertises its actions, receives action requests and reports
results and free-form context back.

Wire format (JSON text frames):
    outbound: {"command": "<cmd>", "game": "<game>", "data": {...}}
        startup, context, actions/register, actions/unregister, action/result
    inbound:  {"command": "action", "data": {"id", "name", "data": "<json>"}}
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

import aiohttp

from ..core.errors import TransportNotConnectedError
from ..core.types import ActionData, WireAction

logger = logging.getLogger(__name__)

# WebSocket readyState values
CONNECTING = 0
OPEN = 1
CLOSING = 2
CLOSED = 3

ActionCallback = Callable[[ActionData], Awaitable[Any]]


def parse_action_message(data: Dict[str, Any]) -> ActionData:
    """
    Build ActionData from the `data` of an inbound `action` message.

    Params arrive as a JSON string. Missing or empty params become {};
    params that are not valid JSON are passed through as the raw string
    so schema validation can reject them.
    """
    raw = data.get("data")
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        params: Any = {}
    elif isinstance(raw, str):
        try:
            params = json.loads(raw)
        except json.JSONDecodeError:
            params = raw
    else:
        params = raw

    return ActionData(id=str(data.get("id", "")), name=str(data.get("name", "")), params=params)


class NeuroClient:
    """
    Caller transport over aiohttp WebSockets.

    Usage:
        client = NeuroClient("ws://localhost:8000", "neurontainer", on_open=announce)
        client.on_action(handle_action)
        await client.start()
        await client.wait_until_open()
        await client.register_actions([...])
    """

    def __init__(
        self,
        url: str,
        game: str,
        on_open: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.url = url
        self.game = game
        self._on_open = on_open
        self._action_callbacks: List[ActionCallback] = []

        # Assignable event hooks
        self.on_error: Optional[Callable[[Any], Any]] = None
        self.on_close: Optional[Callable[[Any, str], Any]] = None

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._ready_state = CLOSED
        self._opened = asyncio.Event()
        self._connect_task: Optional[asyncio.Task] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._action_tasks: Set[asyncio.Task] = set()

    @property
    def ready_state(self) -> int:
        return self._ready_state

    @property
    def is_open(self) -> bool:
        return self._ready_state == OPEN

    def describe(self) -> str:
        return f"ws[url={self.url}, readyState={self._ready_state}]"

    def on_action(self, callback: ActionCallback) -> None:
        """Register a callback for inbound action requests"""
        self._action_callbacks.append(callback)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Begin connecting in the background; returns immediately"""
        self._ready_state = CONNECTING
        self._connect_task = asyncio.create_task(self._connect())

    async def wait_until_open(self) -> None:
        """Return once the handshake has completed or failed; check `is_open` afterwards"""
        await self._opened.wait()

    async def _connect(self) -> None:
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.url)
        except asyncio.CancelledError:
            await self._close_session()
            raise
        except Exception as e:
            self._ready_state = CLOSED
            await self._close_session()
            await self._emit_error(e)
            await self._emit_close("connect_failed", str(e))
            # Wake waiters now; they see the CLOSED state
            self._opened.set()
            return

        self._ready_state = OPEN
        logger.debug(f"WebSocket open: {self.describe()}")
        self._listen_task = asyncio.create_task(self._listen())

        try:
            await self._send("startup")
            if self._on_open is not None:
                await self._on_open()
        except Exception as e:
            logger.exception(f"Error in Neuro open handler: {e}")
            await self._emit_error(e)
        finally:
            self._opened.set()

    async def disconnect(self) -> None:
        """Tear down the socket, even if the handshake is still in progress"""
        if self._ready_state in (CONNECTING, OPEN):
            self._ready_state = CLOSING

        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
            try:
                await self._connect_task
            except (asyncio.CancelledError, Exception):
                pass

        if self._listen_task is not None and not self._listen_task.done():
            self._listen_task.cancel()
            try:
                await self._listen_task
            except (asyncio.CancelledError, Exception):
                pass

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        await self._close_session()
        self._ready_state = CLOSED

    async def _close_session(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _listen(self) -> None:
        ws = self._ws
        close_code: Any = None
        close_reason = ""

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    await self._emit_error(ws.exception())
                    break
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    break
            close_code = ws.close_code
            close_reason = str(getattr(ws, "close_reason", "") or "")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in Neuro WebSocket listener: {e}")
            await self._emit_error(e)

        self._ready_state = CLOSED
        await self._emit_close(close_code if close_code is not None else "unknown", close_reason)

    async def _handle_text(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON frame from Neuro: {raw[:200]}")
            return

        command = message.get("command")
        if command != "action":
            logger.debug(f"Ignoring Neuro command: {command}")
            return

        action_data = parse_action_message(message.get("data") or {})
        for callback in self._action_callbacks:
            # One task per request so slow handlers never block the socket
            task = asyncio.create_task(callback(action_data))
            self._action_tasks.add(task)
            task.add_done_callback(self._action_tasks.discard)

    async def _emit_error(self, error: Any) -> None:
        if self.on_error is None:
            return
        result = self.on_error(error)
        if asyncio.iscoroutine(result):
            await result

    async def _emit_close(self, code: Any, reason: str) -> None:
        if self.on_close is None:
            return
        result = self.on_close(code, reason)
        if asyncio.iscoroutine(result):
            await result

    # =========================================================================
    # OUTBOUND
    # =========================================================================

    async def _send(self, command: str, data: Optional[Dict[str, Any]] = None) -> None:
        if self._ws is None or self._ws.closed or self._ready_state != OPEN:
            raise TransportNotConnectedError(f"Cannot send {command}: {self.describe()}")

        payload: Dict[str, Any] = {"command": command, "game": self.game}
        if data is not None:
            payload["data"] = data
        await self._ws.send_str(json.dumps(payload))

    async def register_actions(self, actions: Iterable[WireAction]) -> None:
        await self._send("actions/register", {"actions": [a.to_dict() for a in actions]})

    async def unregister_actions(self, names: Iterable[str]) -> None:
        await self._send("actions/unregister", {"action_names": list(names)})

    async def send_action_result(self, action_id: str, success: bool, message: Optional[str] = None) -> None:
        data: Dict[str, Any] = {"id": action_id, "success": success}
        if message is not None:
            data["message"] = message
        await self._send("action/result", data)

    async def send_context(self, message: str, silent: bool = False) -> None:
        await self._send("context", {"message": message, "silent": silent})
