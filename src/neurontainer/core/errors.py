"""
Error taxonomy for neurontainer.

Expected failures (bad config payloads, unreachable daemon, connection
timeouts) are raised as subclasses of NeurontainerError so the control
surface can map them to structured responses.
"""

from typing import Optional


class NeurontainerError(Exception):
    """Base class for all neurontainer errors"""


class ConfigValidationError(NeurontainerError):
    """A permission config payload was rejected"""


class ConfigWriteError(NeurontainerError):
    """The permission file could not be persisted"""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"Failed to write config to {path}: {cause}")
        self.path = path
        self.cause = cause


class ConnectionTimeoutError(NeurontainerError):
    """The caller transport did not reach the OPEN state in time"""

    def __init__(self, url: str, timeout_ms: int, transport_state: str):
        super().__init__(
            f"Timed out after {timeout_ms}ms waiting for Neuro connection ({url}). {transport_state}"
        )
        self.url = url
        self.timeout_ms = timeout_ms
        self.transport_state = transport_state


class ConnectionFailedError(NeurontainerError):
    """The caller transport gave up before reaching the OPEN state"""

    def __init__(self, url: str, transport_state: str):
        super().__init__(f"Neuro connection to {url} failed. {transport_state}")
        self.url = url
        self.transport_state = transport_state


class TransportNotConnectedError(NeurontainerError):
    """Tried to send on a transport without an open socket"""


class DockerNotReadyError(NeurontainerError):
    """The Docker client has not been initialized"""


class DockerAPIError(NeurontainerError):
    """The Docker Engine API answered with an error status"""

    def __init__(self, status: int, message: str, path: Optional[str] = None):
        super().__init__(f"Docker API error {status}: {message}")
        self.status = status
        self.message = message
        self.path = path
