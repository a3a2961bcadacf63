"""
Permission Store

Durable mapping from action name to PermissionLevel.

On disk:
    { "permissions": { "<action-name>": "OFF" | "FORCE" | "AUTOPILOT" } }

The legacy flat format `{ "<action-name>": true | false }` is still read and
is migrated to the leveled format the first time it is seen.

Reads degrade to defaults (the process must boot with some permission
state); writes and validation failures are raised to the caller.
"""

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .catalog import ActionCatalog
from .errors import ConfigValidationError, ConfigWriteError
from .types import PermissionLevel

logger = logging.getLogger(__name__)

ActionConfig = Dict[str, PermissionLevel]
ConfigListener = Callable[[ActionConfig, ActionConfig], Awaitable[None]]

_NUMERIC_LEVELS = {
    0: PermissionLevel.OFF,
    1: PermissionLevel.FORCE,
    2: PermissionLevel.AUTOPILOT,
}


def coerce_level(value: Any) -> Optional[PermissionLevel]:
    """
    Interpret a stored or submitted permission value.

    Accepts level names (any case), the numeric enum form (0/1/2) and
    PermissionLevel instances. Returns None for anything else, including
    booleans, which only mean something during legacy migration.
    """
    if isinstance(value, PermissionLevel):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _NUMERIC_LEVELS.get(value)
    if isinstance(value, str):
        try:
            return PermissionLevel(value.strip().upper())
        except ValueError:
            return None
    return None


def migrate_legacy_value(value: Any, default: PermissionLevel) -> Optional[PermissionLevel]:
    """Map a legacy boolean to a level: true keeps the action enabled, false turns it off"""
    if value is True:
        return default if default.enabled else PermissionLevel.AUTOPILOT
    if value is False:
        return PermissionLevel.OFF
    return coerce_level(value)


def get_defaults(catalog: ActionCatalog) -> ActionConfig:
    """Every catalog action at its declared default level"""
    return {
        name: catalog.find_by_name(name).default_permission
        for name in catalog.names()
    }


def normalize_config(
    catalog: ActionCatalog,
    input_config: Optional[Mapping[str, Any]],
    previous: Optional[Mapping[str, Any]] = None,
) -> ActionConfig:
    """
    Reconcile a (partial) config with the current catalog.

    The result contains exactly the catalog's action names: stale names are
    dropped, and each name takes its value from `input_config`, then
    `previous`, then the action's default level. Values that are not valid
    levels are skipped in favour of the next source.
    """
    input_config = input_config or {}
    previous = previous or {}

    normalized: ActionConfig = {}
    for name in catalog.names():
        level = coerce_level(input_config.get(name))
        if level is None:
            level = coerce_level(previous.get(name))
        if level is None:
            level = catalog.find_by_name(name).default_permission
        normalized[name] = level
    return normalized


def serialize_config(config: Mapping[str, PermissionLevel]) -> Dict[str, str]:
    return {name: PermissionLevel(level).value for name, level in config.items()}


def write_config(path: Union[str, Path], config: Mapping[str, PermissionLevel]) -> None:
    """
    Persist `{permissions: config}` atomically.

    Parent directories are created as needed. The document is written to a
    temporary file in the same directory and moved over the target.

    Raises:
        ConfigWriteError: If the file could not be written
    """
    path = Path(path)
    disk = {"permissions": serialize_config(config)}

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(disk, f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        logger.error(f"Error writing config: {e}")
        raise ConfigWriteError(str(path), e) from e

    logger.info("Config saved")


def _write_defaults(catalog: ActionCatalog, path: Path, reason: str) -> ActionConfig:
    defaults = get_defaults(catalog)
    logger.info(f"Writing default permissions to {path} ({reason})")
    try:
        write_config(path, defaults)
    except ConfigWriteError:
        # Still boot with defaults; the next successful update persists them.
        logger.warning(f"Could not persist default permissions to {path}")
    return defaults


def read_config(catalog: ActionCatalog, path: Union[str, Path]) -> ActionConfig:
    """
    Load the persisted permission config.

    Missing, empty, unreadable or non-object files are replaced by the
    catalog defaults. Legacy flat boolean files are migrated and written
    back in the leveled format, as are boolean values inside the
    "permissions" wrapper.

    Returns:
        A normalized ActionConfig (exactly the catalog's action names)
    """
    path = Path(path)

    if not path.exists():
        return _write_defaults(catalog, path, "missing file")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Error reading config: {e}")
        return _write_defaults(catalog, path, "unreadable file")

    if not raw.strip():
        return _write_defaults(catalog, path, "empty file")

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Error reading config: {e}")
        return _write_defaults(catalog, path, "invalid JSON")

    if not isinstance(parsed, dict):
        return _write_defaults(catalog, path, "not an object")

    if "permissions" in parsed:
        permissions = parsed["permissions"]
        if not isinstance(permissions, dict):
            return _write_defaults(catalog, path, "permissions is not an object")
        if not any(isinstance(value, bool) for value in permissions.values()):
            return normalize_config(catalog, permissions)
        # Wrapped legacy format: { permissions: { actionName: true/false } }
        return _migrate_legacy(catalog, path, permissions)

    # Legacy format: { actionName: true/false }
    return _migrate_legacy(catalog, path, parsed)


def _migrate_legacy(catalog: ActionCatalog, path: Path, values: Dict[str, Any]) -> ActionConfig:
    migrated = {}
    for name in catalog.names():
        if name not in values:
            continue
        default = catalog.find_by_name(name).default_permission
        level = migrate_legacy_value(values[name], default)
        if level is not None:
            migrated[name] = level

    normalized = normalize_config(catalog, migrated)
    logger.info(f"Migrating legacy permission config at {path}")
    try:
        write_config(path, normalized)
    except ConfigWriteError:
        logger.warning(f"Could not persist migrated permissions to {path}")
    return normalized


@dataclass
class IncomingConfigResult:
    """Outcome of validate_incoming_config"""
    ok: bool
    value: Optional[ActionConfig] = None
    error: Optional[str] = None


def validate_incoming_config(catalog: ActionCatalog, incoming: Any) -> IncomingConfigResult:
    """
    Check a control-surface payload before it is merged.

    Rejects non-object payloads, any action name not in the catalog and any
    value that is not a permission level. Nothing is applied on rejection.
    """
    if not isinstance(incoming, dict):
        return IncomingConfigResult(ok=False, error="Invalid config format")

    value: ActionConfig = {}
    for name, raw_level in incoming.items():
        if name not in catalog:
            return IncomingConfigResult(ok=False, error=f"Unknown action: {name}")
        level = coerce_level(raw_level)
        if level is None:
            return IncomingConfigResult(
                ok=False,
                error=f"Invalid permission level for {name}: {raw_level!r}"
            )
        value[name] = level

    return IncomingConfigResult(ok=True, value=value)


class PermissionStore:
    """
    Process-wide owner of the permission file.

    Holds the in-memory snapshot used for registration deltas. The only
    writer is `update()`; listeners (the connection manager) are notified
    with (previous, next) after every successful write.
    """

    def __init__(self, catalog: ActionCatalog, path: Union[str, Path]):
        self.catalog = catalog
        self.path = Path(path)
        self._current: ActionConfig = get_defaults(catalog)
        self._listeners: List[ConfigListener] = []
        self._lock = asyncio.Lock()

    @property
    def current(self) -> ActionConfig:
        """Copy of the last loaded or written config"""
        return dict(self._current)

    def add_listener(self, listener: ConfigListener) -> None:
        self._listeners.append(listener)

    def load(self) -> ActionConfig:
        """Read the file and replace the in-memory snapshot"""
        self._current = read_config(self.catalog, self.path)
        return self.current

    def level_for(self, name: str) -> Optional[PermissionLevel]:
        """
        Current persisted level for one action, read from disk.

        Returns None if the name is not in the catalog.
        """
        if name not in self.catalog:
            return None
        return read_config(self.catalog, self.path).get(name)

    async def update(self, incoming: Any) -> ActionConfig:
        """
        Validate, merge and persist a partial config, then notify listeners.

        Raises:
            ConfigValidationError: Payload rejected; nothing changed
            ConfigWriteError: File not written; snapshot unchanged
        """
        result = validate_incoming_config(self.catalog, incoming)
        if not result.ok:
            raise ConfigValidationError(result.error)

        async with self._lock:
            previous = self.current
            merged = normalize_config(self.catalog, result.value, previous)
            write_config(self.path, merged)
            self._current = merged

            for listener in self._listeners:
                try:
                    await listener(previous, dict(merged))
                except Exception as e:
                    logger.exception(f"Permission listener failed: {e}")

        return dict(merged)
