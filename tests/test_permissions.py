"""
Test Permission Store

File format, legacy migration, incoming-config validation and the
merge / persist / notify cycle.
"""

import json

import pytest

from neurontainer.core.catalog import ActionCatalog
from neurontainer.core.errors import ConfigValidationError, ConfigWriteError
from neurontainer.core.permissions import (
    PermissionStore,
    coerce_level,
    get_defaults,
    migrate_legacy_value,
    normalize_config,
    read_config,
    validate_incoming_config,
    write_config,
)
from neurontainer.core.types import PermissionLevel

from conftest import make_action

OFF = PermissionLevel.OFF
FORCE = PermissionLevel.FORCE
AUTOPILOT = PermissionLevel.AUTOPILOT


def _disk(path):
    return json.loads(path.read_text())


class TestCoercion:
    """Tests for level coercion and legacy migration"""

    def test_coerce_names_and_numbers(self):
        assert coerce_level("OFF") is OFF
        assert coerce_level("force") is FORCE
        assert coerce_level(2) is AUTOPILOT
        assert coerce_level(AUTOPILOT) is AUTOPILOT

    def test_coerce_rejects_garbage(self):
        assert coerce_level("MAYBE") is None
        assert coerce_level(7) is None
        assert coerce_level(None) is None
        assert coerce_level(True) is None

    def test_legacy_true_keeps_enabled_default(self):
        assert migrate_legacy_value(True, FORCE) is FORCE

    def test_legacy_true_with_off_default_becomes_autopilot(self):
        assert migrate_legacy_value(True, OFF) is AUTOPILOT

    def test_legacy_false_is_off(self):
        assert migrate_legacy_value(False, AUTOPILOT) is OFF


class TestNormalize:
    """Tests for normalize_config"""

    def test_exact_catalog_names(self, three_action_catalog):
        result = normalize_config(three_action_catalog, {"stale": "FORCE", "get_cookie": "OFF"})

        assert set(result) == set(three_action_catalog.names())
        assert result["get_cookie"] is OFF
        assert result["start_container"] is FORCE

    def test_previous_wins_over_default(self, three_action_catalog):
        result = normalize_config(
            three_action_catalog,
            {"list_containers": "AUTOPILOT"},
            previous={"start_container": "OFF", "get_cookie": "FORCE"},
        )

        assert result == {
            "list_containers": AUTOPILOT,
            "start_container": OFF,
            "get_cookie": FORCE,
        }

    def test_idempotent(self, three_action_catalog):
        once = normalize_config(three_action_catalog, {"get_cookie": "force", "list_containers": 2, "junk": "OFF"})

        assert normalize_config(three_action_catalog, once) == once

    def test_invalid_value_falls_through(self, three_action_catalog):
        result = normalize_config(
            three_action_catalog,
            {"get_cookie": "nope"},
            previous={"get_cookie": "FORCE"},
        )

        assert result["get_cookie"] is FORCE


class TestReadConfig:
    """Tests for read_config"""

    def test_missing_file_writes_defaults(self, three_action_catalog, config_path):
        config = read_config(three_action_catalog, config_path)

        assert config == get_defaults(three_action_catalog)
        assert _disk(config_path) == {
            "permissions": {
                "list_containers": "OFF",
                "start_container": "FORCE",
                "get_cookie": "AUTOPILOT",
            }
        }

    @pytest.mark.parametrize("content", ["", "   ", "{not json", "[1, 2]", '{"permissions": []}'])
    def test_bad_files_fall_back_to_defaults(self, three_action_catalog, config_path, content):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(content)

        config = read_config(three_action_catalog, config_path)

        assert config == get_defaults(three_action_catalog)
        assert _disk(config_path)["permissions"]["get_cookie"] == "AUTOPILOT"

    def test_leveled_file_is_normalized(self, three_action_catalog, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({
            "permissions": {"list_containers": "FORCE", "removed_action": "AUTOPILOT"}
        }))

        config = read_config(three_action_catalog, config_path)

        assert config == {
            "list_containers": FORCE,
            "start_container": FORCE,
            "get_cookie": AUTOPILOT,
        }

    def test_legacy_file_is_migrated_and_rewritten(self, three_action_catalog, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({
            "list_containers": True,
            "start_container": True,
            "get_cookie": False,
        }))

        config = read_config(three_action_catalog, config_path)

        assert config == {
            "list_containers": AUTOPILOT,
            "start_container": FORCE,
            "get_cookie": OFF,
        }
        assert _disk(config_path) == {
            "permissions": {
                "list_containers": "AUTOPILOT",
                "start_container": "FORCE",
                "get_cookie": "OFF",
            }
        }

    def test_wrapped_boolean_file_is_migrated_and_rewritten(self, three_action_catalog, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({
            "permissions": {"list_containers": True, "get_cookie": False}
        }))

        config = read_config(three_action_catalog, config_path)

        assert config == {
            "list_containers": AUTOPILOT,
            "start_container": FORCE,
            "get_cookie": OFF,
        }
        assert _disk(config_path)["permissions"] == {
            "list_containers": "AUTOPILOT",
            "start_container": "FORCE",
            "get_cookie": "OFF",
        }

    def test_write_config_failure_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")

        with pytest.raises(ConfigWriteError):
            write_config(blocker / "config.json", {"a": OFF})


class TestValidateIncoming:
    """Tests for validate_incoming_config"""

    def test_accepts_partial_config(self, three_action_catalog):
        result = validate_incoming_config(three_action_catalog, {"get_cookie": "FORCE"})

        assert result.ok
        assert result.value == {"get_cookie": FORCE}

    def test_rejects_non_object(self, three_action_catalog):
        result = validate_incoming_config(three_action_catalog, ["get_cookie"])

        assert not result.ok
        assert result.error == "Invalid config format"

    def test_rejects_unknown_name(self, three_action_catalog):
        result = validate_incoming_config(three_action_catalog, {"rm_rf": "AUTOPILOT"})

        assert not result.ok
        assert result.error == "Unknown action: rm_rf"

    def test_rejects_bad_level(self, three_action_catalog):
        result = validate_incoming_config(three_action_catalog, {"get_cookie": "SOMETIMES"})

        assert not result.ok
        assert "get_cookie" in result.error


class TestPermissionStore:
    """Tests for PermissionStore"""

    def setup_method(self):
        self.catalog = ActionCatalog([
            make_action("a", OFF),
            make_action("b", AUTOPILOT),
        ])

    @pytest.mark.asyncio
    async def test_update_merges_persists_and_notifies(self, config_path):
        store = PermissionStore(self.catalog, config_path)
        store.load()
        seen = []

        async def listener(previous, next_config):
            seen.append((previous, next_config))

        store.add_listener(listener)

        merged = await store.update({"a": "FORCE"})

        assert merged == {"a": FORCE, "b": AUTOPILOT}
        assert store.current == merged
        assert _disk(config_path)["permissions"] == {"a": "FORCE", "b": "AUTOPILOT"}
        assert seen == [({"a": OFF, "b": AUTOPILOT}, {"a": FORCE, "b": AUTOPILOT})]

    @pytest.mark.asyncio
    async def test_invalid_update_changes_nothing(self, config_path):
        store = PermissionStore(self.catalog, config_path)
        store.load()
        before = config_path.read_text()

        with pytest.raises(ConfigValidationError, match="Unknown action: zzz"):
            await store.update({"a": "FORCE", "zzz": "OFF"})

        assert store.current == {"a": OFF, "b": AUTOPILOT}
        assert config_path.read_text() == before

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_undo_write(self, config_path):
        store = PermissionStore(self.catalog, config_path)
        store.load()

        async def broken(previous, next_config):
            raise RuntimeError("listener exploded")

        store.add_listener(broken)

        merged = await store.update({"b": "OFF"})

        assert merged["b"] is OFF
        assert _disk(config_path)["permissions"]["b"] == "OFF"

    def test_level_for_reads_disk(self, config_path):
        store = PermissionStore(self.catalog, config_path)
        store.load()
        config_path.write_text(json.dumps({"permissions": {"b": "OFF"}}))

        assert store.level_for("b") is OFF
        assert store.level_for("unknown") is None
