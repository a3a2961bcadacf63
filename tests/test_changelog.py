"""
Test Changelog Extraction
"""

import pytest

from neurontainer.changelog import extract_changelog_entry, load_changelog, normalize_version

CHANGELOG = """# Changelog

<!--
## 9.9.9
Hidden draft entry
-->

## [0.3.0] - 2025-06-01

- Permission levels

## v0.2.1

- Reconnect button

## 0.2.0 - 2025-01-01

- First release
"""


class TestChangelog:
    """Tests for changelog extraction"""

    def test_normalize_version(self):
        assert normalize_version("v1.2.3") == "1.2.3"
        assert normalize_version("refs/tags/v1.2.3+build.7") == "1.2.3"
        assert normalize_version("1.2.3+build.7", ignore_build_metadata=False) == "1.2.3+build.7"

    @pytest.mark.parametrize("version, body", [
        ("0.3.0", "- Permission levels"),
        ("v0.2.1", "- Reconnect button"),
        ("0.2.0+build.1", "- First release"),
    ])
    def test_heading_styles(self, version, body):
        assert extract_changelog_entry(CHANGELOG, version).body == body

    def test_commented_entries_are_ignored(self):
        assert extract_changelog_entry(CHANGELOG, "9.9.9") is None
        assert extract_changelog_entry(CHANGELOG, "9.9.9", strip_html_comments=False) is not None

    def test_load_changelog(self, tmp_path):
        path = tmp_path / "CHANGELOG.md"
        path.write_text(CHANGELOG)

        assert load_changelog(path, "0.3.0") == "## [0.3.0] - 2025-06-01\n\n- Permission levels"
        assert "Hidden draft entry" not in load_changelog(path)
        assert load_changelog(path, "1.0.0") is None
