"""
Changelog extraction

Pulls a single version's entry out of a CHANGELOG.md for the control
surface. Recognised headings:

    ## 1.2.3
    ## v1.2.3
    ## [1.2.3] - 2025-01-01
    ## 1.2.3-rc.1+build.7
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

HEADING_PATTERN = re.compile(
    r'^##\s*(?:\[)?v?(\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)(?:\])?(?:\s+[-–—].*)?$'
)
HTML_COMMENT_PATTERN = re.compile(r'<!--[\s\S]*?-->')


@dataclass
class ChangelogEntry:
    version: str   # normalized, no leading "v"
    heading: str   # the raw heading line
    body: str      # markdown under the heading, trimmed


def normalize_version(version: str, ignore_build_metadata: bool = True) -> str:
    cleaned = re.sub(r'^refs/tags/', '', version.strip())
    cleaned = re.sub(r'^v', '', cleaned, flags=re.IGNORECASE)
    if ignore_build_metadata:
        cleaned = cleaned.split('+', 1)[0]
    return cleaned


def _normalize_markdown(markdown: str, strip_html_comments: bool) -> str:
    normalized = markdown.replace('\r\n', '\n')
    return HTML_COMMENT_PATTERN.sub('', normalized) if strip_html_comments else normalized


def _find_headings(lines: List[str], ignore_build_metadata: bool) -> List[Tuple[int, str, str]]:
    headings = []
    for index, line in enumerate(lines):
        match = HEADING_PATTERN.match(line)
        if match:
            headings.append((index, normalize_version(match.group(1), ignore_build_metadata), line))
    return headings


def extract_changelog_entry(
    markdown: str,
    version: str,
    strip_html_comments: bool = True,
    ignore_build_metadata: bool = True,
) -> Optional[ChangelogEntry]:
    """
    Extract one version's entry.

    The entry runs from its heading to the next version heading (or the
    end of the file). Returns None if the version has no heading.
    """
    lines = _normalize_markdown(markdown, strip_html_comments).split('\n')
    wanted = normalize_version(version, ignore_build_metadata)

    headings = _find_headings(lines, ignore_build_metadata)
    for position, (line_index, found, heading) in enumerate(headings):
        if found != wanted:
            continue
        end = headings[position + 1][0] if position + 1 < len(headings) else len(lines)
        body = '\n'.join(lines[line_index + 1:end]).strip()
        return ChangelogEntry(version=found, heading=heading, body=body)

    return None


def load_changelog(path: Union[str, Path], version: Optional[str] = None) -> Optional[str]:
    """
    Markdown for the control surface.

    With a version: that entry (heading included), or None when missing.
    Without one: the whole file with HTML comments stripped.

    Raises:
        OSError: If the file cannot be read
    """
    markdown = Path(path).read_text(encoding="utf-8")
    if not version:
        return _normalize_markdown(markdown, True).strip()

    entry = extract_changelog_entry(markdown, version)
    if entry is None:
        return None
    return f"{entry.heading}\n\n{entry.body}".strip()
