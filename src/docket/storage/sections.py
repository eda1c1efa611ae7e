"""Section markers: paired sentinel lines delimiting named prose regions.

Format::

    <!-- SECTION:DESCRIPTION:BEGIN -->
    content
    <!-- SECTION:DESCRIPTION:END -->

Acceptance criteria use ``<!-- AC:BEGIN -->`` / ``<!-- AC:END -->``.
Callers check ``has_section_markers`` before ``extract_section_content``;
extraction returns the body unchanged when markers are absent.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from docket.models import AcceptanceCriterion

AC_LINE_PATTERN = re.compile(r"^-\s+\[([x\s])\]\s+#?\d*\s*(.+)$", re.IGNORECASE)


@dataclass(frozen=True)
class MarkerPair:
    begin: str
    end: str


SectionMarkers = Mapping[str, MarkerPair]

DEFAULT_MARKERS: SectionMarkers = {
    "description": MarkerPair(
        "<!-- SECTION:DESCRIPTION:BEGIN -->", "<!-- SECTION:DESCRIPTION:END -->"
    ),
    "plan": MarkerPair("<!-- SECTION:PLAN:BEGIN -->", "<!-- SECTION:PLAN:END -->"),
    "notes": MarkerPair("<!-- SECTION:NOTES:BEGIN -->", "<!-- SECTION:NOTES:END -->"),
    "ac": MarkerPair("<!-- AC:BEGIN -->", "<!-- AC:END -->"),
}


def has_section_markers(
    markdown: str, section_type: str, markers: SectionMarkers = DEFAULT_MARKERS
) -> bool:
    pair = markers.get(section_type)
    if pair is None:
        return False
    return pair.begin in markdown and pair.end in markdown


def extract_section_content(
    markdown: str, section_type: str, markers: SectionMarkers = DEFAULT_MARKERS
) -> str:
    """Return trimmed text between the first begin and first end marker."""
    pair = markers.get(section_type)
    if pair is None:
        return markdown

    begin = markdown.find(pair.begin)
    end = markdown.find(pair.end)
    if begin == -1 or end == -1:
        return markdown

    return markdown[begin + len(pair.begin) : end].strip()


def wrap_section_content(
    content: str | None, section_type: str, markers: SectionMarkers = DEFAULT_MARKERS
) -> str:
    pair = markers.get(section_type)
    if pair is None:
        return content or ""
    if not content or not content.strip():
        return ""
    return f"{pair.begin}\n{content.strip()}\n{pair.end}"


def replace_section_content(
    markdown: str,
    section_type: str,
    content: str,
    markers: SectionMarkers = DEFAULT_MARKERS,
) -> str:
    """Swap the marker-delimited region, leaving surrounding text untouched.

    Without markers the wrapped block is appended at the end of the body.
    """
    pair = markers[section_type]
    wrapped = wrap_section_content(content, section_type, markers)

    if not has_section_markers(markdown, section_type, markers):
        if not wrapped:
            return markdown
        return f"{markdown.rstrip()}\n\n{wrapped}\n"

    begin = markdown.find(pair.begin)
    end = markdown.find(pair.end) + len(pair.end)
    return markdown[:begin] + wrapped + markdown[end:]


def format_acceptance_criteria(
    criteria: Iterable[AcceptanceCriterion | Mapping[str, Any]],
    markers: SectionMarkers = DEFAULT_MARKERS,
) -> str:
    items = [AcceptanceCriterion.coerce(ac) for ac in criteria]
    if not items:
        return ""
    lines = "\n".join(
        f"- [{'x' if ac.completed else ' '}] #{index} {ac.text}"
        for index, ac in enumerate(items, start=1)
    )
    return wrap_section_content(lines, "ac", markers)


def parse_acceptance_criteria(
    markdown: str, markers: SectionMarkers = DEFAULT_MARKERS
) -> list[AcceptanceCriterion]:
    """Parse checkbox lines; lines that don't match are skipped."""
    if has_section_markers(markdown, "ac", markers):
        content = extract_section_content(markdown, "ac", markers)
    else:
        content = markdown

    criteria: list[AcceptanceCriterion] = []
    for line in content.split("\n"):
        m = AC_LINE_PATTERN.match(line)
        if m:
            criteria.append(
                AcceptanceCriterion(text=m.group(2).strip(), completed=m.group(1).lower() == "x")
            )
    return criteria
