"""
Project overview markdown: ``## `` sections with tolerant heading names.

Headings are matched against canonical section names and their common
variants, so "## Status" and "## Current Status & Progress" address the
same section. ``### `` sub-headings belong to the enclosing section.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from focusboard.models.project import Project

log = logging.getLogger(__name__)

NEXT_STEPS = "Next Steps"
TAGS = "Tags"
CURRENT_STATUS = "Current Status & Progress"
PROJECT_LOG = "Project Log"

# Canonical name -> accepted heading variants
SECTION_ALIASES: Dict[str, tuple] = {
    "Version History": (),
    "Core Concept": (),
    "Guiding Principles & Intentions": ("Guiding Principles",),
    "Key Features & Functionality": ("Key Features",),
    "Architecture & Structure": ("Architecture",),
    "Implementation Roadmap": ("Roadmap",),
    CURRENT_STATUS: ("Current Status", "Status"),
    NEXT_STEPS: (),
    "Challenges & Solutions": (),
    "User/Audience Experience": ("User Experience", "Audience Experience"),
    "Success Metrics": ("Metrics",),
    "Research & References": ("Research", "References"),
    "Open Questions & Considerations": ("Open Questions", "Questions", "Notes & Ideas", "Notes", "Ideas"),
    PROJECT_LOG: ("Log",),
    "External Files": (),
    "Repositories": (),
    TAGS: (),
}

_HEADING_TO_CANONICAL: Dict[str, str] = {}
for _canonical, _variants in SECTION_ALIASES.items():
    _HEADING_TO_CANONICAL[_canonical.lower()] = _canonical
    for _variant in _variants:
        _HEADING_TO_CANONICAL[_variant.lower()] = _canonical


def canonical_section(heading: str) -> str:
    """Map a heading (with or without the ``## `` marker) to its canonical name."""
    name = heading.strip()
    if name.startswith("## "):
        name = name[3:].strip()
    canonical = _HEADING_TO_CANONICAL.get(name.lower())
    if canonical:
        return canonical
    # "Challenges and Proposed Solutions" and friends
    if "challenges" in name.lower():
        return "Challenges & Solutions"
    return name


def _is_section_heading(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith("## ") and not stripped.startswith("###")


def parse_sections(text: str) -> Dict[str, str]:
    """
    Split overview markdown into {canonical section name: content}.

    Content is stripped of surrounding blank lines. Text before the first
    section heading is not part of any section.
    """
    sections: Dict[str, str] = {}
    current: Optional[str] = None
    buffer: List[str] = []

    def _flush() -> None:
        if current is not None:
            sections[current] = "\n".join(buffer).strip()

    for line in text.split("\n"):
        if _is_section_heading(line):
            _flush()
            current = canonical_section(line)
            buffer = []
        elif current is not None:
            buffer.append(line)
    _flush()
    return sections


def get_section(text: str, name: str) -> str:
    return parse_sections(text).get(canonical_section(name), "")


def update_section(text: str, name: str, content: str) -> str:
    """
    Replace the body of section ``name`` in place.

    The existing heading line is kept as written. A missing section is
    appended at the end of the document.
    """
    target = canonical_section(name)
    lines = text.split("\n")

    start = next(
        (i for i, line in enumerate(lines) if _is_section_heading(line) and canonical_section(line) == target),
        None,
    )
    body = content.split("\n") if content else [""]

    if start is None:
        base = text.rstrip("\n")
        prefix = f"{base}\n\n" if base else ""
        return f"{prefix}## {name}\n" + "\n".join(body) + "\n"

    end = start + 1
    while end < len(lines) and not _is_section_heading(lines[end]):
        end += 1

    replacement = [lines[start]] + body
    if end < len(lines):
        replacement.append("")
    return "\n".join(lines[:start] + replacement + lines[end:])


class OverviewStore:
    """
    Reads and writes project overview text.

    The overview file wins when it exists; otherwise the cached
    ``overview_content`` carried by the project is used. Writes go to the
    file when the project folder is present and always refresh the cached
    copy.
    """

    def load(self, project: Project) -> str:
        path = project.overview_path
        try:
            if path.is_file():
                return path.read_text(encoding="utf-8")
        except OSError as e:
            log.warning("Could not read overview %s: %s", path, e)
        return project.overview_content or ""

    def save(self, project: Project, text: str) -> bool:
        """Persist ``text``; returns True when it reached the file."""
        project.overview_content = text
        folder = Path(project.folder_path)
        if not folder.is_dir():
            log.debug("Project folder %s not present, keeping overview in cache only", folder)
            return False
        project.overview_path.write_text(text, encoding="utf-8")
        return True

    def get_section(self, project: Project, name: str) -> str:
        return get_section(self.load(project), name)

    def update_section(self, project: Project, name: str, content: str) -> bool:
        return self.save(project, update_section(self.load(project), name, content))
