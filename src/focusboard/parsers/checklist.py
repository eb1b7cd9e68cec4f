"""
Checklist lines in a project's Next Steps section.

    - [ ] Open item
    - [x] Done item (2026-03-14)

The ``(YYYY-MM-DD)`` suffix on completed lines records the completion day.
Items are addressed by their display text: checkbox marker and completion
suffix removed, whitespace stripped.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from focusboard.utils.dates import format_day, parse_day, utcnow

_CHECKBOX_RE = re.compile(r"^- \[([ xX])\]\s?(.*)$")
_DATE_SUFFIX_RE = re.compile(r" \((\d{4}-\d{2}-\d{2})\)")


@dataclass
class ChecklistItem:
    text: str
    completed: bool
    completed_date: Optional[datetime] = None
    line_number: int = 0


def _parse_line(line: str) -> Optional[ChecklistItem]:
    m = _CHECKBOX_RE.match(line.strip())
    if not m:
        return None
    completed = m.group(1) in ("x", "X")
    body = m.group(2)
    completed_date = None
    if completed:
        date_match = _DATE_SUFFIX_RE.search(body)
        if date_match:
            completed_date = parse_day(date_match.group(1))
            body = body[:date_match.start()] + body[date_match.end():]
    return ChecklistItem(text=body.strip(), completed=completed, completed_date=completed_date)


def extract_checklist(section: str) -> List[ChecklistItem]:
    items: List[ChecklistItem] = []
    for number, line in enumerate(section.split("\n")):
        item = _parse_line(line)
        if item is not None and item.text:
            item.line_number = number
            items.append(item)
    return items


def count_open_items(section: str) -> int:
    return sum(1 for item in extract_checklist(section) if not item.completed)


def set_item_completed(section: str, text: str, completed: bool, on: Optional[datetime] = None) -> str:
    """
    Check or uncheck every line whose display text is ``text``.

    Checking stamps the completion day (replacing any earlier stamp);
    unchecking removes it. Indentation is preserved.
    """
    day = format_day(on or utcnow())
    lines = section.split("\n")
    for i, line in enumerate(lines):
        item = _parse_line(line)
        if item is None or item.text != text:
            continue
        indent = line[: len(line) - len(line.lstrip())]
        if completed:
            lines[i] = f"{indent}- [x] {text} ({day})"
        else:
            lines[i] = f"{indent}- [ ] {text}"
    return "\n".join(lines)


def prepend_item(section: str, text: str) -> str:
    line = f"- [ ] {text}"
    if not section.strip():
        return line
    return f"{line}\n{section}"


def rename_item(section: str, old_text: str, new_text: str) -> str:
    """Rewrite the text of matching items, keeping checkbox and date."""
    lines = section.split("\n")
    for i, line in enumerate(lines):
        item = _parse_line(line)
        if item is None or item.text != old_text:
            continue
        indent = line[: len(line) - len(line.lstrip())]
        if item.completed:
            suffix = f" ({format_day(item.completed_date)})" if item.completed_date else ""
            lines[i] = f"{indent}- [x] {new_text}{suffix}"
        else:
            lines[i] = f"{indent}- [ ] {new_text}"
    return "\n".join(lines)
