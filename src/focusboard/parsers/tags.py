"""Project tags: ``#word`` tokens in the overview's Tags section."""

import re
from typing import Iterable, List, Set

from focusboard.parsers.overview import TAGS, get_section

_TAG_RE = re.compile(r"#(\w+)")


def extract_tags(text: str) -> List[str]:
    """Tags in order of first appearance, without the ``#``."""
    seen: List[str] = []
    for tag in _TAG_RE.findall(text or ""):
        if tag not in seen:
            seen.append(tag)
    return seen


def format_tags(tags: Iterable[str]) -> str:
    return " ".join(f"#{t}" for t in tags)


def project_tags(overview_text: str) -> Set[str]:
    return set(extract_tags(get_section(overview_text, TAGS)))
