"""
Projects root scanner.

A project is any immediate, non-hidden sub-directory of the projects root
whose name is not ignored. Its overview, if present, is
``<folder>/<folder name>.md``.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from focusboard.models.project import Project

log = logging.getLogger(__name__)

DEFAULT_IGNORED = frozenset({"node_modules", "__pycache__"})


def is_project_dir(path: Path, ignored: Iterable[str] = ()) -> bool:
    if not path.is_dir() or path.name.startswith("."):
        return False
    return path.name not in set(ignored) and path.name not in DEFAULT_IGNORED


def _read_overview(folder: Path) -> Optional[str]:
    overview = folder / f"{folder.name}.md"
    if not overview.is_file():
        return None
    try:
        return overview.read_text(encoding="utf-8")
    except OSError as e:
        log.warning("Could not read overview %s: %s", overview, e)
        return None


def scan_projects(projects_root: Path, ignored: Iterable[str] = ()) -> List[Project]:
    """
    Scan the projects root and return its projects sorted by name.

    Returns an empty list when the root is missing or unreadable.
    """
    ignored = set(ignored)
    root = Path(projects_root)
    if not root.is_dir():
        log.warning("Projects root does not exist: %s", root)
        return []

    try:
        children = list(root.iterdir())
    except OSError as e:
        log.error("Could not list projects root %s: %s", root, e)
        return []

    projects = [
        Project.from_folder(child, overview_content=_read_overview(child))
        for child in children
        if is_project_dir(child, ignored)
    ]
    projects.sort(key=lambda p: p.name.lower())
    log.debug("Scanned %d projects under %s", len(projects), root)
    return projects
