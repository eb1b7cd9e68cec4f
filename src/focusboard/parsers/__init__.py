from .checklist import ChecklistItem, extract_checklist, prepend_item, rename_item, set_item_completed
from .overview import OverviewStore, get_section, parse_sections, update_section
from .project_scanner import is_project_dir, scan_projects
from .tags import extract_tags, format_tags, project_tags

__all__ = [
    "ChecklistItem",
    "OverviewStore",
    "extract_checklist",
    "extract_tags",
    "format_tags",
    "get_section",
    "is_project_dir",
    "parse_sections",
    "prepend_item",
    "project_tags",
    "rename_item",
    "scan_projects",
    "set_item_completed",
    "update_section",
]
