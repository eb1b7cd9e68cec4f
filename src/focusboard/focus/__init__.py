from .manager import PROJECT_COLORS, UNSLOTTED_COLOR, FocusManager

__all__ = ["FocusManager", "PROJECT_COLORS", "UNSLOTTED_COLOR"]
