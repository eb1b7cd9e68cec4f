from .focus_tools import register_focus_tools

__all__ = ["register_focus_tools"]
