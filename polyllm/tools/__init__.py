from .base import Tool, render_tool, render_tool_choice

__all__ = ["Tool", "render_tool", "render_tool_choice"]
