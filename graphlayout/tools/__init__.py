"""MCP tool providers."""

from .layout_tools import LayoutTools

__all__ = ["LayoutTools"]
