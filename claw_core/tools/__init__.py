"""
TOOLS MODULE
============

Tool base classes, the registry, and the memory retrieval tools.
"""

from .base import BaseTool, ToolDefinition, ToolParameter, ToolRegistry, ToolResult
from .memory_tools import MemoryGetTool, MemorySearchTool, register_memory_tools

__all__ = [
    'BaseTool',
    'ToolDefinition',
    'ToolParameter',
    'ToolRegistry',
    'ToolResult',
    'MemoryGetTool',
    'MemorySearchTool',
    'register_memory_tools',
]
