"""
MEMORY_TOOLS
============

Retrieval tools over the workspace's durable notes.

``memory_search``
    Ranked search over MEMORY.md and memory/*.md. Returns snippets with
    file path and line range. Params: ``query``, ``maxResults`` (default 5),
    ``minScore`` (default 0.0).

``memory_get``
    Raw read of one memory file, optionally a line range. Params: ``path``,
    ``from`` (1-indexed), ``lines``.

Arguments are validated with the pydantic request models before the
memory manager is touched; invalid arguments come back as a failed
ToolResult.

Usage::

    registry = ToolRegistry()
    register_memory_tools(registry, memory_manager)
    result = registry.execute("memory_search", {"query": "deploy process"})
"""

import json

from pydantic import ValidationError

from ..errors import MemoryPathError
from ..memory.manager import MemoryManager
from ..memory.models import (
    MemoryGetRequest,
    MemoryGetResponse,
    MemorySearchRequest,
    MemorySearchResponse,
)
from .base import BaseTool, ToolDefinition, ToolParameter, ToolRegistry, ToolResult


def _validation_message(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg', 'invalid')}")
    return "Invalid arguments: " + "; ".join(problems)


class MemorySearchTool(BaseTool):
    """Search durable notes."""

    def __init__(self, memory: MemoryManager):
        self.memory = memory

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="memory_search",
            description=(
                "Search MEMORY.md and memory/*.md files for relevant information. "
                "Use before answering questions about prior work, decisions, dates, "
                "people, preferences, or todos. Returns matching snippets with file "
                "path and line numbers."
            ),
            parameters=[
                ToolParameter(
                    name="query",
                    type="string",
                    description="Search query for finding relevant memory content",
                ),
                ToolParameter(
                    name="maxResults",
                    type="integer",
                    description="Maximum number of results to return",
                    required=False,
                    default=5,
                ),
                ToolParameter(
                    name="minScore",
                    type="number",
                    description=(
                        "Minimum relevance score; lower-scoring results are dropped. "
                        "Default: 0 (no cutoff). Keyword scores are unbounded BM25 values, not 0-1."
                    ),
                    required=False,
                    default=0.0,
                ),
            ],
        )

    def execute(self, **kwargs) -> ToolResult:
        try:
            request = MemorySearchRequest.model_validate(kwargs)
        except ValidationError as e:
            return ToolResult(success=False, output="", error=_validation_message(e))

        hits = self.memory.search(request.query, k=request.max_results, min_score=request.min_score)
        response = MemorySearchResponse(query=request.query, results=hits)

        if not hits:
            return ToolResult(
                success=True,
                output="No matching memories found.",
                metadata={"result_count": 0, "query": request.query},
            )

        return ToolResult(
            success=True,
            output=json.dumps(response.model_dump(), indent=2),
            metadata={"result_count": len(hits), "query": request.query},
        )


class MemoryGetTool(BaseTool):
    """Read a memory file."""

    def __init__(self, memory: MemoryManager):
        self.memory = memory

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="memory_get",
            description=(
                "Read content from a memory file (MEMORY.md or memory/*.md). "
                "Use after memory_search to get full context around a snippet. "
                "Supports an optional line range for large files."
            ),
            parameters=[
                ToolParameter(
                    name="path",
                    type="string",
                    description="Path to the memory file (MEMORY.md or memory/*.md)",
                ),
                ToolParameter(
                    name="from",
                    type="integer",
                    description="Starting line number (1-indexed)",
                    required=False,
                    default=1,
                ),
                ToolParameter(
                    name="lines",
                    type="integer",
                    description="Number of lines to read; omit for the entire file",
                    required=False,
                ),
            ],
        )

    def execute(self, **kwargs) -> ToolResult:
        try:
            request = MemoryGetRequest.model_validate(kwargs)
        except ValidationError as e:
            return ToolResult(success=False, output="", error=_validation_message(e))

        try:
            text = self.memory.get(request.path, from_line=request.from_line, lines=request.lines)
        except MemoryPathError as e:
            return ToolResult(success=False, output="", error=str(e))

        response = MemoryGetResponse(path=request.path, text=text)
        return ToolResult(
            success=True,
            output=response.text,
            metadata={"path": response.path, "chars": len(response.text)},
        )


def register_memory_tools(registry: ToolRegistry, memory: MemoryManager) -> ToolRegistry:
    registry.register(MemorySearchTool(memory))
    registry.register(MemoryGetTool(memory))
    return registry
