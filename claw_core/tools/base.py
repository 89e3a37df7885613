"""
TOOL_BASE
=========

Base classes and registry for the tools the agent calls during a session.

Architecture
------------
::

    BaseTool (abstract)
    ├── definition property → ToolDefinition (name, description, parameters)
    └── execute(**kwargs)   → ToolResult (success, output, error, metadata)

    ToolRegistry
    ├── register(tool)          Add a tool
    ├── execute(name, params)   Run a tool with a timeout
    └── get_schemas(format)     "openai" function format or "anthropic" tool format

Safety
------
- **Timeout**: per execution, via a ThreadPoolExecutor future.
- **Output limiting**: long output is truncated with a notice.
- **Error isolation**: exceptions come back as ``ToolResult(success=False)``
  and never reach the session runner.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# TOOL DEFINITION STRUCTURES
# ============================================================================

@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "number", "boolean"
    description: str
    required: bool = True
    default: Optional[Any] = None

    def to_schema(self) -> Dict:
        schema = {
            "type": self.type,
            "description": self.description,
        }
        if self.default is not None:
            schema["default"] = self.default
        return schema


@dataclass
class ToolDefinition:
    """Complete tool definition for the model."""
    name: str
    description: str
    parameters: List[ToolParameter] = field(default_factory=list)

    def _properties(self) -> Dict:
        return {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_schema(self) -> Dict:
        """OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self._properties(),
            },
        }

    def to_anthropic_schema(self) -> Dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self._properties(),
        }


# ============================================================================
# TOOL RESULT
# ============================================================================

@dataclass
class ToolResult:
    """Result of tool execution."""
    success: bool
    output: str
    error: Optional[str] = None
    metadata: Optional[Dict] = None

    def to_dict(self) -> Dict:
        result = {
            "success": self.success,
            "output": self.output,
        }
        if self.error:
            result["error"] = self.error
        if self.metadata:
            result["metadata"] = self.metadata
        return result

    def __str__(self) -> str:
        if self.success:
            return self.output
        return f"[ERROR] {self.error or 'Unknown error'}"


# ============================================================================
# BASE TOOL CLASS
# ============================================================================

class BaseTool(ABC):
    """
    Base class for all tools.

    Subclasses implement ``definition`` and ``execute``.
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        pass

    @abstractmethod
    def execute(self, **kwargs) -> ToolResult:
        pass

    @property
    def name(self) -> str:
        return self.definition.name

    def get_schema(self, format: str = "openai") -> Dict:
        if format == "anthropic":
            return self.definition.to_anthropic_schema()
        return self.definition.to_schema()


# ============================================================================
# TOOL REGISTRY
# ============================================================================

class ToolRegistry:
    """Registry for managing and executing tools."""

    DEFAULT_TIMEOUT = 30  # seconds
    MAX_OUTPUT_SIZE = 100000  # ~100KB

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT, max_output_size: int = MAX_OUTPUT_SIZE):
        self._tools: Dict[str, BaseTool] = {}
        self.default_timeout = default_timeout
        self.max_output_size = max_output_size
        self._executor = ThreadPoolExecutor(max_workers=4)

    def register(self, tool: BaseTool) -> None:
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> List[str]:
        return list(self._tools.keys())

    def get_schemas(self, format: str = "openai") -> List[Dict]:
        """
        Get all tool schemas for the model.

        Args:
            format: "openai" or "anthropic"
        """
        return [tool.get_schema(format) for tool in self._tools.values()]

    def execute(self, tool_name: str, parameters: Dict, timeout: Optional[float] = None) -> ToolResult:
        """
        Execute a tool by name with parameters.

        Args:
            tool_name: Name of the tool to execute
            parameters: Parameters to pass to the tool
            timeout: Timeout in seconds (uses default if None)

        Returns:
            ToolResult from tool execution; errors never raise
        """
        tool = self._tools.get(tool_name)
        if not tool:
            return ToolResult(success=False, output="", error=f"Unknown tool: {tool_name}")

        timeout = timeout or self.default_timeout

        try:
            future = self._executor.submit(tool.execute, **(parameters or {}))
            result = future.result(timeout=timeout)
        except FuturesTimeoutError:
            logger.warning("Tool '%s' timed out after %s seconds", tool_name, timeout)
            return ToolResult(
                success=False,
                output="",
                error=f"Tool '{tool_name}' timed out after {timeout} seconds",
            )
        except TypeError as e:
            # Parameter mismatch
            return ToolResult(success=False, output="", error=f"Invalid parameters for {tool_name}: {e}")
        except Exception as e:
            logger.exception("Tool '%s' raised", tool_name)
            return ToolResult(success=False, output="", error=f"Tool execution error: {e}")

        if result.output and len(result.output) > self.max_output_size:
            result = ToolResult(
                success=result.success,
                output=result.output[:self.max_output_size]
                + f"\n\n[TRUNCATED - output exceeded {self.max_output_size} characters]",
                error=result.error,
                metadata={
                    **(result.metadata or {}),
                    "truncated": True,
                    "original_size": len(result.output),
                },
            )

        return result

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
