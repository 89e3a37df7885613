"""
CLAW_CORE
=========

Context-window management and durable memory for long-running agent sessions.

Features:
- Token usage tracking with flush and compaction thresholds
- Silent pre-compaction memory flush, bounded retries
- Compaction that keeps recent turns and summarizes the rest
- Ranked retrieval over workspace notes (BM25 + recency decay)
- Privacy-scoped system prompt assembly from workspace files

Usage:
    from claw_core import SessionManager, SessionType, ConversationTurn
    from claw_core.config import load_config
    from claw_core.llm import HttpCompletionEngine

    config = load_config()
    manager = SessionManager(config, engine=HttpCompletionEngine.from_config(config.llm))

    runner = manager.create_session(SessionType.MAIN)
    runner.submit(ConversationTurn.user("What did we decide about the deploy process?"))
"""

__version__ = "1.0.0"

# Errors
from .errors import (
    ClawCoreError,
    ConfigError,
    CompactionFailure,
    SessionStateError,
    CompletionError,
    CompletionTimeout,
    FlushEngineError,
    FlushTimeout,
    IndexConsistencyError,
    MemoryPathError,
)

# Configuration
from .config import (
    ConfigManager,
    CoreConfig,
    CompactionPolicy,
    FlushConfig,
    RetrievalConfig,
    WorkspaceConfig,
    LLMConfig,
    get_config_manager,
    load_config,
)

# Session models
from .models import ConversationTurn, Role, Session, SessionState, SessionType, TurnKind

# Workspace
from .workspace import ContextAssembler, Workspace, WorkspaceFileCache

# Context management
from .context import (
    ContextWindowTracker,
    MemoryFlushCoordinator,
    FlushOutcome,
    FlushStatus,
    CompactionEngine,
    CompactionResult,
)

# Memory
from .memory import MemoryManager, MemoryIndex, ChunkStore

# Completion engines
from .llm import CompletionEngine, TimeoutCompletionEngine, HttpCompletionEngine

# Tools
from .tools import ToolRegistry, MemorySearchTool, MemoryGetTool, register_memory_tools

# Sessions
from .session import SessionLifecycleHooks, SessionManager, SessionRunner, TranscriptStore, TurnReport

# Logging
from .logging_config import setup_logging

__all__ = [
    "__version__",
    "ClawCoreError",
    "ConfigError",
    "CompactionFailure",
    "SessionStateError",
    "CompletionError",
    "CompletionTimeout",
    "FlushEngineError",
    "FlushTimeout",
    "IndexConsistencyError",
    "MemoryPathError",
    "ConfigManager",
    "CoreConfig",
    "CompactionPolicy",
    "FlushConfig",
    "RetrievalConfig",
    "WorkspaceConfig",
    "LLMConfig",
    "get_config_manager",
    "load_config",
    "ConversationTurn",
    "Role",
    "Session",
    "SessionState",
    "SessionType",
    "TurnKind",
    "ContextAssembler",
    "Workspace",
    "WorkspaceFileCache",
    "ContextWindowTracker",
    "MemoryFlushCoordinator",
    "FlushOutcome",
    "FlushStatus",
    "CompactionEngine",
    "CompactionResult",
    "MemoryManager",
    "MemoryIndex",
    "ChunkStore",
    "CompletionEngine",
    "TimeoutCompletionEngine",
    "HttpCompletionEngine",
    "ToolRegistry",
    "MemorySearchTool",
    "MemoryGetTool",
    "register_memory_tools",
    "SessionLifecycleHooks",
    "SessionManager",
    "SessionRunner",
    "TranscriptStore",
    "TurnReport",
    "setup_logging",
]
