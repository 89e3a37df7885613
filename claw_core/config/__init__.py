"""
Configuration management for claw_core.
"""

from .loader import (
    ConfigManager,
    CoreConfig,
    CompactionPolicy,
    FlushConfig,
    RetrievalConfig,
    WorkspaceConfig,
    LLMConfig,
    DEFAULT_FLUSH_SYSTEM_PROMPT,
    DEFAULT_FLUSH_USER_PROMPT,
    get_config_manager,
    load_config,
)

__all__ = [
    "ConfigManager",
    "CoreConfig",
    "CompactionPolicy",
    "FlushConfig",
    "RetrievalConfig",
    "WorkspaceConfig",
    "LLMConfig",
    "DEFAULT_FLUSH_SYSTEM_PROMPT",
    "DEFAULT_FLUSH_USER_PROMPT",
    "get_config_manager",
    "load_config",
]
