"""
CONFIG_LOADER
=============

Configuration management for claw_core.

Handles:
- Compaction policy (token thresholds, preserved turns)
- Memory flush prompts and retry bound
- Retrieval tuning (BM25, recency half-life, hybrid weights, diversity)
- Workspace injection list and size caps
- Completion engine endpoint and timeout

Every section validates itself on construction, so an invalid policy can
never reach a session. ``CoreConfig.validate()`` re-checks the whole tree
and is called by the session manager before any session is created.

Usage:
    from claw_core.config import get_config_manager

    config = get_config_manager().load()
    print(config.compaction.flush_threshold)
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import ConfigError
from ..workspace.files import WORKSPACE_FILE_NAMES

logger = logging.getLogger(__name__)


# ============================================================================
# PATH RESOLUTION
# ============================================================================

def _find_project_root() -> Path:
    """
    Find the project root directory.

    Looks for data/clawCore/CONFIG/config.json as the definitive marker,
    since this only exists at the true project root.
    """
    current = Path(__file__).resolve().parent

    for _ in range(5):
        config_file = current / "data" / "clawCore" / "CONFIG" / "config.json"
        if config_file.exists():
            return current
        current = current.parent

    # loader.py is at claw_core/config/loader.py
    return Path(__file__).resolve().parent.parent.parent


def _get_data_dir() -> Path:
    """Get the clawCore data directory path."""
    return _find_project_root() / "data" / "clawCore"


def _require_non_negative(section: str, **values) -> None:
    for name, value in values.items():
        if value < 0:
            raise ConfigError(f"{section}.{name} must be non-negative, got {value}")


# ============================================================================
# DEFAULT PROMPTS
# ============================================================================

DEFAULT_FLUSH_SYSTEM_PROMPT = (
    "Pre-compaction memory flush turn. The session is near auto-compaction; "
    "capture durable memories to disk. You may reply, but usually NO_REPLY is correct."
)

DEFAULT_FLUSH_USER_PROMPT = (
    "Pre-compaction memory flush. Store durable memories now "
    "(use memory/YYYY-MM-DD.md; create memory/ if needed). "
    "If nothing to store, reply with NO_REPLY."
)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class CompactionPolicy:
    """Token thresholds for one context window.

    flush_threshold   = max_tokens - reserve_floor - soft_threshold_tokens
    compact_threshold = max_tokens - reserve_floor

    Invariant: reserve_floor + soft_threshold_tokens < max_tokens.
    """
    max_tokens: int = 100000
    reserve_floor: int = 20000
    soft_threshold_tokens: int = 4000
    enabled: bool = True
    preserve_recent: int = 6  # Turns kept verbatim by compaction

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        _require_non_negative(
            "compaction",
            reserve_floor=self.reserve_floor,
            preserve_recent=self.preserve_recent,
        )
        if self.max_tokens <= 0:
            raise ConfigError(f"compaction.max_tokens must be positive, got {self.max_tokens}")
        if self.soft_threshold_tokens <= 0:
            raise ConfigError(
                "compaction.soft_threshold_tokens must be positive, "
                f"got {self.soft_threshold_tokens}"
            )
        if self.reserve_floor + self.soft_threshold_tokens >= self.max_tokens:
            raise ConfigError(
                "compaction thresholds out of order: reserve_floor "
                f"({self.reserve_floor}) + soft_threshold_tokens "
                f"({self.soft_threshold_tokens}) must be below max_tokens "
                f"({self.max_tokens})"
            )

    @property
    def flush_threshold(self) -> int:
        return self.max_tokens - self.reserve_floor - self.soft_threshold_tokens

    @property
    def compact_threshold(self) -> int:
        return self.max_tokens - self.reserve_floor

    def to_dict(self) -> Dict:
        return {
            "max_tokens": self.max_tokens,
            "reserve_floor": self.reserve_floor,
            "soft_threshold_tokens": self.soft_threshold_tokens,
            "enabled": self.enabled,
            "preserve_recent": self.preserve_recent,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CompactionPolicy":
        return cls(
            max_tokens=data.get("max_tokens", 100000),
            reserve_floor=data.get("reserve_floor", 20000),
            soft_threshold_tokens=data.get("soft_threshold_tokens", 4000),
            enabled=data.get("enabled", True),
            preserve_recent=data.get("preserve_recent", 6),
        )


@dataclass
class FlushConfig:
    """Pre-compaction memory flush settings."""
    enabled: bool = True
    system_prompt: str = DEFAULT_FLUSH_SYSTEM_PROMPT
    user_prompt: str = DEFAULT_FLUSH_USER_PROMPT
    max_consecutive_failures: int = 3

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.max_consecutive_failures < 1:
            raise ConfigError(
                "flush.max_consecutive_failures must be at least 1, "
                f"got {self.max_consecutive_failures}"
            )

    def to_dict(self) -> Dict:
        return {
            "enabled": self.enabled,
            "system_prompt": self.system_prompt,
            "user_prompt": self.user_prompt,
            "max_consecutive_failures": self.max_consecutive_failures,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "FlushConfig":
        return cls(
            enabled=data.get("enabled", True),
            system_prompt=data.get("system_prompt", DEFAULT_FLUSH_SYSTEM_PROMPT),
            user_prompt=data.get("user_prompt", DEFAULT_FLUSH_USER_PROMPT),
            max_consecutive_failures=data.get("max_consecutive_failures", 3),
        )


@dataclass
class RetrievalConfig:
    """Memory index tuning."""
    k1: float = 1.2
    b: float = 0.75
    half_life_days: float = 30.0
    stem: bool = False
    chunk_max_chars: int = 1600  # ~400 tokens
    snippet_max_chars: int = 700
    hybrid_enabled: bool = False  # Needs a secondary scorer as well
    vector_weight: float = 0.7
    keyword_weight: float = 0.3
    diversity_enabled: bool = False
    mmr_lambda: float = 0.7

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        _require_non_negative(
            "retrieval",
            k1=self.k1,
            vector_weight=self.vector_weight,
            keyword_weight=self.keyword_weight,
        )
        if not 0.0 <= self.b <= 1.0:
            raise ConfigError(f"retrieval.b must be within [0, 1], got {self.b}")
        if self.half_life_days <= 0:
            raise ConfigError(
                f"retrieval.half_life_days must be positive, got {self.half_life_days}"
            )
        if self.chunk_max_chars < 1 or self.snippet_max_chars < 1:
            raise ConfigError("retrieval chunk and snippet sizes must be positive")
        if not 0.0 <= self.mmr_lambda <= 1.0:
            raise ConfigError(f"retrieval.mmr_lambda must be within [0, 1], got {self.mmr_lambda}")

    def to_dict(self) -> Dict:
        return {
            "k1": self.k1,
            "b": self.b,
            "half_life_days": self.half_life_days,
            "stem": self.stem,
            "chunk_max_chars": self.chunk_max_chars,
            "snippet_max_chars": self.snippet_max_chars,
            "hybrid": {
                "enabled": self.hybrid_enabled,
                "vector_weight": self.vector_weight,
                "keyword_weight": self.keyword_weight,
            },
            "diversity": {
                "enabled": self.diversity_enabled,
                "mmr_lambda": self.mmr_lambda,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "RetrievalConfig":
        hybrid = data.get("hybrid", {})
        diversity = data.get("diversity", {})
        return cls(
            k1=data.get("k1", 1.2),
            b=data.get("b", 0.75),
            half_life_days=data.get("half_life_days", 30.0),
            stem=data.get("stem", False),
            chunk_max_chars=data.get("chunk_max_chars", 1600),
            snippet_max_chars=data.get("snippet_max_chars", 700),
            hybrid_enabled=hybrid.get("enabled", False),
            vector_weight=hybrid.get("vector_weight", 0.7),
            keyword_weight=hybrid.get("keyword_weight", 0.3),
            diversity_enabled=diversity.get("enabled", False),
            mmr_lambda=diversity.get("mmr_lambda", 0.7),
        )


@dataclass
class WorkspaceConfig:
    """Workspace injection settings.

    inject_files restricts which recognized files reach the system prompt;
    None means all of them. Order is always the canonical one.
    """
    root: str = "./data/clawCore/WORKSPACE"
    inject_files: Optional[List[str]] = None
    max_file_chars: int = 20000
    notes_max_chars: int = 8000

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.inject_files is not None:
            unknown = [n for n in self.inject_files if n not in WORKSPACE_FILE_NAMES]
            if unknown:
                raise ConfigError(f"workspace.inject_files has unrecognized names: {unknown}")
        _require_non_negative(
            "workspace",
            max_file_chars=self.max_file_chars,
            notes_max_chars=self.notes_max_chars,
        )

    def to_dict(self) -> Dict:
        result = {
            "root": self.root,
            "max_file_chars": self.max_file_chars,
            "notes_max_chars": self.notes_max_chars,
        }
        if self.inject_files is not None:
            result["inject_files"] = list(self.inject_files)
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> "WorkspaceConfig":
        return cls(
            root=data.get("root", "./data/clawCore/WORKSPACE"),
            inject_files=data.get("inject_files"),
            max_file_chars=data.get("max_file_chars", 20000),
            notes_max_chars=data.get("notes_max_chars", 8000),
        )

    def resolve(self, base_path: Path) -> "WorkspaceConfig":
        """Resolve a relative workspace root against base path."""
        return WorkspaceConfig(
            root=str((base_path / self.root).resolve()),
            inject_files=self.inject_files,
            max_file_chars=self.max_file_chars,
            notes_max_chars=self.notes_max_chars,
        )


@dataclass
class LLMConfig:
    """Completion engine endpoint (OpenAI-compatible chat completions)."""
    base_url: str = "http://localhost:11434/v1"
    model: str = "llama3.1"
    api_key_env: str = "CLAWCORE_API_KEY"
    timeout_seconds: float = 60.0
    max_tokens: int = 1024
    temperature: float = 0.0

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.timeout_seconds <= 0:
            raise ConfigError(f"llm.timeout_seconds must be positive, got {self.timeout_seconds}")

    def to_dict(self) -> Dict:
        return {
            "base_url": self.base_url,
            "model": self.model,
            "api_key_env": self.api_key_env,
            "timeout_seconds": self.timeout_seconds,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "LLMConfig":
        return cls(
            base_url=data.get("base_url", "http://localhost:11434/v1"),
            model=data.get("model", "llama3.1"),
            api_key_env=data.get("api_key_env", "CLAWCORE_API_KEY"),
            timeout_seconds=data.get("timeout_seconds", 60.0),
            max_tokens=data.get("max_tokens", 1024),
            temperature=data.get("temperature", 0.0),
        )


@dataclass
class CoreConfig:
    """Top-level configuration."""
    version: str = "1.0.0"
    compaction: CompactionPolicy = field(default_factory=CompactionPolicy)
    flush: FlushConfig = field(default_factory=FlushConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    logging_level: str = "INFO"
    logging_file: Optional[str] = None

    def validate(self) -> None:
        """Re-check every section. Raises ConfigError on the first problem."""
        for section in (self.compaction, self.flush, self.retrieval, self.workspace, self.llm):
            section.validate()

    def to_dict(self) -> Dict:
        return {
            "version": self.version,
            "compaction": self.compaction.to_dict(),
            "flush": self.flush.to_dict(),
            "retrieval": self.retrieval.to_dict(),
            "workspace": self.workspace.to_dict(),
            "llm": self.llm.to_dict(),
            "logging": {
                "level": self.logging_level,
                "file": self.logging_file,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CoreConfig":
        logging_cfg = data.get("logging", {})
        return cls(
            version=data.get("version", "1.0.0"),
            compaction=CompactionPolicy.from_dict(data.get("compaction", {})),
            flush=FlushConfig.from_dict(data.get("flush", {})),
            retrieval=RetrievalConfig.from_dict(data.get("retrieval", {})),
            workspace=WorkspaceConfig.from_dict(data.get("workspace", {})),
            llm=LLMConfig.from_dict(data.get("llm", {})),
            logging_level=logging_cfg.get("level", "INFO"),
            logging_file=logging_cfg.get("file"),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "CoreConfig":
        """Load config from a JSON file."""
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls.from_dict(data)


# ============================================================================
# CONFIG MANAGER
# ============================================================================

class ConfigManager:
    """Load and save the claw_core configuration file."""

    CONFIG_FILE = "config.json"

    def __init__(self, config_dir: Optional[str] = None):
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = _get_data_dir() / "CONFIG"

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config: CoreConfig = CoreConfig()
        self._project_root = _find_project_root()

    @property
    def config_path(self) -> Path:
        return self.config_dir / self.CONFIG_FILE

    def load(self) -> CoreConfig:
        """
        Load configuration from file.

        A missing file is created with defaults. An unreadable file falls
        back to defaults with a warning. A file that parses but violates a
        threshold invariant raises ConfigError.
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Could not read config %s: %s, using defaults", self.config_path, e)
                data = None

            self.config = CoreConfig.from_dict(data) if data is not None else CoreConfig()
        else:
            self.config = CoreConfig()
            self.save()

        self.config.workspace = self.config.workspace.resolve(self._project_root)
        return self.config

    def save(self) -> None:
        """Save configuration to file."""
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(self.config.to_dict(), f, indent=2)


# ============================================================================
# GLOBAL INSTANCE
# ============================================================================

_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_dir: Optional[str] = None) -> ConfigManager:
    """Get or create the global config manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_dir)
        _config_manager.load()
    return _config_manager


def load_config() -> CoreConfig:
    """Load and return configuration."""
    return get_config_manager().load()
