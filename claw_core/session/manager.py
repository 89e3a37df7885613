"""
SESSION_MANAGER
===============

Creates and tears down sessions on one workspace.

Per session it wires::

    ContextWindowTracker ─┬─► MemoryFlushCoordinator ─┐
                          │                          ├─► SessionRunner
    CompactionEngine ─────┴──────────────────────────┘

All sessions on the workspace share the memory manager (and its index)
and the workspace file cache; nothing else is shared. The configuration
is validated before every session is created, so an invalid policy never
reaches a live session.

Usage::

    manager = SessionManager.from_config_dir()   # config file, logging, HTTP engine
    # or: SessionManager(config, engine=HttpCompletionEngine.from_config(config.llm))
    runner = manager.create_session(SessionType.MAIN)
    runner.submit(ConversationTurn.user("hello"))
    manager.close_session(runner.session_id)
"""

import logging
import threading
import uuid
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..config.loader import ConfigManager, CoreConfig
from ..context.compaction import CompactionEngine, CompletionSummarizer, ExtractiveSummarizer
from ..context.flush import MemoryFlushCoordinator
from ..context.tracker import ContextWindowTracker
from ..llm.engine import CompletionEngine, HttpCompletionEngine, TimeoutCompletionEngine
from ..logging_config import setup_logging
from ..memory.manager import MemoryManager
from ..models import Session, SessionType
from ..workspace.files import Workspace
from .lifecycle import SessionLifecycleHooks
from .runner import SessionRunner
from .store import TranscriptStore

logger = logging.getLogger(__name__)


class SessionManager:
    """Session factory and registry for one workspace."""

    TRANSCRIPTS_DIR = "transcripts"

    def __init__(
        self,
        config: CoreConfig,
        engine: CompletionEngine,
        workspace: Optional[Workspace] = None,
        memory: Optional[MemoryManager] = None,
        transcripts: Optional[TranscriptStore] = None,
        clock: Callable[[], date] = date.today,
        summarize_with_engine: bool = True,
    ):
        self.config = config
        self.clock = clock
        self.workspace = (workspace or Workspace(config.workspace.root)).ensure()
        self.engine = TimeoutCompletionEngine(engine, config.llm.timeout_seconds)
        self.memory = memory or MemoryManager(self.workspace, config.retrieval, clock=clock)
        self.transcripts = transcripts or TranscriptStore(
            Path(self.workspace.root).parent / self.TRANSCRIPTS_DIR
        )
        self.lifecycle = SessionLifecycleHooks.from_config(config.workspace, clock=clock)
        self.summarize_with_engine = summarize_with_engine

        self._runners: Dict[str, SessionRunner] = {}
        self._lock = threading.Lock()
        self._indexed = False

    @classmethod
    def from_config_dir(
        cls,
        config_dir: Optional[str] = None,
        engine: Optional[CompletionEngine] = None,
        **kwargs,
    ) -> "SessionManager":
        """
        Entry point for a host process.

        Loads the config file, sets up logging from its ``logging`` section,
        and builds the manager. Without an engine, one is built from the
        ``llm`` section.
        """
        config = ConfigManager(config_dir).load()
        setup_logging(level=config.logging_level, log_file=config.logging_file)
        if engine is None:
            engine = HttpCompletionEngine.from_config(config.llm)
        return cls(config, engine, **kwargs)

    def _ensure_indexed(self) -> None:
        with self._lock:
            if self._indexed:
                return
            self._indexed = True
        self.memory.reindex()

    def create_session(
        self,
        session_type: SessionType = SessionType.MAIN,
        session_id: Optional[str] = None,
    ) -> SessionRunner:
        """
        Create a session and run its start hook.

        Raises:
            ConfigError: configuration is invalid
            ValueError: session_id is already live
        """
        self.config.validate()
        self._ensure_indexed()

        session = Session(
            session_id=session_id or uuid.uuid4().hex[:12],
            session_type=SessionType(session_type),
            workspace=self.workspace,
        )

        tracker = ContextWindowTracker(self.config.compaction)
        flusher = MemoryFlushCoordinator(self.config.flush, tracker, self.engine)
        summarizer = (
            CompletionSummarizer(self.engine, fallback=ExtractiveSummarizer())
            if self.summarize_with_engine else ExtractiveSummarizer()
        )
        compactor = CompactionEngine(self.config.compaction, summarizer)
        runner = SessionRunner(
            session,
            tracker,
            flusher,
            compactor,
            self.lifecycle,
            on_flush_complete=self.memory.reindex,
        )

        with self._lock:
            if session.session_id in self._runners:
                raise ValueError(f"Session '{session.session_id}' already exists")
            self._runners[session.session_id] = runner

        self.lifecycle.on_session_start(session, tracker)
        logger.info("Created %s session '%s'", session.session_type.value, session.session_id)
        return runner

    def get(self, session_id: str) -> Optional[SessionRunner]:
        with self._lock:
            return self._runners.get(session_id)

    def list_sessions(self) -> List[str]:
        with self._lock:
            return list(self._runners.keys())

    def close_session(self, session_id: str, save: bool = True) -> Optional[Path]:
        """
        Tear down a live session, saving its transcript.

        Returns:
            Path of the saved transcript, or None
        """
        with self._lock:
            runner = self._runners.pop(session_id, None)
        if runner is None:
            return None

        path = self.transcripts.save(runner.session) if save else None
        logger.info("Closed session '%s'", session_id)
        return path
