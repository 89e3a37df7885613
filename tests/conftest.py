"""
Pytest configuration and fixtures for the claw_core test suite.
"""

from pathlib import Path

import pytest

from claw_core.config.loader import CompactionPolicy, FlushConfig
from claw_core.context.compaction import CompactionEngine
from claw_core.context.flush import MemoryFlushCoordinator
from claw_core.context.tracker import ContextWindowTracker
from claw_core.llm.engine import CompletionEngine
from claw_core.models import Session, SessionType
from claw_core.session.lifecycle import SessionLifecycleHooks
from claw_core.session.runner import SessionRunner
from claw_core.workspace.files import Workspace

from tests.utils import FIXED_TODAY, FakeEngine


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TODAY


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    return Workspace(tmp_path / "workspace").ensure()


@pytest.fixture
def write_file(workspace):
    """Write a workspace-relative file."""
    def _write(name: str, content: str) -> Path:
        path = workspace.path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def small_policy() -> CompactionPolicy:
    # flush at 700, compact at 900
    return CompactionPolicy(max_tokens=1000, reserve_floor=100, soft_threshold_tokens=200, preserve_recent=2)


@pytest.fixture
def make_session(workspace):
    def _make(session_type=SessionType.MAIN, session_id="test-session") -> Session:
        return Session(session_id=session_id, session_type=session_type, workspace=workspace)
    return _make


@pytest.fixture
def make_runner(make_session, small_policy, fixed_clock):
    """Build a runner wired the way SessionManager wires one."""
    def _make(
        engine: CompletionEngine = None,
        policy: CompactionPolicy = None,
        flush_config: FlushConfig = None,
        session_type=SessionType.MAIN,
        **runner_kwargs,
    ) -> SessionRunner:
        policy = policy or small_policy
        session = make_session(session_type)
        tracker = ContextWindowTracker(policy)
        flusher = MemoryFlushCoordinator(flush_config or FlushConfig(), tracker, engine or FakeEngine())
        compactor = CompactionEngine(policy)
        lifecycle = SessionLifecycleHooks(clock=fixed_clock)
        lifecycle.on_session_start(session, tracker)
        return SessionRunner(session, tracker, flusher, compactor, lifecycle, **runner_kwargs)
    return _make
