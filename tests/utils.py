"""
Test doubles shared across the claw_core test suite.
"""

import threading
from datetime import date
from typing import Dict, List, Optional, Sequence

from claw_core.llm.engine import CompletionEngine
from claw_core.models import ConversationTurn

FIXED_TODAY = date(2024, 2, 10)


class FakeEngine(CompletionEngine):
    """Scripted completion engine.

    Each call pops the next scripted reply; an exception instance is raised
    instead of returned. With the script exhausted it answers ``default``,
    or raises ``error`` when one is set.
    """

    def __init__(self, replies: Optional[List] = None, default: str = "NO_REPLY", error: Exception = None):
        self.replies = list(replies or [])
        self.default = default
        self.error = error
        self.calls: List[Dict] = []

    def complete(self, turns: Sequence[ConversationTurn], instruction: str = "") -> ConversationTurn:
        self.calls.append({"turns": list(turns), "instruction": instruction})
        if self.replies:
            reply = self.replies.pop(0)
        elif self.error is not None:
            raise self.error
        else:
            reply = self.default
        if isinstance(reply, BaseException):
            raise reply
        return ConversationTurn.assistant(reply)


class BlockingEngine(FakeEngine):
    """Blocks inside complete() until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def complete(self, turns, instruction=""):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().complete(turns, instruction)


class RecordingTask:
    """Stand-in tracer task that records events."""

    def __init__(self):
        self.events = []

    def event(self, name, payload=None):
        self.events.append((name, payload))
