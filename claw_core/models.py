"""
SESSION MODELS
==============

Conversation turns and the session they belong to.

Session phases form an explicit state machine::

    ACTIVE ──► FLUSHING ──► COMPACTING ──► ACTIVE
       │           │                         ▲
       │           └──────────► ACTIVE       │
       └──────────────► COMPACTING ──────────┘

Only one phase owns a session at a time. Turns may be appended only while
ACTIVE or FLUSHING (the flush adds its own instruction and reply turns);
the turn sequence may be replaced only while COMPACTING.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import SessionStateError
from .tokens import count_message_tokens, count_tokens, sum_turn_tokens
from .workspace.assembler import SECTION_DIVIDER
from .workspace.files import Workspace


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class TurnKind(str, Enum):
    """Where a turn came from.

    Only MESSAGE and FLUSH_REPLY turns are user-visible history.
    """
    MESSAGE = "message"
    FLUSH_PROMPT = "flush_prompt"
    FLUSH_REPLY = "flush_reply"
    SUMMARY = "summary"


class SessionType(str, Enum):
    MAIN = "main"
    GROUP = "group"
    EPHEMERAL = "ephemeral"


class SessionState(str, Enum):
    ACTIVE = "active"
    FLUSHING = "flushing"
    COMPACTING = "compacting"


ALLOWED_TRANSITIONS = {
    SessionState.ACTIVE: frozenset({SessionState.FLUSHING, SessionState.COMPACTING}),
    SessionState.FLUSHING: frozenset({SessionState.ACTIVE, SessionState.COMPACTING}),
    SessionState.COMPACTING: frozenset({SessionState.ACTIVE}),
}

DISPLAY_KINDS = frozenset({TurnKind.MESSAGE, TurnKind.FLUSH_REPLY})


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ConversationTurn:
    """One turn of a conversation.

    token_count defaults to the heuristic estimate of the content plus role
    overhead when not supplied by the caller.
    """
    role: Role
    content: str
    token_count: Optional[int] = None
    timestamp: str = field(default_factory=_utc_now)
    kind: TurnKind = TurnKind.MESSAGE

    def __post_init__(self):
        self.role = Role(self.role)
        self.kind = TurnKind(self.kind)
        if self.token_count is None:
            self.token_count = count_message_tokens(self.content)

    @property
    def displayable(self) -> bool:
        return self.kind in DISPLAY_KINDS

    @classmethod
    def user(cls, content: str, **kwargs) -> "ConversationTurn":
        return cls(role=Role.USER, content=content, **kwargs)

    @classmethod
    def assistant(cls, content: str, **kwargs) -> "ConversationTurn":
        return cls(role=Role.ASSISTANT, content=content, **kwargs)

    @classmethod
    def system(cls, content: str, **kwargs) -> "ConversationTurn":
        return cls(role=Role.SYSTEM, content=content, **kwargs)

    def to_message(self) -> Dict[str, str]:
        """Role + content only; completion APIs reject extra fields."""
        return {"role": self.role.value, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "token_count": self.token_count,
            "timestamp": self.timestamp,
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationTurn":
        return cls(
            role=data.get("role", "user"),
            content=data.get("content", ""),
            token_count=data.get("token_count"),
            timestamp=data.get("timestamp", _utc_now()),
            kind=data.get("kind", "message"),
        )


@dataclass
class Session:
    """
    A live conversation bound to a workspace.

    system_prompt and notes_context are the injected context set by the
    lifecycle hooks; their token cost is the tracker baseline. Compaction
    discards both along with the removed turns, so they are rebuilt after
    every compaction.
    """
    session_id: str
    session_type: SessionType
    workspace: Workspace
    turns: List[ConversationTurn] = field(default_factory=list)
    state: SessionState = SessionState.ACTIVE
    system_prompt: str = ""
    notes_context: str = ""
    created_at: str = field(default_factory=_utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.session_type = SessionType(self.session_type)

    @property
    def is_main(self) -> bool:
        return self.session_type is SessionType.MAIN

    @property
    def injected_context(self) -> str:
        parts = [p for p in (self.system_prompt, self.notes_context) if p]
        return SECTION_DIVIDER.join(parts)

    @property
    def injected_tokens(self) -> int:
        return count_tokens(self.injected_context)

    @property
    def turn_tokens(self) -> int:
        return sum_turn_tokens(self.turns)

    def display_history(self) -> List[ConversationTurn]:
        """User-visible turns; flush instructions and summaries are excluded."""
        return [t for t in self.turns if t.displayable]

    def transition(self, new_state: SessionState) -> None:
        """Move to ``new_state`` or raise SessionStateError."""
        new_state = SessionState(new_state)
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise SessionStateError(
                f"Session '{self.session_id}' cannot go from "
                f"{self.state.value} to {new_state.value}"
            )
        self.state = new_state

    def append(self, turn: ConversationTurn) -> None:
        if self.state is SessionState.COMPACTING:
            raise SessionStateError(
                f"Session '{self.session_id}' is compacting; turns must be queued"
            )
        self.turns.append(turn)

    def replace_turns(self, turns: List[ConversationTurn]) -> None:
        if self.state is not SessionState.COMPACTING:
            raise SessionStateError(
                f"Session '{self.session_id}' may only replace turns while compacting"
            )
        self.turns = list(turns)

    def clear_injected_context(self) -> None:
        self.system_prompt = ""
        self.notes_context = ""
