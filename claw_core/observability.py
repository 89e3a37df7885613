"""
OBSERVABILITY
=============

Tracer plumbing for claw_core.

Provides contextvars-based access to the current tracer task object
anywhere in the call stack, without threading it through every function
signature. The host runtime binds a task (anything with an
``event(name, payload=...)`` method) before driving a session turn.

Usage::

    from claw_core.observability import set_current_task, report_event

    set_current_task(task)
    report_event("context_compacted", {"tokens_before": 9000, "tokens_after": 3000})
"""

import contextvars
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Current tracer task for this execution context.
_current_task: contextvars.ContextVar[Optional[Any]] = contextvars.ContextVar(
    "clawcore_task", default=None
)


def set_current_task(task: Any) -> None:
    """Set the tracer task for the current execution context."""
    _current_task.set(task)


def get_current_task() -> Optional[Any]:
    """Get the current tracer task, or None if not in a tracked context."""
    return _current_task.get()


def clear_current_task() -> None:
    """Clear the current tracer task."""
    _current_task.set(None)


def report_event(name: str, payload: Optional[Dict[str, Any]] = None) -> bool:
    """Forward an event to the bound tracer task.

    Tracer failures never affect the caller's control flow.

    Returns:
        True if a task was bound and accepted the event.
    """
    task = get_current_task()
    if task is None:
        return False
    try:
        task.event(name, payload=payload or {})
        return True
    except Exception as e:
        logger.debug("Tracer rejected event %s: %s", name, e)
        return False
