"""
SESSION MODULE
==============

Session lifecycle, turn processing and transcript persistence.
"""

from .lifecycle import SessionLifecycleHooks, NOTES_TRUNCATION_MARKER
from .runner import SessionRunner, TurnReport
from .store import TranscriptStore
from .manager import SessionManager

__all__ = [
    'SessionLifecycleHooks',
    'NOTES_TRUNCATION_MARKER',
    'SessionRunner',
    'TurnReport',
    'TranscriptStore',
    'SessionManager',
]
