"""
CONTEXT MANAGEMENT MODULE
=========================

Manages context window size, pre-compaction memory flush, and
conversation compaction.

Features:
- Token usage tracking against flush and compaction thresholds
- Silent memory flush turn before compaction, retried with a bound
- Compaction that preserves recent turns and summarizes the rest
"""

from .tracker import ContextWindowTracker
from .flush import (
    MemoryFlushCoordinator,
    FlushOutcome,
    FlushStatus,
    SENTINEL_REPLY,
    is_silent_reply,
)
from .compaction import (
    CompactionEngine,
    CompactionResult,
    Summarizer,
    ExtractiveSummarizer,
    CompletionSummarizer,
    make_summary_turn,
)

__all__ = [
    'ContextWindowTracker',
    'MemoryFlushCoordinator',
    'FlushOutcome',
    'FlushStatus',
    'SENTINEL_REPLY',
    'is_silent_reply',
    'CompactionEngine',
    'CompactionResult',
    'Summarizer',
    'ExtractiveSummarizer',
    'CompletionSummarizer',
    'make_summary_turn',
]
