"""
ERRORS
======

Exception hierarchy for claw_core.

Fatal (propagate, block the operation):
- ``ConfigError``        invalid thresholds or negative values
- ``CompactionFailure``  even truncation cannot fit the budget (a ConfigError)
- ``SessionStateError``  illegal session phase transition

Recoverable (logged, recorded on outcomes, never crash a session):
- ``CompletionError`` / ``CompletionTimeout``  raised by completion engines
- ``FlushEngineError`` / ``FlushTimeout``      a failed flush attempt
- ``IndexConsistencyError``                    query saw a torn index
- ``MemoryPathError``                          retrieval asked for a non-memory file
"""


class ClawCoreError(Exception):
    """Base class for all claw_core errors."""


class ConfigError(ClawCoreError):
    """Invalid configuration. Blocks session creation."""


class CompactionFailure(ConfigError):
    """Compaction could not bring usage under the compaction threshold."""


class SessionStateError(ClawCoreError):
    """A session was asked to make a transition its state does not allow."""


class CompletionError(ClawCoreError):
    """The completion engine failed to produce a reply."""


class CompletionTimeout(CompletionError):
    """The completion engine did not reply within its timeout."""


class FlushEngineError(ClawCoreError):
    """A memory flush attempt failed in the completion engine."""


class FlushTimeout(FlushEngineError):
    """A memory flush attempt timed out."""


class IndexConsistencyError(ClawCoreError):
    """A query observed an index generation that is not internally consistent."""


class MemoryPathError(ClawCoreError, ValueError):
    """A retrieval path is not MEMORY.md or memory/*.md."""
