"""
Completion engine interface and adapters.
"""

from .engine import CompletionEngine, TimeoutCompletionEngine, HttpCompletionEngine

__all__ = [
    'CompletionEngine',
    'TimeoutCompletionEngine',
    'HttpCompletionEngine',
]
