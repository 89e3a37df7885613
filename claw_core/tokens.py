"""
TOKEN COUNTING
==============

Approximate token counts for turns and injected context.

Uses a simple heuristic: ~4 characters per token on average, plus a fixed
overhead for role markers on every message. It tends to slightly
overcount, which is the safe direction for a context budget.
"""

from typing import Iterable

ROLE_OVERHEAD_TOKENS = 4


def count_tokens(text: str) -> int:
    """
    Approximate token count for text.

    Args:
        text: Text to count tokens for

    Returns:
        Approximate token count (0 for empty text)
    """
    if not text:
        return 0
    return len(text) // 4 + 1


def count_message_tokens(content: str) -> int:
    """Token count for one message, including role overhead."""
    return ROLE_OVERHEAD_TOKENS + count_tokens(content)


def sum_turn_tokens(turns: Iterable) -> int:
    """Sum of ``token_count`` over turns."""
    return sum(turn.token_count for turn in turns)
