"""Bounded context window for the next inference call.

The window is a suffix of the history: at most `max_turns` turns, trimmed
further from the front while their combined content exceeds `max_chars`.
Two rules override both caps: the most recent user turn is always in the
window, and so is everything after it. Output depends only on the inputs.
"""
from typing import Optional, Sequence

from api.features.conversation.models import BoundedContext, Turn, TurnRole


def _last_user_index(turns: Sequence[Turn]) -> Optional[int]:
    for index in range(len(turns) - 1, -1, -1):
        if turns[index].role == TurnRole.USER:
            return index
    return None


def build_context(
    turns: Sequence[Turn],
    max_turns: int,
    *,
    max_chars: Optional[int] = None,
    preamble: Optional[str] = None,
) -> BoundedContext:
    if max_turns < 1:
        raise ValueError("max_turns must be at least 1")

    turns = list(turns)
    start = max(0, len(turns) - max_turns)

    anchor = _last_user_index(turns)
    if anchor is None:
        anchor = len(turns) - 1
    start = min(start, max(anchor, 0))

    if max_chars is not None:
        used = sum(len(turn.content) for turn in turns[start:])
        while start < anchor and used > max_chars:
            used -= len(turns[start].content)
            start += 1

    return BoundedContext(preamble=preamble, turns=tuple(turns[start:]), dropped=start)


class ContextBuilder:
    """Holds the configured caps and preamble."""

    def __init__(
        self,
        max_turns: int = 6,
        max_chars: Optional[int] = None,
        preamble: Optional[str] = None,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self.max_chars = max_chars
        self.preamble = preamble

    def build(self, turns: Sequence[Turn]) -> BoundedContext:
        return build_context(
            turns, self.max_turns, max_chars=self.max_chars, preamble=self.preamble
        )
