"""Winner selection."""

import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def invite_count(max_attendees: int | None, existing_invites: int, waiting: int) -> int:
    """How many winners a draw picks: free seats, capped by the pool, never negative.

    ``max_attendees`` of None means the event has no capacity limit.
    """
    if max_attendees is None:
        return max(waiting, 0)
    return max(min(max_attendees - existing_invites, waiting), 0)


def draw_winners(
    pool: Sequence[T], count: int, rng: random.Random | None = None
) -> tuple[list[T], list[T]]:
    """Pick ``count`` entries uniformly at random without replacement.

    Sampling is done over indices, so every ``count``-subset of positions is
    equally likely even when the pool holds duplicates.

    Returns:
        (winners in draw order, remaining entries in their original order)
    """
    rng = rng or random.SystemRandom()
    count = max(0, min(count, len(pool)))
    chosen = rng.sample(range(len(pool)), count)
    taken = set(chosen)
    winners = [pool[i] for i in chosen]
    remaining = [item for i, item in enumerate(pool) if i not in taken]
    return winners, remaining
