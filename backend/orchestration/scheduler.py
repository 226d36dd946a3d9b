"""
Round-robin turn scheduling.

The speaking order is shuffled once when a conversation starts and is stable
afterwards; late joiners are appended at the tail and reached when the cursor
wraps around to them.
"""

import random
from typing import Iterable, List, Optional

from exceptions import SchedulerEmpty


def fisher_yates_shuffle(items: Iterable[str], rng: Optional[random.Random] = None) -> List[str]:
    """
    Return an unbiased permutation of ``items``.

    Args:
        items: Values to shuffle (not modified)
        rng: Random source; pass a seeded ``random.Random`` for reproducible orders
    """
    rng = rng or random.Random()
    order = list(items)
    for i in range(len(order) - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


class TurnScheduler:
    """Speaking order plus a cursor pointing at the next speaker."""

    def __init__(self, speaking_order: Optional[List[str]] = None, cursor: int = 0):
        self._order: List[str] = list(speaking_order or [])
        if self._order and not 0 <= cursor < len(self._order):
            cursor = cursor % len(self._order)
        self._cursor = cursor if self._order else 0

    @classmethod
    def shuffled(cls, participant_ids: Iterable[str], rng: Optional[random.Random] = None) -> "TurnScheduler":
        return cls(fisher_yates_shuffle(participant_ids, rng))

    @property
    def speaking_order(self) -> List[str]:
        return list(self._order)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, participant_id: str) -> bool:
        return participant_id in self._order

    def peek(self) -> Optional[str]:
        """Next speaker without advancing."""
        if not self._order:
            return None
        return self._order[self._cursor]

    def next_speaker(self) -> Optional[str]:
        """Return the speaker at the cursor and advance it, or None if nobody can speak."""
        if not self._order:
            return None
        speaker = self._order[self._cursor]
        self._cursor = (self._cursor + 1) % len(self._order)
        return speaker

    def require_next_speaker(self) -> str:
        speaker = self.next_speaker()
        if speaker is None:
            raise SchedulerEmpty("No participants in the speaking order")
        return speaker

    def append(self, participant_id: str) -> bool:
        """
        Add a participant at the tail of the speaking order.

        Returns:
            False if the participant already had a slot
        """
        if participant_id in self._order:
            return False
        self._order.append(participant_id)
        return True
