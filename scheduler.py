"""
Scheduled action queue.

Deferred game actions (AI wind-up throws, rapid-fire re-throws, effect
expiry) are queued against the controller's elapsed clock and drained at
the start of every tick.  Each action remembers the session generation it
was issued for; draining with a newer generation drops it unrun.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(order=True)
class ScheduledAction:
    due: float
    seq: int
    generation: int = field(compare=False)
    kind: str = field(compare=False)
    callback: Callable[[], None] = field(compare=False, repr=False)
    owner: Optional[str] = field(default=None, compare=False)


class ScheduledActionQueue:

    def __init__(self):
        self._heap: list = []
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def schedule(self, due: float, generation: int, kind: str,
                 callback: Callable[[], None], owner: Optional[str] = None) -> ScheduledAction:
        action = ScheduledAction(due, next(self._seq), generation, kind, callback, owner)
        heapq.heappush(self._heap, action)
        return action

    def drain(self, now: float, generation: int) -> int:
        """Run every action due at ``now``. Returns how many callbacks ran."""
        ran = 0
        while self._heap and self._heap[0].due <= now:
            action = heapq.heappop(self._heap)
            if action.generation != generation:
                logger.debug("[SCHED] dropped stale %s (gen %d != %d)",
                             action.kind, action.generation, generation)
                continue
            action.callback()
            ran += 1
        return ran

    def pending(self, kind: Optional[str] = None, owner: Optional[str] = None) -> list:
        return sorted(a for a in self._heap
                      if (kind is None or a.kind == kind)
                      and (owner is None or a.owner == owner))

    def clear(self) -> None:
        self._heap.clear()
