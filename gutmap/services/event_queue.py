"""
In-memory FIFO of milestone events waiting to be shown.

Events are transient: nothing here is persisted, and a process restart
drops anything not yet drained.
"""

import threading
from typing import Dict, Iterable, List

from gutmap.services.schemas import MilestoneEvent


class MilestoneEventQueue:
    """Pending events for a single user."""

    def __init__(self):
        self._events: List[MilestoneEvent] = []
        self._lock = threading.Lock()

    def append(self, event: MilestoneEvent) -> None:
        with self._lock:
            self._events.append(event)

    def extend(self, events: Iterable[MilestoneEvent]) -> None:
        with self._lock:
            self._events.extend(events)

    def read_all(self) -> List[MilestoneEvent]:
        """Copy of the pending events, oldest first."""
        with self._lock:
            return [e.model_copy() for e in self._events]

    def clear(self, index: int) -> None:
        """Drop the event at ``index``; out-of-range indexes are ignored."""
        with self._lock:
            if 0 <= index < len(self._events):
                del self._events[index]

    def clear_all(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


class EventQueueRegistry:
    """One queue per user id, created on first access."""

    def __init__(self):
        self._queues: Dict[str, MilestoneEventQueue] = {}
        self._lock = threading.Lock()

    def for_user(self, user_id: str) -> MilestoneEventQueue:
        with self._lock:
            queue = self._queues.get(user_id)
            if queue is None:
                queue = self._queues[user_id] = MilestoneEventQueue()
            return queue

    def reset(self) -> None:
        with self._lock:
            self._queues.clear()


event_queues = EventQueueRegistry()
