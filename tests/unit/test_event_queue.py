"""Unit tests for the in-memory milestone event queues."""
import threading

import pytest

from gutmap.services.event_queue import EventQueueRegistry, MilestoneEventQueue
from gutmap.services.schemas import MilestoneEvent


def _event(milestone_id: str) -> MilestoneEvent:
    return MilestoneEvent(
        type="milestone_complete",
        milestone_id=milestone_id,
        title=milestone_id,
        description="",
        tier=1,
    )


@pytest.fixture
def queue():
    q = MilestoneEventQueue()
    q.extend([_event("first_meal"), _event("first_rating"), _event("pattern_detection")])
    return q


class TestMilestoneEventQueue:
    """Tests for a single user's queue."""

    def test_read_all_is_fifo(self, queue):
        assert [e.milestone_id for e in queue.read_all()] == [
            "first_meal",
            "first_rating",
            "pattern_detection",
        ]

    def test_read_all_does_not_drain(self, queue):
        queue.read_all().clear()

        assert len(queue) == 3

    def test_clear_index(self, queue):
        queue.clear(1)

        assert [e.milestone_id for e in queue.read_all()] == ["first_meal", "pattern_detection"]

    @pytest.mark.parametrize("index", [-1, 3, 99])
    def test_clear_out_of_range_ignored(self, queue, index):
        queue.clear(index)

        assert len(queue) == 3

    def test_clear_all(self, queue):
        queue.clear_all()

        assert queue.read_all() == []

    def test_concurrent_appends(self):
        q = MilestoneEventQueue()

        def worker():
            for _ in range(100):
                q.append(_event("first_meal"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(q) == 800


class TestEventQueueRegistry:
    """Tests for per-user queue lookup."""

    def test_queues_are_per_user(self):
        registry = EventQueueRegistry()
        registry.for_user("a").append(_event("first_meal"))

        assert len(registry.for_user("a")) == 1
        assert len(registry.for_user("b")) == 0
        assert registry.for_user("a") is registry.for_user("a")

    def test_reset(self):
        registry = EventQueueRegistry()
        registry.for_user("a").append(_event("first_meal"))

        registry.reset()

        assert len(registry.for_user("a")) == 0
