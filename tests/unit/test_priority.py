"""Unit tests for priority collision resolution and eviction ordering."""

import pytest

from fwupdater.services.priority import (
    MAX_PRIORITY,
    EvictionQueue,
    lowest_priority_version,
    resolve_priority_collisions,
)


@pytest.mark.unit
class TestResolvePriorityCollisions:

    def test_no_collision(self):
        result = resolve_priority_collisions([("a", 0), ("b", 5)], "c", 2)

        assert result.bumps == {}
        assert result.lowest_version_id == "a"

    def test_single_collision_bumps_holder(self):
        result = resolve_priority_collisions([("a", 0)], "b", 0)

        assert result.bumps == {"a": 1}
        assert result.lowest_version_id == "b"

    def test_cascade(self):
        """A contiguous run above the requested value shifts up by one."""
        current = [("a", 0), ("b", 1), ("c", 2), ("d", 5)]

        result = resolve_priority_collisions(current, "x", 0)

        assert result.bumps == {"a": 1, "b": 2, "c": 3}
        assert result.lowest_version_id == "x"

    def test_requester_previous_value_is_ignored(self):
        """The requester's old priority does not take part in the walk."""
        current = [("a", 0), ("b", 1)]

        result = resolve_priority_collisions(current, "b", 0)

        assert result.bumps == {"a": 1}
        assert result.lowest_version_id == "b"

    def test_requester_not_lowest(self):
        result = resolve_priority_collisions([("a", 0), ("b", 3)], "b", 4)

        assert result.bumps == {}
        assert result.lowest_version_id == "a"

    def test_requester_ties_lowest(self):
        """Moving to a value equal to the current lowest makes the requester lowest."""
        result = resolve_priority_collisions([("a", 1)], "b", 1)

        assert result.bumps == {"a": 2}
        assert result.lowest_version_id == "b"

    def test_bump_clamped_at_max(self):
        result = resolve_priority_collisions([("a", MAX_PRIORITY)], "b", MAX_PRIORITY)

        assert result.bumps == {"a": MAX_PRIORITY}

    def test_duplicates_above_run_are_kept(self):
        """Known edge case: only the run starting at the requested value shifts."""
        current = [("a", 0), ("b", 3), ("c", 3)]

        result = resolve_priority_collisions(current, "x", 0)

        assert result.bumps == {"a": 1}

    def test_empty_catalog(self):
        result = resolve_priority_collisions([], "a", 7)

        assert result.bumps == {}
        assert result.lowest_version_id == "a"


@pytest.mark.unit
class TestLowestPriorityVersion:

    def test_lowest(self):
        assert lowest_priority_version([("a", 2), ("b", 0), ("c", 1)]) == "b"

    def test_last_wins_on_tie(self):
        assert lowest_priority_version([("a", 0), ("b", 0)]) == "b"

    def test_empty(self):
        assert lowest_priority_version([]) == ""


@pytest.mark.unit
class TestEvictionQueue:

    def test_highest_priority_first(self):
        queue = EvictionQueue()
        queue.push(0, "a")
        queue.push(7, "b")
        queue.push(3, "c")

        assert [queue.pop() for _ in range(3)] == ["b", "c", "a"]

    def test_ties_pop_descending_id(self):
        queue = EvictionQueue()
        queue.push(999, "aaaa0001")
        queue.push(999, "ffff0001")
        queue.push(999, "1234abcd")

        assert [queue.pop() for _ in range(3)] == ["ffff0001", "aaaa0001", "1234abcd"]

    def test_len_and_bool(self):
        queue = EvictionQueue()
        assert not queue
        queue.push(1, "a")
        assert queue
        assert len(queue) == 1
