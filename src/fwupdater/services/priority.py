"""Redundancy priority allocation and eviction ordering.

Pure functions over (version_id, priority) pairs; the orchestrator applies
their results to the activation catalog.
"""

import heapq
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

MAX_PRIORITY = 255

# Failed activations carry no priority; they sort ahead of every real one
# so eviction removes them first.
FAILED_EVICTION_PRIORITY = 999


class PriorityResolution(NamedTuple):
    bumps: Dict[str, int]
    lowest_version_id: str


def resolve_priority_collisions(
    current: Iterable[Tuple[str, int]], version_id: str, value: int
) -> PriorityResolution:
    """Make room for ``version_id`` at priority ``value``.

    The requested pair is inserted first, so it wins over any priority the
    version already holds. Walking the pairs in ascending priority order
    (stable on ties), each other entry that sits exactly on the next free
    value is bumped by one, and the free value moves up with it.

    Only the run starting at ``value`` is shifted. Entries that already
    collided with each other above that run are left as they are, e.g.
    requesting 0 with {a: 0, b: 3, c: 3} bumps a to 1 and keeps b and c
    at 3.

    Returns:
        PriorityResolution with the new priorities of bumped versions and
        the version the boot pointer should follow (the requester when it
        holds the lowest value, including ties)
    """
    working: Dict[str, int] = {version_id: value}
    for vid, prio in current:
        working.setdefault(vid, prio)

    ordered = sorted(working.items(), key=lambda item: item[1])

    bumps: Dict[str, int] = {}
    free_value = value
    for vid, prio in ordered:
        if vid == version_id:
            continue
        if prio == free_value:
            free_value = min(free_value + 1, MAX_PRIORITY)
            bumps[vid] = free_value

    lowest_version_id, lowest_value = ordered[0]
    if value == lowest_value:
        lowest_version_id = version_id

    return PriorityResolution(bumps=bumps, lowest_version_id=lowest_version_id)


def lowest_priority_version(entries: Iterable[Tuple[str, int]]) -> str:
    """Version holding the lowest priority; the last one wins on ties.

    Returns "" when there is no entry.
    """
    lowest_value: Optional[int] = None
    lowest_version = ""
    for vid, prio in entries:
        if lowest_value is None or prio <= lowest_value:
            lowest_value = prio
            lowest_version = vid
    return lowest_version


class EvictionQueue:
    """Max-priority-first queue of eviction candidates."""

    def __init__(self):
        self._heap: List[Tuple[int, "_Reversed"]] = []

    def push(self, priority: int, version_id: str) -> None:
        # heapq is a min-heap: negate to pop the highest priority first,
        # ties popped in descending version id order
        heapq.heappush(self._heap, (-priority, _Reversed(version_id)))

    def pop(self) -> str:
        _, vid = heapq.heappop(self._heap)
        return vid.value

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)


class _Reversed:
    """Wrapper inverting string ordering inside the heap."""

    __slots__ = ("value",)

    def __init__(self, value: str):
        self.value = value

    def __lt__(self, other: "_Reversed") -> bool:
        return self.value > other.value

    def __eq__(self, other) -> bool:
        return isinstance(other, _Reversed) and self.value == other.value
