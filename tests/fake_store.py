"""
fake_store.py - Test helpers for contract state

Provides:
- CountingStore: InMemoryKeyValueStore that counts writes per key
- FrozenClock: Clock without advance_to
- State comparison helpers and a reference sum computation
- new_invocation(): engine wiring over a bare ContractState
"""

from __future__ import annotations
from collections import Counter
from typing import Any, Optional

from obligations import (
    BILL_PROFILE, ContractState, InMemoryKeyValueStore, Invocation, SECONDS_PER_DAY,
)


DAY = SECONDS_PER_DAY


class CountingStore(InMemoryKeyValueStore):
    """Store that records how often each key was written."""

    def __init__(self):
        super().__init__()
        self.writes: Counter = Counter()

    def set(self, key: str, value: Any) -> None:
        self.writes[key] += 1
        super().set(key, value)


class FrozenClock:
    """Clock that cannot be advanced (only satisfies the Clock protocol)."""

    def __init__(self, now: int):
        self._now = now

    def now(self) -> int:
        return self._now


def compare_states(a: ContractState, b: ContractState) -> dict:
    """Compare two contract states and return differences."""
    obligation_diffs = []
    schedule_diffs = []

    for oid in sorted(set(a.obligations) | set(b.obligations)):
        if a.obligations.get(oid) != b.obligations.get(oid):
            obligation_diffs.append({"id": oid, "a": a.obligations.get(oid), "b": b.obligations.get(oid)})
    for sid in sorted(set(a.schedules) | set(b.schedules)):
        if a.schedules.get(sid) != b.schedules.get(sid):
            schedule_diffs.append({"id": sid, "a": a.schedules.get(sid), "b": b.schedules.get(sid)})

    counters_equal = (
        a.last_obligation_id == b.last_obligation_id
        and a.last_schedule_id == b.last_schedule_id
    )
    return {
        "equal": not obligation_diffs and not schedule_diffs and counters_equal,
        "obligation_diffs": obligation_diffs,
        "schedule_diffs": schedule_diffs,
        "counters_equal": counters_equal,
    }


def state_equals(a: ContractState, b: ContractState) -> bool:
    """Check if two contract states hold identical records and counters."""
    return compare_states(a, b)["equal"]


def open_sum(state: ContractState, owner: str) -> int:
    """Reference computation of the sum invariant."""
    return sum(
        o.amount for o in state.obligations.values()
        if o.owner == owner and o.is_open
    )


def new_invocation(profile=BILL_PROFILE, now: int = 1000,
                   state: Optional[ContractState] = None) -> Invocation:
    """Engine wiring over a bare ContractState, for store-level tests."""
    return Invocation(profile, state if state is not None else ContractState(), now)
