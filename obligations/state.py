"""
state.py - Persisted contract state

A contract instance persists exactly four values in its KeyValueStore:
two id-keyed maps (obligations, schedules) and two id counters. Each
invocation loads them into a ContractState working copy, mutates the copy,
and saves it back only if the whole invocation succeeded.

The counters hold the LAST assigned id (0 when nothing was created yet), so
the next id is always counter + 1 and ids start at 1.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict

from .core import KeyValueStore, Obligation, Schedule


@dataclass(frozen=True, slots=True)
class StorageKeys:
    """Storage keys for one contract variant."""
    obligations: str
    obligation_counter: str
    schedules: str
    schedule_counter: str


@dataclass
class ContractState:
    """
    Working copy of one contract instance's persisted state.

    Attributes:
        obligations: Obligation id -> Obligation
        schedules: Schedule id -> Schedule
        last_obligation_id: Last assigned obligation id
        last_schedule_id: Last assigned schedule id
    """
    obligations: Dict[int, Obligation] = field(default_factory=dict)
    schedules: Dict[int, Schedule] = field(default_factory=dict)
    last_obligation_id: int = 0
    last_schedule_id: int = 0

    def allocate_obligation_id(self) -> int:
        self.last_obligation_id += 1
        return self.last_obligation_id

    def allocate_schedule_id(self) -> int:
        self.last_schedule_id += 1
        return self.last_schedule_id

    def copy(self) -> ContractState:
        """
        Independent copy. Records are frozen, so copying the maps is enough.
        """
        return ContractState(
            obligations=dict(self.obligations),
            schedules=dict(self.schedules),
            last_obligation_id=self.last_obligation_id,
            last_schedule_id=self.last_schedule_id,
        )


def load_state(store: KeyValueStore, keys: StorageKeys) -> ContractState:
    """Read a fresh working copy from the store. Missing keys start empty."""
    return ContractState(
        obligations=dict(store.get(keys.obligations) or {}),
        schedules=dict(store.get(keys.schedules) or {}),
        last_obligation_id=store.get(keys.obligation_counter, 0),
        last_schedule_id=store.get(keys.schedule_counter, 0),
    )


def save_state(store: KeyValueStore, keys: StorageKeys, state: ContractState) -> None:
    """Write both maps and both counters back to the store."""
    store.set(keys.obligations, dict(state.obligations))
    store.set(keys.obligation_counter, state.last_obligation_id)
    store.set(keys.schedules, dict(state.schedules))
    store.set(keys.schedule_counter, state.last_schedule_id)
