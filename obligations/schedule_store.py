"""
schedule_store.py - Schedule state machine

    active --modify--> active          (next_due / interval overwritten)
    active --cancel--> inactive        (terminal)
    active --sweep---> active          (recurring: next_due advanced past now)
    active --sweep---> inactive        (one-time)

Schedules are never deleted. Sweep-driven transitions live in scheduler.py.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, List

from .core import (
    Schedule, Principal, Timestamp, EventKind,
    ScheduleNotFound, InvalidDueTime, Unauthorized,
)
from .linker import Linker
from .obligation_store import ObligationStore
from .state import ContractState


Emit = Callable[[EventKind, tuple], None]


def _require_future(next_due: Timestamp, now: Timestamp) -> None:
    if next_due <= now:
        raise InvalidDueTime(f"Next due time must be in the future: {next_due} <= {now}")


class ScheduleStore:
    """
    Schedule map with creation, modification and deactivation.

    Args:
        state: Working copy to operate on
        obligations: Used to validate the referenced obligation on create
        linker: Writes the back-references on create
        emit: Audit event callback
    """

    def __init__(self, state: ContractState, obligations: ObligationStore, linker: Linker, emit: Emit):
        self.state = state
        self.obligations = obligations
        self.linker = linker
        self.emit = emit

    def create(
        self,
        owner: Principal,
        obligation_id: int,
        next_due: Timestamp,
        interval: int,
        now: Timestamp,
    ) -> int:
        """
        Create an active schedule driving obligation_id and return its id.

        Raises:
            ObligationNotFound: No such obligation
            Unauthorized: owner does not own the obligation
            InvalidDueTime: next_due <= now
        """
        obligation = self.obligations.get(obligation_id)
        if obligation.owner != owner:
            raise Unauthorized(f"{owner} does not own obligation {obligation_id}")
        _require_future(next_due, now)
        if interval < 0:
            raise InvalidDueTime(f"Interval cannot be negative, got {interval}")

        schedule_id = self.state.allocate_schedule_id()
        self.state.schedules[schedule_id] = Schedule(
            id=schedule_id,
            owner=owner,
            obligation_ref=obligation_id,
            next_due=next_due,
            interval=interval,
            created_at=now,
        )
        self.linker.link(schedule_id, obligation_id)
        self.emit(EventKind.SCHEDULE_CREATED, (schedule_id, owner))
        return schedule_id

    def modify(
        self,
        caller: Principal,
        schedule_id: int,
        next_due: Timestamp,
        interval: int,
        now: Timestamp,
    ) -> None:
        """
        Overwrite next_due and interval. Does not reactivate.

        Raises:
            ScheduleNotFound, Unauthorized, InvalidDueTime
        """
        schedule = self._owned(caller, schedule_id)
        _require_future(next_due, now)
        if interval < 0:
            raise InvalidDueTime(f"Interval cannot be negative, got {interval}")
        self.state.schedules[schedule_id] = replace(schedule, next_due=next_due, interval=interval)
        self.emit(EventKind.SCHEDULE_MODIFIED, (schedule_id, caller))

    def cancel(self, caller: Principal, schedule_id: int) -> None:
        """
        Deactivate permanently. Cancelling an inactive schedule is allowed.

        Raises:
            ScheduleNotFound, Unauthorized
        """
        schedule = self._owned(caller, schedule_id)
        self.state.schedules[schedule_id] = replace(schedule, active=False)
        self.emit(EventKind.SCHEDULE_CANCELLED, (schedule_id, caller))

    def put(self, schedule: Schedule) -> None:
        """Store an updated schedule. The id must already exist."""
        if schedule.id not in self.state.schedules:
            raise ScheduleNotFound(f"Schedule {schedule.id} not found")
        self.state.schedules[schedule.id] = schedule

    def _owned(self, caller: Principal, schedule_id: int) -> Schedule:
        schedule = self.get(schedule_id)
        if schedule.owner != caller:
            raise Unauthorized(f"{caller} does not own schedule {schedule_id}")
        return schedule

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get(self, schedule_id: int) -> Schedule:
        schedule = self.state.schedules.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFound(f"Schedule {schedule_id} not found")
        return schedule

    def for_owner(self, owner: Principal) -> List[Schedule]:
        return [s for s in self.state.schedules.values() if s.owner == owner]

    def due(self, now: Timestamp) -> List[Schedule]:
        """Active schedules with next_due <= now, in store order."""
        return [s for s in self.state.schedules.values() if s.is_due(now)]

    def all(self) -> List[Schedule]:
        return list(self.state.schedules.values())
