"""
scheduler.py - Catch-up sweep

The sweep is a permissionless keeper tick. Every active schedule whose
next_due has been reached is executed once:

1. Resolve the linked obligation (missing -> skip fulfillment, still advance)
2. Fulfill it if still OPEN (recurring obligations chain a successor)
3. Advance the schedule: recurring ones jump to the first boundary strictly
   after `now`, counting every additional elapsed boundary as missed;
   one-time ones deactivate
4. Record the schedule id as executed

A schedule advanced past `now` is not due again at the same `now`, so
sweeping twice at one timestamp executes each due schedule exactly once.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, List, Tuple

from .core import Schedule, Timestamp, EventKind
from .linker import Linker
from .obligation_store import ObligationStore
from .schedule_store import ScheduleStore


Emit = Callable[[EventKind, tuple], None]


def catch_up(next_due: Timestamp, interval: int, now: Timestamp) -> Tuple[Timestamp, int]:
    """
    Advance a recurring due time past `now`.

    The occurrence at next_due is the one being executed. Every further
    boundary next_due + k*interval <= now (k >= 1) was missed.

    Args:
        next_due: Due time being executed (<= now)
        interval: Seconds between occurrences (> 0)
        now: Sweep time

    Returns:
        (first boundary strictly greater than now, number of missed boundaries)

    Example:
        >>> catch_up(3000, 86400, 3000 + 86400 * 3 + 100)
        (348600, 3)
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    if next_due > now:
        raise ValueError(f"next_due {next_due} is after now {now}")
    missed = (now - next_due) // interval
    return next_due + (missed + 1) * interval, missed


def advance_schedule(schedule: Schedule, now: Timestamp) -> Tuple[Schedule, int]:
    """
    Pure post-execution transition of a due schedule.

    Returns:
        (updated schedule, missed boundaries); one-time schedules report 0
    """
    if not schedule.recurring:
        return replace(schedule, active=False, last_executed_at=now), 0
    next_due, missed = catch_up(schedule.next_due, schedule.interval, now)
    updated = replace(
        schedule,
        next_due=next_due,
        last_executed_at=now,
        missed_count=schedule.missed_count + missed,
    )
    return updated, missed


class CatchUpScheduler:
    """
    Executes due schedules against the obligation and schedule stores.

    Args:
        obligations: Store whose OPEN obligations get fulfilled
        schedules: Store whose due schedules get advanced
        linker: Resolves schedule -> obligation
        emit: Audit event callback
    """

    def __init__(self, obligations: ObligationStore, schedules: ScheduleStore, linker: Linker, emit: Emit):
        self.obligations = obligations
        self.schedules = schedules
        self.linker = linker
        self.emit = emit

    def sweep(self, now: Timestamp) -> List[int]:
        """
        Execute every due schedule once.

        Returns:
            Executed schedule ids, in store order
        """
        executed: List[int] = []

        for due in self.schedules.due(now):
            sid = due.id

            obligation_id = self.linker.resolve(sid)
            if obligation_id is not None:
                obligation = self.obligations.find(obligation_id)
                if obligation is not None and obligation.is_open:
                    self.obligations.settle(obligation_id, now, payer=obligation.owner)

            # Re-read: settling may have relinked the schedule to a successor
            schedule, missed = advance_schedule(self.schedules.get(sid), now)
            self.schedules.put(schedule)

            if missed > 0:
                self.emit(EventKind.SCHEDULE_MISSED, (sid, missed))
            executed.append(sid)
            self.emit(EventKind.SCHEDULE_EXECUTED, (sid,))

        return executed
