"""
linker.py - Schedule <-> obligation association

A schedule drives exactly one obligation at a time. Both records carry a weak
reference to the other (obligation.schedule_ref, schedule.obligation_ref), but
only one side is authoritative for a contract variant:

    LinkSide.OBLIGATION  -- the obligation holding schedule_ref == sid is linked
    LinkSide.SCHEDULE    -- schedule.obligation_ref is linked

Resolution goes through an explicit index (schedule id -> obligation id) built
from the authoritative side when the state is loaded and maintained on every
link, successor hand-off and removal within the invocation.

Successor hand-off:
    follow_successor=True  -- fulfilling a recurring obligation moves the link
                              to the successor on both sides.
    follow_successor=False -- the successor copies schedule_ref but the
                              schedule keeps resolving to the earliest
                              obligation carrying it (already fulfilled).
"""

from __future__ import annotations
from dataclasses import replace
from typing import Dict, Optional

from .core import LinkSide, Obligation
from .state import ContractState


class Linker:
    """
    Index of schedule id -> obligation id over a ContractState.

    The index may point at an obligation that has since been removed;
    resolve() treats such links as unresolved.
    """

    def __init__(self, state: ContractState, side: LinkSide, follow_successor: bool = True):
        self.state = state
        self.side = side
        self.follow_successor = follow_successor
        self._index: Dict[int, int] = self._build_index()

    def _build_index(self) -> Dict[int, int]:
        if self.side is LinkSide.SCHEDULE:
            return {
                sid: s.obligation_ref
                for sid, s in self.state.schedules.items()
                if s.obligation_ref is not None
            }
        index: Dict[int, int] = {}
        for sid in {o.schedule_ref for o in self.state.obligations.values()}:
            if sid is None:
                continue
            oid = self._scan(sid)
            if oid is not None:
                index[sid] = oid
        return index

    def _scan(self, schedule_id: int) -> Optional[int]:
        """
        Find the obligation carrying schedule_ref == schedule_id.

        Several obligations carry the same ref once a recurring one has been
        chained. Following successors picks the newest, otherwise the oldest.
        """
        carriers = sorted(
            oid for oid, o in self.state.obligations.items()
            if o.schedule_ref == schedule_id
        )
        if not carriers:
            return None
        return carriers[-1] if self.follow_successor else carriers[0]

    # ========================================================================
    # QUERIES
    # ========================================================================

    def resolve(self, schedule_id: int) -> Optional[int]:
        """Obligation id driven by the schedule, or None if unlinked/removed."""
        oid = self._index.get(schedule_id)
        if oid is None or oid not in self.state.obligations:
            return None
        return oid

    def links(self) -> Dict[int, int]:
        """Copy of the raw index (may include links to removed obligations)."""
        return dict(self._index)

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    def link(self, schedule_id: int, obligation_id: int) -> None:
        """
        Link a schedule to an obligation, writing both back-references.

        If the obligation was linked to another schedule, that schedule loses
        its link under LinkSide.OBLIGATION (the obligation only holds one ref).
        """
        obligation = self.state.obligations[obligation_id]
        previous = obligation.schedule_ref

        self.state.obligations[obligation_id] = replace(obligation, schedule_ref=schedule_id)
        schedule = self.state.schedules[schedule_id]
        self.state.schedules[schedule_id] = replace(schedule, obligation_ref=obligation_id)
        self._index[schedule_id] = obligation_id

        if (self.side is LinkSide.OBLIGATION and previous is not None
                and previous != schedule_id):
            self._rescan(previous)

    def carry_forward(self, predecessor: Obligation, successor: Obligation) -> None:
        """
        Hand the link over from a fulfilled obligation to its successor.

        The successor already carries predecessor.schedule_ref. Only moves the
        link when following successors and the schedule currently resolves to
        the predecessor.
        """
        if not self.follow_successor:
            return
        sid = predecessor.schedule_ref
        if sid is None or self._index.get(sid) != predecessor.id:
            return
        self._index[sid] = successor.id
        schedule = self.state.schedules.get(sid)
        if schedule is not None:
            self.state.schedules[sid] = replace(schedule, obligation_ref=successor.id)

    def forget(self, obligation_id: int) -> None:
        """
        Update the index after an obligation was removed from the store.

        Schedules keep their (now dangling) obligation_ref; that is the
        orphaning the sweep tolerates.
        """
        if self.side is LinkSide.SCHEDULE:
            return
        for sid in [s for s, o in self._index.items() if o == obligation_id]:
            self._rescan(sid)

    def _rescan(self, schedule_id: int) -> None:
        oid = self._scan(schedule_id)
        if oid is None:
            self._index.pop(schedule_id, None)
        else:
            self._index[schedule_id] = oid
