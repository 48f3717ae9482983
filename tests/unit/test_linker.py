"""
test_linker.py - Unit tests for the schedule <-> obligation link index

Tests:
- Index rebuilt from the authoritative side of a loaded state
- Successor hand-off with follow_successor on and off
- Relinking an obligation to a second schedule
- forget() after removal
"""

import pytest

from obligations import (
    Linker, LinkSide, ContractState, Obligation, Schedule, ObligationStatus,
)


def _state(*, obligations=(), schedules=()):
    state = ContractState()
    for o in obligations:
        state.obligations[o.id] = o
        state.last_obligation_id = max(state.last_obligation_id, o.id)
    for s in schedules:
        state.schedules[s.id] = s
        state.last_schedule_id = max(state.last_schedule_id, s.id)
    return state


def _paid(oid, **kwargs):
    return Obligation(id=oid, owner="alice", amount=10, due_at=100, status=ObligationStatus.FULFILLED,
                      fulfilled_at=50, **kwargs)


def _open(oid, **kwargs):
    return Obligation(id=oid, owner="alice", amount=10, due_at=100, **kwargs)


class TestBuildIndex:

    def test_obligation_side_reads_schedule_ref(self):
        state = _state(
            obligations=[_open(1, schedule_ref=7)],
            schedules=[Schedule(id=7, owner="alice", obligation_ref=None, next_due=10)],
        )
        assert Linker(state, LinkSide.OBLIGATION).resolve(7) == 1

    def test_schedule_side_reads_obligation_ref(self):
        state = _state(
            obligations=[_open(1)],
            schedules=[Schedule(id=7, owner="alice", obligation_ref=1, next_due=10)],
        )
        assert Linker(state, LinkSide.SCHEDULE).resolve(7) == 1
        # The obligation side ignores obligation_ref
        assert Linker(state, LinkSide.OBLIGATION).resolve(7) is None

    @pytest.mark.parametrize("follow, expected", [(True, 3), (False, 1)])
    def test_chained_carriers(self, follow, expected):
        state = _state(obligations=[
            _paid(1, recurring=True, frequency_days=1, schedule_ref=5),
            _paid(2, recurring=True, frequency_days=1, schedule_ref=5),
            _open(3, recurring=True, frequency_days=1, schedule_ref=5),
        ])
        assert Linker(state, LinkSide.OBLIGATION, follow_successor=follow).resolve(5) == expected

    def test_removed_obligation_unresolved(self):
        state = _state(schedules=[Schedule(id=7, owner="alice", obligation_ref=4, next_due=10)])
        linker = Linker(state, LinkSide.SCHEDULE)
        assert linker.links() == {7: 4}
        assert linker.resolve(7) is None


class TestLink:

    def test_link_writes_both_sides(self):
        state = _state(
            obligations=[_open(1)],
            schedules=[Schedule(id=2, owner="alice", obligation_ref=None, next_due=10)],
        )
        linker = Linker(state, LinkSide.OBLIGATION)
        linker.link(2, 1)
        assert state.obligations[1].schedule_ref == 2
        assert state.schedules[2].obligation_ref == 1
        assert linker.resolve(2) == 1

    def test_second_schedule_orphans_first_on_obligation_side(self):
        state = _state(
            obligations=[_open(1)],
            schedules=[
                Schedule(id=1, owner="alice", obligation_ref=None, next_due=10),
                Schedule(id=2, owner="alice", obligation_ref=None, next_due=10),
            ],
        )
        linker = Linker(state, LinkSide.OBLIGATION)
        linker.link(1, 1)
        linker.link(2, 1)
        assert linker.resolve(2) == 1
        assert linker.resolve(1) is None
        # The stale back-reference on the schedule record is left as is
        assert state.schedules[1].obligation_ref == 1

    def test_second_schedule_keeps_first_on_schedule_side(self):
        state = _state(
            obligations=[_open(1)],
            schedules=[
                Schedule(id=1, owner="alice", obligation_ref=None, next_due=10),
                Schedule(id=2, owner="alice", obligation_ref=None, next_due=10),
            ],
        )
        linker = Linker(state, LinkSide.SCHEDULE)
        linker.link(1, 1)
        linker.link(2, 1)
        assert linker.resolve(1) == 1
        assert linker.resolve(2) == 1


class TestCarryForward:

    def _chained(self, side, follow):
        state = _state(
            obligations=[_open(1, recurring=True, frequency_days=1)],
            schedules=[Schedule(id=1, owner="alice", obligation_ref=None, next_due=10)],
        )
        linker = Linker(state, side, follow_successor=follow)
        linker.link(1, 1)
        predecessor = state.obligations[1]
        state.obligations[1] = _paid(1, recurring=True, frequency_days=1, schedule_ref=1)
        successor = _open(2, recurring=True, frequency_days=1, schedule_ref=1)
        state.obligations[2] = successor
        linker.carry_forward(predecessor, successor)
        return state, linker

    @pytest.mark.parametrize("side", [LinkSide.OBLIGATION, LinkSide.SCHEDULE])
    def test_follow_moves_link(self, side):
        state, linker = self._chained(side, follow=True)
        assert linker.resolve(1) == 2
        assert state.schedules[1].obligation_ref == 2

    @pytest.mark.parametrize("side", [LinkSide.OBLIGATION, LinkSide.SCHEDULE])
    def test_legacy_keeps_original(self, side):
        state, linker = self._chained(side, follow=False)
        assert linker.resolve(1) == 1
        assert state.schedules[1].obligation_ref == 1

    def test_follow_survives_reload(self):
        state, _ = self._chained(LinkSide.OBLIGATION, follow=True)
        assert Linker(state.copy(), LinkSide.OBLIGATION).resolve(1) == 2

    def test_unlinked_predecessor_is_ignored(self):
        state = _state(obligations=[_open(1, recurring=True, frequency_days=1)])
        linker = Linker(state, LinkSide.OBLIGATION)
        linker.carry_forward(state.obligations[1], _open(2, recurring=True, frequency_days=1))
        assert linker.links() == {}


class TestForget:

    def test_obligation_side_drops_link(self):
        state = _state(
            obligations=[_open(1)],
            schedules=[Schedule(id=3, owner="alice", obligation_ref=None, next_due=10)],
        )
        linker = Linker(state, LinkSide.OBLIGATION)
        linker.link(3, 1)
        del state.obligations[1]
        linker.forget(1)
        assert linker.resolve(3) is None
        assert 3 not in linker.links()

    def test_obligation_side_falls_back_to_remaining_carrier(self):
        state = _state(obligations=[
            _paid(1, recurring=True, frequency_days=1, schedule_ref=3),
            _open(2, recurring=True, frequency_days=1, schedule_ref=3),
        ])
        linker = Linker(state, LinkSide.OBLIGATION)
        assert linker.resolve(3) == 2
        del state.obligations[2]
        linker.forget(2)
        assert linker.resolve(3) == 1

    def test_schedule_side_keeps_dangling_ref(self):
        state = _state(
            obligations=[_open(1)],
            schedules=[Schedule(id=3, owner="alice", obligation_ref=1, next_due=10)],
        )
        linker = Linker(state, LinkSide.SCHEDULE)
        del state.obligations[1]
        linker.forget(1)
        assert linker.links() == {3: 1}
        assert linker.resolve(3) is None
