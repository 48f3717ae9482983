"""
obligation_store.py - Obligation state machine

    OPEN --fulfill--> FULFILLED        (recurring: + new OPEN successor)
    OPEN --cancel---> CANCELLED        (CancelMode.DEACTIVATE; a paid recurring
                                        obligation cancels its live successor)
    any  --cancel---> (removed)        (CancelMode.REMOVE)

All operations work on a ContractState working copy and signal failures by
raising EngineError subclasses before touching state.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, List, Optional

from .core import (
    Obligation, ObligationStatus, Principal, Timestamp,
    CancelMode, EventKind, SECONDS_PER_DAY,
    ObligationNotFound, AlreadyFulfilled, ObligationInactive,
    InvalidAmount, InvalidFrequency, Unauthorized,
)
from .linker import Linker
from .state import ContractState


# (kind, payload) -> None
Emit = Callable[[EventKind, tuple], None]


def successor_of(obligation: Obligation, new_id: int, now: Timestamp) -> Obligation:
    """
    Build the next instance of a recurring obligation.

    Due one period after the predecessor's due date (not after `now`), with the
    same owner, amount, frequency, name and details, and the same schedule_ref.
    """
    return Obligation(
        id=new_id,
        owner=obligation.owner,
        amount=obligation.amount,
        due_at=obligation.due_at + obligation.frequency_days * SECONDS_PER_DAY,
        recurring=True,
        frequency_days=obligation.frequency_days,
        name=obligation.name,
        status=ObligationStatus.OPEN,
        created_at=now,
        schedule_ref=obligation.schedule_ref,
        details=obligation.details,
        predecessor=obligation.id,
    )


class ObligationStore:
    """
    Obligation map with creation, fulfillment, chaining and cancellation.

    Args:
        state: Working copy to operate on
        linker: Link index, notified of successors and removals
        emit: Audit event callback
        fixed_frequency_days: If set, every obligation must recur with exactly
            this frequency (policy variant)
    """

    def __init__(
        self,
        state: ContractState,
        linker: Linker,
        emit: Emit,
        fixed_frequency_days: Optional[int] = None,
    ):
        self.state = state
        self.linker = linker
        self.emit = emit
        self.fixed_frequency_days = fixed_frequency_days

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def create(
        self,
        owner: Principal,
        amount: int,
        due_at: Timestamp,
        recurring: bool,
        frequency_days: int,
        now: Timestamp,
        name: str = "",
        details: tuple = (),
    ) -> int:
        """
        Create an OPEN obligation and return its id.

        Raises:
            Unauthorized: owner is empty
            InvalidAmount: amount <= 0
            InvalidFrequency: recurring with frequency_days == 0, or not matching
                the fixed frequency
        """
        if not owner:
            raise Unauthorized("Obligation owner cannot be empty")
        if amount <= 0:
            raise InvalidAmount(f"Amount must be positive, got {amount}")
        if recurring and frequency_days <= 0:
            raise InvalidFrequency("Recurring obligation requires frequency_days > 0")
        if self.fixed_frequency_days is not None and (
                not recurring or frequency_days != self.fixed_frequency_days):
            raise InvalidFrequency(
                f"Obligations recur every {self.fixed_frequency_days} days, "
                f"got recurring={recurring}, frequency_days={frequency_days}"
            )

        obligation_id = self.state.allocate_obligation_id()
        self.state.obligations[obligation_id] = Obligation(
            id=obligation_id,
            owner=owner,
            amount=amount,
            due_at=due_at,
            recurring=recurring,
            frequency_days=frequency_days,
            name=name,
            created_at=now,
            details=tuple(details),
        )
        self.emit(EventKind.CREATED, (obligation_id, owner))
        return obligation_id

    def fulfill(self, caller: Principal, obligation_id: int, now: Timestamp) -> Optional[Obligation]:
        """
        Owner marks an obligation as paid.

        Returns:
            The successor if the obligation recurs, else None

        Raises:
            ObligationNotFound, Unauthorized, AlreadyFulfilled, ObligationInactive
        """
        obligation = self.get(obligation_id)
        if obligation.owner != caller:
            raise Unauthorized(f"{caller} does not own obligation {obligation_id}")
        if obligation.status is ObligationStatus.FULFILLED:
            raise AlreadyFulfilled(f"Obligation {obligation_id} already fulfilled")
        if obligation.status is ObligationStatus.CANCELLED:
            raise ObligationInactive(f"Obligation {obligation_id} is not active")
        return self.settle(obligation_id, now, payer=caller)

    def settle(self, obligation_id: int, now: Timestamp, payer: Principal) -> Optional[Obligation]:
        """
        Transition an OPEN obligation to FULFILLED and chain its successor.

        No ownership check: used by fulfill() after checking, and by the sweep.
        """
        obligation = self.state.obligations[obligation_id]
        if not obligation.is_open:
            raise ValueError(f"Cannot settle obligation {obligation_id} in status {obligation.status.value}")

        paid = replace(obligation, status=ObligationStatus.FULFILLED, fulfilled_at=now)
        self.state.obligations[obligation_id] = paid

        successor = None
        if paid.recurring:
            successor = successor_of(paid, self.state.allocate_obligation_id(), now)
            self.state.obligations[successor.id] = successor
            self.linker.carry_forward(paid, successor)

        self.emit(EventKind.FULFILLED, (obligation_id, payer))
        return successor

    def cancel(
        self,
        obligation_id: int,
        mode: CancelMode,
        caller: Optional[Principal] = None,
        require_owner: bool = False,
    ) -> None:
        """
        Cancel an obligation. Schedules referencing it are left untouched.

        REMOVE deletes exactly the given record. DEACTIVATE takes the live
        instance out of service: for a recurring obligation that was already
        paid, that is the newest instance chained from it.

        Raises:
            ObligationNotFound: No such obligation
            Unauthorized: require_owner and caller is not the owner
            AlreadyFulfilled: DEACTIVATE and the chain ends in a paid instance
            ObligationInactive: DEACTIVATE and the live instance is already cancelled
        """
        obligation = self.get(obligation_id)
        if require_owner and obligation.owner != caller:
            raise Unauthorized(f"{caller} does not own obligation {obligation_id}")

        if mode is CancelMode.REMOVE:
            del self.state.obligations[obligation_id]
            self.linker.forget(obligation_id)
            self.emit(EventKind.DEACTIVATED, (obligation_id, caller or obligation.owner))
            return

        live = self.latest_in_chain(obligation_id)
        if live.status is ObligationStatus.FULFILLED:
            raise AlreadyFulfilled(f"Obligation {live.id} already fulfilled")
        if live.status is ObligationStatus.CANCELLED:
            raise ObligationInactive(f"Obligation {live.id} is not active")
        self.state.obligations[live.id] = replace(live, status=ObligationStatus.CANCELLED)
        self.emit(EventKind.DEACTIVATED, (live.id, caller or live.owner))

    # ========================================================================
    # QUERIES
    # ========================================================================

    def latest_in_chain(self, obligation_id: int) -> Obligation:
        """Newest obligation chained (directly or transitively) from obligation_id."""
        successors = {
            o.predecessor: o.id for o in self.state.obligations.values()
            if o.predecessor is not None
        }
        current = obligation_id
        while current in successors and successors[current] in self.state.obligations:
            current = successors[current]
        return self.get(current)

    def get(self, obligation_id: int) -> Obligation:
        obligation = self.state.obligations.get(obligation_id)
        if obligation is None:
            raise ObligationNotFound(f"Obligation {obligation_id} not found")
        return obligation

    def find(self, obligation_id: int) -> Optional[Obligation]:
        return self.state.obligations.get(obligation_id)

    def open_for_owner(self, owner: Principal) -> List[Obligation]:
        return [o for o in self.state.obligations.values() if o.is_open and o.owner == owner]

    def total_open(self, owner: Principal) -> int:
        """Sum of amounts of the owner's OPEN obligations."""
        return sum(o.amount for o in self.open_for_owner(owner))

    def overdue(self, now: Timestamp) -> List[Obligation]:
        """OPEN obligations whose due date has passed."""
        return [o for o in self.state.obligations.values() if o.is_open and o.due_at < now]

    def all(self) -> List[Obligation]:
        return list(self.state.obligations.values())
