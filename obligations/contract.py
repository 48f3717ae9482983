"""
contract.py - Obligation contract (invocation surface)

ObligationContract is the only module that commits state. Every operation is
one invocation:

    1. require_auth(principal)          -- failure aborts, whatever the style
    2. load a ContractState working copy from the KeyValueStore
    3. run the operation against the copy (stores, linker, scheduler)
    4. success: save the copy, extend the storage lease, publish buffered events
       failure: drop the copy and the buffered events, report per ErrorStyle

Nothing is written before step 4, so a failed operation never leaves a
partial record, a consumed id or a published event behind.

One engine serves both contract variants. A ContractProfile selects the
variant's storage keys, event topics, error style, link side and cancellation
rules; BillPayments and InsurancePolicies add domain-specific creation.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, TypeVar, Union

from .core import (
    Clock, KeyValueStore, Authorizer, EventSink,
    Obligation, Schedule, PublishedEvent, Principal, Timestamp,
    ErrorStyle, LinkSide, CancelMode, EventKind,
    EngineError, InvalidAmount, Abort, Ok, Err,
    SECONDS_PER_DAY, POLICY_PERIOD_DAYS,
    INSTANCE_LIFETIME_THRESHOLD, INSTANCE_BUMP_AMOUNT,
)
from .environment import InMemoryKeyValueStore, TrustAll, EventLog
from .linker import Linker
from .obligation_store import ObligationStore
from .schedule_store import ScheduleStore
from .scheduler import CatchUpScheduler
from .state import ContractState, StorageKeys, load_state, save_state


T = TypeVar("T")

# What a mutating operation returns: Ok/Err under RESULT, the bare value under ABORT.
Outcome = Union[Ok, Err, Any]


# ============================================================================
# PROFILES
# ============================================================================

@dataclass(frozen=True, slots=True)
class ContractProfile:
    """
    Per-variant configuration of the engine.

    Attributes:
        name: Contract name (used in verbose output)
        obligation_topic: Event namespace for obligation events
        schedule_topic: Event namespace for schedule events
        storage: Storage keys for the two maps and two counters
        error_style: RESULT (Ok/Err values) or ABORT (raise Abort)
        link_side: Which record holds the authoritative link
        cancel_mode: REMOVE the record or DEACTIVATE it
        cancel_requires_owner: Whether cancelling an obligation checks ownership
        follow_successor: Whether chaining moves the schedule link to the successor
        fixed_frequency_days: If set, all obligations recur with this period
    """
    name: str
    obligation_topic: str
    schedule_topic: str
    storage: StorageKeys
    error_style: ErrorStyle
    link_side: LinkSide
    cancel_mode: CancelMode
    cancel_requires_owner: bool
    follow_successor: bool = True
    fixed_frequency_days: Optional[int] = None


BILL_PROFILE = ContractProfile(
    name="bill_payments",
    obligation_topic="bill",
    schedule_topic="schedule",
    storage=StorageKeys("BILLS", "NEXT_ID", "SCHEDULES", "NEXT_SCH"),
    error_style=ErrorStyle.RESULT,
    link_side=LinkSide.OBLIGATION,
    cancel_mode=CancelMode.REMOVE,
    cancel_requires_owner=False,
)

POLICY_PROFILE = ContractProfile(
    name="insurance",
    obligation_topic="insure",
    schedule_topic="insure",
    storage=StorageKeys("POLICIES", "NEXT_ID", "PREM_SCH", "NEXT_PSCH"),
    error_style=ErrorStyle.ABORT,
    link_side=LinkSide.SCHEDULE,
    cancel_mode=CancelMode.DEACTIVATE,
    cancel_requires_owner=True,
    fixed_frequency_days=POLICY_PERIOD_DAYS,
)

_SCHEDULE_EVENTS = frozenset({
    EventKind.SCHEDULE_CREATED,
    EventKind.SCHEDULE_MODIFIED,
    EventKind.SCHEDULE_CANCELLED,
    EventKind.SCHEDULE_EXECUTED,
    EventKind.SCHEDULE_MISSED,
})


# ============================================================================
# INVOCATION
# ============================================================================

class Invocation:
    """
    Working state of a single contract call.

    Wires the stores, the linker and the scheduler to one ContractState copy
    and buffers the events they emit until commit.
    """

    def __init__(self, profile: ContractProfile, state: ContractState, now: Timestamp):
        self.profile = profile
        self.state = state
        self.now = now
        self.events: List[PublishedEvent] = []
        self.linker = Linker(state, profile.link_side, profile.follow_successor)
        self.obligations = ObligationStore(state, self.linker, self.emit, profile.fixed_frequency_days)
        self.schedules = ScheduleStore(state, self.obligations, self.linker, self.emit)
        self.scheduler = CatchUpScheduler(self.obligations, self.schedules, self.linker, self.emit)

    def emit(self, kind: EventKind, payload: tuple) -> None:
        if kind in _SCHEDULE_EVENTS:
            namespace = self.profile.schedule_topic
        else:
            namespace = self.profile.obligation_topic
        self.events.append(PublishedEvent(topic=(namespace, kind.value), payload=payload))


# ============================================================================
# CONTRACT
# ============================================================================

class ObligationContract:
    """
    Obligations, schedules and the catch-up sweep behind one atomic surface.

    Thread Safety:
        Not thread-safe. Invocations against one instance must be serialized
        by the caller.

    Example:
        clock = ManualClock(1000)
        bills = ObligationContract(BILL_PROFILE, clock)
        bill_id = bills.create_obligation("alice", 5000, 1_000_000).value
        schedule_id = bills.create_schedule("alice", bill_id, 3000, 0).value
        bills.sweep(3500)            # -> [schedule_id]
    """

    def __init__(
        self,
        profile: ContractProfile,
        clock: Clock,
        store: Optional[KeyValueStore] = None,
        authorizer: Optional[Authorizer] = None,
        sink: Optional[EventSink] = None,
        verbose: bool = False,
    ):
        """
        Args:
            profile: Variant configuration
            clock: Ledger clock, read once per invocation
            store: Persistent storage (default: new InMemoryKeyValueStore)
            authorizer: Caller verification (default: TrustAll)
            sink: Audit event sink (default: new EventLog)
            verbose: Print one line per invocation outcome
        """
        self.profile = profile
        self.clock = clock
        self.store = store if store is not None else InMemoryKeyValueStore()
        self.authorizer = authorizer if authorizer is not None else TrustAll()
        self.sink = sink if sink is not None else EventLog()
        self.verbose = verbose

    @property
    def error_style(self) -> ErrorStyle:
        return self.profile.error_style

    # ========================================================================
    # INVOCATION MACHINERY
    # ========================================================================

    def _begin(self) -> Invocation:
        return Invocation(self.profile, load_state(self.store, self.profile.storage), self.clock.now())

    def _commit(self, invocation: Invocation) -> None:
        save_state(self.store, self.profile.storage, invocation.state)
        self.store.extend_ttl(INSTANCE_LIFETIME_THRESHOLD, INSTANCE_BUMP_AMOUNT)
        for event in invocation.events:
            self.sink.publish(event.topic, event.payload)

    def _invoke(
        self,
        label: str,
        principal: Optional[Principal],
        operation: Callable[[Invocation], T],
    ) -> Outcome:
        """
        Run one mutating operation atomically.

        Raises:
            Abort: Authorization failed (any style), or the operation failed
                under ErrorStyle.ABORT
        """
        if principal is not None:
            self.authorizer.require_auth(principal)

        invocation = self._begin()
        try:
            value = operation(invocation)
        except EngineError as e:
            if self.verbose:
                print(f"✗ REJECTED {self.profile.name}.{label}: {e}")
            if self.error_style is ErrorStyle.RESULT:
                return Err(e.code, str(e))
            raise Abort(e.code, str(e)) from e

        self._commit(invocation)
        if self.verbose:
            print(f"✓ APPLIED {self.profile.name}.{label} -> {value!r}")
        if self.error_style is ErrorStyle.RESULT:
            return Ok(value)
        return value

    def _view(self) -> Invocation:
        """Read-only access: a loaded working copy that is never committed."""
        return self._begin()

    # ========================================================================
    # TIME
    # ========================================================================

    def advance_time(self, timestamp: Timestamp) -> None:
        """
        Move the clock forward (clocks exposing advance_to only).

        Raises:
            ValueError: If timestamp is before the current time
            TypeError: If the clock cannot be advanced
        """
        if timestamp == self.clock.now():
            return
        advance_to = getattr(self.clock, "advance_to", None)
        if advance_to is None:
            raise TypeError(f"{type(self.clock).__name__} cannot be advanced")
        advance_to(timestamp)

    # ========================================================================
    # OBLIGATIONS (Mutating)
    # ========================================================================

    def create_obligation(
        self,
        owner: Principal,
        amount: int,
        due_at: Timestamp,
        recurring: bool = False,
        frequency_days: int = 0,
        name: str = "",
        details: tuple = (),
    ) -> Outcome:
        """Create an OPEN obligation. Returns its id."""
        return self._invoke(
            "create_obligation", owner,
            lambda inv: inv.obligations.create(
                owner, amount, due_at, recurring, frequency_days, inv.now,
                name=name, details=details,
            ),
        )

    def fulfill(self, caller: Principal, obligation_id: int) -> Outcome:
        """Owner pays an obligation. Returns the successor id, or None."""
        def operation(inv: Invocation) -> Optional[int]:
            successor = inv.obligations.fulfill(caller, obligation_id, inv.now)
            return successor.id if successor is not None else None
        return self._invoke("fulfill", caller, operation)

    def cancel_obligation(self, obligation_id: int, caller: Optional[Principal] = None) -> Outcome:
        """
        Cancel an obligation per the profile's cancel mode.

        When the profile does not require ownership, caller may be omitted and
        no authorization is requested.
        """
        principal = caller if self.profile.cancel_requires_owner else None
        return self._invoke(
            "cancel_obligation", principal,
            lambda inv: inv.obligations.cancel(
                obligation_id, self.profile.cancel_mode,
                caller=caller, require_owner=self.profile.cancel_requires_owner,
            ),
        )

    # ========================================================================
    # SCHEDULES (Mutating)
    # ========================================================================

    def create_schedule(
        self,
        owner: Principal,
        obligation_id: int,
        next_due: Timestamp,
        interval: int = 0,
    ) -> Outcome:
        """Create a schedule driving obligation_id. Returns its id."""
        return self._invoke(
            "create_schedule", owner,
            lambda inv: inv.schedules.create(owner, obligation_id, next_due, interval, inv.now),
        )

    def modify_schedule(
        self,
        caller: Principal,
        schedule_id: int,
        next_due: Timestamp,
        interval: int,
    ) -> Outcome:
        return self._invoke(
            "modify_schedule", caller,
            lambda inv: inv.schedules.modify(caller, schedule_id, next_due, interval, inv.now),
        )

    def cancel_schedule(self, caller: Principal, schedule_id: int) -> Outcome:
        return self._invoke(
            "cancel_schedule", caller,
            lambda inv: inv.schedules.cancel(caller, schedule_id),
        )

    def sweep(self, now: Optional[Timestamp] = None) -> List[int]:
        """
        Execute every due schedule. Callable by anyone.

        Args:
            now: If given, the clock is first advanced to it

        Returns:
            Executed schedule ids (always a plain list, in either error style)

        Raises:
            ValueError: now is before the current clock time
            TypeError: now differs from the clock and the clock cannot be advanced
        """
        if now is not None:
            self.advance_time(now)
        invocation = self._begin()
        executed = invocation.scheduler.sweep(invocation.now)
        self._commit(invocation)
        if self.verbose:
            missed = sum(e.payload[1] for e in invocation.events
                         if e.topic[1] == EventKind.SCHEDULE_MISSED.value)
            print(f"⏱ SWEEP {self.profile.name} t={invocation.now}: "
                  f"executed={len(executed)} missed={missed}")
        return executed

    # ========================================================================
    # QUERIES (read-only, never committed)
    # ========================================================================

    def get_obligation(self, obligation_id: int) -> Optional[Obligation]:
        return self._view().obligations.find(obligation_id)

    def open_obligations(self, owner: Principal) -> List[Obligation]:
        return self._view().obligations.open_for_owner(owner)

    def total_open(self, owner: Principal) -> int:
        return self._view().obligations.total_open(owner)

    def overdue_obligations(self) -> List[Obligation]:
        view = self._view()
        return view.obligations.overdue(view.now)

    def all_obligations(self) -> List[Obligation]:
        return self._view().obligations.all()

    def get_schedule(self, schedule_id: int) -> Optional[Schedule]:
        return self._view().state.schedules.get(schedule_id)

    def schedules_for(self, owner: Principal) -> List[Schedule]:
        return self._view().schedules.for_owner(owner)

    def all_schedules(self) -> List[Schedule]:
        return self._view().schedules.all()

    def linked_obligation(self, schedule_id: int) -> Optional[int]:
        """Obligation id the schedule would fulfill on its next execution."""
        return self._view().linker.resolve(schedule_id)

    def snapshot(self) -> ContractState:
        """Copy of the committed state."""
        return load_state(self.store, self.profile.storage).copy()

    def __repr__(self):
        return f"ObligationContract({self.profile.name}, style={self.error_style.value})"


# ============================================================================
# VARIANTS
# ============================================================================

class BillPayments(ObligationContract):
    """
    Bills: recoverable Ok/Err results, schedule id stored on the bill,
    cancellation deletes the bill without an ownership check.
    """

    def __init__(self, clock: Clock, store: Optional[KeyValueStore] = None,
                 authorizer: Optional[Authorizer] = None, sink: Optional[EventSink] = None,
                 verbose: bool = False, profile: ContractProfile = BILL_PROFILE):
        super().__init__(profile, clock, store, authorizer, sink, verbose)

    def create_bill(
        self,
        owner: Principal,
        name: str,
        amount: int,
        due_date: Timestamp,
        recurring: bool = False,
        frequency_days: int = 0,
    ) -> Outcome:
        return self.create_obligation(owner, amount, due_date, recurring, frequency_days, name=name)

    def pay_bill(self, caller: Principal, bill_id: int) -> Outcome:
        return self.fulfill(caller, bill_id)

    def cancel_bill(self, bill_id: int, caller: Optional[Principal] = None) -> Outcome:
        return self.cancel_obligation(bill_id, caller)

    def get_unpaid_bills(self, owner: Principal) -> List[Obligation]:
        return self.open_obligations(owner)

    def get_total_unpaid(self, owner: Principal) -> int:
        return self.total_open(owner)

    def get_overdue_bills(self) -> List[Obligation]:
        return self.overdue_obligations()

    def get_bill(self, bill_id: int) -> Optional[Obligation]:
        return self.get_obligation(bill_id)

    def get_all_bills(self) -> List[Obligation]:
        return self.all_obligations()

    def execute_due_schedules(self, now: Optional[Timestamp] = None) -> List[int]:
        return self.sweep(now)

    def get_schedules(self, owner: Principal) -> List[Schedule]:
        return self.schedules_for(owner)


class InsurancePolicies(ObligationContract):
    """
    Insurance policies: failures abort, policy id stored on the schedule,
    premiums recur every 30 days, deactivation requires ownership.
    """

    def __init__(self, clock: Clock, store: Optional[KeyValueStore] = None,
                 authorizer: Optional[Authorizer] = None, sink: Optional[EventSink] = None,
                 verbose: bool = False, profile: ContractProfile = POLICY_PROFILE):
        super().__init__(profile, clock, store, authorizer, sink, verbose)

    def create_policy(
        self,
        owner: Principal,
        name: str,
        coverage_type: str,
        monthly_premium: int,
        coverage_amount: int,
    ) -> Outcome:
        """
        Create a policy whose first premium is due one period from now.

        Raises:
            Abort: Premium or coverage not positive (under the default profile)
        """
        period = self.profile.fixed_frequency_days or POLICY_PERIOD_DAYS

        def operation(inv: Invocation) -> int:
            if monthly_premium <= 0:
                raise InvalidAmount("Monthly premium must be positive")
            if coverage_amount <= 0:
                raise InvalidAmount("Coverage amount must be positive")
            return inv.obligations.create(
                owner, monthly_premium, inv.now + period * SECONDS_PER_DAY,
                True, period, inv.now,
                name=name,
                details=(("coverage_type", coverage_type), ("coverage_amount", coverage_amount)),
            )
        return self._invoke("create_policy", owner, operation)

    def pay_premium(self, caller: Principal, policy_id: int) -> Outcome:
        return self.fulfill(caller, policy_id)

    def deactivate_policy(self, caller: Principal, policy_id: int) -> Outcome:
        return self.cancel_obligation(policy_id, caller)

    def get_active_policies(self, owner: Principal) -> List[Obligation]:
        return self.open_obligations(owner)

    def get_total_monthly_premium(self, owner: Principal) -> int:
        return self.total_open(owner)

    def get_policy(self, policy_id: int) -> Optional[Obligation]:
        return self.get_obligation(policy_id)

    # Premium schedules

    def create_premium_schedule(self, owner: Principal, policy_id: int,
                                next_due: Timestamp, interval: int = 0) -> Outcome:
        return self.create_schedule(owner, policy_id, next_due, interval)

    def modify_premium_schedule(self, caller: Principal, schedule_id: int,
                                next_due: Timestamp, interval: int) -> Outcome:
        return self.modify_schedule(caller, schedule_id, next_due, interval)

    def cancel_premium_schedule(self, caller: Principal, schedule_id: int) -> Outcome:
        return self.cancel_schedule(caller, schedule_id)

    def execute_due_premium_schedules(self, now: Optional[Timestamp] = None) -> List[int]:
        return self.sweep(now)

    def get_premium_schedules(self, owner: Principal) -> List[Schedule]:
        return self.schedules_for(owner)

    def get_premium_schedule(self, schedule_id: int) -> Optional[Schedule]:
        return self.get_schedule(schedule_id)
