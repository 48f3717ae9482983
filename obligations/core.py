"""
Core types for the obligation and schedule engine.

This module provides the foundational data structures and protocols:
1. Protocols: Clock, KeyValueStore, Authorizer, EventSink (external collaborators)
2. Immutable records: Obligation, Schedule, PublishedEvent
3. Exceptions: EngineError and its per-code subclasses, Abort
4. Tagged results: Ok, Err
5. Constants: day length, policy period, storage lease parameters

Records are frozen. Stores replace them with dataclasses.replace() rather than
mutating in place, so a working copy of the state can always be discarded.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import (
    Dict, Optional, Any, Protocol, Tuple, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

SECONDS_PER_DAY = 86400

# Premium period for insurance policies (days).
POLICY_PERIOD_DAYS = 30

# Storage lease parameters passed to KeyValueStore.extend_ttl() after every
# committed mutation: extend when fewer than ~1 day remains, up to ~30 days.
INSTANCE_LIFETIME_THRESHOLD = 17280
INSTANCE_BUMP_AMOUNT = 518400


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identity of a controlling principal (wallet address, user id, ...).
Principal = str

# Seconds on the ledger clock.
Timestamp = int

# Event topic: (namespace, kind), e.g. ("bill", "created").
Topic = Tuple[str, str]


# ============================================================================
# ENUMS
# ============================================================================

class ObligationStatus(Enum):
    """
    Lifecycle status of an obligation.

    OPEN: Awaiting payment.
    FULFILLED: Paid. Terminal; recurring obligations continue as a new successor.
    CANCELLED: Deactivated without payment. Terminal.
    """
    OPEN = "open"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class ErrorCode(IntEnum):
    """Stable error codes shared by both error styles."""
    OBLIGATION_NOT_FOUND = 1
    ALREADY_FULFILLED = 2
    INVALID_AMOUNT = 3
    INVALID_FREQUENCY = 4
    UNAUTHORIZED = 5
    SCHEDULE_NOT_FOUND = 6
    INVALID_DUE_TIME = 7
    OBLIGATION_INACTIVE = 8


class ErrorStyle(Enum):
    """
    How a contract reports failed operations.

    RESULT: Return Err(code, message); successes return Ok(value).
    ABORT: Raise Abort(code, message); successes return the bare value.
    """
    RESULT = "result"
    ABORT = "abort"


class LinkSide(Enum):
    """Which record holds the authoritative schedule <-> obligation reference."""
    OBLIGATION = "obligation"   # obligation.schedule_ref
    SCHEDULE = "schedule"       # schedule.obligation_ref


class CancelMode(Enum):
    """What cancelling an obligation does to its record."""
    REMOVE = "remove"           # delete from the store
    DEACTIVATE = "deactivate"   # keep, status -> CANCELLED


class EventKind(Enum):
    """Audit event kinds. Published as the second element of the topic."""
    CREATED = "created"
    FULFILLED = "fulfilled"
    DEACTIVATED = "deactivated"
    SCHEDULE_CREATED = "schedule_created"
    SCHEDULE_MODIFIED = "schedule_modified"
    SCHEDULE_CANCELLED = "schedule_cancelled"
    SCHEDULE_EXECUTED = "schedule_executed"
    SCHEDULE_MISSED = "schedule_missed"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """
    Base exception for recoverable engine failures.

    Raised inside an invocation. The contract boundary discards the working
    state and reports the failure in the configured ErrorStyle.
    """
    code: ErrorCode = None


class ObligationNotFound(EngineError):
    """Raised when an obligation id is not in the store."""
    code = ErrorCode.OBLIGATION_NOT_FOUND


class AlreadyFulfilled(EngineError):
    """Raised when fulfilling an obligation that is already FULFILLED."""
    code = ErrorCode.ALREADY_FULFILLED


class InvalidAmount(EngineError):
    """Raised when an amount is zero or negative."""
    code = ErrorCode.INVALID_AMOUNT


class InvalidFrequency(EngineError):
    """Raised when a recurring obligation has no (or a disallowed) frequency."""
    code = ErrorCode.INVALID_FREQUENCY


class Unauthorized(EngineError):
    """Raised when the caller is not the owner of the record."""
    code = ErrorCode.UNAUTHORIZED


class ScheduleNotFound(EngineError):
    """Raised when a schedule id is not in the store."""
    code = ErrorCode.SCHEDULE_NOT_FOUND


class InvalidDueTime(EngineError):
    """Raised when a schedule's next_due is not strictly in the future."""
    code = ErrorCode.INVALID_DUE_TIME


class ObligationInactive(EngineError):
    """Raised when fulfilling or deactivating an obligation that was cancelled."""
    code = ErrorCode.OBLIGATION_INACTIVE


class Abort(Exception):
    """
    Fatal failure of a whole invocation.

    Nothing performed earlier in the invocation is committed. Raised for every
    failure under ErrorStyle.ABORT, and for failed authorization under both styles.
    """

    def __init__(self, code: Optional[ErrorCode], message: str = ""):
        super().__init__(message or (code.name if code is not None else "aborted"))
        self.code = code
        self.message = message


# ============================================================================
# TAGGED RESULTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Ok:
    """Successful result of an operation under ErrorStyle.RESULT."""
    value: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err:
    """Failed result of an operation under ErrorStyle.RESULT. State is unchanged."""
    code: ErrorCode
    message: str = ""

    @property
    def ok(self) -> bool:
        return False


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Obligation:
    """
    A payable item: a bill or an insurance premium.

    Attributes:
        id: Unique positive id, assigned at creation, never reused.
        owner: Controlling principal.
        amount: Amount due (bill amount or monthly premium). Always > 0.
        due_at: When payment is expected (seconds).
        recurring: Whether fulfillment spawns a successor.
        frequency_days: Successor spacing in days (> 0 when recurring).
        name: Human label ("Electricity", "Health cover", ...).
        status: OPEN, FULFILLED or CANCELLED.
        created_at: Clock time at creation.
        fulfilled_at: Clock time of fulfillment; set iff status is FULFILLED.
        schedule_ref: Weak reference to the driving Schedule id.
        details: Domain-specific fields as frozen (key, value) pairs.
        predecessor: Id of the obligation this one was chained from, if any.
    """
    id: int
    owner: Principal
    amount: int
    due_at: Timestamp
    recurring: bool = False
    frequency_days: int = 0
    name: str = ""
    status: ObligationStatus = ObligationStatus.OPEN
    created_at: Timestamp = 0
    fulfilled_at: Optional[Timestamp] = None
    schedule_ref: Optional[int] = None
    details: tuple = ()
    predecessor: Optional[int] = None

    def __post_init__(self):
        if self.id <= 0:
            raise ValueError(f"Obligation id must be positive, got {self.id}")
        if not self.owner:
            raise ValueError("Obligation owner cannot be empty")
        if self.amount <= 0:
            raise ValueError(f"Obligation amount must be positive, got {self.amount}")
        if self.recurring and self.frequency_days <= 0:
            raise ValueError("Recurring obligation requires frequency_days > 0")
        if (self.fulfilled_at is not None) != (self.status is ObligationStatus.FULFILLED):
            raise ValueError(
                f"fulfilled_at must be set iff status is FULFILLED "
                f"(status={self.status.value}, fulfilled_at={self.fulfilled_at})"
            )

    @property
    def is_open(self) -> bool:
        return self.status is ObligationStatus.OPEN

    @property
    def frequency_seconds(self) -> int:
        return self.frequency_days * SECONDS_PER_DAY

    @property
    def details_dict(self) -> Dict[str, Any]:
        """Get details as a dictionary for convenience."""
        return dict(self.details)

    def __repr__(self) -> str:
        kind = f"every {self.frequency_days}d" if self.recurring else "once"
        return (f"Obligation(#{self.id} {self.owner} {self.amount} due={self.due_at} "
                f"{kind} {self.status.value})")


@dataclass(frozen=True, slots=True)
class Schedule:
    """
    Timer that fulfills exactly one linked obligation when due.

    Attributes:
        id: Unique positive id (separate id space from obligations).
        owner: Principal; equal to the obligation owner at creation.
        obligation_ref: Weak reference to the driven Obligation id.
        next_due: Next execution time (seconds).
        interval: Seconds between executions; 0 means one-time.
        active: False once cancelled or once a one-time schedule ran. Terminal.
        created_at: Clock time at creation.
        last_executed_at: Clock time of the last sweep that executed it.
        missed_count: Total interval boundaries skipped by catch-up. Never decreases.
    """
    id: int
    owner: Principal
    obligation_ref: Optional[int]
    next_due: Timestamp
    interval: int = 0
    active: bool = True
    created_at: Timestamp = 0
    last_executed_at: Optional[Timestamp] = None
    missed_count: int = 0

    def __post_init__(self):
        if self.id <= 0:
            raise ValueError(f"Schedule id must be positive, got {self.id}")
        if self.interval < 0:
            raise ValueError(f"Schedule interval cannot be negative, got {self.interval}")
        if self.missed_count < 0:
            raise ValueError(f"missed_count cannot be negative, got {self.missed_count}")

    @property
    def recurring(self) -> bool:
        return self.interval > 0

    def is_due(self, now: Timestamp) -> bool:
        """Active and next_due has been reached."""
        return self.active and self.next_due <= now

    def __repr__(self) -> str:
        kind = f"every {self.interval}s" if self.recurring else "once"
        state = "active" if self.active else "inactive"
        return (f"Schedule(#{self.id} -> {self.obligation_ref} next={self.next_due} "
                f"{kind} {state} missed={self.missed_count})")


@dataclass(frozen=True, slots=True)
class PublishedEvent:
    """An audit event as delivered to an EventSink."""
    topic: Topic
    payload: tuple


# ============================================================================
# PROTOCOLS (external collaborators)
# ============================================================================

@runtime_checkable
class Clock(Protocol):
    """Monotonic ledger clock, read once per invocation."""

    def now(self) -> Timestamp:
        """Return the current time in seconds."""
        ...


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Persistent key-value storage for one contract instance.

    get() returns the default when the key is absent. extend_ttl() is a lease
    side effect invoked after each committed mutating operation.
    """

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def extend_ttl(self, threshold: int, extend_to: int) -> None:
        ...


@runtime_checkable
class Authorizer(Protocol):
    """Caller-identity verification."""

    def require_auth(self, principal: Principal) -> None:
        """Raise Abort if the caller cannot prove control of principal."""
        ...


@runtime_checkable
class EventSink(Protocol):
    """Fire-and-forget audit event publication."""

    def publish(self, topic: Topic, payload: tuple) -> None:
        ...
