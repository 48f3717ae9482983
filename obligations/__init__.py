"""
obligations - Recurring obligation tracking with a catch-up schedule engine

Usage:
    from obligations import BillPayments, ManualClock

    clock = ManualClock(1000)
    bills = BillPayments(clock)

    bill_id = bills.create_bill("alice", "Electricity", 1000, 1_000_000).value
    schedule_id = bills.create_schedule("alice", bill_id, next_due=3000, interval=0).value

    # Any keeper may sweep; due schedules fulfill their obligations
    executed = bills.sweep(3500)      # -> [schedule_id]
"""

# Core types
from .core import (
    Obligation,
    Schedule,
    PublishedEvent,
    ObligationStatus,
    ErrorCode,
    ErrorStyle,
    LinkSide,
    CancelMode,
    EventKind,
    Ok,
    Err,
    EngineError,
    ObligationNotFound,
    AlreadyFulfilled,
    InvalidAmount,
    InvalidFrequency,
    Unauthorized,
    ScheduleNotFound,
    InvalidDueTime,
    ObligationInactive,
    Abort,
    Clock,
    KeyValueStore,
    Authorizer,
    EventSink,
    SECONDS_PER_DAY,
    POLICY_PERIOD_DAYS,
    INSTANCE_LIFETIME_THRESHOLD,
    INSTANCE_BUMP_AMOUNT,
)

# State and collaborators
from .state import ContractState, StorageKeys, load_state, save_state
from .environment import (
    ManualClock,
    InMemoryKeyValueStore,
    TrustAll,
    SignerSet,
    EventLog,
)

# Engine
from .linker import Linker
from .obligation_store import ObligationStore, successor_of
from .schedule_store import ScheduleStore
from .scheduler import CatchUpScheduler, catch_up, advance_schedule

# Contracts
from .contract import (
    ContractProfile,
    BILL_PROFILE,
    POLICY_PROFILE,
    Invocation,
    ObligationContract,
    BillPayments,
    InsurancePolicies,
)
from .keeper import Keeper

__all__ = [
    # Core
    'Obligation', 'Schedule', 'PublishedEvent',
    'ObligationStatus', 'ErrorCode', 'ErrorStyle', 'LinkSide', 'CancelMode', 'EventKind',
    'Ok', 'Err',
    'EngineError', 'ObligationNotFound', 'AlreadyFulfilled', 'InvalidAmount',
    'InvalidFrequency', 'Unauthorized', 'ScheduleNotFound', 'InvalidDueTime',
    'ObligationInactive', 'Abort',
    'Clock', 'KeyValueStore', 'Authorizer', 'EventSink',
    'SECONDS_PER_DAY', 'POLICY_PERIOD_DAYS',
    'INSTANCE_LIFETIME_THRESHOLD', 'INSTANCE_BUMP_AMOUNT',
    # State and collaborators
    'ContractState', 'StorageKeys', 'load_state', 'save_state',
    'ManualClock', 'InMemoryKeyValueStore', 'TrustAll', 'SignerSet', 'EventLog',
    # Engine
    'Linker', 'ObligationStore', 'successor_of', 'ScheduleStore',
    'CatchUpScheduler', 'catch_up', 'advance_schedule',
    # Contracts
    'ContractProfile', 'BILL_PROFILE', 'POLICY_PROFILE', 'Invocation',
    'ObligationContract', 'BillPayments', 'InsurancePolicies',
    'Keeper',
]

__version__ = '1.0.0'
