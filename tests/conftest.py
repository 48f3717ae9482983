"""
conftest.py - Shared pytest fixtures for obligation engine tests

Provides common fixtures used across unit, functional and conformance tests:
- Clocks, stores, event logs
- Bill and insurance contracts (default and derived profiles)
- Engine-level invocations for store/linker/scheduler tests
"""

import pytest
from dataclasses import replace

from obligations import (
    ManualClock, InMemoryKeyValueStore, EventLog, SignerSet,
    BillPayments, InsurancePolicies,
    BILL_PROFILE, POLICY_PROFILE,
)

from tests.fake_store import new_invocation


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Clock starting at t=1000."""
    return ManualClock(1000)


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def events():
    return EventLog()


# =============================================================================
# CONTRACT FIXTURES
# =============================================================================

@pytest.fixture
def bills(clock, store, events):
    """Bill contract with default profile (Ok/Err results)."""
    return BillPayments(clock, store=store, sink=events)


@pytest.fixture
def policies(clock, store, events):
    """Insurance contract with default profile (Abort on failure)."""
    return InsurancePolicies(clock, store=store, sink=events)


@pytest.fixture
def signers():
    """Authorizer where only alice has signed."""
    return SignerSet({"alice"})


@pytest.fixture
def signed_bills(clock, store, events, signers):
    return BillPayments(clock, store=store, sink=events, authorizer=signers)


@pytest.fixture
def legacy_bills(clock, store, events):
    """Bill contract that keeps schedules pointed at the original bill."""
    return BillPayments(
        clock, store=store, sink=events,
        profile=replace(BILL_PROFILE, follow_successor=False),
    )


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def invocation():
    """Bill-profile engine over empty state at t=1000."""
    return new_invocation()


@pytest.fixture
def policy_invocation():
    """Policy-profile engine over empty state at t=1000."""
    return new_invocation(POLICY_PROFILE)
