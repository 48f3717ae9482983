"""
environment.py - In-process implementations of the external collaborators

Classes:
- ManualClock: Monotonic clock advanced explicitly (Clock)
- InMemoryKeyValueStore: Dict-backed storage with lease bookkeeping (KeyValueStore)
- TrustAll, SignerSet: Authorizers (Authorizer)
- EventLog: Recording event sink (EventSink)

These are what a single-process deployment and the test suite run against.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
import copy

from .core import (
    Abort, ErrorCode, EventKind, Principal, PublishedEvent, Timestamp, Topic,
)


class ManualClock:
    """
    Clock that only moves when told to.

    Time can only move forward, never backward.
    """

    def __init__(self, start: Timestamp = 0):
        if start < 0:
            raise ValueError(f"Clock cannot start before 0, got {start}")
        self._now = start

    def now(self) -> Timestamp:
        return self._now

    def advance_to(self, timestamp: Timestamp) -> None:
        """
        Raises:
            ValueError: If timestamp is before the current time
        """
        if timestamp < self._now:
            raise ValueError(f"Cannot move time backwards: {timestamp} < {self._now}")
        self._now = timestamp

    def advance_by(self, seconds: int) -> None:
        self.advance_to(self._now + seconds)

    def __repr__(self):
        return f"ManualClock(now={self._now})"


class InMemoryKeyValueStore:
    """
    Key-value storage held in a dict.

    Values are deep-copied on the way in and out so callers never share
    mutable containers with the store. Lease extensions are recorded, not
    enforced.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self.ttl_extensions: List[Tuple[int, int]] = []

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def extend_ttl(self, threshold: int, extend_to: int) -> None:
        self.ttl_extensions.append((threshold, extend_to))

    def keys(self) -> List[str]:
        return sorted(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __repr__(self):
        return f"InMemoryKeyValueStore({len(self._data)} keys)"


class TrustAll:
    """Authorizer that accepts every principal."""

    def require_auth(self, principal: Principal) -> None:
        return None


class SignerSet:
    """
    Authorizer backed by the set of principals that signed the current call.

    Example:
        auth = SignerSet({"alice"})
        auth.require_auth("alice")   # ok
        auth.require_auth("bob")     # raises Abort
    """

    def __init__(self, signers: Optional[Iterable[Principal]] = None):
        self.signers: Set[Principal] = set(signers or ())

    def sign(self, principal: Principal) -> None:
        self.signers.add(principal)

    def revoke(self, principal: Principal) -> None:
        self.signers.discard(principal)

    def require_auth(self, principal: Principal) -> None:
        if principal not in self.signers:
            raise Abort(ErrorCode.UNAUTHORIZED, f"Missing authorization for {principal}")


class EventLog:
    """Event sink that keeps every published event in order."""

    def __init__(self):
        self.events: List[PublishedEvent] = []

    def publish(self, topic: Topic, payload: tuple) -> None:
        self.events.append(PublishedEvent(topic=tuple(topic), payload=tuple(payload)))

    def of_kind(self, kind: EventKind) -> List[PublishedEvent]:
        """Events whose topic kind matches, in publication order."""
        return [e for e in self.events if e.topic[1] == kind.value]

    def topics(self) -> List[Topic]:
        return [e.topic for e in self.events]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)

    def __repr__(self):
        return f"EventLog({len(self.events)} events)"
