"""
keeper.py - Keeper

Drives the permissionless sweep over one or more contracts. A keeper holds no
privileges: it only decides WHEN sweeps happen.

Each step(now):
1. Advance every contract's clock to `now`
2. Sweep every registered contract (sorted by name for deterministic order)
"""

from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Tuple

from .core import Timestamp
from .contract import ObligationContract


class Keeper:
    """
    Sweep driver for a set of named contracts.

    Example:
        keeper = Keeper({"bills": bills, "insurance": policies})
        keeper.run([day_1, day_2, day_3])
    """

    def __init__(self, contracts: Optional[Dict[str, ObligationContract]] = None):
        self.contracts: Dict[str, ObligationContract] = dict(contracts or {})

    def register(self, name: str, contract: ObligationContract) -> None:
        if name in self.contracts:
            raise ValueError(f"Contract {name} already registered")
        self.contracts[name] = contract

    def step(self, now: Timestamp) -> Dict[str, List[int]]:
        """
        Sweep every contract at `now`.

        Returns:
            Contract name -> executed schedule ids (empty lists included)
        """
        return {name: self.contracts[name].sweep(now) for name in sorted(self.contracts)}

    def run(self, timestamps: Iterable[Timestamp]) -> List[Tuple[Timestamp, Dict[str, List[int]]]]:
        """
        Step through a sequence of timestamps.

        Returns:
            (timestamp, step result) for every timestamp, in order
        """
        return [(now, self.step(now)) for now in timestamps]

    def executed_count(self, history: List[Tuple[Timestamp, Dict[str, List[int]]]]) -> int:
        """Total schedule executions in a run() history."""
        return sum(len(ids) for _, result in history for ids in result.values())
