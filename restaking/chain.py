"""
chain.py - Global Time and State Control

The Chain owns block height and timestamp and can snapshot and revert the
state of every stateful collaborator attached to it (ledger, consensus
source). It plays the role a forked test chain's snapshot/revert cheatcodes
play for on-chain suites.

Snapshots are deep copies of each attached component's attribute dict.
Reverting swaps a fresh copy back into the *same* objects, so references
held by facades and actors stay valid across time travel.
"""

from __future__ import annotations
import copy
from typing import Any, Dict, List

from .core import SECONDS_PER_BLOCK, SnapshotError


class Chain:
    """
    Block/time source and state-control collaborator.

    Example:
        chain = Chain()
        ledger = RestakingLedger(chain, registry)   # attaches itself
        snap = chain.snapshot()
        ledger.mint("alice", "STETH", 10)
        chain.revert_to(snap)                       # alice's mint is gone

    Thread Safety:
        Not thread-safe. A scenario owns its chain exclusively.
    """

    def __init__(self, block_number: int = 1, timestamp: int = 1_700_000_000):
        self.block_number = block_number
        self.timestamp = timestamp
        self._components: List[Any] = []
        self._shared: List[Any] = []
        self._snapshots: Dict[int, Dict[str, Any]] = {}
        self._next_snapshot_id = 1

    def attach(self, component: Any) -> None:
        """Register a stateful component whose attributes are captured by snapshot()."""
        if any(c is component for c in self._components):
            raise ValueError(f"{type(component).__name__} already attached")
        self._components.append(component)

    def share(self, obj: Any) -> None:
        """
        Register an object that components reference but that is not snapshotted.

        Shared objects (e.g. the strategy registry) keep their identity across
        revert_to() and are never rolled back.
        """
        if not any(o is obj for o in self._shared):
            self._shared.append(obj)

    # ========================================================================
    # TIME
    # ========================================================================

    def advance_blocks(self, n: int) -> None:
        """Mine n empty blocks, moving the timestamp forward with them."""
        if n < 0:
            raise ValueError(f"Cannot advance a negative number of blocks: {n}")
        self.block_number += n
        self.timestamp += n * SECONDS_PER_BLOCK

    def advance_time(self, seconds: int) -> None:
        """Warp forward, mining the blocks that fit into the elapsed time."""
        if seconds < 0:
            raise ValueError(f"Cannot move time backward by {seconds}s")
        self.timestamp += seconds
        self.block_number += seconds // SECONDS_PER_BLOCK

    # ========================================================================
    # SNAPSHOT / REVERT
    # ========================================================================

    def _memo(self) -> Dict[int, Any]:
        # Cross-references between components (and back to the chain) are
        # kept by identity instead of being copied.
        memo = {id(c): c for c in self._components}
        memo.update({id(o): o for o in self._shared})
        memo[id(self)] = self
        return memo

    def _capture(self) -> Dict[str, Any]:
        memo = self._memo()
        return {
            'block_number': self.block_number,
            'timestamp': self.timestamp,
            'components': [copy.deepcopy(vars(c), memo) for c in self._components],
        }

    def snapshot(self) -> int:
        """Record the current global state and return its id."""
        snapshot_id = self._next_snapshot_id
        self._next_snapshot_id += 1
        self._snapshots[snapshot_id] = self._capture()
        return snapshot_id

    def revert_to(self, snapshot_id: int) -> None:
        """
        Restore global state to the given snapshot.

        The snapshot remains available so the same instant can be revisited.

        Raises:
            SnapshotError: If the id was never issued or has been deleted
        """
        if snapshot_id not in self._snapshots:
            raise SnapshotError(f"Unknown or deleted snapshot {snapshot_id}")
        saved = self._snapshots[snapshot_id]
        self.block_number = saved['block_number']
        self.timestamp = saved['timestamp']
        memo = self._memo()
        for component, attrs in zip(self._components, saved['components']):
            restored = copy.deepcopy(attrs, memo)
            component.__dict__.clear()
            component.__dict__.update(restored)

    def delete_snapshot(self, snapshot_id: int) -> None:
        """Forget a snapshot. Reverting to it afterwards is an error."""
        if snapshot_id not in self._snapshots:
            raise SnapshotError(f"Unknown or deleted snapshot {snapshot_id}")
        del self._snapshots[snapshot_id]

    def has_snapshot(self, snapshot_id: int) -> bool:
        return snapshot_id in self._snapshots

    def __repr__(self) -> str:
        return f"Chain(block={self.block_number}, t={self.timestamp}, snapshots={len(self._snapshots)})"
