"""
snapshots.py - Snapshot Store for Differential Reads

Maintains an ordered stack of global-state snapshots on top of the Chain's
snapshot/revert primitives. Differential checks use it in one pattern only:

    present = store.restore_last()   # capture now, jump to the last snapshot
    ... read quantities (they now reflect the previous instant) ...
    store.restore_to(present)        # return to now

previous() wraps that pairing in a context manager whose finally-block
always returns to the present, including when the read raises.

The store is not reentrant: a second round trip cannot start while one is
in flight, and release() only pops the most recent snapshot.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .chain import Chain
from .core import SnapshotError


class SnapshotStore:
    """
    LIFO stack of snapshot ids with paired travel-to-past / return-to-present.

    Example:
        store = SnapshotStore(chain)
        store.take()
        ledger.deposit(...)
        with store.previous():
            before = ledger.shares(staker, strategy)
        after = ledger.shares(staker, strategy)
    """

    def __init__(self, chain: Chain):
        self.chain = chain
        self._stack: List[int] = []
        self._present: Optional[int] = None

    @property
    def depth(self) -> int:
        """Number of snapshots currently on the stack."""
        return len(self._stack)

    @property
    def in_past(self) -> bool:
        """True while a round trip is in flight."""
        return self._present is not None

    def take(self) -> int:
        """Record the current global state and push it on the stack."""
        if self.in_past:
            raise SnapshotError("Cannot take a snapshot while reading a past state")
        snapshot_id = self.chain.snapshot()
        self._stack.append(snapshot_id)
        return snapshot_id

    def restore_last(self) -> int:
        """
        Revert to the most recently taken snapshot.

        Returns:
            Id of the pre-restore (present) instant, to be passed to restore_to()

        Raises:
            SnapshotError: If no snapshot was taken or a round trip is already in flight
        """
        if not self._stack:
            raise SnapshotError("No previous snapshot: take() was never called")
        if self.in_past:
            raise SnapshotError("Nested restore_last(): a round trip is already in flight")
        present = self.chain.snapshot()
        self._present = present
        self.chain.revert_to(self._stack[-1])
        return present

    def restore_to(self, snapshot_id: int) -> None:
        """
        Move global state to exactly the instant represented by snapshot_id.

        The id returned by restore_last() is consumed here; reusing it is an error.

        Raises:
            SnapshotError: If the id is unknown, already consumed, or not the
                           present captured by the in-flight round trip
        """
        if self._present is not None and snapshot_id != self._present:
            raise SnapshotError(
                f"Round trip in flight to return to {self._present}, got {snapshot_id}"
            )
        self.chain.revert_to(snapshot_id)
        if self._present is not None:
            self.chain.delete_snapshot(snapshot_id)
            self._present = None

    def release(self, snapshot_id: Optional[int] = None) -> int:
        """
        Pop the most recent snapshot off the stack.

        Args:
            snapshot_id: If given, must equal the top of the stack (strict LIFO)

        Returns:
            The popped snapshot id
        """
        if self.in_past:
            raise SnapshotError("Cannot release a snapshot while reading a past state")
        if not self._stack:
            raise SnapshotError("Snapshot stack is empty")
        top = self._stack[-1]
        if snapshot_id is not None and snapshot_id != top:
            raise SnapshotError(f"Out-of-order release: top is {top}, got {snapshot_id}")
        self._stack.pop()
        self.chain.delete_snapshot(top)
        return top

    @contextmanager
    def previous(self) -> Iterator[int]:
        """
        Scoped travel to the last snapshot; always returns to the present on exit.

        Yields:
            The id of the snapshot being read
        """
        present = self.restore_last()
        try:
            yield self._stack[-1]
        finally:
            self.restore_to(present)

    def __repr__(self) -> str:
        return f"SnapshotStore(depth={self.depth}, in_past={self.in_past})"
