"""
withdrawals.py - Withdrawal Queue Model

A queued withdrawal is an immutable record whose identity (root) is a
deterministic content hash over every field. Two withdrawals with identical
fields share a root: they are the same logical request. The nonce (the
staker's running count of queued withdrawals) keeps distinct requests apart.

Pending status and per-strategy delays live in the ledger and are queried
through LedgerView; nothing here keeps its own copy of queue state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .chain import Chain
from .core import Address, Hash, LedgerView, Strategy, content_hash


def compute_withdrawal_root(
    staker: Address,
    delegated_to: Optional[Address],
    withdrawer: Address,
    nonce: int,
    start_block: int,
    strategies: Tuple[Strategy, ...],
    shares: Tuple[int, ...],
) -> Hash:
    """
    Compute the content-addressed identity of a withdrawal.

    Strategy and share order is significant: the lists are parallel.
    """
    return content_hash(
        "withdrawal", staker, delegated_to, withdrawer, nonce, start_block,
        tuple(strategies), tuple(shares),
    )


@dataclass(frozen=True, slots=True)
class Withdrawal:
    """
    A queued withdrawal request.

    Attributes:
        staker: Actor whose shares were removed
        delegated_to: Operator the staker was delegated to when queueing (None if undelegated)
        withdrawer: Actor allowed to complete the withdrawal
        nonce: Staker's cumulative queued-withdrawal count at queue time
        start_block: Block in which the withdrawal was queued
        strategies: Strategies withdrawn from, parallel to shares
        shares: Share amounts withdrawn, parallel to strategies
        root: Content hash of all fields above (auto-computed)
    """
    staker: Address
    delegated_to: Optional[Address]
    withdrawer: Address
    nonce: int
    start_block: int
    strategies: Tuple[Strategy, ...]
    shares: Tuple[int, ...]
    root: Hash = field(default="")

    def __post_init__(self):
        if len(self.strategies) != len(self.shares):
            raise ValueError(
                f"strategies and shares length mismatch: {len(self.strategies)} != {len(self.shares)}"
            )
        if self.nonce < 0:
            raise ValueError(f"nonce must be non-negative, got {self.nonce}")
        computed = compute_identity(self)
        if self.root and self.root != computed:
            raise ValueError(f"root {self.root} does not match content hash {computed}")
        object.__setattr__(self, 'root', computed)

    def __repr__(self) -> str:
        return (f"Withdrawal({self.staker} nonce={self.nonce} block={self.start_block} "
                f"{list(zip(self.strategies, self.shares))} root={self.root[:12]})")


def compute_identity(withdrawal: Withdrawal) -> Hash:
    """Content hash over every field of the withdrawal except its cached root."""
    return compute_withdrawal_root(
        withdrawal.staker,
        withdrawal.delegated_to,
        withdrawal.withdrawer,
        withdrawal.nonce,
        withdrawal.start_block,
        withdrawal.strategies,
        withdrawal.shares,
    )


def is_pending(view: LedgerView, root: Hash) -> bool:
    """Whether the ledger still holds the withdrawal as pending."""
    return view.pending_withdrawal(root)


def max_withdrawal_delay(view: LedgerView, strategies: List[Strategy]) -> int:
    """Longest per-strategy delay, in blocks, across a withdrawal's strategies."""
    if not strategies:
        return 0
    return max(view.withdrawal_delay_blocks(s) for s in strategies)


def completable_block(view: LedgerView, withdrawal: Withdrawal) -> int:
    """First block at which the withdrawal may be completed."""
    return withdrawal.start_block + max_withdrawal_delay(view, list(withdrawal.strategies))


def is_completable(view: LedgerView, withdrawal: Withdrawal) -> bool:
    return is_pending(view, withdrawal.root) and view.block_number >= completable_block(view, withdrawal)


def roll_past_withdrawal_delay(chain: Chain, view: LedgerView, withdrawals: List[Withdrawal]) -> int:
    """
    Advance the chain to the first block at which every given withdrawal is completable.

    Returns:
        Number of blocks mined (0 if already past every delay)
    """
    target = max((completable_block(view, w) for w in withdrawals), default=chain.block_number)
    blocks = max(0, target - chain.block_number)
    chain.advance_blocks(blocks)
    return blocks
