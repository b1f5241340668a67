"""
view.py - Ledger Query Facade

Read accessors translating (actor, strategy) pairs into the quantities the
differential assertion engine compares. Every accessor is total over
registered actors and strategies, is pure, and routes through a LedgerView
handed in explicitly, so the facade works against any backend implementing
that protocol.

Native-stake shares are signed. staker_deposit_shares() is the unsigned
accessor: it raises DomainError instead of clamping when it meets a
negative native-stake balance.
"""

from __future__ import annotations
from typing import List, Optional

from .core import (
    Address, Hash, LedgerView, Strategy, CheckpointRecord, ValidatorStatus, DomainError,
    NATIVE_ETH, wei_to_gwei,
)


class LedgerQueries:
    """
    Read-only facade over a LedgerView.

    Example:
        q = LedgerQueries(ledger)
        q.staker_shares("alice", [steth, BEACON_CHAIN_STRATEGY])
        # [1000000000000000000, -5]
    """

    def __init__(self, view: LedgerView):
        self.view = view

    # ========================================================================
    # SHARES
    # ========================================================================

    def staker_shares(self, staker: Address, strategies: List[Strategy]) -> List[int]:
        """Signed deposit shares per strategy (native stake may be negative)."""
        return [self.view.shares(staker, s) for s in strategies]

    def staker_deposit_shares(self, staker: Address, strategies: List[Strategy]) -> List[int]:
        """
        Unsigned deposit shares per strategy.

        Raises:
            DomainError: If a native-stake balance is negative
        """
        result = []
        for s in strategies:
            value = self.view.shares(staker, s)
            if value < 0:
                raise DomainError(
                    f"{staker} holds {value} shares of {s!r}; unsigned read of a negative balance"
                )
            result.append(value)
        return result

    def pod_owner_shares(self, staker: Address, native: Strategy) -> int:
        """Signed native-stake shares of a pod owner."""
        if not native.is_native:
            raise DomainError(f"{native!r} is not the native-stake strategy")
        return self.view.shares(staker, native)

    def delegatable_shares(self, staker: Address, strategies: List[Strategy]) -> List[int]:
        """Shares visible to the delegation layer: native stake clamped at zero."""
        result = []
        for s in strategies:
            value = self.view.shares(staker, s)
            result.append(max(0, value) if s.is_native else value)
        return result

    def operator_shares(self, operator: Address, strategies: List[Strategy]) -> List[int]:
        return [self.view.operator_shares(operator, s) for s in strategies]

    def total_shares(self, strategies: List[Strategy]) -> List[int]:
        """
        Pooled shares per strategy.

        The native-stake sentinel has no pool and reports 0 here, so callers
        can pass a staker's full strategy list unchanged.
        """
        return [0 if s.is_native else self.view.total_shares(s) for s in strategies]

    def underlying_to_shares(self, strategies: List[Strategy], amounts: List[int]) -> List[int]:
        return [self.view.underlying_to_shares(s, a) for s, a in zip(strategies, amounts)]

    def shares_to_underlying(self, strategies: List[Strategy], shares: List[int]) -> List[int]:
        return [self.view.shares_to_underlying(s, x) for s, x in zip(strategies, shares)]

    # ========================================================================
    # BALANCES
    # ========================================================================

    def token_balances(self, actor: Address, tokens: List[str]) -> List[int]:
        return [self.view.token_balance(actor, t) for t in tokens]

    def eth_balance(self, actor: Address) -> int:
        return self.view.token_balance(actor, NATIVE_ETH)

    # ========================================================================
    # DELEGATION AND WITHDRAWALS
    # ========================================================================

    def delegated_to(self, staker: Address) -> Optional[Address]:
        return self.view.delegated_to(staker)

    def is_operator(self, actor: Address) -> bool:
        return self.view.is_operator(actor)

    def is_withdrawal_pending(self, root: Hash) -> bool:
        return self.view.pending_withdrawal(root)

    def withdrawals_pending(self, roots: List[Hash]) -> List[bool]:
        return [self.view.pending_withdrawal(r) for r in roots]

    def cumulative_withdrawals_queued(self, staker: Address) -> int:
        return self.view.cumulative_withdrawals_queued(staker)

    # ========================================================================
    # CHECKPOINTS AND VALIDATORS
    # ========================================================================

    def checkpoint(self, actor: Address) -> CheckpointRecord:
        return self.view.checkpoint(actor)

    def current_checkpoint_timestamp(self, actor: Address) -> int:
        return self.view.checkpoint(actor).timestamp

    def last_checkpoint_timestamp(self, actor: Address) -> int:
        return self.view.last_checkpoint_timestamp(actor)

    def checkpoint_balance_exited_gwei(self, actor: Address, timestamp: int) -> int:
        return self.view.checkpoint_balance_exited_gwei(actor, timestamp)

    def withdrawable_restaked_gwei(self, actor: Address) -> int:
        return self.view.withdrawable_restaked_gwei(actor)

    def pod_balance_gwei(self, actor: Address) -> int:
        return wei_to_gwei(self.view.pod_balance_wei(actor))

    def active_validator_count(self, actor: Address) -> int:
        return self.view.active_validator_count(actor)

    def validator_status(self, actor: Address, pubkey_hash: Hash) -> ValidatorStatus:
        return self.view.validator_status(actor, pubkey_hash)

    def validator_statuses(self, actor: Address, pubkey_hashes: List[Hash]) -> List[ValidatorStatus]:
        return [self.view.validator_status(actor, h) for h in pubkey_hashes]
