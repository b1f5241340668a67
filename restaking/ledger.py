"""
ledger.py - Stateful Restaking Ledger (reference collaborator)

The RestakingLedger is the in-process stand-in for the ledger contracts the
harness verifies. It is the only module that mutates accounting state.

Key responsibilities:
    - Implements the LedgerView protocol for read-only access by the harness
    - Tracks token balances, pooled fungible-strategy shares, signed
      native-stake shares, operator delegation and queued withdrawals
    - Runs the native-stake checkpoint lifecycle and validator registry per pod
    - Validates before mutating: a rejected call raises a LedgerError and
      leaves state untouched
    - Always logs: every applied mutation is appended to event_log

Snapshot/revert is not implemented here: the ledger attaches itself to the
Chain, which captures and restores its attributes.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Tuple

from .beacon import BalanceProof, CredentialProof
from .chain import Chain
from .core import (
    # Types
    Address, Hash, Strategy, CheckpointRecord, ValidatorStatus, NO_CHECKPOINT,
    # Constants
    BALANCE_OFFSET, SHARES_OFFSET, DEFAULT_WITHDRAWAL_DELAY_BLOCKS, GWEI_TO_WEI, NATIVE_ETH,
    # Exceptions
    LedgerError, ActorNotRegistered, StrategyNotRegistered, InsufficientBalance,
    InsufficientShares, DelegationError, WithdrawalNotFound, WithdrawalDelayNotElapsed,
    CheckpointError, ProofRejected,
    # Helpers
    gwei_to_wei,
)
from .registry import StrategyRegistry
from .withdrawals import Withdrawal


@dataclass(frozen=True, slots=True)
class LedgerEvent:
    """Audit record of one applied mutation."""
    block_number: int
    timestamp: int
    action: str
    actor: Address
    details: Tuple[Tuple[str, Any], ...] = ()

    def __repr__(self) -> str:
        detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details)
        return f"[{self.block_number}] {self.action}({self.actor}{', ' + detail_str if detail_str else ''})"


@dataclass
class PodValidator:
    """Ledger-side record of a validator whose credentials were verified."""
    validator_index: int
    status: ValidatorStatus
    restaked_balance_gwei: int
    last_checkpointed_at: int


@dataclass
class Pod:
    """Native-stake container owned by a single actor."""
    owner: Address
    balance_wei: int = 0
    withdrawable_restaked_gwei: int = 0
    active_validator_count: int = 0
    validators: Dict[Hash, PodValidator] = field(default_factory=dict)
    checkpoint: CheckpointRecord = NO_CHECKPOINT
    last_checkpoint_timestamp: int = 0
    balance_exited_gwei: Dict[int, int] = field(default_factory=dict)


def calc_delegatable_delta(shares_before: int, shares_after: int) -> int:
    """
    Change in delegatable (operator-visible) native-stake shares.

    Only the above-zero portion of a signed share balance is delegatable:
        before <= 0, after <= 0  ->  0
        before <= 0, after >  0  ->  after
        before >  0, after <= 0  ->  -before
        before >  0, after >  0  ->  after - before
    """
    if shares_before <= 0:
        if shares_after <= 0:
            return 0
        return shares_after
    if shares_after <= 0:
        return -shares_before
    return shares_after - shares_before


class RestakingLedger:
    """
    Restaking ledger with full validation and an audit trail.

    Implements the LedgerView protocol, so it can be handed to the query
    facade and the differential assertion engine directly.

    Thread Safety:
        Not thread-safe. A scenario owns its ledger exclusively.

    Example:
        chain = Chain()
        registry = StrategyRegistry()
        steth = registry.register_token("STETH")
        ledger = RestakingLedger(chain, registry, verbose=False)
        ledger.register_actor("alice")
        ledger.mint("alice", "STETH", 10 ** 18)
        ledger.deposit("alice", steth, 10 ** 18)
    """

    def __init__(self, chain: Chain, registry: StrategyRegistry, verbose: bool = True):
        self.chain = chain
        self.registry = registry
        self.verbose = verbose
        self.actors: Set[Address] = set()
        self.wallets: Dict[Address, Dict[str, int]] = {}
        self.strategy_total_shares: Dict[Strategy, int] = {}
        self.strategy_balances: Dict[Strategy, int] = {}
        self.deposit_shares: Dict[Address, Dict[Strategy, int]] = {}
        self.pod_owner_shares: Dict[Address, int] = {}
        self.pods: Dict[Address, Pod] = {}
        self.operators: Set[Address] = set()
        self.delegations: Dict[Address, Address] = {}
        self.operator_share_map: Dict[Address, Dict[Strategy, int]] = {}
        self.withdrawal_delays: Dict[Strategy, int] = {}
        self.pending_withdrawals: Dict[Hash, Withdrawal] = {}
        self.withdrawals_queued: Dict[Address, int] = {}
        self.event_log: List[LedgerEvent] = []
        chain.attach(self)
        chain.share(registry)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def block_number(self) -> int:
        return self.chain.block_number

    @property
    def timestamp(self) -> int:
        return self.chain.timestamp

    def shares(self, actor: Address, strategy: Strategy) -> int:
        """
        Deposit shares held by an actor.

        Signed for the native-stake strategy (negative = slashing deficit),
        non-negative for every fungible strategy.
        """
        self._require_actor(actor)
        self.registry.require(strategy)
        if strategy.is_native:
            return self.pod_owner_shares.get(actor, 0)
        return self.deposit_shares.get(actor, {}).get(strategy, 0)

    def operator_shares(self, operator: Address, strategy: Strategy) -> int:
        self._require_actor(operator)
        self.registry.require(strategy)
        return self.operator_share_map.get(operator, {}).get(strategy, 0)

    def total_shares(self, strategy: Strategy) -> int:
        """
        Pooled shares outstanding in a fungible strategy.

        Raises:
            LedgerError: For the native-stake strategy, which has no pool
        """
        self.registry.require(strategy)
        if strategy.is_native:
            raise LedgerError("Native stake has no pooled total shares")
        return self.strategy_total_shares.get(strategy, 0)

    def strategy_balance(self, strategy: Strategy) -> int:
        """Underlying tokens held by a fungible strategy."""
        self.registry.require(strategy)
        if strategy.is_native:
            raise LedgerError("Native stake has no pooled balance")
        return self.strategy_balances.get(strategy, 0)

    def underlying_to_shares(self, strategy: Strategy, amount: int) -> int:
        self.registry.require(strategy)
        if strategy.is_native:
            return amount
        total = self.strategy_total_shares.get(strategy, 0)
        balance = self.strategy_balances.get(strategy, 0)
        return amount * (total + SHARES_OFFSET) // (balance + BALANCE_OFFSET)

    def shares_to_underlying(self, strategy: Strategy, shares: int) -> int:
        self.registry.require(strategy)
        if strategy.is_native:
            return shares
        total = self.strategy_total_shares.get(strategy, 0)
        balance = self.strategy_balances.get(strategy, 0)
        return (balance + BALANCE_OFFSET) * shares // (total + SHARES_OFFSET)

    def token_balance(self, actor: Address, token: str) -> int:
        self._require_actor(actor)
        return self.wallets[actor].get(token, 0)

    def pending_withdrawal(self, root: Hash) -> bool:
        return root in self.pending_withdrawals

    def withdrawal_delay_blocks(self, strategy: Strategy) -> int:
        self.registry.require(strategy)
        return self.withdrawal_delays.get(strategy, DEFAULT_WITHDRAWAL_DELAY_BLOCKS)

    def cumulative_withdrawals_queued(self, staker: Address) -> int:
        self._require_actor(staker)
        return self.withdrawals_queued.get(staker, 0)

    def delegated_to(self, staker: Address) -> Optional[Address]:
        self._require_actor(staker)
        return self.delegations.get(staker)

    def is_operator(self, actor: Address) -> bool:
        return actor in self.operators

    def has_pod(self, actor: Address) -> bool:
        return actor in self.pods

    def checkpoint(self, actor: Address) -> CheckpointRecord:
        self._require_actor(actor)
        pod = self.pods.get(actor)
        return pod.checkpoint if pod else NO_CHECKPOINT

    def last_checkpoint_timestamp(self, actor: Address) -> int:
        self._require_actor(actor)
        pod = self.pods.get(actor)
        return pod.last_checkpoint_timestamp if pod else 0

    def checkpoint_balance_exited_gwei(self, actor: Address, timestamp: int) -> int:
        self._require_actor(actor)
        pod = self.pods.get(actor)
        return pod.balance_exited_gwei.get(timestamp, 0) if pod else 0

    def withdrawable_restaked_gwei(self, actor: Address) -> int:
        self._require_actor(actor)
        pod = self.pods.get(actor)
        return pod.withdrawable_restaked_gwei if pod else 0

    def validator_status(self, actor: Address, pubkey_hash: Hash) -> ValidatorStatus:
        self._require_actor(actor)
        pod = self.pods.get(actor)
        if pod is None or pubkey_hash not in pod.validators:
            return ValidatorStatus.INACTIVE
        return pod.validators[pubkey_hash].status

    def active_validator_count(self, actor: Address) -> int:
        self._require_actor(actor)
        pod = self.pods.get(actor)
        return pod.active_validator_count if pod else 0

    def pod_balance_wei(self, actor: Address) -> int:
        self._require_actor(actor)
        pod = self.pods.get(actor)
        return pod.balance_wei if pod else 0

    # ========================================================================
    # ACTORS AND TOKENS
    # ========================================================================

    def register_actor(self, actor: Address) -> Address:
        """Register an actor handle. Raises ValueError if already registered."""
        if not actor or not actor.strip():
            raise ValueError("actor cannot be empty")
        if actor in self.actors:
            raise ValueError(f"Actor {actor} already registered")
        self.actors.add(actor)
        self.wallets[actor] = {}
        self._record("register_actor", actor)
        return actor

    def is_registered(self, actor: Address) -> bool:
        return actor in self.actors

    def mint(self, actor: Address, token: str, amount: int) -> None:
        """Credit new tokens (or native ETH) to an actor's wallet."""
        self._require_actor(actor)
        if amount <= 0:
            raise ValueError(f"mint amount must be positive, got {amount}")
        if token != NATIVE_ETH and token not in self.registry.tokens():
            raise StrategyNotRegistered(f"Token {token} has no registered strategy")
        self.wallets[actor][token] = self.wallets[actor].get(token, 0) + amount
        self._record("mint", actor, token=token, amount=amount)

    def donate(self, strategy: Strategy, amount: int) -> None:
        """Add underlying tokens to a strategy without minting shares (yield)."""
        self._require_fungible(strategy)
        if amount <= 0:
            raise ValueError(f"donation must be positive, got {amount}")
        self.strategy_balances[strategy] = self.strategy_balances.get(strategy, 0) + amount
        self._record("donate", "system", strategy=strategy, amount=amount)

    def set_withdrawal_delay(self, strategy: Strategy, blocks: int) -> None:
        self.registry.require(strategy)
        if blocks < 0:
            raise ValueError(f"delay must be non-negative, got {blocks}")
        self.withdrawal_delays[strategy] = blocks
        self._record("set_withdrawal_delay", "system", strategy=strategy, blocks=blocks)

    # ========================================================================
    # DEPOSITS
    # ========================================================================

    def deposit(self, actor: Address, strategy: Strategy, amount: int) -> int:
        """
        Deposit underlying tokens into a fungible strategy.

        Returns:
            Shares minted to the actor

        Raises:
            LedgerError: For the native-stake strategy (use verify_withdrawal_credentials)
            InsufficientBalance: If the wallet holds less than amount
        """
        self._require_actor(actor)
        self._require_fungible(strategy)
        if amount <= 0:
            raise LedgerError(f"deposit amount must be positive, got {amount}")
        held = self.wallets[actor].get(strategy.token, 0)
        if held < amount:
            self._reject(f"{actor} holds {held} {strategy.token}, cannot deposit {amount}")
            raise InsufficientBalance(f"{actor} holds {held} {strategy.token}, needs {amount}")
        new_shares = self.underlying_to_shares(strategy, amount)
        if new_shares == 0:
            raise LedgerError(f"Deposit of {amount} into {strategy!r} mints zero shares")

        self.wallets[actor][strategy.token] = held - amount
        self.strategy_balances[strategy] = self.strategy_balances.get(strategy, 0) + amount
        self.strategy_total_shares[strategy] = self.strategy_total_shares.get(strategy, 0) + new_shares
        self._add_deposit_shares(actor, strategy, new_shares)
        self._record("deposit", actor, strategy=strategy, amount=amount, shares=new_shares)
        return new_shares

    def verify_withdrawal_credentials(self, owner: Address, proofs: List[CredentialProof]) -> int:
        """
        Restake validators whose withdrawal credentials point at owner's pod.

        Each validator moves INACTIVE -> ACTIVE and its effective balance is
        credited as native-stake shares.

        Returns:
            Native-stake shares (wei) credited

        Raises:
            CheckpointError: If a checkpoint is active
            ProofRejected: For foreign, exited, or already-verified validators
        """
        self._require_actor(owner)
        if not proofs:
            raise ProofRejected("No credential proofs supplied")
        pod = self.pods.get(owner)
        if pod is not None and pod.checkpoint.is_active:
            raise CheckpointError(f"{owner} has an active checkpoint")
        seen: Set[Hash] = set()
        for proof in proofs:
            if proof.withdrawal_address != owner:
                raise ProofRejected(
                    f"Validator {proof.validator_index} credentials point at {proof.withdrawal_address}"
                )
            if proof.exited:
                raise ProofRejected(f"Validator {proof.validator_index} is exiting")
            if proof.pubkey_hash in seen or (
                    pod is not None and proof.pubkey_hash in pod.validators):
                raise ProofRejected(f"Validator {proof.validator_index} already verified")
            seen.add(proof.pubkey_hash)

        pod = self._get_or_create_pod(owner)
        added_gwei = 0
        for proof in proofs:
            pod.validators[proof.pubkey_hash] = PodValidator(
                validator_index=proof.validator_index,
                status=ValidatorStatus.ACTIVE,
                restaked_balance_gwei=proof.effective_balance_gwei,
                last_checkpointed_at=pod.last_checkpoint_timestamp,
            )
            added_gwei += proof.effective_balance_gwei
        pod.active_validator_count += len(proofs)
        added_wei = gwei_to_wei(added_gwei)
        self._add_pod_owner_shares(owner, added_wei)
        self._record("verify_withdrawal_credentials", owner,
                     validators=tuple(p.validator_index for p in proofs), shares=added_wei)
        return added_wei

    # ========================================================================
    # OPERATORS AND DELEGATION
    # ========================================================================

    def register_operator(self, actor: Address) -> None:
        """Register an actor as an operator; it becomes delegated to itself."""
        self._require_actor(actor)
        if actor in self.operators:
            raise DelegationError(f"{actor} is already an operator")
        if actor in self.delegations:
            raise DelegationError(f"{actor} is delegated to {self.delegations[actor]}")
        self.operators.add(actor)
        self.operator_share_map[actor] = {}
        self._delegate(actor, actor)
        self._record("register_operator", actor)

    def delegate(self, staker: Address, operator: Address) -> None:
        """Delegate all of a staker's delegatable shares to an operator."""
        self._require_actor(staker)
        self._require_actor(operator)
        if operator not in self.operators:
            raise DelegationError(f"{operator} is not an operator")
        if staker in self.delegations:
            raise DelegationError(f"{staker} is already delegated to {self.delegations[staker]}")
        self._delegate(staker, operator)
        self._record("delegate", staker, operator=operator)

    def undelegate(self, staker: Address) -> List[Withdrawal]:
        """
        Undelegate a staker, queueing one withdrawal of all delegatable shares.

        Returns:
            The queued withdrawals (empty if the staker had nothing delegatable)
        """
        self._require_actor(staker)
        if staker in self.operators:
            raise DelegationError(f"Operator {staker} cannot undelegate")
        if staker not in self.delegations:
            raise DelegationError(f"{staker} is not delegated")
        strategies, amounts = [], []
        for strategy in self.registry.strategies():
            amount = self._delegatable_shares(staker, strategy)
            if amount > 0:
                strategies.append(strategy)
                amounts.append(amount)
        withdrawals = []
        if strategies:
            withdrawals.append(self._queue(staker, strategies, amounts))
        operator = self.delegations.pop(staker)
        self._record("undelegate", staker, operator=operator, withdrawals=len(withdrawals))
        return withdrawals

    # ========================================================================
    # WITHDRAWALS
    # ========================================================================

    def queue_withdrawal(self, staker: Address, strategies: List[Strategy],
                         shares: List[int]) -> Withdrawal:
        """
        Remove shares from a staker and queue them for withdrawal.

        Raises:
            InsufficientShares: If any amount exceeds the staker's shares
        """
        self._require_actor(staker)
        if not strategies:
            raise LedgerError("Withdrawal must name at least one strategy")
        if len(strategies) != len(shares):
            raise LedgerError("strategies and shares length mismatch")
        if len(set(strategies)) != len(strategies):
            raise LedgerError("Duplicate strategy in withdrawal")
        for strategy, amount in zip(strategies, shares):
            self.registry.require(strategy)
            if amount <= 0:
                raise LedgerError(f"Withdrawal shares must be positive, got {amount}")
            held = self.shares(staker, strategy)
            if amount > held:
                self._reject(f"{staker} holds {held} shares of {strategy!r}, cannot withdraw {amount}")
                raise InsufficientShares(f"{staker} holds {held} shares of {strategy!r}, requested {amount}")
        withdrawal = self._queue(staker, list(strategies), list(shares))
        return withdrawal

    def complete_withdrawal(self, caller: Address, withdrawal: Withdrawal,
                            receive_as_tokens: bool = True) -> None:
        """
        Complete a queued withdrawal after every strategy's delay has elapsed.

        As tokens: fungible shares are redeemed at the current share price;
        native shares first repay any deficit, then pay out ETH from the
        pod's withdrawable restaked balance.
        As shares: shares are credited back (and re-delegated if the staker
        is currently delegated).

        Raises:
            WithdrawalNotFound: If the root is not pending
            WithdrawalDelayNotElapsed: If called too early
        """
        if withdrawal.root not in self.pending_withdrawals:
            raise WithdrawalNotFound(f"Withdrawal {withdrawal.root} is not pending")
        if caller != withdrawal.withdrawer:
            raise LedgerError(f"{caller} is not the withdrawer of {withdrawal.root}")
        for strategy in withdrawal.strategies:
            ready_at = withdrawal.start_block + self.withdrawal_delay_blocks(strategy)
            if self.block_number < ready_at:
                self._reject(f"withdrawal {withdrawal.root[:12]} not ready until block {ready_at}")
                raise WithdrawalDelayNotElapsed(
                    f"{strategy!r} withdrawable at block {ready_at}, now {self.block_number}"
                )
        staker = withdrawal.staker
        if receive_as_tokens:
            for strategy, amount in zip(withdrawal.strategies, withdrawal.shares):
                if strategy.is_native:
                    self._check_native_payout(staker, amount)

        for strategy, amount in zip(withdrawal.strategies, withdrawal.shares):
            if not receive_as_tokens:
                if strategy.is_native:
                    self._add_pod_owner_shares(staker, amount)
                else:
                    self._add_deposit_shares(staker, strategy, amount)
            elif strategy.is_native:
                self._pay_out_native(staker, withdrawal.withdrawer, amount)
            else:
                self._redeem_fungible(strategy, withdrawal.withdrawer, amount)
        del self.pending_withdrawals[withdrawal.root]
        self._record("complete_withdrawal", caller, root=withdrawal.root,
                     receive_as_tokens=receive_as_tokens)

    # ========================================================================
    # CHECKPOINTS
    # ========================================================================

    def start_checkpoint(self, owner: Address, revert_if_no_balance: bool = False) -> CheckpointRecord:
        """
        Open a checkpoint over the owner's active validators and pod balance.

        Finalizes immediately when there are no active validators to prove.

        Raises:
            CheckpointError: No pod, checkpoint already active, a checkpoint
                             already finished in this block, or (optionally)
                             nothing new to account for
        """
        self._require_actor(owner)
        pod = self.pods.get(owner)
        if pod is None:
            raise CheckpointError(f"{owner} has no pod")
        if pod.checkpoint.is_active:
            raise CheckpointError(f"{owner} already has an active checkpoint")
        if pod.last_checkpoint_timestamp == self.timestamp:
            raise CheckpointError(f"{owner} already checkpointed at {self.timestamp}")
        pod_balance_gwei = pod.balance_wei // GWEI_TO_WEI - pod.withdrawable_restaked_gwei
        if revert_if_no_balance and pod_balance_gwei == 0:
            raise CheckpointError(f"{owner} has no new pod balance to checkpoint")

        prev_beacon_balance = sum(
            v.restaked_balance_gwei for v in pod.validators.values()
            if v.status is ValidatorStatus.ACTIVE
        )
        pod.checkpoint = CheckpointRecord(
            timestamp=self.timestamp,
            pod_balance_gwei=pod_balance_gwei,
            proofs_remaining=pod.active_validator_count,
            balance_deltas_gwei=0,
            prev_beacon_balance_gwei=prev_beacon_balance,
        )
        self._record("start_checkpoint", owner, timestamp=self.timestamp,
                     proofs_remaining=pod.active_validator_count)
        started = pod.checkpoint
        if started.proofs_remaining == 0:
            self._finalize_checkpoint(pod)
        return started

    def submit_balance_proof(self, owner: Address, proof: BalanceProof) -> int:
        """
        Apply one validator balance proof to the owner's active checkpoint.

        A zero balance marks the validator WITHDRAWN and records its last
        restaked balance as exited under the checkpoint's timestamp.

        Returns:
            The proven balance delta in gwei

        Raises:
            CheckpointError: If no checkpoint is active
            ProofRejected: Unknown, inactive, mismatched, or already-proven validator
        """
        self._require_actor(owner)
        pod = self.pods.get(owner)
        if pod is None or not pod.checkpoint.is_active:
            self._reject(f"{owner}: no active checkpoint")
            raise CheckpointError(f"{owner} has no active checkpoint")
        info = pod.validators.get(proof.pubkey_hash)
        if info is None:
            raise ProofRejected(f"Validator {proof.validator_index} not restaked in {owner}'s pod")
        if info.validator_index != proof.validator_index:
            raise ProofRejected(
                f"Pubkey belongs to validator {info.validator_index}, proof names {proof.validator_index}"
            )
        if info.status is not ValidatorStatus.ACTIVE:
            raise ProofRejected(f"Validator {proof.validator_index} is {info.status.name}")
        checkpoint = pod.checkpoint
        if info.last_checkpointed_at >= checkpoint.timestamp:
            raise ProofRejected(f"Validator {proof.validator_index} already proven for this checkpoint")
        if proof.balance_gwei < 0:
            raise ProofRejected(f"Negative balance in proof for {proof.validator_index}")

        delta = proof.balance_gwei - info.restaked_balance_gwei
        exited = 0
        if proof.balance_gwei == 0:
            exited = info.restaked_balance_gwei
            info.status = ValidatorStatus.WITHDRAWN
            pod.active_validator_count -= 1
            pod.balance_exited_gwei[checkpoint.timestamp] = (
                pod.balance_exited_gwei.get(checkpoint.timestamp, 0) + exited
            )
        info.restaked_balance_gwei = proof.balance_gwei
        info.last_checkpointed_at = checkpoint.timestamp
        pod.checkpoint = replace(
            checkpoint,
            proofs_remaining=checkpoint.proofs_remaining - 1,
            balance_deltas_gwei=checkpoint.balance_deltas_gwei + delta,
        )
        self._record("submit_balance_proof", owner, validator=proof.validator_index,
                     delta_gwei=delta, exited_gwei=exited)
        if pod.checkpoint.proofs_remaining == 0:
            self._finalize_checkpoint(pod)
        return delta

    def submit_balance_proofs(self, owner: Address, proofs: List[BalanceProof]) -> int:
        """Apply several balance proofs in order. Returns the summed delta in gwei."""
        return sum(self.submit_balance_proof(owner, p) for p in proofs)

    # ========================================================================
    # EXECUTION LAYER
    # ========================================================================

    def credit_pod(self, owner: Address, amount_wei: int) -> None:
        """Receive ETH swept from the consensus layer into owner's pod."""
        self._require_actor(owner)
        if amount_wei <= 0:
            raise ValueError(f"credit must be positive, got {amount_wei}")
        pod = self._get_or_create_pod(owner)
        pod.balance_wei += amount_wei
        self._record("credit_pod", owner, amount_wei=amount_wei)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_actor(self, actor: Address) -> None:
        if actor not in self.actors:
            raise ActorNotRegistered(f"Actor {actor} not registered")

    def _require_fungible(self, strategy: Strategy) -> None:
        self.registry.require(strategy)
        if strategy.is_native:
            raise LedgerError("Native stake is deposited by verifying withdrawal credentials")

    def _get_or_create_pod(self, owner: Address) -> Pod:
        if owner not in self.pods:
            self.pods[owner] = Pod(owner=owner)
            self._record("create_pod", owner)
        return self.pods[owner]

    def _delegatable_shares(self, staker: Address, strategy: Strategy) -> int:
        if strategy.is_native:
            return max(0, self.pod_owner_shares.get(staker, 0))
        return self.deposit_shares.get(staker, {}).get(strategy, 0)

    def _delegate(self, staker: Address, operator: Address) -> None:
        self.delegations[staker] = operator
        for strategy in self.registry.strategies():
            amount = self._delegatable_shares(staker, strategy)
            if amount > 0:
                self._change_operator_shares(operator, strategy, amount)

    def _change_operator_shares(self, operator: Address, strategy: Strategy, delta: int) -> None:
        shares = self.operator_share_map.setdefault(operator, {})
        new_value = shares.get(strategy, 0) + delta
        if new_value < 0:
            raise LedgerError(f"Operator {operator} shares of {strategy!r} would go negative")
        shares[strategy] = new_value

    def _add_deposit_shares(self, staker: Address, strategy: Strategy, amount: int) -> None:
        held = self.deposit_shares.setdefault(staker, {})
        held[strategy] = held.get(strategy, 0) + amount
        operator = self.delegations.get(staker)
        if operator is not None:
            self._change_operator_shares(operator, strategy, amount)

    def _add_pod_owner_shares(self, owner: Address, delta: int) -> None:
        before = self.pod_owner_shares.get(owner, 0)
        after = before + delta
        self.pod_owner_shares[owner] = after
        operator = self.delegations.get(owner)
        if operator is not None:
            change = calc_delegatable_delta(before, after)
            if change != 0:
                self._change_operator_shares(operator, self.registry.native_strategy, change)

    def _queue(self, staker: Address, strategies: List[Strategy], shares: List[int]) -> Withdrawal:
        for strategy, amount in zip(strategies, shares):
            if strategy.is_native:
                self._add_pod_owner_shares(staker, -amount)
            else:
                held = self.deposit_shares[staker]
                held[strategy] -= amount
                operator = self.delegations.get(staker)
                if operator is not None:
                    self._change_operator_shares(operator, strategy, -amount)
        nonce = self.withdrawals_queued.get(staker, 0)
        self.withdrawals_queued[staker] = nonce + 1
        withdrawal = Withdrawal(
            staker=staker,
            delegated_to=self.delegations.get(staker),
            withdrawer=staker,
            nonce=nonce,
            start_block=self.block_number,
            strategies=tuple(strategies),
            shares=tuple(shares),
        )
        self.pending_withdrawals[withdrawal.root] = withdrawal
        self._record("queue_withdrawal", staker, root=withdrawal.root, nonce=nonce)
        return withdrawal

    def _native_payout_gwei(self, staker: Address, shares: int) -> int:
        current = self.pod_owner_shares.get(staker, 0)
        if current < 0:
            shares = max(0, shares + current)
        return shares // GWEI_TO_WEI

    def _check_native_payout(self, staker: Address, shares: int) -> None:
        payout_gwei = self._native_payout_gwei(staker, shares)
        pod = self.pods.get(staker)
        available = pod.withdrawable_restaked_gwei if pod else 0
        if payout_gwei > available:
            self._reject(f"{staker} pod has {available} gwei withdrawable, needs {payout_gwei}")
            raise InsufficientBalance(
                f"{staker} pod has {available} gwei withdrawable, withdrawal needs {payout_gwei}"
            )

    def _pay_out_native(self, staker: Address, recipient: Address, shares: int) -> None:
        payout_gwei = self._native_payout_gwei(staker, shares)
        current = self.pod_owner_shares.get(staker, 0)
        if current < 0:
            self._add_pod_owner_shares(staker, min(shares, -current))
        if payout_gwei > 0:
            pod = self.pods[staker]
            pod.withdrawable_restaked_gwei -= payout_gwei
            pod.balance_wei -= gwei_to_wei(payout_gwei)
            wallet = self.wallets[recipient]
            wallet[NATIVE_ETH] = wallet.get(NATIVE_ETH, 0) + gwei_to_wei(payout_gwei)

    def _redeem_fungible(self, strategy: Strategy, recipient: Address, shares: int) -> None:
        amount = self.shares_to_underlying(strategy, shares)
        self.strategy_total_shares[strategy] -= shares
        self.strategy_balances[strategy] -= amount
        wallet = self.wallets[recipient]
        wallet[strategy.token] = wallet.get(strategy.token, 0) + amount

    def _finalize_checkpoint(self, pod: Pod) -> None:
        checkpoint = pod.checkpoint
        share_delta_wei = gwei_to_wei(checkpoint.pod_balance_gwei + checkpoint.balance_deltas_gwei)
        pod.withdrawable_restaked_gwei += checkpoint.pod_balance_gwei
        pod.last_checkpoint_timestamp = checkpoint.timestamp
        pod.checkpoint = NO_CHECKPOINT
        self._add_pod_owner_shares(pod.owner, share_delta_wei)
        self._record("finalize_checkpoint", pod.owner, timestamp=checkpoint.timestamp,
                     share_delta_wei=share_delta_wei)

    def _record(self, action: str, actor: Address, **details: Any) -> None:
        event = LedgerEvent(
            block_number=self.block_number,
            timestamp=self.timestamp,
            action=action,
            actor=actor,
            details=tuple(details.items()),
        )
        self.event_log.append(event)
        if self.verbose:
            print(f"✓ {event!r}")

    def _reject(self, reason: str) -> None:
        if self.verbose:
            print(f"✗ REJECTED: {reason}")

    def __repr__(self) -> str:
        return (f"RestakingLedger(actors={len(self.actors)}, operators={len(self.operators)}, "
                f"pending_withdrawals={len(self.pending_withdrawals)})")
