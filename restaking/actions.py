"""
actions.py - User Actions (snapshot, then mutate)

Each action takes a snapshot of global state before touching the ledger,
so the differential assertions that follow compare against the instant
just before the action. Actions also advance the scenario's checkpoint
tracker, keeping the independent lifecycle model in step with the ledger.

Only the latest pre-action snapshot is kept: an action releases the one
before it before pushing its own, unless the scenario was configured with
retain_snapshots.

Collaborator rejections (LedgerError) propagate unchanged. A rejected
call leaves ledger state untouched; the snapshot it pushed stays on the
stack and simply equals the present.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, List, Sequence, Tuple

from .checkpoints import ValidatorEvent
from .core import Strategy, CheckpointRecord, ValidatorStatus, InvariantViolation, EXACT
from .withdrawals import Withdrawal, roll_past_withdrawal_delay as _roll

if TYPE_CHECKING:
    from .actors import Actor
    from .scenario import Scenario


def _snapshot(ctx: Scenario) -> int:
    if not ctx.config.retain_snapshots and ctx.store.depth:
        ctx.store.release()
    return ctx.store.take()


# ============================================================================
# DEPOSITS AND DELEGATION
# ============================================================================

def deposit_into_strategies(ctx: Scenario, actor: Actor, strategies: Sequence[Strategy],
                            amounts: Sequence[int]) -> List[int]:
    """
    Deposit into each strategy; returns the shares credited per strategy.

    Fungible amounts are underlying tokens. For native stake the amount is
    ignored: every unverified validator of the actor is restaked and the
    credited share amount (wei) is returned.
    """
    if len(strategies) != len(amounts):
        raise ValueError("strategies and amounts length mismatch")
    _snapshot(ctx)
    credited = []
    for strategy, amount in zip(strategies, amounts):
        if strategy.is_native:
            credited.append(_verify_credentials(ctx, actor, actor.unverified_validators(ctx)))
        else:
            credited.append(ctx.ledger.deposit(actor.address, strategy, amount))
    return credited


def verify_withdrawal_credentials(ctx: Scenario, actor: Actor, validator_ids: Sequence[int]) -> int:
    """Restake the given validators. Returns the native-stake shares (wei) credited."""
    _snapshot(ctx)
    return _verify_credentials(ctx, actor, list(validator_ids))


def _verify_credentials(ctx: Scenario, actor: Actor, validator_ids: List[int]) -> int:
    proofs = [ctx.beacon.credential_proof(i) for i in validator_ids]
    shares = ctx.ledger.verify_withdrawal_credentials(actor.address, proofs)
    ctx.tracker.register_validators(actor.address, [p.pubkey_hash for p in proofs])
    return shares


def register_as_operator(ctx: Scenario, actor: Actor) -> None:
    _snapshot(ctx)
    ctx.ledger.register_operator(actor.address)


def delegate_to(ctx: Scenario, staker: Actor, operator: Actor) -> None:
    _snapshot(ctx)
    ctx.ledger.delegate(staker.address, operator.address)


def undelegate(ctx: Scenario, staker: Actor) -> List[Withdrawal]:
    _snapshot(ctx)
    return ctx.ledger.undelegate(staker.address)


# ============================================================================
# WITHDRAWALS
# ============================================================================

def queue_withdrawal(ctx: Scenario, staker: Actor, strategies: Sequence[Strategy],
                     shares: Sequence[int]) -> Withdrawal:
    _snapshot(ctx)
    return ctx.ledger.queue_withdrawal(staker.address, list(strategies), list(shares))


def queue_withdrawal_of_all(ctx: Scenario, staker: Actor) -> Tuple[Withdrawal, List[Strategy], List[int]]:
    """
    Queue one withdrawal of every positive share balance the staker holds.

    Returns:
        (withdrawal, strategies, shares)
    """
    strategies, shares = [], []
    for strategy in ctx.registry.strategies():
        amount = ctx.queries.staker_shares(staker.address, [strategy])[0]
        if amount > 0:
            strategies.append(strategy)
            shares.append(amount)
    return queue_withdrawal(ctx, staker, strategies, shares), strategies, shares


def complete_withdrawal_as_tokens(ctx: Scenario, actor: Actor, withdrawal: Withdrawal) -> None:
    """Complete a withdrawal, receiving underlying tokens (ETH for native stake)."""
    _snapshot(ctx)
    staker = withdrawal.staker
    before = ctx.queries.withdrawable_restaked_gwei(staker)
    ctx.ledger.complete_withdrawal(actor.address, withdrawal, receive_as_tokens=True)
    spent = before - ctx.queries.withdrawable_restaked_gwei(staker)
    if spent:
        ctx.tracker.note_withdrawable_spent(staker, spent)


def complete_withdrawal_as_shares(ctx: Scenario, actor: Actor, withdrawal: Withdrawal) -> None:
    _snapshot(ctx)
    ctx.ledger.complete_withdrawal(actor.address, withdrawal, receive_as_tokens=False)


def roll_past_withdrawal_delay(ctx: Scenario, withdrawals: Sequence[Withdrawal]) -> int:
    """Mine blocks until every withdrawal is completable. Returns blocks mined."""
    return _roll(ctx.chain, ctx.ledger, list(withdrawals))


# ============================================================================
# CHECKPOINTS
# ============================================================================

def start_checkpoint(ctx: Scenario, actor: Actor, revert_if_no_balance: bool = False) -> CheckpointRecord:
    _snapshot(ctx)
    record = ctx.ledger.start_checkpoint(actor.address, revert_if_no_balance=revert_if_no_balance)
    ctx.tracker.start(actor.address, record.timestamp, record.pod_balance_gwei)
    return record


def submit_balance_proof(ctx: Scenario, actor: Actor, validator_id: int) -> int:
    """Prove one validator's balance. Returns the balance delta in gwei."""
    _snapshot(ctx)
    return _prove(ctx, actor, validator_id)


def complete_checkpoint(ctx: Scenario, actor: Actor) -> int:
    """
    Prove every ACTIVE validator not yet proven for the current checkpoint,
    finalizing it.

    Returns:
        Summed balance delta in gwei
    """
    _snapshot(ctx)
    proven = ctx.tracker.model(actor.address).proven
    total = 0
    for i in actor.validator_ids:
        h = ctx.beacon.validator(i).pubkey_hash
        if h in proven:
            continue
        if ctx.tracker.status(actor.address, h) is ValidatorStatus.ACTIVE:
            total += _prove(ctx, actor, i)
    if ctx.queries.checkpoint(actor.address).is_active:
        raise InvariantViolation("checkpoint still active after proving every validator",
                                 actor.address, 0, ctx.queries.checkpoint(actor.address), EXACT)
    return total


def _prove(ctx: Scenario, actor: Actor, validator_id: int) -> int:
    proof = ctx.beacon.balance_proof(validator_id)
    delta = ctx.ledger.submit_balance_proof(actor.address, proof)
    exit_event = None
    exited = 0
    if proof.balance_gwei == 0:
        exited = -delta
        if ctx.beacon.validator(validator_id).slashed:
            exit_event = ValidatorEvent.SLASH
        else:
            exit_event = ValidatorEvent.FULL_EXIT
    ctx.tracker.record_proof(actor.address, proof.pubkey_hash, delta,
                             exited_gwei=exited, exit_event=exit_event)
    return delta


# ============================================================================
# CONSENSUS LAYER
# ============================================================================

def advance_epoch(ctx: Scenario) -> None:
    _snapshot(ctx)
    ctx.beacon.advance_epoch()


def advance_epoch_no_rewards(ctx: Scenario) -> None:
    _snapshot(ctx)
    ctx.beacon.advance_epoch_no_rewards()


def advance_epoch_no_withdraw(ctx: Scenario) -> None:
    _snapshot(ctx)
    ctx.beacon.advance_epoch_no_withdraw()


def slash_validators(ctx: Scenario, validator_ids: Sequence[int]) -> int:
    """Slash validators on the consensus layer. Returns gwei lost."""
    _snapshot(ctx)
    return ctx.beacon.slash_validators(list(validator_ids))


def exit_validators(ctx: Scenario, validator_ids: Sequence[int]) -> int:
    _snapshot(ctx)
    return ctx.beacon.exit_validators(list(validator_ids))


def donate(ctx: Scenario, strategy: Strategy, amount: int) -> None:
    """Add yield to a fungible strategy, moving its share price."""
    _snapshot(ctx)
    ctx.ledger.donate(strategy, amount)
