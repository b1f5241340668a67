"""
assertions.py - Differential Assertion Engine

Every assert_snap_* function compares a quantity now against the same
quantity at the most recent snapshot:

    current  = read()
    with ctx.store.previous():
        previous = read()
    |previous + expected_delta - current| <= tolerance

Share and token-balance checks absorb one unit of integer-division
truncation (ROUNDING_TOLERANCE). Counts, status flags, timestamps and gwei
accumulators are compared exactly. A failure raises InvariantViolation
naming the caller's label, the subject, and both values.

Native-stake operator shares do not move 1:1 with pod-owner shares: only
the above-zero part of a signed balance is delegatable. Use
calc_native_operator_share_delta() to predict operator movement for a
native-stake share change before the change is applied.

All functions take the Scenario context explicitly. Any object exposing
.store (SnapshotStore) and .queries (LedgerQueries) works; checkpoint
model checks additionally use .tracker.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

from .checkpoints import CheckpointPhase, exited_balance_timestamp, validate_transition
from .core import (
    Address, Hash, Strategy, ValidatorStatus, InvariantViolation,
    EXACT, ROUNDING_TOLERANCE,
)
from .withdrawals import Withdrawal

if TYPE_CHECKING:
    from .scenario import Scenario


# ============================================================================
# PRIMITIVES
# ============================================================================

def read_previous(ctx: Scenario, read: Callable[[], object]):
    """Evaluate read() at the last snapshot and return to the present."""
    with ctx.store.previous():
        return read()


def read_both(ctx: Scenario, read: Callable[[], object]) -> Tuple[object, object]:
    """Evaluate read() now and at the last snapshot. Returns (previous, current)."""
    current = read()
    previous = read_previous(ctx, read)
    return previous, current


def delta_check(ctx: Scenario, label: str, subject, read: Callable[[], int],
                expected_delta: int, tolerance: int = ROUNDING_TOLERANCE) -> Tuple[int, int]:
    """
    Check that a scalar moved by expected_delta since the last snapshot.

    Returns:
        (previous, current)

    Raises:
        InvariantViolation: If |previous + expected_delta - current| > tolerance
    """
    previous, current = read_both(ctx, read)
    expected = previous + expected_delta
    if abs(expected - current) > tolerance:
        raise InvariantViolation(label, subject, expected, current, tolerance)
    return previous, current


def delta_check_many(ctx: Scenario, label: str, subjects: Sequence,
                     read: Callable[[], List[int]], expected_deltas: Sequence[int],
                     tolerance: int = ROUNDING_TOLERANCE) -> Tuple[List[int], List[int]]:
    """
    Element-wise delta_check over parallel lists, read in a single round trip.

    Raises:
        ValueError: If subjects and expected_deltas differ in length
        InvariantViolation: On the first element outside tolerance
    """
    if len(subjects) != len(expected_deltas):
        raise ValueError(f"{label}: {len(subjects)} subjects, {len(expected_deltas)} deltas")
    previous, current = read_both(ctx, read)
    for subject, prev, cur, delta in zip(subjects, previous, current, expected_deltas):
        expected = prev + delta
        if abs(expected - cur) > tolerance:
            raise InvariantViolation(label, subject, expected, cur, tolerance)
    return previous, current


def _check_equal(label: str, subject, expected, actual) -> None:
    if expected != actual:
        raise InvariantViolation(label, subject, expected, actual, EXACT)


def _negated(values: Sequence[int]) -> List[int]:
    return [-v for v in values]


# ============================================================================
# NATIVE-STAKE DELEGATION MATH
# ============================================================================

def native_delegatable_delta(shares_before: int, share_delta: int) -> int:
    """
    Movement of operator shares when a pod owner's signed shares change by share_delta.

    Only the positive part of the balance is delegated, so the operator sees
    max(0, after) - max(0, before).
    """
    return max(0, shares_before + share_delta) - max(0, shares_before)


def calc_native_operator_share_delta(ctx: Scenario, staker: Address, share_delta: int) -> int:
    """
    Predict the operator-side delta for a native-stake share change.

    Call before the change is applied: reads the staker's current signed
    native shares.

    Example:
        Staker holds 5 (signed); a slash moves shares by -8.
        calc_native_operator_share_delta(ctx, staker, -8)   # -5
    """
    native = ctx.registry.native_strategy
    return native_delegatable_delta(ctx.queries.pod_owner_shares(staker, native), share_delta)


def operator_deltas_for(ctx: Scenario, staker: Address, strategies: Sequence[Strategy],
                        share_deltas: Sequence[int]) -> List[int]:
    """Operator-side deltas for a staker's per-strategy share deltas (native clamped)."""
    return [
        calc_native_operator_share_delta(ctx, staker, d) if s.is_native else d
        for s, d in zip(strategies, share_deltas)
    ]


# ============================================================================
# STAKER SHARES
# ============================================================================

def assert_snap_added_staker_deposit_shares(ctx: Scenario, staker: Address,
                                            strategies: Sequence[Strategy],
                                            added: Sequence[int], label: str) -> None:
    """Staker deposit shares increased by added, per strategy."""
    delta_check_many(
        ctx, label, [(staker, s) for s in strategies],
        lambda: ctx.queries.staker_deposit_shares(staker, list(strategies)),
        added,
    )


def assert_snap_removed_staker_deposit_shares(ctx: Scenario, staker: Address,
                                              strategies: Sequence[Strategy],
                                              removed: Sequence[int], label: str) -> None:
    delta_check_many(
        ctx, label, [(staker, s) for s in strategies],
        lambda: ctx.queries.staker_deposit_shares(staker, list(strategies)),
        _negated(removed),
    )


def assert_snap_unchanged_staker_deposit_shares(ctx: Scenario, staker: Address, label: str,
                                                strategies: Optional[Sequence[Strategy]] = None) -> None:
    """Staker deposit shares did not move. Defaults to every registered strategy."""
    strategies = list(strategies) if strategies is not None else ctx.registry.strategies()
    delta_check_many(
        ctx, label, [(staker, s) for s in strategies],
        lambda: ctx.queries.staker_deposit_shares(staker, strategies),
        [0] * len(strategies), EXACT,
    )


def assert_snap_delta_staker_shares(ctx: Scenario, staker: Address,
                                    strategies: Sequence[Strategy],
                                    deltas: Sequence[int], label: str) -> None:
    """Signed staker shares moved by exactly deltas (native stake may go negative)."""
    delta_check_many(
        ctx, label, [(staker, s) for s in strategies],
        lambda: ctx.queries.staker_shares(staker, list(strategies)),
        deltas, EXACT,
    )


# ============================================================================
# OPERATOR SHARES
# ============================================================================

def assert_snap_added_operator_shares(ctx: Scenario, operator: Address,
                                      strategies: Sequence[Strategy],
                                      added: Sequence[int], label: str) -> None:
    delta_check_many(
        ctx, label, [(operator, s) for s in strategies],
        lambda: ctx.queries.operator_shares(operator, list(strategies)),
        added,
    )


def assert_snap_removed_operator_shares(ctx: Scenario, operator: Address,
                                        strategies: Sequence[Strategy],
                                        removed: Sequence[int], label: str) -> None:
    delta_check_many(
        ctx, label, [(operator, s) for s in strategies],
        lambda: ctx.queries.operator_shares(operator, list(strategies)),
        _negated(removed),
    )


def assert_snap_unchanged_operator_shares(ctx: Scenario, operator: Address, label: str,
                                          strategies: Optional[Sequence[Strategy]] = None) -> None:
    strategies = list(strategies) if strategies is not None else ctx.registry.strategies()
    delta_check_many(
        ctx, label, [(operator, s) for s in strategies],
        lambda: ctx.queries.operator_shares(operator, strategies),
        [0] * len(strategies), EXACT,
    )


def assert_snap_delta_operator_shares(ctx: Scenario, operator: Address,
                                      strategies: Sequence[Strategy],
                                      deltas: Sequence[int], label: str) -> None:
    """
    Operator shares moved by deltas.

    For native stake pass the value from calc_native_operator_share_delta(),
    computed before the action.
    """
    delta_check_many(
        ctx, label, [(operator, s) for s in strategies],
        lambda: ctx.queries.operator_shares(operator, list(strategies)),
        deltas, EXACT,
    )


# ============================================================================
# TOTAL STRATEGY SHARES
# ============================================================================

def _pooled(strategies: Sequence[Strategy], values: Sequence[int]) -> Tuple[List[Strategy], List[int]]:
    pairs = [(s, v) for s, v in zip(strategies, values) if not s.is_native]
    return [s for s, _ in pairs], [v for _, v in pairs]


def assert_snap_added_total_shares(ctx: Scenario, strategies: Sequence[Strategy],
                                   added: Sequence[int], label: str) -> None:
    """Pooled shares increased by added. Native stake has no pool and is skipped."""
    pooled, amounts = _pooled(strategies, added)
    delta_check_many(ctx, label, pooled, lambda: ctx.queries.total_shares(pooled), amounts)


def assert_snap_removed_total_shares(ctx: Scenario, strategies: Sequence[Strategy],
                                     removed: Sequence[int], label: str) -> None:
    pooled, amounts = _pooled(strategies, removed)
    delta_check_many(ctx, label, pooled, lambda: ctx.queries.total_shares(pooled), _negated(amounts))


def assert_snap_unchanged_total_shares(ctx: Scenario, label: str,
                                       strategies: Optional[Sequence[Strategy]] = None) -> None:
    strategies = list(strategies) if strategies is not None else ctx.registry.strategies()
    pooled, _ = _pooled(strategies, [0] * len(strategies))
    delta_check_many(ctx, label, pooled, lambda: ctx.queries.total_shares(pooled),
                     [0] * len(pooled), EXACT)


# ============================================================================
# TOKEN BALANCES
# ============================================================================

def assert_snap_added_token_balances(ctx: Scenario, actor: Address, tokens: Sequence[str],
                                     added: Sequence[int], label: str) -> None:
    delta_check_many(
        ctx, label, [(actor, t) for t in tokens],
        lambda: ctx.queries.token_balances(actor, list(tokens)),
        added,
    )


def assert_snap_removed_token_balances(ctx: Scenario, actor: Address, tokens: Sequence[str],
                                       removed: Sequence[int], label: str) -> None:
    delta_check_many(
        ctx, label, [(actor, t) for t in tokens],
        lambda: ctx.queries.token_balances(actor, list(tokens)),
        _negated(removed),
    )


def assert_snap_unchanged_token_balances(ctx: Scenario, actor: Address, label: str,
                                         tokens: Optional[Sequence[str]] = None) -> None:
    """Wallet balances did not move. Defaults to every underlying token plus ETH."""
    if tokens is None:
        tokens = ctx.registry.underlying_tokens(ctx.registry.strategies())
    tokens = list(tokens)
    delta_check_many(
        ctx, label, [(actor, t) for t in tokens],
        lambda: ctx.queries.token_balances(actor, tokens),
        [0] * len(tokens), EXACT,
    )


# ============================================================================
# DELEGATION
# ============================================================================

def assert_snap_delegation(ctx: Scenario, staker: Address,
                           expected_before: Optional[Address],
                           expected_after: Optional[Address], label: str) -> None:
    previous, current = read_both(ctx, lambda: ctx.queries.delegated_to(staker))
    _check_equal(f"{label} (before)", staker, expected_before, previous)
    _check_equal(f"{label} (after)", staker, expected_after, current)


def assert_operator_shares_match_delegators(ctx: Scenario, operator: Address,
                                            stakers: Sequence[Address],
                                            strategies: Sequence[Strategy], label: str) -> None:
    """
    Operator shares equal the sum of its delegators' delegatable shares.

    The operator itself counts as a delegator when it holds shares.
    """
    expected = [0] * len(strategies)
    for staker in stakers:
        for i, value in enumerate(ctx.queries.delegatable_shares(staker, list(strategies))):
            expected[i] += value
    actual = ctx.queries.operator_shares(operator, list(strategies))
    for s, exp, act in zip(strategies, expected, actual):
        if abs(exp - act) > ROUNDING_TOLERANCE:
            raise InvariantViolation(label, (operator, s), exp, act, ROUNDING_TOLERANCE)


def assert_has_no_delegatable_shares(ctx: Scenario, staker: Address, label: str) -> None:
    strategies = ctx.registry.strategies()
    for s, value in zip(strategies, ctx.queries.delegatable_shares(staker, strategies)):
        _check_equal(label, (staker, s), 0, value)


# ============================================================================
# WITHDRAWALS
# ============================================================================

def assert_snap_added_queued_withdrawals(ctx: Scenario, staker: Address,
                                         withdrawals: Sequence[Withdrawal], label: str) -> None:
    """The staker's cumulative queued-withdrawal count grew by len(withdrawals)."""
    delta_check(ctx, label, staker, lambda: ctx.queries.cumulative_withdrawals_queued(staker),
                len(withdrawals), EXACT)


def assert_snap_added_queued_withdrawal(ctx: Scenario, staker: Address, label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.cumulative_withdrawals_queued(staker),
                1, EXACT)


def assert_snap_unchanged_queued_withdrawals(ctx: Scenario, staker: Address, label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.cumulative_withdrawals_queued(staker),
                0, EXACT)


def assert_withdrawals_pending(ctx: Scenario, withdrawals: Sequence[Withdrawal], label: str) -> None:
    for w, pending in zip(withdrawals, ctx.queries.withdrawals_pending([w.root for w in withdrawals])):
        _check_equal(label, w.root, True, pending)


def assert_withdrawals_not_pending(ctx: Scenario, withdrawals: Sequence[Withdrawal], label: str) -> None:
    for w, pending in zip(withdrawals, ctx.queries.withdrawals_pending([w.root for w in withdrawals])):
        _check_equal(label, w.root, False, pending)


def assert_snap_completed_withdrawals(ctx: Scenario, withdrawals: Sequence[Withdrawal],
                                      label: str) -> None:
    """Each withdrawal was pending at the last snapshot and is not pending now."""
    roots = [w.root for w in withdrawals]
    previous, current = read_both(ctx, lambda: ctx.queries.withdrawals_pending(roots))
    for root, was, now in zip(roots, previous, current):
        _check_equal(f"{label} (was pending)", root, True, was)
        _check_equal(f"{label} (now pending)", root, False, now)


# ============================================================================
# VALIDATORS
# ============================================================================

def assert_snap_added_active_validator_count(ctx: Scenario, staker: Address, added: int,
                                             label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.active_validator_count(staker), added, EXACT)


def assert_snap_removed_active_validator_count(ctx: Scenario, staker: Address, removed: int,
                                               label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.active_validator_count(staker), -removed, EXACT)


def assert_snap_unchanged_active_validator_count(ctx: Scenario, staker: Address, label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.active_validator_count(staker), 0, EXACT)


def assert_snap_validator_status(ctx: Scenario, staker: Address, pubkey_hashes: Sequence[Hash],
                                 expected_before: ValidatorStatus, expected_after: ValidatorStatus,
                                 label: str) -> None:
    """
    Every validator moved from expected_before to expected_after.

    A status change that the lifecycle forbids raises InvalidTransition
    before any value comparison.
    """
    if expected_before is not expected_after:
        validate_transition(expected_before, expected_after)
    hashes = list(pubkey_hashes)
    previous, current = read_both(ctx, lambda: ctx.queries.validator_statuses(staker, hashes))
    for h, was, now in zip(hashes, previous, current):
        _check_equal(f"{label} (before)", (staker, h), expected_before, was)
        _check_equal(f"{label} (after)", (staker, h), expected_after, now)


# ============================================================================
# CHECKPOINTS
# ============================================================================

def assert_snap_created_checkpoint(ctx: Scenario, staker: Address, label: str) -> None:
    """No checkpoint at the last snapshot; one is active now, stamped with the current time."""
    previous, current = read_both(ctx, lambda: ctx.queries.checkpoint(staker))
    _check_equal(f"{label} (no previous checkpoint)", staker, 0, previous.timestamp)
    if not current.is_active:
        raise InvariantViolation(f"{label} (checkpoint active)", staker, "active", current, EXACT)
    _check_equal(f"{label} (timestamp)", staker, ctx.chain.timestamp, current.timestamp)


def assert_snap_removed_checkpoint(ctx: Scenario, staker: Address, label: str) -> None:
    """A checkpoint was active at the last snapshot and none is active now."""
    previous, current = read_both(ctx, lambda: ctx.queries.current_checkpoint_timestamp(staker))
    if previous == 0:
        raise InvariantViolation(f"{label} (previous checkpoint)", staker, "nonzero", previous, EXACT)
    _check_equal(f"{label} (current checkpoint)", staker, 0, current)


def assert_snap_unchanged_checkpoint(ctx: Scenario, staker: Address, label: str) -> None:
    previous, current = read_both(ctx, lambda: ctx.queries.checkpoint(staker))
    _check_equal(label, staker, previous, current)


def assert_snap_updated_last_checkpoint(ctx: Scenario, staker: Address, label: str) -> None:
    """
    The last-checkpoint timestamp advanced to the checkpoint that was current
    at the last snapshot (or to now, when the checkpoint started and finalized
    in the same step).
    """
    def read():
        return (ctx.queries.current_checkpoint_timestamp(staker),
                ctx.queries.last_checkpoint_timestamp(staker))

    (prev_current, prev_last), (_, cur_last) = read_both(ctx, read)
    if cur_last <= prev_last:
        raise InvariantViolation(f"{label} (advanced)", staker, f"> {prev_last}", cur_last, EXACT)
    expected = prev_current if prev_current != 0 else ctx.chain.timestamp
    _check_equal(label, staker, expected, cur_last)


def assert_snap_unchanged_last_checkpoint(ctx: Scenario, staker: Address, label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.last_checkpoint_timestamp(staker), 0, EXACT)


def assert_checkpoint_proofs_match_validators(ctx: Scenario, staker: Address, label: str) -> None:
    """An untouched active checkpoint expects one proof per active validator."""
    checkpoint = ctx.queries.checkpoint(staker)
    if not checkpoint.is_active:
        raise InvariantViolation(f"{label} (checkpoint active)", staker, "active", checkpoint, EXACT)
    _check_equal(label, staker, ctx.queries.active_validator_count(staker), checkpoint.proofs_remaining)


def assert_snap_added_withdrawable_gwei(ctx: Scenario, staker: Address, added: int,
                                        label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.withdrawable_restaked_gwei(staker),
                added, EXACT)


def assert_snap_removed_withdrawable_gwei(ctx: Scenario, staker: Address, removed: int,
                                          label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.withdrawable_restaked_gwei(staker),
                -removed, EXACT)


def assert_snap_unchanged_withdrawable_gwei(ctx: Scenario, staker: Address, label: str) -> None:
    delta_check(ctx, label, staker, lambda: ctx.queries.withdrawable_restaked_gwei(staker),
                0, EXACT)


def assert_snap_added_balance_exited_gwei(ctx: Scenario, staker: Address, added: int,
                                          label: str) -> None:
    """
    Balance exited under the relevant checkpoint grew by added gwei.

    If the step finalized a checkpoint, its exited balance is recorded
    under the closed checkpoint (now the last checkpoint timestamp);
    otherwise under the current one.
    """
    prev_current = read_previous(ctx, lambda: ctx.queries.current_checkpoint_timestamp(staker))
    timestamp = exited_balance_timestamp(
        prev_current,
        ctx.queries.current_checkpoint_timestamp(staker),
        ctx.queries.last_checkpoint_timestamp(staker),
    )
    delta_check(ctx, label, (staker, timestamp),
                lambda: ctx.queries.checkpoint_balance_exited_gwei(staker, timestamp),
                added, EXACT)


def assert_snap_unchanged_balance_exited_gwei(ctx: Scenario, staker: Address, label: str) -> None:
    assert_snap_added_balance_exited_gwei(ctx, staker, 0, label)


def assert_checkpoint_matches_model(ctx: Scenario, staker: Address, label: str) -> None:
    """
    Reconcile the ledger with the scenario's checkpoint tracker.

    Raises:
        InvariantViolation: Prefixed with label, on the first differing field
    """
    try:
        ctx.tracker.check_proofs_invariant(staker)
        ctx.tracker.reconcile(ctx.queries, staker)
    except InvariantViolation as e:
        raise InvariantViolation(f"{label}: {e.label}", e.subject, e.expected, e.actual,
                                 e.tolerance) from e


def assert_no_active_checkpoint(ctx: Scenario, staker: Address, label: str) -> None:
    _check_equal(label, staker, CheckpointPhase.NO_CHECKPOINT, ctx.tracker.phase(staker))
    _check_equal(label, staker, 0, ctx.queries.current_checkpoint_timestamp(staker))
