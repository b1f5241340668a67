"""
test_assertions.py - Unit tests for the differential assertion engine

Tests:
- delta_check / delta_check_many: pass, fail, tolerance, state restored
- Share, balance, count and checkpoint variants
- Native operator-share delta prediction
- Non-snapshot assertions
"""

import pytest

from restaking import (
    actions, InvariantViolation, SnapshotError, DomainError, InvalidTransition,
    ValidatorStatus, Scenario, HarnessConfig, BEACON_CHAIN_STRATEGY,
)
from restaking import assertions as A
from tests.conftest import new_scenario, validator_wei
from tests.fake_view import FakeView


def deposited_staker(ctx, whole=10):
    steth = ctx.registry.strategy_for_token("STETH")
    staker = ctx.factory.new_staker([steth], [ctx.token_units(whole)])
    actions.deposit_into_strategies(ctx, staker, [steth], [ctx.token_units(whole)])
    return staker, steth


class TestDeltaCheck:
    """Tests for the scalar and vector primitives."""

    def test_passes_and_returns_both_values(self, token_ctx):
        staker, steth = deposited_staker(token_ctx)
        prev, cur = A.delta_check(
            token_ctx, "shares", staker.address,
            lambda: token_ctx.queries.staker_shares(staker.address, [steth])[0],
            token_ctx.token_units(10))
        assert (prev, cur) == (0, token_ctx.token_units(10))

    def test_failure_carries_details(self, token_ctx):
        staker, steth = deposited_staker(token_ctx)
        with pytest.raises(InvariantViolation) as info:
            A.delta_check(
                token_ctx, "deposit should add shares", staker.address,
                lambda: token_ctx.queries.staker_shares(staker.address, [steth])[0], 5)
        e = info.value
        assert e.label == "deposit should add shares"
        assert e.expected == 5
        assert e.actual == token_ctx.token_units(10)

    def test_tolerance_absorbs_one_unit(self, token_ctx):
        staker, steth = deposited_staker(token_ctx)
        added = token_ctx.token_units(10)
        A.assert_snap_added_staker_deposit_shares(
            token_ctx, staker.address, [steth], [added - 1], "within one")
        with pytest.raises(InvariantViolation):
            A.assert_snap_added_staker_deposit_shares(
                token_ctx, staker.address, [steth], [added - 2], "two off")

    def test_state_restored_after_failure(self, token_ctx):
        staker, steth = deposited_staker(token_ctx)
        with pytest.raises(InvariantViolation):
            A.assert_snap_unchanged_staker_deposit_shares(token_ctx, staker.address, "unchanged")
        assert not token_ctx.store.in_past
        assert token_ctx.queries.staker_shares(staker.address, [steth]) == [token_ctx.token_units(10)]

    def test_requires_snapshot(self, token_ctx):
        steth = token_ctx.registry.strategy_for_token("STETH")
        staker = token_ctx.factory.new_staker([steth], [1])
        with pytest.raises(SnapshotError):
            A.assert_snap_unchanged_staker_deposit_shares(token_ctx, staker.address, "no snapshot")

    def test_many_length_mismatch(self, token_ctx):
        deposited_staker(token_ctx)
        with pytest.raises(ValueError):
            A.delta_check_many(token_ctx, "x", ["a", "b"], lambda: [0, 0], [0])


class TestShareAssertions:
    """Tests for staker, operator and total share variants."""

    def test_deposit_variants(self, token_ctx):
        staker, steth = deposited_staker(token_ctx)
        added = [token_ctx.token_units(10)]
        A.assert_snap_added_staker_deposit_shares(token_ctx, staker.address, [steth], added, "staker")
        A.assert_snap_added_total_shares(token_ctx, [steth], added, "total")
        A.assert_snap_removed_token_balances(token_ctx, staker.address, ["STETH"], added, "wallet")

    def test_unrelated_staker_unchanged(self, token_ctx):
        steth = token_ctx.registry.strategy_for_token("STETH")
        bystander = token_ctx.factory.new_staker([steth], [token_ctx.token_units(1)])
        deposited_staker(token_ctx)
        A.assert_snap_unchanged_staker_deposit_shares(token_ctx, bystander.address, "bystander")
        A.assert_snap_unchanged_token_balances(token_ctx, bystander.address, "bystander wallet")

    def test_operator_shares_follow_delegation(self, token_ctx):
        operator = token_ctx.factory.new_operator()
        staker, steth = deposited_staker(token_ctx)
        actions.delegate_to(token_ctx, staker, operator)
        A.assert_snap_added_operator_shares(
            token_ctx, operator.address, [steth], [token_ctx.token_units(10)], "delegate")
        A.assert_snap_unchanged_staker_deposit_shares(token_ctx, staker.address, "delegate")
        A.assert_snap_delegation(token_ctx, staker.address, None, operator.address, "delegate")
        A.assert_operator_shares_match_delegators(
            token_ctx, operator.address, [operator.address, staker.address],
            token_ctx.registry.strategies(), "sum of delegators")

    def test_operator_delta_off_by_one_fails(self, token_ctx):
        operator = token_ctx.factory.new_operator()
        staker, steth = deposited_staker(token_ctx)
        actions.delegate_to(token_ctx, staker, operator)
        amount = 1000
        actions.queue_withdrawal(token_ctx, staker, [steth], [amount])
        with pytest.raises(InvariantViolation):
            A.assert_snap_delta_operator_shares(
                token_ctx, operator.address, [steth], [-(amount - 1)], "off by one")
        A.assert_snap_delta_operator_shares(token_ctx, operator.address, [steth], [-amount], "exact")

    def test_operator_sum_drift_beyond_one_unit_fails(self, token_ctx):
        operator = token_ctx.factory.new_operator()
        stakers = []
        for _ in range(3):
            staker, steth = deposited_staker(token_ctx)
            actions.delegate_to(token_ctx, staker, operator)
            stakers.append(staker.address)
        everyone = [operator.address] + stakers
        shares = token_ctx.ledger.operator_share_map[operator.address]

        shares[steth] += 1
        A.assert_operator_shares_match_delegators(token_ctx, operator.address, everyone, [steth], "1 unit")

        shares[steth] += 1
        with pytest.raises(InvariantViolation) as exc:
            A.assert_operator_shares_match_delegators(
                token_ctx, operator.address, everyone, [steth], "2 units")
        assert exc.value.actual - exc.value.expected == 2

    def test_unchanged_shares_catch_one_unit_drift(self, token_ctx):
        operator = token_ctx.factory.new_operator()
        staker, steth = deposited_staker(token_ctx)
        actions.delegate_to(token_ctx, staker, operator)
        token_ctx.store.take()
        token_ctx.ledger.deposit_shares[staker.address][steth] += 1
        token_ctx.ledger.operator_share_map[operator.address][steth] += 1
        with pytest.raises(InvariantViolation):
            A.assert_snap_unchanged_staker_deposit_shares(token_ctx, staker.address, "staker drift")
        with pytest.raises(InvariantViolation):
            A.assert_snap_unchanged_operator_shares(token_ctx, operator.address, "operator drift")

    def test_removed_variants(self, token_ctx):
        staker, steth = deposited_staker(token_ctx)
        amount = token_ctx.token_units(4)
        actions.queue_withdrawal(token_ctx, staker, [steth], [amount])
        A.assert_snap_removed_staker_deposit_shares(token_ctx, staker.address, [steth], [amount], "q")
        A.assert_snap_delta_staker_shares(token_ctx, staker.address, [steth], [-amount], "q")
        A.assert_snap_unchanged_total_shares(token_ctx, "queue does not burn shares")
        A.assert_snap_added_queued_withdrawal(token_ctx, staker.address, "q")

    def test_counts_are_exact(self, token_ctx):
        staker, steth = deposited_staker(token_ctx)
        actions.queue_withdrawal(token_ctx, staker, [steth], [1])
        with pytest.raises(InvariantViolation):
            A.assert_snap_unchanged_queued_withdrawals(token_ctx, staker.address, "count")

    def test_unsigned_read_of_deficit(self):
        view = FakeView(shares={("bob", BEACON_CHAIN_STRATEGY): -5})
        ctx = Scenario(HarnessConfig(tokens=(), verbose=False), view=view)
        ctx.store.take()
        with pytest.raises(DomainError):
            A.assert_snap_unchanged_staker_deposit_shares(ctx, "bob", "deficit")


class TestNativeOperatorDelta:
    """Operator shares see only the positive part of native-stake shares."""

    @pytest.mark.parametrize("before,delta,expected", [
        (5, -8, -5),
        (-3, 10, 7),
        (-3, 2, 0),
        (0, 4, 4),
        (7, 3, 3),
        (7, -2, -2),
    ])
    def test_pure_rule(self, before, delta, expected):
        assert A.native_delegatable_delta(before, delta) == expected

    def test_reads_current_shares(self):
        view = FakeView(shares={("alice", BEACON_CHAIN_STRATEGY): 5})
        ctx = Scenario(HarnessConfig(tokens=(), verbose=False), view=view)
        assert A.calc_native_operator_share_delta(ctx, "alice", -8) == -5

    def test_operator_deltas_for(self):
        ctx = new_scenario()
        steth = ctx.registry.strategy_for_token("STETH")
        staker = ctx.factory.new_staker()
        assert A.operator_deltas_for(
            ctx, staker.address, [steth, BEACON_CHAIN_STRATEGY], [3, -4]) == [3, 0]


class TestCheckpointAssertions:
    """Tests for checkpoint and validator variants."""

    def test_start_and_complete(self, restaked_staker):
        ctx, staker = restaked_staker
        hashes = staker.pubkey_hashes(ctx)
        A.assert_snap_added_active_validator_count(ctx, staker.address, 3, "restake")
        A.assert_snap_validator_status(
            ctx, staker.address, hashes, ValidatorStatus.INACTIVE, ValidatorStatus.ACTIVE, "restake")

        actions.start_checkpoint(ctx, staker)
        A.assert_snap_created_checkpoint(ctx, staker.address, "start")
        A.assert_checkpoint_proofs_match_validators(ctx, staker.address, "start")
        A.assert_checkpoint_matches_model(ctx, staker.address, "start")

        actions.complete_checkpoint(ctx, staker)
        A.assert_snap_removed_checkpoint(ctx, staker.address, "complete")
        A.assert_snap_updated_last_checkpoint(ctx, staker.address, "complete")
        A.assert_snap_unchanged_withdrawable_gwei(ctx, staker.address, "complete")
        A.assert_snap_unchanged_balance_exited_gwei(ctx, staker.address, "complete")
        A.assert_snap_unchanged_active_validator_count(ctx, staker.address, "complete")
        A.assert_no_active_checkpoint(ctx, staker.address, "complete")
        A.assert_checkpoint_matches_model(ctx, staker.address, "complete")

    def test_created_checkpoint_fails_when_unchanged(self, restaked_staker):
        ctx, staker = restaked_staker
        actions.advance_epoch_no_rewards(ctx)
        with pytest.raises(InvariantViolation):
            A.assert_snap_created_checkpoint(ctx, staker.address, "nothing started")
        A.assert_snap_unchanged_checkpoint(ctx, staker.address, "nothing started")
        A.assert_snap_unchanged_last_checkpoint(ctx, staker.address, "nothing started")

    def test_backward_status_rejected(self, restaked_staker):
        ctx, staker = restaked_staker
        with pytest.raises(InvalidTransition):
            A.assert_snap_validator_status(
                ctx, staker.address, staker.pubkey_hashes(ctx),
                ValidatorStatus.ACTIVE, ValidatorStatus.INACTIVE, "backward")

    def test_proofs_match_requires_active_checkpoint(self, restaked_staker):
        ctx, staker = restaked_staker
        with pytest.raises(InvariantViolation):
            A.assert_checkpoint_proofs_match_validators(ctx, staker.address, "none active")

    def test_has_no_delegatable_shares(self, restaked_staker):
        ctx, staker = restaked_staker
        with pytest.raises(InvariantViolation):
            A.assert_has_no_delegatable_shares(ctx, staker.address, "holds native")
        native = ctx.registry.native_strategy
        actions.queue_withdrawal(ctx, staker, [native], [validator_wei(3)])
        A.assert_has_no_delegatable_shares(ctx, staker.address, "all queued")
