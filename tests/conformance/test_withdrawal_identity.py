"""
Withdrawal Identity and Delay Conformance Tests

INVARIANTS:

    root(w) = root(w')           if every field of w and w' is equal
    root(w) ≠ root(w')           if w and w' differ only in nonce

    complete(w) fails            at block start + delay - 1
    complete(w) succeeds         at block start + delay
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from restaking import (
    actions, Withdrawal, WithdrawalDelayNotElapsed, token_strategy, compute_identity,
)
from restaking import assertions as A
from tests.conftest import new_scenario

STRATEGIES = [token_strategy(t) for t in ("STETH", "RETH", "CBETH")]

addresses = st.text(alphabet="0123456789abcdef", min_size=4, max_size=8).map(lambda s: "0x" + s)


@st.composite
def withdrawal_fields(draw):
    strategies = draw(st.lists(st.sampled_from(STRATEGIES), min_size=1, max_size=3, unique=True))
    shares = draw(st.lists(st.integers(min_value=1, max_value=10 ** 24),
                           min_size=len(strategies), max_size=len(strategies)))
    return dict(
        staker=draw(addresses),
        delegated_to=draw(st.none() | addresses),
        withdrawer=draw(addresses),
        nonce=draw(st.integers(min_value=0, max_value=10 ** 6)),
        start_block=draw(st.integers(min_value=0, max_value=10 ** 9)),
        strategies=tuple(strategies),
        shares=tuple(shares),
    )


class TestWithdrawalRoot:
    """Roots are pure functions of withdrawal content."""

    @given(withdrawal_fields())
    @settings(max_examples=100)
    def test_equal_fields_equal_root(self, fields):
        a = Withdrawal(**fields)
        b = Withdrawal(**fields)
        assert a.root == b.root
        assert compute_identity(a) == a.root

    @given(withdrawal_fields(), st.integers(min_value=1, max_value=1000))
    @settings(max_examples=100)
    def test_nonce_distinguishes(self, fields, bump):
        a = Withdrawal(**fields)
        b = Withdrawal(**{**fields, "nonce": fields["nonce"] + bump})
        assert a.root != b.root


class TestWithdrawalDelay:
    """Completion is gated on the per-strategy delay, to the block."""

    @given(st.integers(min_value=1, max_value=30), st.integers(min_value=0, max_value=10 ** 6))
    @settings(max_examples=20, deadline=None)
    def test_completable_exactly_at_delay(self, delay, seed):
        ctx = new_scenario(seed=seed, native_stake=False, withdrawal_delay_blocks=delay)
        staker, strategies, balances = ctx.factory.new_random_staker()
        shares = actions.deposit_into_strategies(ctx, staker, strategies, balances)
        withdrawal = actions.queue_withdrawal(ctx, staker, strategies, shares)

        ctx.chain.advance_blocks(delay - 1)
        with pytest.raises(WithdrawalDelayNotElapsed):
            actions.complete_withdrawal_as_tokens(ctx, staker, withdrawal)
        A.assert_withdrawals_pending(ctx, [withdrawal], "still pending after early attempt")

        ctx.chain.advance_blocks(1)
        actions.complete_withdrawal_as_tokens(ctx, staker, withdrawal)
        A.assert_snap_completed_withdrawals(ctx, [withdrawal], "completed at delay")
        A.assert_snap_added_token_balances(
            ctx, staker.address, ctx.registry.underlying_tokens(strategies), balances,
            "tokens returned")
        A.assert_snap_removed_total_shares(ctx, strategies, shares, "pool shares burned")

    @given(st.integers(min_value=0, max_value=10 ** 6))
    @settings(max_examples=20, deadline=None)
    def test_nonces_distinct_within_a_staker(self, seed):
        ctx = new_scenario(seed=seed, native_stake=False)
        staker, strategies, balances = ctx.factory.new_random_staker()
        actions.deposit_into_strategies(ctx, staker, strategies, balances)
        strategy = strategies[0]
        first = actions.queue_withdrawal(ctx, staker, [strategy], [1])
        second = actions.queue_withdrawal(ctx, staker, [strategy], [1])
        assert (first.nonce, second.nonce) == (0, 1)
        assert first.root != second.root
        A.assert_withdrawals_pending(ctx, [first, second], "both pending")
