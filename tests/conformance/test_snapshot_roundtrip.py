"""
Snapshot Round-Trip Conformance Tests

INVARIANT:

    state_0 = observe()
    id = restore_last(); observe(); restore_to(id)
    observe() = state_0

A round trip to the past never leaves a trace on the present, and the
past it visits is exactly the state captured by the last take().
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from restaking import actions
from tests.conftest import new_scenario, ledger_state

steps = st.lists(st.sampled_from(["deposit", "queue", "donate", "epoch", "roll"]),
                 min_size=1, max_size=8)


def prepare_step(ctx, step, stakers):
    """
    Do any unsnapshotted setup for a step and return the action to run.

    Every returned action takes a snapshot before mutating.
    """
    if step == "deposit":
        staker, strategies, balances = ctx.factory.new_random_staker()
        stakers.append(staker)
        return lambda: actions.deposit_into_strategies(ctx, staker, strategies, balances)
    if step == "queue" and stakers:
        staker = stakers[-1]
        if any(s > 0 for s in ctx.queries.staker_shares(staker.address, ctx.registry.strategies())):
            return lambda: actions.queue_withdrawal_of_all(ctx, staker)
        return lambda: actions.advance_epoch_no_rewards(ctx)
    if step == "donate":
        strategy = ctx.registry.token_strategies()[0]
        return lambda: actions.donate(ctx, strategy, 10 ** 15)
    if step == "roll":
        def roll():
            ctx.store.take()
            ctx.chain.advance_blocks(3)
        return roll
    return lambda: actions.advance_epoch(ctx)


class TestRoundTrip:
    """restore_last / restore_to leave the present intact."""

    @given(st.integers(min_value=0, max_value=10 ** 6), steps)
    @settings(max_examples=25, deadline=None)
    def test_present_unchanged_after_round_trip(self, seed, plan):
        ctx = new_scenario(seed=seed)
        stakers = []
        before_last = None
        for step in plan:
            action = prepare_step(ctx, step, stakers)
            before_last = (ledger_state(ctx.ledger), ctx.chain.block_number, ctx.chain.timestamp)
            action()

        present = (ledger_state(ctx.ledger), ctx.chain.block_number, ctx.chain.timestamp)
        depth = ctx.store.depth

        present_id = ctx.store.restore_last()
        past = (ledger_state(ctx.ledger), ctx.chain.block_number, ctx.chain.timestamp)
        ctx.store.restore_to(present_id)

        assert past == before_last
        assert (ledger_state(ctx.ledger), ctx.chain.block_number, ctx.chain.timestamp) == present
        assert ctx.store.depth == depth
        assert not ctx.store.in_past

    @given(st.integers(min_value=0, max_value=10 ** 6))
    @settings(max_examples=20, deadline=None)
    def test_repeated_reads_of_the_past_agree(self, seed):
        ctx = new_scenario(seed=seed)
        staker, strategies, balances = ctx.factory.new_random_staker()
        actions.deposit_into_strategies(ctx, staker, strategies, balances)

        with ctx.store.previous():
            first = ledger_state(ctx.ledger)
        with ctx.store.previous():
            second = ledger_state(ctx.ledger)
        assert first == second
        assert first != ledger_state(ctx.ledger)

    @given(st.integers(min_value=0, max_value=10 ** 6))
    @settings(max_examples=20, deadline=None)
    def test_objects_keep_identity(self, seed):
        ctx = new_scenario(seed=seed)
        ledger, beacon, registry = ctx.ledger, ctx.beacon, ctx.registry
        staker, strategies, balances = ctx.factory.new_random_staker()
        actions.deposit_into_strategies(ctx, staker, strategies, balances)
        with ctx.store.previous():
            assert ctx.ledger is ledger
            assert ctx.ledger.registry is registry
            assert ctx.beacon.execution_layer is ledger
        assert ctx.beacon is beacon
