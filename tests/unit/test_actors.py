"""
test_actors.py - Unit tests for the randomized actor factory and scenario config

Tests:
- Subset sampler: non-empty, ordered, uniform, reproducible
- Random stakers/operators: bands, funding, deposits
- Seeded determinism
- HarnessConfig validation
"""

import pytest
from collections import Counter

import numpy as np

from restaking import (
    HarnessConfig, ValidatorStatus, ROLE_OPERATOR, ROLE_STAKER,
    GWEI_TO_WEI, sample_nonempty_subset,
)
from tests.conftest import new_scenario, validator_wei


class TestSubsetSampler:
    """Tests for sample_nonempty_subset."""

    def test_non_empty_ordered_subset(self):
        rng = np.random.default_rng(3)
        items = ["a", "b", "c", "d"]
        for _ in range(200):
            subset = sample_nonempty_subset(rng, items)
            assert subset
            assert subset == [x for x in items if x in subset]

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            sample_nonempty_subset(np.random.default_rng(0), [])

    def test_reproducible(self):
        items = list("abcde")
        a = sample_nonempty_subset(np.random.default_rng(11), items)
        b = sample_nonempty_subset(np.random.default_rng(11), items)
        assert a == b

    def test_uniform_over_non_empty_subsets(self):
        """Each of the 7 non-empty subsets of 3 items appears about equally often."""
        rng = np.random.default_rng(0)
        draws = 7000
        counts = Counter(tuple(sample_nonempty_subset(rng, [0, 1, 2])) for _ in range(draws))
        assert len(counts) == 7
        for count in counts.values():
            assert 800 < count < 1200


class TestRandomStaker:
    """Tests for new_random_staker."""

    def test_balances_within_band(self):
        ctx = new_scenario(seed=5, max_token_balance=20, max_validators=3)
        for _ in range(10):
            staker, strategies, balances = ctx.factory.new_random_staker()
            assert strategies
            for strategy, balance in zip(strategies, balances):
                if strategy.is_native:
                    assert balance % validator_wei(1) == 0
                    assert 1 <= balance // validator_wei(1) <= 3
                else:
                    assert ctx.token_units(1) <= balance <= ctx.token_units(20)

    def test_wallet_funded(self):
        ctx = new_scenario(seed=9)
        staker, strategies, balances = ctx.factory.new_random_staker()
        for strategy, balance in zip(strategies, balances):
            if strategy.is_native:
                held = ctx.beacon.total_balance_gwei(staker.validator_ids) * GWEI_TO_WEI
            else:
                held = ctx.queries.token_balances(staker.address, [strategy.token])[0]
            assert held == balance

    def test_validators_unverified(self, native_ctx):
        staker, _, balances = native_ctx.factory.new_random_staker()
        assert len(staker.validator_ids) == balances[0] // validator_wei(1)
        assert staker.unverified_validators(native_ctx) == staker.validator_ids
        for h in staker.pubkey_hashes(native_ctx):
            assert native_ctx.queries.validator_status(staker.address, h) is ValidatorStatus.INACTIVE

    def test_names_are_sequential(self, ctx):
        a = ctx.factory.new_staker()
        b = ctx.factory.new_staker()
        op = ctx.factory.new_operator()
        assert (a.name, b.name, op.name) == ("staker_0", "staker_1", "operator_0")
        assert a.role == ROLE_STAKER and op.role == ROLE_OPERATOR
        assert a.address != b.address

    def test_same_seed_same_actors(self):
        first = new_scenario(seed=21).factory.new_random_staker()
        second = new_scenario(seed=21).factory.new_random_staker()
        assert first[0].address == second[0].address
        assert first[1] == second[1]
        assert first[2] == second[2]

    def test_native_balance_must_be_whole_validators(self, native_ctx):
        native = native_ctx.registry.native_strategy
        with pytest.raises(ValueError):
            native_ctx.factory.new_staker([native], [validator_wei(1) + 1])


class TestRandomOperator:
    """Tests for new_random_operator."""

    def test_operator_deposits_everything(self):
        ctx = new_scenario(seed=13)
        operator, strategies, balances = ctx.factory.new_random_operator()
        assert operator.is_operator
        assert ctx.queries.is_operator(operator.address)
        assert ctx.queries.delegated_to(operator.address) == operator.address
        shares = ctx.queries.staker_shares(operator.address, strategies)
        assert ctx.queries.operator_shares(operator.address, strategies) == shares
        for strategy, balance, share in zip(strategies, balances, shares):
            assert share == balance

    def test_native_operator_restakes_validators(self, native_ctx):
        operator, _, balances = native_ctx.factory.new_random_operator()
        count = balances[0] // validator_wei(1)
        assert native_ctx.queries.active_validator_count(operator.address) == count
        assert native_ctx.tracker.model(operator.address).active_validator_count == count


class TestHarnessConfig:
    """Tests for HarnessConfig validation."""

    def test_defaults(self):
        config = HarnessConfig()
        assert config.seed == 0
        assert config.native_stake

    def test_needs_a_strategy(self):
        with pytest.raises(ValueError):
            HarnessConfig(tokens=(), native_stake=False)

    def test_invalid_band(self):
        with pytest.raises(ValueError):
            HarnessConfig(min_token_balance=5, max_token_balance=4)

    def test_invalid_validator_bound(self):
        with pytest.raises(ValueError):
            HarnessConfig(max_validators=0)

    def test_delay_applied_to_every_strategy(self):
        ctx = new_scenario(withdrawal_delay_blocks=3)
        for strategy in ctx.registry.strategies():
            assert ctx.ledger.withdrawal_delay_blocks(strategy) == 3
