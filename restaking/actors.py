"""
actors.py - Randomized Actor Factory

Creates stakers and operators with seeded random strategy subsets and
balances, funds them, and checks the funding landed.

Randomness comes only from the scenario's numpy Generator, so a seed
reproduces a run exactly. Actor names (staker_0, operator_1, ...) are for
display; identity is the address.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import math
from typing import TYPE_CHECKING, List, Sequence, Tuple

import numpy as np

from . import actions
from .assertions import (
    assert_snap_added_operator_shares, assert_snap_added_staker_deposit_shares,
    operator_deltas_for,
)
from .core import (
    Address, Strategy, ValidatorStatus, InvariantViolation,
    ETH_PER_VALIDATOR_GWEI, ROLE_OPERATOR, ROLE_STAKER, ROUNDING_TOLERANCE,
    gwei_to_wei,
)

if TYPE_CHECKING:
    from .scenario import Scenario


@dataclass
class Actor:
    """
    A participant in a scenario.

    Attributes:
        name: Display name (staker_<n> / operator_<n>)
        address: Ledger handle
        role: ROLE_STAKER or ROLE_OPERATOR
        validator_ids: Beacon validators whose credentials point at this actor's pod
    """
    name: str
    address: Address
    role: str
    validator_ids: List[int] = field(default_factory=list)

    @property
    def is_operator(self) -> bool:
        return self.role == ROLE_OPERATOR

    def pubkey_hashes(self, ctx: Scenario) -> List[str]:
        return ctx.beacon.get_pubkey_hashes(self.validator_ids)

    def unverified_validators(self, ctx: Scenario) -> List[int]:
        """Validators not yet restaked and still live on the consensus layer."""
        return [
            i for i in self.validator_ids
            if not ctx.beacon.validator(i).exited
            and ctx.queries.validator_status(self.address, ctx.beacon.validator(i).pubkey_hash)
            is ValidatorStatus.INACTIVE
        ]

    def __repr__(self) -> str:
        return f"Actor({self.name} {self.address[:10]} {self.role})"


def sample_nonempty_subset(rng: np.random.Generator, items: Sequence) -> list:
    """
    Draw a uniformly random non-empty subset, preserving item order.

    The subset size k is drawn with weight C(n, k), then k distinct indices
    are drawn without replacement; every one of the 2**n - 1 non-empty
    subsets is equally likely.
    """
    n = len(items)
    if n == 0:
        raise ValueError("Cannot sample a subset of an empty collection")
    sizes = np.arange(1, n + 1)
    weights = np.array([math.comb(n, int(k)) for k in sizes], dtype=float)
    k = int(rng.choice(sizes, p=weights / weights.sum()))
    indices = np.sort(rng.choice(n, size=k, replace=False))
    return [items[int(i)] for i in indices]


class ActorFactory:
    """
    Seeded factory for stakers and operators.

    Example:
        ctx = Scenario(HarnessConfig(seed=1))
        staker, strategies, balances = ctx.factory.new_random_staker()
        operator, _, _ = ctx.factory.new_random_operator()
    """

    def __init__(self, ctx: Scenario):
        self.ctx = ctx
        self.verbose = ctx.config.verbose
        self._counts = {ROLE_STAKER: 0, ROLE_OPERATOR: 0}

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def new_random_staker(self) -> Tuple[Actor, List[Strategy], List[int]]:
        """
        Create a staker holding a random non-empty subset of strategies.

        Returns:
            (actor, strategies, balances) with balances parallel to strategies:
            underlying tokens for fungible strategies, wei of validator
            balance for native stake
        """
        strategies = self.random_strategies()
        balances = self.random_balances(strategies)
        return self.new_staker(strategies, balances), strategies, balances

    def new_random_operator(self) -> Tuple[Actor, List[Strategy], List[int]]:
        """
        Create an operator, fund it randomly and deposit everything.

        Returns:
            (actor, strategies, balances) as for new_random_staker()
        """
        strategies = self.random_strategies()
        balances = self.random_balances(strategies)
        return self.new_operator(strategies, balances), strategies, balances

    def new_staker(self, strategies: Sequence[Strategy] = (),
                   balances: Sequence[int] = ()) -> Actor:
        """Create and fund a staker deterministically."""
        actor = self._new_actor(ROLE_STAKER)
        self._fund(actor, list(strategies), list(balances))
        return actor

    def new_operator(self, strategies: Sequence[Strategy] = (),
                     balances: Sequence[int] = ()) -> Actor:
        """
        Create an operator, fund it, register it and deposit everything it holds.

        Raises:
            InvariantViolation: If staker or operator shares did not rise by
                                the converted deposit amounts
        """
        ctx = self.ctx
        strategies, balances = list(strategies), list(balances)
        actor = self._new_actor(ROLE_OPERATOR)
        self._fund(actor, strategies, balances)
        actions.register_as_operator(ctx, actor)
        if strategies:
            expected = ctx.queries.underlying_to_shares(strategies, balances)
            operator_expected = operator_deltas_for(ctx, actor.address, strategies, expected)
            actions.deposit_into_strategies(ctx, actor, strategies, balances)
            assert_snap_added_staker_deposit_shares(
                ctx, actor.address, strategies, expected,
                "new_operator: staker shares should increase by deposit")
            assert_snap_added_operator_shares(
                ctx, actor.address, strategies, operator_expected,
                "new_operator: operator shares should increase by deposit")
        return actor

    # ========================================================================
    # RANDOM DRAWS
    # ========================================================================

    def random_strategies(self) -> List[Strategy]:
        return sample_nonempty_subset(self.ctx.rng, self.ctx.registry.strategies())

    def random_balances(self, strategies: Sequence[Strategy]) -> List[int]:
        """Draw a balance per strategy within the configured bands."""
        ctx, config = self.ctx, self.ctx.config
        balances = []
        for strategy in strategies:
            if strategy.is_native:
                count = int(ctx.rng.integers(1, config.max_validators, endpoint=True))
                balances.append(gwei_to_wei(count * ETH_PER_VALIDATOR_GWEI))
            else:
                whole = int(ctx.rng.integers(config.min_token_balance, config.max_token_balance,
                                             endpoint=True))
                balances.append(ctx.token_units(whole))
        return balances

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _new_actor(self, role: str) -> Actor:
        ctx = self.ctx
        index = self._counts[role]
        self._counts[role] = index + 1
        prefix = "operator" if role == ROLE_OPERATOR else "staker"
        address = "0x" + ctx.rng.bytes(20).hex()
        while ctx.ledger.is_registered(address):
            address = "0x" + ctx.rng.bytes(20).hex()
        ctx.ledger.register_actor(address)
        actor = Actor(name=f"{prefix}_{index}", address=address, role=role)
        if self.verbose:
            print(f"📝 Factory: {actor!r}")
        return actor

    def _fund(self, actor: Actor, strategies: List[Strategy], balances: List[int]) -> None:
        """Mint tokens and create validators, then check the actor holds exactly that."""
        if len(strategies) != len(balances):
            raise ValueError("strategies and balances length mismatch")
        ctx = self.ctx
        per_validator_wei = gwei_to_wei(ETH_PER_VALIDATOR_GWEI)
        for strategy, balance in zip(strategies, balances):
            if strategy.is_native:
                if balance <= 0 or balance % per_validator_wei:
                    raise ValueError(
                        f"Native balance must be a positive multiple of 32 ETH, got {balance}"
                    )
                actor.validator_ids.extend(
                    ctx.beacon.new_validators(actor.address, balance // per_validator_wei)
                )
            else:
                ctx.ledger.mint(actor.address, strategy.token, balance)

        for strategy, balance in zip(strategies, balances):
            if strategy.is_native:
                held = gwei_to_wei(ctx.beacon.total_balance_gwei(actor.validator_ids))
            else:
                held = ctx.queries.token_balances(actor.address, [strategy.token])[0]
            if abs(held - balance) > ROUNDING_TOLERANCE:
                raise InvariantViolation(
                    "new actor funded with the assigned balance", (actor.address, strategy),
                    balance, held, ROUNDING_TOLERANCE,
                )
