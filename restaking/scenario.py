"""
scenario.py - Scenario Context and Harness Configuration

A Scenario bundles every collaborator a verification run needs and is
threaded explicitly through actions, queries and assertions. There is no
module-level ledger: two scenarios never share state.

Usage:
    from restaking import Scenario, HarnessConfig

    ctx = Scenario(HarnessConfig(seed=7))
    staker, strategies, balances = ctx.factory.new_random_staker()
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .beacon import BeaconChain
from .chain import Chain
from .checkpoints import CheckpointTracker
from .core import DEFAULT_WITHDRAWAL_DELAY_BLOCKS, LedgerView
from .ledger import RestakingLedger
from .registry import StrategyRegistry
from .snapshots import SnapshotStore
from .view import LedgerQueries


@dataclass(frozen=True)
class HarnessConfig:
    """
    Immutable configuration for one scenario.

    Attributes:
        seed: Seed for every random draw in the scenario (reproducible runs)
        tokens: Underlying tokens, one fungible strategy each
        native_stake: Whether the native-stake strategy is registered
        token_decimals: Decimals used to scale whole-token balances to wei
        min_token_balance: Lower bound of random token mints, in whole tokens
        max_token_balance: Upper bound of random token mints, in whole tokens
        max_validators: Upper bound of random validator counts per staker
        withdrawal_delay_blocks: Delay applied to every registered strategy
        verbose: Print one line per collaborator mutation
        retain_snapshots: Keep every pre-action snapshot instead of only the latest
    """
    seed: int = 0
    tokens: Tuple[str, ...] = ("STETH", "RETH", "CBETH")
    native_stake: bool = True
    token_decimals: int = 18
    min_token_balance: int = 1
    max_token_balance: int = 1_000
    max_validators: int = 5
    withdrawal_delay_blocks: int = DEFAULT_WITHDRAWAL_DELAY_BLOCKS
    verbose: bool = False
    retain_snapshots: bool = False

    def __post_init__(self):
        if not self.tokens and not self.native_stake:
            raise ValueError("A scenario needs at least one strategy")
        if self.min_token_balance <= 0 or self.max_token_balance < self.min_token_balance:
            raise ValueError(
                f"Invalid token band [{self.min_token_balance}, {self.max_token_balance}]"
            )
        if self.max_validators <= 0:
            raise ValueError(f"max_validators must be positive, got {self.max_validators}")
        if self.withdrawal_delay_blocks < 0:
            raise ValueError("withdrawal_delay_blocks must be non-negative")


class Scenario:
    """
    Explicit context for one deterministic verification run.

    Attributes:
        config: The HarnessConfig this scenario was built from
        chain: Block/time source and snapshot/revert collaborator
        registry: Strategies and tokens
        ledger: Ledger under test (mutation + LedgerView)
        beacon: Consensus-layer source
        store: Snapshot stack used by differential assertions
        queries: Read facade over the ledger's LedgerView
        tracker: Independent checkpoint/validator lifecycle model
        rng: Seeded numpy Generator; the only source of randomness
        factory: Randomized actor factory
    """

    def __init__(self, config: Optional[HarnessConfig] = None, view: Optional[LedgerView] = None):
        """
        Build a scenario.

        Args:
            config: Harness configuration (defaults to HarnessConfig())
            view: Alternate LedgerView for the query facade; defaults to the
                  scenario's own RestakingLedger
        """
        from .actors import ActorFactory

        self.config = config or HarnessConfig()
        self.chain = Chain()
        self.registry = StrategyRegistry()
        for token in self.config.tokens:
            self.registry.register_token(token)
        if self.config.native_stake:
            self.registry.enable_native_stake()

        self.ledger = RestakingLedger(self.chain, self.registry, verbose=self.config.verbose)
        self.beacon = BeaconChain(self.chain, self.ledger, verbose=self.config.verbose)
        for strategy in self.registry.strategies():
            self.ledger.set_withdrawal_delay(strategy, self.config.withdrawal_delay_blocks)

        self.store = SnapshotStore(self.chain)
        self.queries = LedgerQueries(view if view is not None else self.ledger)
        self.tracker = CheckpointTracker()
        self.rng = np.random.default_rng(self.config.seed)
        self.factory = ActorFactory(self)

    def token_units(self, whole_tokens: int) -> int:
        """Scale a whole-token amount to the smallest unit."""
        return whole_tokens * 10 ** self.config.token_decimals

    def __repr__(self) -> str:
        return f"Scenario(seed={self.config.seed}, {self.chain!r}, {self.store!r})"
