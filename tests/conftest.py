"""
conftest.py - Shared pytest fixtures for restaking harness tests

Provides common fixtures used across unit, conformance and functional tests:
- Bare collaborators (chain, registry, ledger, beacon)
- Scenarios (default, fungible-only, native-only)
- Funded actors
- Comparison utilities
"""

import pytest
from typing import Dict, List, Tuple

from restaking import (
    Chain, StrategyRegistry, RestakingLedger, BeaconChain, SnapshotStore,
    Scenario, HarnessConfig, Strategy, Actor,
    GWEI_TO_WEI, ETH_PER_VALIDATOR_GWEI, ETH_TO_WEI,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def new_scenario(seed: int = 0, **overrides) -> Scenario:
    """Create a quiet scenario for tests."""
    overrides.setdefault("verbose", False)
    return Scenario(HarnessConfig(seed=seed, **overrides))


def validator_wei(count: int) -> int:
    """Native balance of count fresh validators, in wei."""
    return count * ETH_PER_VALIDATOR_GWEI * GWEI_TO_WEI


def ledger_state(ledger: RestakingLedger) -> Dict[str, object]:
    """Accounting state of a ledger, for equality comparisons (event log excluded)."""
    return {
        "wallets": {a: dict(w) for a, w in ledger.wallets.items()},
        "deposit_shares": {a: dict(s) for a, s in ledger.deposit_shares.items()},
        "pod_owner_shares": dict(ledger.pod_owner_shares),
        "operator_shares": {o: dict(s) for o, s in ledger.operator_share_map.items()},
        "totals": dict(ledger.strategy_total_shares),
        "strategy_balances": dict(ledger.strategy_balances),
        "delegations": dict(ledger.delegations),
        "pending": set(ledger.pending_withdrawals),
        "queued": dict(ledger.withdrawals_queued),
        "pods": {
            o: (p.balance_wei, p.withdrawable_restaked_gwei, p.active_validator_count,
                p.checkpoint, p.last_checkpoint_timestamp, dict(p.balance_exited_gwei),
                {h: (v.status, v.restaked_balance_gwei) for h, v in p.validators.items()})
            for o, p in ledger.pods.items()
        },
    }


def fungible(ctx: Scenario) -> List[Strategy]:
    return ctx.registry.token_strategies()


# =============================================================================
# COLLABORATOR FIXTURES
# =============================================================================

@pytest.fixture
def chain():
    """Fresh chain at block 1."""
    return Chain()


@pytest.fixture
def registry():
    """Registry with STETH, RETH and native stake."""
    registry = StrategyRegistry()
    registry.register_token("STETH")
    registry.register_token("RETH")
    registry.enable_native_stake()
    return registry


@pytest.fixture
def ledger(chain, registry):
    """Quiet ledger with alice, bob and an operator registered."""
    ledger = RestakingLedger(chain, registry, verbose=False)
    ledger.register_actor("alice")
    ledger.register_actor("bob")
    ledger.register_actor("operator")
    return ledger


@pytest.fixture
def beacon(chain, ledger):
    return BeaconChain(chain, ledger, verbose=False)


@pytest.fixture
def store(chain):
    return SnapshotStore(chain)


@pytest.fixture
def steth(registry):
    return registry.strategy_for_token("STETH")


@pytest.fixture
def reth(registry):
    return registry.strategy_for_token("RETH")


@pytest.fixture
def native(registry):
    return registry.native_strategy


@pytest.fixture
def funded_ledger(ledger):
    """Ledger where alice and bob each hold 100 STETH and 50 RETH."""
    for actor in ("alice", "bob"):
        ledger.mint(actor, "STETH", 100 * ETH_TO_WEI)
        ledger.mint(actor, "RETH", 50 * ETH_TO_WEI)
    return ledger


# =============================================================================
# SCENARIO FIXTURES
# =============================================================================

@pytest.fixture
def ctx():
    """Default scenario: three tokens plus native stake, seed 0."""
    return new_scenario()


@pytest.fixture
def token_ctx():
    """Scenario with fungible strategies only."""
    return new_scenario(native_stake=False)


@pytest.fixture
def native_ctx():
    """Scenario with the native-stake strategy only."""
    return new_scenario(tokens=())


@pytest.fixture
def restaked_staker(native_ctx) -> Tuple[Scenario, Actor]:
    """Native-only scenario with a staker whose 3 validators are restaked."""
    from restaking import actions

    ctx = native_ctx
    native = ctx.registry.native_strategy
    staker = ctx.factory.new_staker([native], [validator_wei(3)])
    actions.deposit_into_strategies(ctx, staker, [native], [validator_wei(3)])
    return ctx, staker
