"""
registry.py - Strategy and Token Registry

Enumerates the strategies a scenario knows about, their underlying tokens,
and the native-stake pseudo-strategy. The registry is configuration: it is
shared by the ledger and the harness and is never rolled back by snapshots.
"""

from __future__ import annotations
from typing import Dict, List

from .core import (
    BEACON_CHAIN_STRATEGY, NATIVE_ETH, Strategy, StrategyNotRegistered,
    token_strategy,
)


class StrategyRegistry:
    """
    Ordered set of strategies available to a scenario.

    Example:
        registry = StrategyRegistry()
        registry.register_token("STETH")
        registry.register_token("RETH")
        registry.enable_native_stake()
        registry.strategies()
        # [Strategy(strategy_STETH:STETH), Strategy(strategy_RETH:RETH), Strategy(NATIVE_STAKE)]
    """

    def __init__(self):
        self._strategies: List[Strategy] = []
        self._by_token: Dict[str, Strategy] = {}

    def register_token(self, token: str) -> Strategy:
        """Create and register the fungible strategy for a token."""
        if not token or not token.strip():
            raise ValueError("token cannot be empty")
        if token == NATIVE_ETH:
            raise ValueError(f"{NATIVE_ETH} is reserved for native stake")
        if token in self._by_token:
            raise ValueError(f"Token {token} already registered")
        strategy = token_strategy(token)
        self._strategies.append(strategy)
        self._by_token[token] = strategy
        return strategy

    def enable_native_stake(self) -> Strategy:
        """Add the native-stake sentinel to the registry (idempotent)."""
        if BEACON_CHAIN_STRATEGY not in self._strategies:
            self._strategies.append(BEACON_CHAIN_STRATEGY)
        return BEACON_CHAIN_STRATEGY

    @property
    def native_strategy(self) -> Strategy:
        return BEACON_CHAIN_STRATEGY

    @property
    def has_native_stake(self) -> bool:
        return BEACON_CHAIN_STRATEGY in self._strategies

    def strategies(self) -> List[Strategy]:
        """All registered strategies in registration order."""
        return list(self._strategies)

    def token_strategies(self) -> List[Strategy]:
        """Registered fungible strategies only."""
        return [s for s in self._strategies if not s.is_native]

    def tokens(self) -> List[str]:
        """Underlying token symbols of the fungible strategies."""
        return [s.token for s in self.token_strategies()]

    def is_registered(self, strategy: Strategy) -> bool:
        return strategy in self._strategies

    def require(self, strategy: Strategy) -> Strategy:
        """Return the strategy if registered, raise StrategyNotRegistered otherwise."""
        if strategy not in self._strategies:
            raise StrategyNotRegistered(f"Strategy {strategy!r} not registered")
        return strategy

    def strategy_for_token(self, token: str) -> Strategy:
        if token not in self._by_token:
            raise StrategyNotRegistered(f"No strategy for token {token}")
        return self._by_token[token]

    def underlying_token(self, strategy: Strategy) -> str:
        """The wallet symbol an actor holds for this strategy (NATIVE_ETH for native stake)."""
        self.require(strategy)
        if strategy.is_native:
            return NATIVE_ETH
        return strategy.token

    def underlying_tokens(self, strategies: List[Strategy]) -> List[str]:
        return [self.underlying_token(s) for s in strategies]

    def __len__(self) -> int:
        return len(self._strategies)

    def __repr__(self) -> str:
        return f"StrategyRegistry({self._strategies!r})"
