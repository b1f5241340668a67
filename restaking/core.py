"""
Core types and pure functions for the restaking verification harness.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only access to the ledger under test
2. Immutable data structures: Strategy, CheckpointRecord
3. Exceptions: harness failures (HarnessError) and collaborator rejections (LedgerError)
4. Constants: unit conversions, share-price offsets, block timing, tolerances
5. Canonical content hashing for withdrawal roots and validator pubkeys

All quantities are Python ints denominated in the smallest unit (wei for
token and native-stake shares, gwei where a name says so). Nothing here
mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import hashlib
from typing import Any, Dict, Optional, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

GWEI_TO_WEI = 10 ** 9
ETH_TO_WEI = 10 ** 18

# Every validator created by the consensus source starts at 32 ETH.
ETH_PER_VALIDATOR_GWEI = 32 * 10 ** 9

# Virtual offsets applied to fungible strategy share math. They pin the
# share price at 1:1 for an empty strategy and bound inflation attacks.
SHARES_OFFSET = 10 ** 3
BALANCE_OFFSET = 10 ** 3

SECONDS_PER_BLOCK = 12
SLOTS_PER_EPOCH = 32
SECONDS_PER_EPOCH = SECONDS_PER_BLOCK * SLOTS_PER_EPOCH

# Per-epoch consensus reward credited to every live validator.
CONSENSUS_REWARD_GWEI = 10 ** 6
# Amount removed from a validator's balance when it is slashed.
SLASHING_PENALTY_GWEI = 10 ** 9

DEFAULT_WITHDRAWAL_DELAY_BLOCKS = 10

# Share/balance comparisons absorb one unit of integer-division truncation.
ROUNDING_TOLERANCE = 1
EXACT = 0

# Wallet symbol for an actor's native (execution layer) ETH balance.
NATIVE_ETH = "ETH"

# Actor roles (strings, not enum, matching the unit-type constants idiom).
ROLE_STAKER = "STAKER"
ROLE_OPERATOR = "OPERATOR"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Address-like handle for an actor or an operator.
Address = str

# Hex digest used for withdrawal roots and validator pubkey hashes.
Hash = str

# Mapping from token symbol to a wei-denominated amount.
BalanceMap = Dict[str, int]


# ============================================================================
# ENUMS
# ============================================================================

class StrategyKind(Enum):
    """
    Tag for the Strategy variant.

    FUNGIBLE: pooled strategy backed by an ERC20-like token, share price varies.
    NATIVE_STAKE: per-actor, signed-share strategy backed by validator balances.
    """
    FUNGIBLE = "fungible"
    NATIVE_STAKE = "native_stake"


class ValidatorStatus(Enum):
    """
    Lifecycle of a validator from the ledger's point of view.

    Transitions move forward only: INACTIVE -> ACTIVE -> WITHDRAWN.
    """
    INACTIVE = 0
    ACTIVE = 1
    WITHDRAWN = 2


# ============================================================================
# EXCEPTIONS
# ============================================================================

class HarnessError(Exception):
    """Base exception for failures detected by the verification harness itself."""
    pass


class InvariantViolation(HarnessError, AssertionError):
    """
    Raised when a checked quantity differs from its predicted value beyond tolerance.

    Attributes:
        label: Human-readable assertion label supplied by the caller
        subject: Identity of what was checked (actor, strategy, root, ...)
        expected: Predicted value
        actual: Observed value
        tolerance: Allowed absolute difference
    """

    def __init__(self, label: str, subject: Any = None, expected: Any = None,
                 actual: Any = None, tolerance: int = EXACT):
        self.label = label
        self.subject = subject
        self.expected = expected
        self.actual = actual
        self.tolerance = tolerance
        super().__init__(
            f"{label}: subject={subject!r} expected={expected!r} actual={actual!r} "
            f"tolerance={tolerance}"
        )


class DomainError(HarnessError):
    """Raised when a value violates a domain precondition (e.g. negative shares read as unsigned)."""
    pass


class SnapshotError(HarnessError):
    """Raised on snapshot misuse: unknown, consumed, or out-of-order snapshot ids."""
    pass


class InvalidTransition(HarnessError):
    """Raised when a validator or checkpoint transition is not allowed by the lifecycle model."""
    pass


class LedgerError(Exception):
    """Base exception for all rejections raised by the ledger collaborator."""
    pass


class StrategyNotRegistered(LedgerError):
    """Raised when an operation names a strategy unknown to the ledger."""
    pass


class ActorNotRegistered(LedgerError):
    """Raised when an operation names an actor unknown to the ledger."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a token transfer exceeds the holder's balance."""
    pass


class InsufficientShares(LedgerError):
    """Raised when a share removal exceeds the holder's shares."""
    pass


class DelegationError(LedgerError):
    """Raised on invalid operator registration, delegation or undelegation."""
    pass


class WithdrawalNotFound(LedgerError):
    """Raised when completing a withdrawal whose root is not pending."""
    pass


class WithdrawalDelayNotElapsed(LedgerError):
    """Raised when completing a withdrawal before its delay window has passed."""
    pass


class CheckpointError(LedgerError):
    """Raised when a checkpoint cannot be started or is not active."""
    pass


class ProofRejected(LedgerError):
    """Raised when the ledger refuses a credential or balance proof."""
    pass


# ============================================================================
# STRATEGY
# ============================================================================

@dataclass(frozen=True, slots=True)
class Strategy:
    """
    Tagged strategy identifier.

    Attributes:
        kind: FUNGIBLE or NATIVE_STAKE
        address: Unique strategy handle
        token: Underlying token symbol (None for the native-stake sentinel)
    """
    kind: StrategyKind
    address: str
    token: Optional[str] = None

    def __post_init__(self):
        if not self.address or not self.address.strip():
            raise ValueError("Strategy address cannot be empty")
        if self.kind is StrategyKind.FUNGIBLE and not self.token:
            raise ValueError(f"Fungible strategy {self.address} requires an underlying token")
        if self.kind is StrategyKind.NATIVE_STAKE and self.token is not None:
            raise ValueError("Native-stake strategy has no underlying token")

    @property
    def is_native(self) -> bool:
        return self.kind is StrategyKind.NATIVE_STAKE

    def __repr__(self) -> str:
        if self.is_native:
            return "Strategy(NATIVE_STAKE)"
        return f"Strategy({self.address}:{self.token})"


# The single native-stake pseudo-strategy. It has no pooled share price and
# is skipped by every total-shares aggregation.
BEACON_CHAIN_STRATEGY = Strategy(StrategyKind.NATIVE_STAKE, "beaconChainETH")


def token_strategy(token: str) -> Strategy:
    """Create the fungible strategy for an underlying token."""
    return Strategy(StrategyKind.FUNGIBLE, f"strategy_{token}", token)


# ============================================================================
# CHECKPOINT RECORD
# ============================================================================

@dataclass(frozen=True, slots=True)
class CheckpointRecord:
    """
    Immutable view of an actor's current checkpoint.

    A timestamp of 0 means no checkpoint is active; the other fields are then 0.

    Attributes:
        timestamp: When the checkpoint was started
        pod_balance_gwei: Pod execution-layer balance captured at start
        proofs_remaining: Balance proofs still required to finalize
        balance_deltas_gwei: Sum of proven beacon balance changes so far
        prev_beacon_balance_gwei: Sum of active validator balances at start
    """
    timestamp: int = 0
    pod_balance_gwei: int = 0
    proofs_remaining: int = 0
    balance_deltas_gwei: int = 0
    prev_beacon_balance_gwei: int = 0

    @property
    def is_active(self) -> bool:
        return self.timestamp != 0


NO_CHECKPOINT = CheckpointRecord()


# ============================================================================
# UNIT CONVERSIONS
# ============================================================================

def gwei_to_wei(amount_gwei: int) -> int:
    """Convert gwei to wei exactly."""
    return amount_gwei * GWEI_TO_WEI


def wei_to_gwei(amount_wei: int) -> int:
    """Convert wei to gwei, truncating any sub-gwei remainder toward zero."""
    if amount_wei < 0:
        return -((-amount_wei) // GWEI_TO_WEI)
    return amount_wei // GWEI_TO_WEI


# ============================================================================
# CANONICAL HASHING
# ============================================================================

def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Order-sensitive for sequences (strategy and share lists are positional)
    and order-insensitive for dicts. The output is suitable for
    content-addressable hashing.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, bytes):
        return f"B:{value.hex()}"
    if isinstance(value, Enum):
        return f"E:{type(value).__name__}.{value.name}"
    if isinstance(value, Strategy):
        return f"Y:{value.kind.value}|{value.address}|{_canonicalize(value.token)}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    raise TypeError(f"Cannot canonicalize value of type {type(value).__name__}")


def content_hash(*parts: Any) -> Hash:
    """Deterministic sha256 hex digest over the canonical form of the given parts."""
    content = "|".join(_canonicalize(p) for p in parts)
    return hashlib.sha256(content.encode()).hexdigest()


def pubkey_hash(pubkey: bytes) -> Hash:
    """Identity of a validator: sha256 of its public key."""
    return hashlib.sha256(pubkey).hexdigest()


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to the ledger under test.

    The differential assertion engine and the query facade depend only on
    this protocol, so any backend implementing it can be verified. The
    reference RestakingLedger implements it; tests use FakeView.
    """

    @property
    def block_number(self) -> int:
        ...

    @property
    def timestamp(self) -> int:
        ...

    def shares(self, actor: Address, strategy: Strategy) -> int:
        """Deposit shares (signed for the native-stake strategy)."""
        ...

    def operator_shares(self, operator: Address, strategy: Strategy) -> int:
        ...

    def total_shares(self, strategy: Strategy) -> int:
        ...

    def underlying_to_shares(self, strategy: Strategy, amount: int) -> int:
        ...

    def shares_to_underlying(self, strategy: Strategy, shares: int) -> int:
        ...

    def token_balance(self, actor: Address, token: str) -> int:
        ...

    def pending_withdrawal(self, root: Hash) -> bool:
        ...

    def withdrawal_delay_blocks(self, strategy: Strategy) -> int:
        ...

    def cumulative_withdrawals_queued(self, staker: Address) -> int:
        ...

    def delegated_to(self, staker: Address) -> Optional[Address]:
        ...

    def is_operator(self, actor: Address) -> bool:
        ...

    def checkpoint(self, actor: Address) -> CheckpointRecord:
        ...

    def last_checkpoint_timestamp(self, actor: Address) -> int:
        ...

    def checkpoint_balance_exited_gwei(self, actor: Address, timestamp: int) -> int:
        ...

    def withdrawable_restaked_gwei(self, actor: Address) -> int:
        ...

    def validator_status(self, actor: Address, pubkey_hash: Hash) -> ValidatorStatus:
        ...

    def active_validator_count(self, actor: Address) -> int:
        ...

    def pod_balance_wei(self, actor: Address) -> int:
        ...
