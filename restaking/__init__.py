"""
restaking - Differential-State Verification Harness for a Restaking Ledger

Randomized stakers and operators act on a restaking ledger; after every
action the harness asserts that shares, balances, validator counts,
checkpoint state and pending withdrawals moved by exactly the predicted
amount relative to the snapshot taken before the action.

Usage:
    from restaking import Scenario, HarnessConfig, actions
    from restaking.assertions import (
        assert_snap_added_staker_deposit_shares, assert_snap_added_total_shares,
    )

    ctx = Scenario(HarnessConfig(seed=42))
    staker, strategies, balances = ctx.factory.new_random_staker()
    expected = ctx.queries.underlying_to_shares(strategies, balances)

    actions.deposit_into_strategies(ctx, staker, strategies, balances)
    assert_snap_added_staker_deposit_shares(
        ctx, staker.address, strategies, expected, "deposit should add shares")
    assert_snap_added_total_shares(ctx, strategies, expected, "deposit should grow pools")
"""

# Core types
from .core import (
    LedgerView,
    Strategy,
    StrategyKind,
    CheckpointRecord,
    ValidatorStatus,
    BEACON_CHAIN_STRATEGY,
    NO_CHECKPOINT,
    token_strategy,
    content_hash,
    gwei_to_wei,
    wei_to_gwei,
    HarnessError,
    InvariantViolation,
    DomainError,
    SnapshotError,
    InvalidTransition,
    LedgerError,
    StrategyNotRegistered,
    ActorNotRegistered,
    InsufficientBalance,
    InsufficientShares,
    DelegationError,
    WithdrawalNotFound,
    WithdrawalDelayNotElapsed,
    CheckpointError,
    ProofRejected,
    GWEI_TO_WEI,
    ETH_TO_WEI,
    ETH_PER_VALIDATOR_GWEI,
    SECONDS_PER_BLOCK,
    SECONDS_PER_EPOCH,
    DEFAULT_WITHDRAWAL_DELAY_BLOCKS,
    ROUNDING_TOLERANCE,
    EXACT,
    NATIVE_ETH,
    ROLE_STAKER,
    ROLE_OPERATOR,
)

# Collaborators
from .chain import Chain
from .registry import StrategyRegistry
from .ledger import RestakingLedger, LedgerEvent, calc_delegatable_delta
from .beacon import BeaconChain, BalanceProof, CredentialProof

# Harness
from .snapshots import SnapshotStore
from .view import LedgerQueries
from .withdrawals import (
    Withdrawal,
    compute_withdrawal_root,
    compute_identity,
    is_pending,
    completable_block,
    is_completable,
)
from .checkpoints import (
    CheckpointTracker,
    CheckpointPhase,
    ValidatorEvent,
    validate_transition,
    exited_balance_timestamp,
)
from .actors import Actor, ActorFactory, sample_nonempty_subset
from .scenario import Scenario, HarnessConfig
from . import actions
from . import assertions

__all__ = [
    # Core
    'LedgerView', 'Strategy', 'StrategyKind', 'CheckpointRecord', 'ValidatorStatus',
    'BEACON_CHAIN_STRATEGY', 'NO_CHECKPOINT', 'token_strategy', 'content_hash',
    'gwei_to_wei', 'wei_to_gwei',
    # Errors
    'HarnessError', 'InvariantViolation', 'DomainError', 'SnapshotError', 'InvalidTransition',
    'LedgerError', 'StrategyNotRegistered', 'ActorNotRegistered', 'InsufficientBalance',
    'InsufficientShares', 'DelegationError', 'WithdrawalNotFound', 'WithdrawalDelayNotElapsed',
    'CheckpointError', 'ProofRejected',
    # Constants
    'GWEI_TO_WEI', 'ETH_TO_WEI', 'ETH_PER_VALIDATOR_GWEI', 'SECONDS_PER_BLOCK',
    'SECONDS_PER_EPOCH', 'DEFAULT_WITHDRAWAL_DELAY_BLOCKS', 'ROUNDING_TOLERANCE', 'EXACT',
    'NATIVE_ETH', 'ROLE_STAKER', 'ROLE_OPERATOR',
    # Collaborators
    'Chain', 'StrategyRegistry', 'RestakingLedger', 'LedgerEvent', 'calc_delegatable_delta',
    'BeaconChain', 'BalanceProof', 'CredentialProof',
    # Harness
    'SnapshotStore', 'LedgerQueries',
    'Withdrawal', 'compute_withdrawal_root', 'compute_identity', 'is_pending',
    'completable_block', 'is_completable',
    'CheckpointTracker', 'CheckpointPhase', 'ValidatorEvent', 'validate_transition',
    'exited_balance_timestamp',
    'Actor', 'ActorFactory', 'sample_nonempty_subset',
    'Scenario', 'HarnessConfig',
    'actions', 'assertions',
]

__version__ = '0.1.0'
