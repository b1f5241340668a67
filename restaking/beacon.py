"""
beacon.py - Consensus-Layer Source

A minimal consensus-layer model producing validator balances and the
proofs the ledger consumes. It is an external collaborator of the harness:
proofs are plain records and their cryptographic validity is not modelled.

Epoch processing:
    advance_epoch()             rewards, then withdrawal sweep
    advance_epoch_no_rewards()  withdrawal sweep only
    advance_epoch_no_withdraw() rewards only

The withdrawal sweep pays every exited validator's full balance and every
live validator's balance above 32 ETH into its owner's pod on the
execution layer (the ledger).
"""

from __future__ import annotations
from dataclasses import dataclass
import hashlib
from typing import Dict, List, Protocol

from .chain import Chain
from .core import (
    Address, Hash,
    CONSENSUS_REWARD_GWEI, ETH_PER_VALIDATOR_GWEI, SECONDS_PER_EPOCH,
    SLASHING_PENALTY_GWEI,
    gwei_to_wei, pubkey_hash,
)


class ExecutionLayer(Protocol):
    """Receiver of withdrawal-sweep payouts."""

    def credit_pod(self, owner: Address, amount_wei: int) -> None:
        ...


@dataclass
class BeaconValidator:
    """Consensus-layer record for one validator."""
    index: int
    pubkey: bytes
    pubkey_hash: Hash
    withdrawal_address: Address
    effective_balance_gwei: int
    balance_gwei: int
    slashed: bool = False
    exited: bool = False


@dataclass(frozen=True, slots=True)
class CredentialProof:
    """Proof that a validator's withdrawal credentials point at a pod."""
    validator_index: int
    pubkey_hash: Hash
    withdrawal_address: Address
    effective_balance_gwei: int
    exited: bool


@dataclass(frozen=True, slots=True)
class BalanceProof:
    """Proof of a validator's current beacon balance at proof_timestamp."""
    validator_index: int
    pubkey_hash: Hash
    balance_gwei: int
    proof_timestamp: int


class BeaconChain:
    """
    Consensus-layer collaborator.

    Example:
        beacon = BeaconChain(chain, ledger)
        ids = beacon.new_validators("alice", 3)
        beacon.advance_epoch()
        lost = beacon.slash_validators(ids[:1])
    """

    def __init__(self, chain: Chain, execution_layer: ExecutionLayer, verbose: bool = True):
        self.chain = chain
        self.execution_layer = execution_layer
        self.verbose = verbose
        self.validators: List[BeaconValidator] = []
        self.epoch = 0
        chain.attach(self)

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    def new_validators(self, owner: Address, count: int,
                       balance_gwei: int = ETH_PER_VALIDATOR_GWEI) -> List[int]:
        """Create count validators with withdrawal credentials pointing at owner's pod."""
        if count <= 0:
            raise ValueError(f"count must be positive, got {count}")
        if balance_gwei <= 0:
            raise ValueError(f"balance_gwei must be positive, got {balance_gwei}")
        ids = []
        for _ in range(count):
            index = len(self.validators)
            pubkey = hashlib.sha384(f"validator-{index}".encode()).digest()
            self.validators.append(BeaconValidator(
                index=index,
                pubkey=pubkey,
                pubkey_hash=pubkey_hash(pubkey),
                withdrawal_address=owner,
                effective_balance_gwei=min(balance_gwei, ETH_PER_VALIDATOR_GWEI),
                balance_gwei=balance_gwei,
            ))
            ids.append(index)
        if self.verbose:
            print(f"📝 Beacon: {count} validator(s) for {owner}: {ids}")
        return ids

    def validator(self, validator_index: int) -> BeaconValidator:
        if not 0 <= validator_index < len(self.validators):
            raise KeyError(f"Unknown validator {validator_index}")
        return self.validators[validator_index]

    def get_pubkey_hashes(self, ids: List[int]) -> List[Hash]:
        return [self.validator(i).pubkey_hash for i in ids]

    def total_balance_gwei(self, ids: List[int]) -> int:
        return sum(self.validator(i).balance_gwei for i in ids)

    def validators_of(self, owner: Address) -> List[int]:
        return [v.index for v in self.validators if v.withdrawal_address == owner]

    # ========================================================================
    # EPOCHS
    # ========================================================================

    def advance_epoch(self) -> None:
        """Move one epoch forward, paying rewards and processing withdrawals."""
        self._advance(rewards=True, withdrawals=True)

    def advance_epoch_no_rewards(self) -> None:
        """Move one epoch forward, processing withdrawals without paying rewards."""
        self._advance(rewards=False, withdrawals=True)

    def advance_epoch_no_withdraw(self) -> None:
        """Move one epoch forward, paying rewards without processing withdrawals."""
        self._advance(rewards=True, withdrawals=False)

    def _advance(self, rewards: bool, withdrawals: bool) -> None:
        self.chain.advance_time(SECONDS_PER_EPOCH)
        self.epoch += 1
        if rewards:
            for v in self.validators:
                if not v.exited and v.balance_gwei > 0:
                    v.balance_gwei += CONSENSUS_REWARD_GWEI
        if withdrawals:
            payouts: Dict[Address, int] = {}
            for v in self.validators:
                if v.exited:
                    amount = v.balance_gwei
                    v.effective_balance_gwei = 0
                else:
                    amount = max(0, v.balance_gwei - ETH_PER_VALIDATOR_GWEI)
                if amount > 0:
                    v.balance_gwei -= amount
                    payouts[v.withdrawal_address] = payouts.get(v.withdrawal_address, 0) + amount
            for owner in sorted(payouts):
                self.execution_layer.credit_pod(owner, gwei_to_wei(payouts[owner]))
        if self.verbose:
            print(f"⏩ Beacon: epoch {self.epoch} (rewards={rewards}, withdrawals={withdrawals})")

    # ========================================================================
    # SLASHING AND EXITS
    # ========================================================================

    def slash_validators(self, ids: List[int]) -> int:
        """
        Slash and force-exit the given validators.

        Returns:
            Total gwei removed from their balances by the penalty
        """
        lost = 0
        for i in ids:
            v = self.validator(i)
            if v.exited:
                raise ValueError(f"Validator {i} already exited")
            penalty = min(SLASHING_PENALTY_GWEI, v.balance_gwei)
            v.balance_gwei -= penalty
            v.slashed = True
            v.exited = True
            lost += penalty
        if self.verbose:
            print(f"⚔️  Beacon: slashed {ids}, lost {lost} gwei")
        return lost

    def exit_validators(self, ids: List[int]) -> int:
        """
        Voluntarily exit the given validators. Balances are swept next epoch.

        Returns:
            Total gwei that will be paid out to pods
        """
        exited = 0
        for i in ids:
            v = self.validator(i)
            if v.exited:
                raise ValueError(f"Validator {i} already exited")
            v.exited = True
            exited += v.balance_gwei
        if self.verbose:
            print(f"🚪 Beacon: exited {ids}, {exited} gwei pending sweep")
        return exited

    # ========================================================================
    # PROOFS
    # ========================================================================

    def credential_proof(self, validator_index: int) -> CredentialProof:
        v = self.validator(validator_index)
        return CredentialProof(
            validator_index=v.index,
            pubkey_hash=v.pubkey_hash,
            withdrawal_address=v.withdrawal_address,
            effective_balance_gwei=v.effective_balance_gwei,
            exited=v.exited,
        )

    def balance_proof(self, validator_index: int) -> BalanceProof:
        v = self.validator(validator_index)
        return BalanceProof(
            validator_index=v.index,
            pubkey_hash=v.pubkey_hash,
            balance_gwei=v.balance_gwei,
            proof_timestamp=self.chain.timestamp,
        )

    def __repr__(self) -> str:
        return f"BeaconChain(epoch={self.epoch}, validators={len(self.validators)})"
