"""
checkpoints.py - Checkpoint and Validator State Tracker

An independent model of each actor's native-stake lifecycle, advanced by
the harness alongside the ledger and reconciled against it:

    NO_CHECKPOINT --start--> ACTIVE(proofs_remaining = active validators)
    ACTIVE --proof--> ACTIVE(proofs_remaining - 1)
    ACTIVE --last proof--> NO_CHECKPOINT   (finalize: last timestamp advances,
                                            withdrawable += pod balance)

Validator transitions move forward only:

    INACTIVE --REGISTER--> ACTIVE --SLASH | FULL_EXIT--> WITHDRAWN

Any other requested transition raises InvalidTransition.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from .core import (
    Address, Hash, ValidatorStatus, InvalidTransition, InvariantViolation, EXACT,
)


class CheckpointPhase(Enum):
    NO_CHECKPOINT = "no_checkpoint"
    ACTIVE = "active"


class ValidatorEvent(Enum):
    """Events that move a validator through its lifecycle."""
    REGISTER = "register"
    SLASH = "slash"
    FULL_EXIT = "full_exit"


ALLOWED_VALIDATOR_TRANSITIONS = {
    (ValidatorStatus.INACTIVE, ValidatorStatus.ACTIVE),
    (ValidatorStatus.ACTIVE, ValidatorStatus.WITHDRAWN),
}

_EVENT_TARGET = {
    ValidatorEvent.REGISTER: ValidatorStatus.ACTIVE,
    ValidatorEvent.SLASH: ValidatorStatus.WITHDRAWN,
    ValidatorEvent.FULL_EXIT: ValidatorStatus.WITHDRAWN,
}


def validate_transition(old: ValidatorStatus, new: ValidatorStatus) -> None:
    """Raise InvalidTransition unless old -> new is a forward lifecycle step."""
    if (old, new) not in ALLOWED_VALIDATOR_TRANSITIONS:
        raise InvalidTransition(f"Validator transition {old.name} -> {new.name} is not allowed")


def exited_balance_timestamp(prev_current_timestamp: int, cur_current_timestamp: int,
                             last_checkpoint_timestamp: int) -> int:
    """
    Timestamp under which to compare balance-exited figures across one step.

    If the current checkpoint timestamp changed during the step, a checkpoint
    just finalized, and its exited balance was recorded under the closed
    checkpoint (now the last checkpoint timestamp), not under whatever is
    current now.
    """
    if cur_current_timestamp != prev_current_timestamp:
        return last_checkpoint_timestamp
    return cur_current_timestamp


@dataclass
class PodModel:
    """Expected native-stake state of one actor."""
    phase: CheckpointPhase = CheckpointPhase.NO_CHECKPOINT
    timestamp: int = 0
    proofs_remaining: int = 0
    pod_balance_gwei: int = 0
    balance_deltas_gwei: int = 0
    proofs_accepted: int = 0
    last_checkpoint_timestamp: int = 0
    withdrawable_gwei: int = 0
    validators: Dict[Hash, ValidatorStatus] = field(default_factory=dict)
    proven: Set[Hash] = field(default_factory=set)
    balance_exited_gwei: Dict[int, int] = field(default_factory=dict)

    @property
    def active_validator_count(self) -> int:
        return sum(1 for s in self.validators.values() if s is ValidatorStatus.ACTIVE)


class CheckpointTracker:
    """
    Per-actor state machine mirroring the ledger's checkpoint lifecycle.

    Example:
        tracker = CheckpointTracker()
        tracker.register_validators("alice", hashes)
        tracker.start("alice", timestamp=ts, pod_balance_gwei=0)
        for h in hashes:
            tracker.record_proof("alice", h, balance_delta_gwei=0)
        tracker.phase("alice")   # CheckpointPhase.NO_CHECKPOINT
    """

    def __init__(self):
        self._pods: Dict[Address, PodModel] = {}

    def model(self, actor: Address) -> PodModel:
        return self._pods.setdefault(actor, PodModel())

    def phase(self, actor: Address) -> CheckpointPhase:
        return self.model(actor).phase

    def status(self, actor: Address, pubkey_hash: Hash) -> ValidatorStatus:
        return self.model(actor).validators.get(pubkey_hash, ValidatorStatus.INACTIVE)

    # ========================================================================
    # VALIDATOR TRANSITIONS
    # ========================================================================

    def apply_validator_event(self, actor: Address, pubkey_hash: Hash,
                              event: ValidatorEvent) -> ValidatorStatus:
        """Move one validator along its lifecycle; returns the new status."""
        pod = self.model(actor)
        old = pod.validators.get(pubkey_hash, ValidatorStatus.INACTIVE)
        new = _EVENT_TARGET[event]
        validate_transition(old, new)
        pod.validators[pubkey_hash] = new
        return new

    def register_validators(self, actor: Address, pubkey_hashes: List[Hash]) -> None:
        if self.model(actor).phase is CheckpointPhase.ACTIVE:
            raise InvalidTransition(f"{actor}: cannot register validators during a checkpoint")
        for h in pubkey_hashes:
            self.apply_validator_event(actor, h, ValidatorEvent.REGISTER)

    # ========================================================================
    # CHECKPOINT LIFECYCLE
    # ========================================================================

    def start(self, actor: Address, timestamp: int, pod_balance_gwei: int) -> None:
        pod = self.model(actor)
        if pod.phase is CheckpointPhase.ACTIVE:
            raise InvalidTransition(f"{actor}: checkpoint already active")
        if timestamp == 0:
            raise InvalidTransition("Checkpoint timestamp cannot be 0")
        pod.phase = CheckpointPhase.ACTIVE
        pod.timestamp = timestamp
        pod.proofs_remaining = pod.active_validator_count
        pod.pod_balance_gwei = pod_balance_gwei
        pod.balance_deltas_gwei = 0
        pod.proofs_accepted = 0
        pod.proven = set()
        if pod.proofs_remaining == 0:
            self._finalize(pod)

    def record_proof(self, actor: Address, pubkey_hash: Hash, balance_delta_gwei: int,
                     exited_gwei: int = 0, exit_event: Optional[ValidatorEvent] = None) -> bool:
        """
        Account for one accepted balance proof.

        Args:
            exit_event: SLASH or FULL_EXIT when the proof showed a zero balance
            exited_gwei: Restaked balance exited by that validator

        Returns:
            True if this proof finalized the checkpoint
        """
        pod = self.model(actor)
        if pod.phase is not CheckpointPhase.ACTIVE:
            raise InvalidTransition(f"{actor}: no active checkpoint")
        if pubkey_hash in pod.proven:
            raise InvalidTransition(f"{actor}: validator already proven for this checkpoint")
        if self.status(actor, pubkey_hash) is not ValidatorStatus.ACTIVE:
            raise InvalidTransition(f"{actor}: proof for a validator that is not ACTIVE")
        if exit_event is not None:
            if exit_event is ValidatorEvent.REGISTER:
                raise InvalidTransition("A balance proof cannot register a validator")
            self.apply_validator_event(actor, pubkey_hash, exit_event)
            pod.balance_exited_gwei[pod.timestamp] = (
                pod.balance_exited_gwei.get(pod.timestamp, 0) + exited_gwei
            )
        pod.proven.add(pubkey_hash)
        pod.proofs_remaining -= 1
        pod.proofs_accepted += 1
        pod.balance_deltas_gwei += balance_delta_gwei
        if pod.proofs_remaining == 0:
            self._finalize(pod)
            return True
        return False

    def _finalize(self, pod: PodModel) -> None:
        pod.withdrawable_gwei += pod.pod_balance_gwei
        pod.last_checkpoint_timestamp = pod.timestamp
        pod.phase = CheckpointPhase.NO_CHECKPOINT
        pod.timestamp = 0
        pod.proofs_remaining = 0
        pod.pod_balance_gwei = 0
        pod.balance_deltas_gwei = 0
        pod.proven = set()

    def note_withdrawable_spent(self, actor: Address, amount_gwei: int) -> None:
        """Account for ETH paid out of the withdrawable accumulator by a withdrawal."""
        pod = self.model(actor)
        if amount_gwei > pod.withdrawable_gwei:
            raise InvalidTransition(f"{actor}: spending {amount_gwei} gwei of {pod.withdrawable_gwei}")
        pod.withdrawable_gwei -= amount_gwei

    # ========================================================================
    # RECONCILIATION
    # ========================================================================

    def check_proofs_invariant(self, actor: Address) -> None:
        """proofs_remaining equals the active validator count until the first proof lands."""
        pod = self.model(actor)
        if pod.phase is CheckpointPhase.ACTIVE and pod.proofs_accepted == 0:
            if pod.proofs_remaining != pod.active_validator_count:
                raise InvariantViolation(
                    "proofs remaining != active validators at checkpoint start", actor,
                    pod.active_validator_count, pod.proofs_remaining,
                )

    def reconcile(self, queries, actor: Address) -> None:
        """
        Compare the model with the ledger through a LedgerQueries facade.

        Raises:
            InvariantViolation: On the first field that differs
        """
        pod = self.model(actor)
        checkpoint = queries.checkpoint(actor)
        expected_active = pod.phase is CheckpointPhase.ACTIVE
        pairs = [
            ("checkpoint active", expected_active, checkpoint.is_active),
            ("checkpoint timestamp", pod.timestamp, checkpoint.timestamp),
            ("proofs remaining", pod.proofs_remaining, checkpoint.proofs_remaining),
            ("checkpoint pod balance gwei", pod.pod_balance_gwei, checkpoint.pod_balance_gwei),
            ("last checkpoint timestamp", pod.last_checkpoint_timestamp,
             queries.last_checkpoint_timestamp(actor)),
            ("withdrawable restaked gwei", pod.withdrawable_gwei,
             queries.withdrawable_restaked_gwei(actor)),
            ("active validator count", pod.active_validator_count,
             queries.active_validator_count(actor)),
        ]
        for h, status in pod.validators.items():
            pairs.append((f"validator {h[:12]} status", status, queries.validator_status(actor, h)))
        for ts, exited in pod.balance_exited_gwei.items():
            pairs.append((f"balance exited at {ts}", exited,
                          queries.checkpoint_balance_exited_gwei(actor, ts)))
        for label, expected, actual in pairs:
            if expected != actual:
                raise InvariantViolation(f"checkpoint model: {label}", actor, expected, actual, EXACT)
