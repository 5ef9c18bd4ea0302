"""
Claim and Policy State Machines

Hold the fixed transition tables and produce the next version of an entity
for a requested transition. Entities are never mutated in place: a
transition returns a new, re-validated model so nothing changes until the
caller commits it.
"""
from typing import Any, Dict, Generic, List, Set, TypeVar

from pydantic import BaseModel

from afyaclaims.core.errors import StateError, ValidationError
from afyaclaims.core.models import Claim, Policy, utcnow
from afyaclaims.core.states import ClaimStatus, PolicyStatus

E = TypeVar("E", bound=BaseModel)
S = TypeVar("S")


class StateMachine(Generic[E, S]):
    """
    Transition table over an entity's ``status`` field.

    Subclasses define TRANSITIONS (from_state -> set of valid to_states).
    """

    TRANSITIONS: Dict[Any, Set[Any]] = {}

    def get_valid_transitions(self, entity: E) -> List[S]:
        """Get list of valid next states for an entity."""
        return sorted(self.TRANSITIONS.get(entity.status, set()), key=lambda s: s.value)

    def can_transition(self, entity: E, target_state: S) -> bool:
        """Check if a transition to target_state is valid."""
        return target_state in self.TRANSITIONS.get(entity.status, set())

    def is_terminal(self, entity: E) -> bool:
        return not self.TRANSITIONS.get(entity.status)

    def transition(self, entity: E, target_state: S, **changes: Any) -> E:
        """
        Compute the entity after a state transition.

        Args:
            entity: The current entity version
            target_state: The desired next state
            **changes: Other fields written together with the status

        Returns:
            A new entity carrying the target state and changes

        Raises:
            StateError: If the transition is not valid
        """
        if entity.status == target_state:
            raise StateError(f"{type(entity).__name__} {entity.id} is already {target_state.value}")

        if not self.can_transition(entity, target_state):
            valid = [s.value for s in self.get_valid_transitions(entity)]
            raise StateError(
                f"Invalid transition from {entity.status.value} to {target_state.value}. "
                f"Valid transitions: {valid}"
            )

        data = entity.model_dump()
        data.update(changes)
        data["status"] = target_state
        data["updated_at"] = utcnow()
        return type(entity).model_validate(data)


class ClaimStateMachine(StateMachine[Claim, ClaimStatus]):
    """
    State machine for claim adjudication.

    A claim leaves PENDING exactly once; every other state is terminal.
    """

    TERMINAL_STATES: Set[ClaimStatus] = {
        ClaimStatus.APPROVED,
        ClaimStatus.REJECTED,
        ClaimStatus.FLAGGED_FOR_REVIEW,
    }

    TRANSITIONS: Dict[ClaimStatus, Set[ClaimStatus]] = {
        ClaimStatus.PENDING: set(TERMINAL_STATES),
        ClaimStatus.APPROVED: set(),
        ClaimStatus.REJECTED: set(),
        ClaimStatus.FLAGGED_FOR_REVIEW: set(),
    }

    def check_adjudication(
        self,
        claim: Claim,
        target_state: ClaimStatus,
        rejection_reason: str | None = None,
    ) -> None:
        """
        Check that a claim may be adjudicated to target_state.

        Raises:
            StateError: If the claim already left PENDING
            ValidationError: If the target is not terminal or a rejection lacks a reason
        """
        if self.is_terminal(claim):
            raise StateError(f"Claim {claim.id} has already been processed ({claim.status.value})")
        if target_state not in self.TERMINAL_STATES:
            raise ValidationError(
                f"Claims can only be processed to one of "
                f"{sorted(s.value for s in self.TERMINAL_STATES)}"
            )
        if target_state == ClaimStatus.REJECTED and not (rejection_reason or "").strip():
            raise ValidationError("A rejection reason is required to reject a claim")

    def adjudicate(
        self,
        claim: Claim,
        target_state: ClaimStatus,
        processed_by: str,
        rejection_reason: str | None = None,
        transaction_hash: str | None = None,
    ) -> Claim:
        """Compute the adjudicated claim, enforcing the outcome field rules."""
        self.check_adjudication(claim, target_state, rejection_reason)
        if target_state == ClaimStatus.APPROVED and not transaction_hash:
            raise ValidationError("Approved claims require a transaction hash")

        return self.transition(
            claim,
            target_state,
            processed_by=processed_by,
            rejection_reason=rejection_reason.strip() if target_state == ClaimStatus.REJECTED else None,
            transaction_hash=transaction_hash if target_state == ClaimStatus.APPROVED else None,
        )


class PolicyStateMachine(StateMachine[Policy, PolicyStatus]):
    """State machine for the policy lifecycle; CANCELLED is terminal."""

    TRANSITIONS: Dict[PolicyStatus, Set[PolicyStatus]] = {
        PolicyStatus.PENDING: {PolicyStatus.ACTIVE, PolicyStatus.CANCELLED},
        PolicyStatus.ACTIVE: {PolicyStatus.LAPSED, PolicyStatus.CANCELLED},
        PolicyStatus.LAPSED: {PolicyStatus.ACTIVE, PolicyStatus.CANCELLED},
        PolicyStatus.CANCELLED: set(),
    }
