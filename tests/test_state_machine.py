import pytest

from afyaclaims.core.errors import StateError, ValidationError
from afyaclaims.core.models import Claim, Policy
from afyaclaims.core.states import ClaimStatus, PolicyStatus, PolicyTier
from afyaclaims.state_machine import ClaimStateMachine, PolicyStateMachine


def make_claim(**overrides):
    data = {
        "policy_id": "policy-1",
        "patient_id": "patient-1",
        "facility_id": "facility-1",
        "claim_amount": 5000.0,
        "services_rendered": ["consultation"],
    }
    data.update(overrides)
    return Claim(**data)


def make_policy(status=PolicyStatus.ACTIVE):
    return Policy(owner_id="owner-1", tier=PolicyTier.MSINGI, status=status, coverage_limit=50000, premium_amount=500)


def test_pending_claim_can_reach_every_terminal_state():
    machine = ClaimStateMachine()
    claim = make_claim()

    assert machine.get_valid_transitions(claim) == [
        ClaimStatus.APPROVED,
        ClaimStatus.FLAGGED_FOR_REVIEW,
        ClaimStatus.REJECTED,
    ]
    assert not machine.is_terminal(claim)


def test_adjudicate_rejection_sets_reason_and_clears_hash():
    machine = ClaimStateMachine()

    rejected = machine.adjudicate(
        make_claim(),
        ClaimStatus.REJECTED,
        processed_by="admin-1",
        rejection_reason="  Service not covered  ",
        transaction_hash="0xabc",
    )

    assert rejected.status == ClaimStatus.REJECTED
    assert rejected.rejection_reason == "Service not covered"
    assert rejected.transaction_hash is None
    assert rejected.processed_by == "admin-1"
    assert rejected.updated_at is not None


def test_adjudicate_does_not_mutate_the_original_claim():
    machine = ClaimStateMachine()
    claim = make_claim()

    machine.adjudicate(claim, ClaimStatus.APPROVED, processed_by="admin-1", transaction_hash="0xabc")

    assert claim.status == ClaimStatus.PENDING
    assert claim.transaction_hash is None


def test_rejection_requires_a_reason():
    machine = ClaimStateMachine()

    with pytest.raises(ValidationError):
        machine.adjudicate(make_claim(), ClaimStatus.REJECTED, processed_by="admin-1", rejection_reason="   ")


def test_approval_requires_a_transaction_hash():
    machine = ClaimStateMachine()

    with pytest.raises(ValidationError):
        machine.adjudicate(make_claim(), ClaimStatus.APPROVED, processed_by="admin-1")


def test_terminal_claim_cannot_be_adjudicated_again():
    machine = ClaimStateMachine()
    flagged = machine.adjudicate(make_claim(), ClaimStatus.FLAGGED_FOR_REVIEW, processed_by="admin-1")

    assert machine.is_terminal(flagged)
    with pytest.raises(StateError):
        machine.check_adjudication(flagged, ClaimStatus.APPROVED)


def test_processing_back_to_pending_is_a_validation_error():
    machine = ClaimStateMachine()

    with pytest.raises(ValidationError):
        machine.check_adjudication(make_claim(), ClaimStatus.PENDING)


def test_claim_model_refuses_inconsistent_outcomes():
    with pytest.raises(ValueError):
        make_claim(status=ClaimStatus.APPROVED, processed_by="admin-1")
    with pytest.raises(ValueError):
        make_claim(status=ClaimStatus.REJECTED, processed_by="admin-1", rejection_reason="")


@pytest.mark.parametrize(
    "current,target",
    [
        (PolicyStatus.PENDING, PolicyStatus.ACTIVE),
        (PolicyStatus.ACTIVE, PolicyStatus.LAPSED),
        (PolicyStatus.LAPSED, PolicyStatus.ACTIVE),
        (PolicyStatus.LAPSED, PolicyStatus.CANCELLED),
    ],
)
def test_allowed_policy_transitions(current, target):
    machine = PolicyStateMachine()

    assert machine.transition(make_policy(current), target).status == target


def test_cancelled_policy_is_terminal():
    machine = PolicyStateMachine()
    cancelled = make_policy(PolicyStatus.CANCELLED)

    assert machine.is_terminal(cancelled)
    with pytest.raises(StateError):
        machine.transition(cancelled, PolicyStatus.ACTIVE)


def test_pending_policy_cannot_lapse():
    with pytest.raises(StateError):
        PolicyStateMachine().transition(make_policy(PolicyStatus.PENDING), PolicyStatus.LAPSED)


def test_same_status_transition_is_rejected():
    with pytest.raises(StateError, match="already active"):
        PolicyStateMachine().transition(make_policy(PolicyStatus.ACTIVE), PolicyStatus.ACTIVE)
