"""
Claims Engine

Owns claims and enforces the submission and adjudication rules:

- a claim is submitted PENDING against an ACTIVE policy, within its coverage
- an admin moves it once to APPROVED, REJECTED or FLAGGED_FOR_REVIEW
- approval needs a transaction hash from the ledger; if the ledger fails
  the claim stays PENDING
"""
import logging
import math
from typing import Dict, List, Optional

from afyaclaims.core.concurrency import EntityLocks, run_to_completion
from afyaclaims.core.errors import (
    AdjudicationError,
    AuthorizationError,
    DependencyError,
    NotFoundError,
    StateError,
    ValidationError,
)
from afyaclaims.core.models import Claim, ClaimCreate, Identity
from afyaclaims.core.states import ClaimStatus, Operation, PolicyStatus
from afyaclaims.integrations.ledger import TransactionLedger
from afyaclaims.monitors.process_monitor import ProcessMonitor
from afyaclaims.services.audit_trail import AuditTrail
from afyaclaims.services.authorization import AuthorizationGate
from afyaclaims.services.policy_ledger import PolicyLedger
from afyaclaims.state_machine.machine import ClaimStateMachine

logger = logging.getLogger(__name__)


class ClaimsEngine:
    """Service object holding every claim of the process."""

    def __init__(
        self,
        policies: PolicyLedger,
        gate: AuthorizationGate,
        audit: AuditTrail,
        ledger: TransactionLedger,
        monitor: ProcessMonitor,
        locks: Optional[EntityLocks] = None,
    ):
        self.policies = policies
        self.gate = gate
        self.audit = audit
        self.ledger = ledger
        self.monitor = monitor
        self.locks = locks or policies.locks
        self.state_machine = ClaimStateMachine()
        self._claims: Dict[str, Claim] = {}

    def get(self, claim_id: str) -> Optional[Claim]:
        return self._claims.get(claim_id)

    async def submit(self, identity: Identity, request: ClaimCreate) -> Claim:
        """
        Submit a claim against a policy.

        Args:
            identity: The submitting identity (owner, or admin/front-desk on their behalf)
            request: Policy, patient, facility, amount and services

        Returns:
            The created PENDING claim

        Raises:
            ValidationError: Bad amount, no services, unknown policy, or amount above coverage
            StateError: If the policy is not ACTIVE
            AuthorizationError: If the identity may not submit against this policy
        """
        if not request.services_rendered or not all(s.strip() for s in request.services_rendered):
            raise ValidationError("At least one rendered service is required")
        if not math.isfinite(request.claim_amount) or request.claim_amount <= 0:
            raise ValidationError("Claim amount must be a number greater than zero")

        return await run_to_completion(self._submit(identity, request))

    async def _submit(self, identity: Identity, request: ClaimCreate) -> Claim:
        # Holding the policy lock keeps its status fixed while the claim is created
        async with self.locks.hold(f"policy:{request.policy_id}"):
            policy = self.policies.get(request.policy_id)
            if policy is None:
                raise ValidationError("Referenced policy does not exist")
            if policy.status != PolicyStatus.ACTIVE:
                logger.warning(f"Claim refused: policy {policy.id} is {policy.status.value}")
                raise StateError(f"Claims can only be submitted against an active policy (policy is {policy.status.value})")
            if request.claim_amount > policy.coverage_limit:
                logger.warning(
                    f"Claim refused: KSh {request.claim_amount} exceeds coverage {policy.coverage_limit} "
                    f"of policy {policy.id}"
                )
                raise ValidationError(
                    f"Claim amount {request.claim_amount:,.2f} exceeds the coverage limit "
                    f"of {policy.coverage_limit:,.2f}"
                )

            if policy.owner_id == identity.id:
                self.gate.require(identity, Operation.SUBMIT_CLAIM)
            elif not self.gate.permit(identity, Operation.SUBMIT_CLAIM_ON_BEHALF):
                logger.warning(f"Claim refused: {identity.id} does not own policy {policy.id}")
                raise AuthorizationError("You can only submit claims against your own policy")
            if request.patient_id and request.patient_id != policy.owner_id:
                raise ValidationError("Claims can only be filed for the policy owner")

            claim = Claim(
                policy_id=policy.id,
                patient_id=policy.owner_id,
                facility_id=request.facility_id,
                claim_amount=request.claim_amount,
                services_rendered=[s.strip() for s in request.services_rendered],
                submitted_by=identity.id,
            )
            record = self.audit.record(
                identity.id,
                "claim_submitted",
                "claim",
                claim.id,
                {
                    "policyId": policy.id,
                    "claimAmount": claim.claim_amount,
                    "services": len(claim.services_rendered),
                    "onBehalf": policy.owner_id != identity.id,
                },
            )
            await self.audit.commit(record, lambda: self._store(claim))
            logger.info(f"Claim {claim.id} submitted by {identity.id} for KSh {claim.claim_amount:,.2f}")
            return claim

    async def process(
        self,
        identity: Identity,
        claim_id: str,
        new_status: ClaimStatus,
        rejection_reason: Optional[str] = None,
    ) -> Claim:
        """
        Adjudicate a pending claim.

        Raises:
            AuthorizationError: Unless the identity may process claims
            NotFoundError: If the claim does not exist
            StateError: If the claim is no longer PENDING
            ValidationError: Non-terminal target, or rejection without a reason
            DependencyError: If the ledger fails during approval (claim stays PENDING)
        """
        self.gate.require(identity, Operation.PROCESS_CLAIM)
        return await run_to_completion(self._process(identity, claim_id, ClaimStatus(new_status), rejection_reason))

    async def _process(
        self,
        identity: Identity,
        claim_id: str,
        new_status: ClaimStatus,
        rejection_reason: Optional[str],
    ) -> Claim:
        async with self.locks.hold(f"claim:{claim_id}"):
            claim = self._claims.get(claim_id)
            if claim is None:
                raise NotFoundError("Claim not found")

            self.state_machine.check_adjudication(claim, new_status, rejection_reason)

            transaction_hash = None
            if new_status == ClaimStatus.APPROVED:
                transaction_hash = await self._record_on_ledger(claim)

            updated = self.state_machine.adjudicate(
                claim,
                new_status,
                processed_by=identity.id,
                rejection_reason=rejection_reason,
                transaction_hash=transaction_hash,
            )
            details = {"from": claim.status.value, "to": new_status.value}
            if updated.rejection_reason:
                details["rejectionReason"] = updated.rejection_reason
            if updated.transaction_hash:
                details["transactionHash"] = updated.transaction_hash
            record = self.audit.record(identity.id, "claim_processed", "claim", claim.id, details)
            await self.audit.commit(record, lambda: self._store(updated))
            logger.info(f"Claim {claim.id} {new_status.value} by {identity.id}")

            await self._announce(updated)
            return updated

    async def _record_on_ledger(self, claim: Claim) -> str:
        try:
            transaction_hash = await self.ledger.record_claim(claim)
        except DependencyError:
            raise
        except Exception as exc:
            logger.error(f"Ledger call failed for claim {claim.id}: {exc}")
            raise DependencyError("Ledger service is unavailable; please retry") from exc
        if not transaction_hash:
            raise DependencyError("Ledger returned an empty transaction hash; please retry")
        return transaction_hash

    async def _announce(self, claim: Claim) -> None:
        policy = self.policies.get(claim.policy_id)
        owner_id = policy.owner_id if policy else claim.patient_id
        try:
            await self.monitor.on_claim_status_entered(claim, owner_id)
        except AdjudicationError as exc:
            logger.error(f"Claim {claim.id} is {claim.status.value} but the owner was not notified: {exc}")

    def list_for_owner(self, identity_id: str) -> List[Claim]:
        """Claims for which the identity is the patient or the policy owner, newest first."""
        owned = []
        for claim in reversed(list(self._claims.values())):
            policy = self.policies.get(claim.policy_id)
            if claim.patient_id == identity_id or (policy and policy.owner_id == identity_id):
                owned.append(claim)
        return sorted(owned, key=lambda c: c.created_at, reverse=True)

    def list_all(self, identity: Identity, status: Optional[ClaimStatus] = None) -> List[Claim]:
        """Every claim, optionally filtered by status (requires viewAllClaims)."""
        self.gate.require(identity, Operation.VIEW_ALL_CLAIMS)
        claims = [c for c in reversed(list(self._claims.values())) if status is None or c.status == status]
        return sorted(claims, key=lambda c: c.created_at, reverse=True)

    def _store(self, claim: Claim) -> Claim:
        self._claims[claim.id] = claim
        return claim
