"""
Policy Ledger

Owns insurance policies: enrollment, status lifecycle and dependents.
Policies are never deleted; a policy is superseded by changing its status.
"""
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from afyaclaims.core.concurrency import EntityLocks, run_to_completion
from afyaclaims.core.errors import AdjudicationError, AuthorizationError, DependencyError, NotFoundError, StateError
from afyaclaims.core.models import Dependent, Identity, Policy, utcnow
from afyaclaims.core.states import (
    TIER_DEFAULTS,
    EnrollmentConflict,
    Operation,
    PolicyStatus,
    PolicyTier,
)
from afyaclaims.integrations.ledger import EnrollmentVerifier
from afyaclaims.monitors.process_monitor import ProcessMonitor
from afyaclaims.services.audit_trail import AuditTrail
from afyaclaims.services.authorization import AuthorizationGate
from afyaclaims.state_machine.machine import PolicyStateMachine

logger = logging.getLogger(__name__)

POLICY_TERM = timedelta(days=365)


class PolicyLedger:
    """
    Service object holding every policy of the process.

    Mutations on one policy (and enrollments for one owner) are serialized
    through EntityLocks.
    """

    def __init__(
        self,
        gate: AuthorizationGate,
        audit: AuditTrail,
        monitor: ProcessMonitor,
        verifier: Optional[EnrollmentVerifier] = None,
        conflict: EnrollmentConflict = EnrollmentConflict.REJECT,
        locks: Optional[EntityLocks] = None,
    ):
        self.gate = gate
        self.audit = audit
        self.monitor = monitor
        self.verifier = verifier or EnrollmentVerifier()
        self.conflict = conflict
        self.locks = locks or EntityLocks()
        self.state_machine = PolicyStateMachine()
        self._policies: Dict[str, Policy] = {}

    def get(self, policy_id: str) -> Optional[Policy]:
        return self._policies.get(policy_id)

    def list_for_owner(self, owner_id: str) -> List[Policy]:
        """All policies of an owner, newest first."""
        owned = [p for p in reversed(list(self._policies.values())) if p.owner_id == owner_id]
        return sorted(owned, key=lambda p: p.created_at, reverse=True)

    def get_by_owner(self, owner_id: str) -> Optional[Policy]:
        """The owner's active policy, or their most recent one."""
        active = self._active_policy(owner_id)
        if active is not None:
            return active
        owned = self.list_for_owner(owner_id)
        return owned[0] if owned else None

    async def enroll(
        self,
        identity: Identity,
        tier: PolicyTier,
        dependents: Optional[List[Dependent]] = None,
    ) -> Policy:
        """
        Enroll the identity in a policy tier.

        Returns:
            The new policy, ACTIVE unless the verifier holds it PENDING

        Raises:
            AuthorizationError: If the identity may not enroll
            StateError: If an active policy exists and conflicts are rejected
            DependencyError: If verification or the audit store fails
        """
        self.gate.require(identity, Operation.ENROLL_POLICY)
        return await run_to_completion(self._enroll(identity, PolicyTier(tier), list(dependents or [])))

    async def _enroll(self, identity: Identity, tier: PolicyTier, dependents: List[Dependent]) -> Policy:
        async with self.locks.hold(f"owner:{identity.id}"):
            current = self._active_policy(identity.id)
            if current is not None and self.conflict == EnrollmentConflict.REJECT:
                logger.warning(f"Enrollment refused for {identity.id}: policy {current.id} is active")
                raise StateError("An active policy already exists for this user")

            try:
                held = await self.verifier.requires_verification(identity.id, tier.value)
            except AdjudicationError:
                raise
            except Exception as exc:
                logger.error(f"Enrollment verification failed for {identity.id}: {exc}")
                raise DependencyError("Enrollment verification is unavailable; please retry") from exc

            now = utcnow()
            policy = Policy(
                owner_id=identity.id,
                tier=tier,
                status=PolicyStatus.PENDING if held else PolicyStatus.ACTIVE,
                dependents=dependents,
                start_date=now,
                end_date=now + POLICY_TERM,
                created_at=now,
                **TIER_DEFAULTS[tier],
            )
            details = {"tier": tier.value, "status": policy.status.value, "dependents": len(dependents)}

            if current is None:
                record = self.audit.record(identity.id, "policy_enrolled", "policy", policy.id, details)
                await self.audit.commit(record, lambda: self._store(policy))
            else:
                await self._supersede(identity, current, policy, details)

            logger.info(f"Policy {policy.id} ({tier.value}) enrolled for {identity.id} as {policy.status.value}")
            return policy

    async def _supersede(self, identity: Identity, current: Policy, policy: Policy, details: dict) -> None:
        # One record and one apply: the old policy is cancelled only if the new one is stored
        async with self.locks.hold(f"policy:{current.id}"):
            current = self._policies[current.id]
            cancelled = self.state_machine.transition(current, PolicyStatus.CANCELLED)
            details = {**details, "supersedes": current.id}
            record = self.audit.record(identity.id, "policy_enrolled", "policy", policy.id, details)

            def apply() -> None:
                self._store(cancelled)
                self._store(policy)

            await self.audit.commit(record, apply)
            logger.info(f"Policy {current.id} cancelled, superseded by {policy.id}")
        await self._announce(cancelled)

    async def update_status(self, identity: Identity, policy_id: str, new_status: PolicyStatus) -> Policy:
        """
        Move a policy to a new status (admin only).

        Raises:
            AuthorizationError: Unless the identity may update policy status
            NotFoundError: If the policy does not exist
            StateError: If the status is unchanged, the transition is invalid,
                or the owner already has another active policy
        """
        self.gate.require(identity, Operation.UPDATE_POLICY_STATUS)
        return await run_to_completion(self._update_status(identity, policy_id, PolicyStatus(new_status)))

    async def _update_status(self, identity: Identity, policy_id: str, new_status: PolicyStatus) -> Policy:
        policy = self._policies.get(policy_id)
        if policy is None:
            raise NotFoundError("Insurance policy not found")

        # Owner before policy, the same order enrollment takes them in
        async with self.locks.hold(f"owner:{policy.owner_id}"):
            async with self.locks.hold(f"policy:{policy_id}"):
                policy = self._policies[policy_id]
                if new_status == PolicyStatus.ACTIVE:
                    other = self._active_policy(policy.owner_id)
                    if other is not None and other.id != policy.id:
                        logger.warning(f"Activation of {policy.id} refused: policy {other.id} is active")
                        raise StateError("Another policy of this user is already active")
                return await self._change_status(identity, policy, new_status)

    async def _change_status(self, identity: Identity, policy: Policy, new_status: PolicyStatus) -> Policy:
        updated = self.state_machine.transition(policy, new_status)
        details = {"from": policy.status.value, "to": new_status.value}
        record = self.audit.record(identity.id, "policy_status_updated", "policy", policy.id, details)
        await self.audit.commit(record, lambda: self._store(updated))
        logger.info(f"Policy {policy.id} moved from {policy.status.value} to {new_status.value} by {identity.id}")

        await self._announce(updated)
        return updated

    async def _announce(self, policy: Policy) -> None:
        try:
            await self.monitor.on_policy_status_entered(policy)
        except AdjudicationError as exc:
            logger.error(f"Policy {policy.id} is {policy.status.value} but the owner was not notified: {exc}")

    def _active_policy(self, owner_id: str) -> Optional[Policy]:
        for policy in self.list_for_owner(owner_id):
            if policy.status == PolicyStatus.ACTIVE:
                return policy
        return None

    async def update_dependents(self, identity: Identity, policy_id: str, dependents: List[Dependent]) -> Policy:
        """Replace the dependents list; allowed for the owner or an admin."""
        return await run_to_completion(self._update_dependents(identity, policy_id, list(dependents)))

    async def _update_dependents(self, identity: Identity, policy_id: str, dependents: List[Dependent]) -> Policy:
        async with self.locks.hold(f"policy:{policy_id}"):
            policy = self._policies.get(policy_id)
            if policy is None:
                raise NotFoundError("Insurance policy not found")

            is_owner = policy.owner_id == identity.id
            may_edit = is_owner and self.gate.permit(identity, Operation.EDIT_DEPENDENTS)
            if not (may_edit or self.gate.permit(identity, Operation.UPDATE_POLICY_STATUS)):
                raise AuthorizationError("Only the policy owner can edit dependents")
            if policy.status == PolicyStatus.CANCELLED:
                raise StateError("Dependents of a cancelled policy cannot be changed")

            updated = policy.model_copy(update={"dependents": dependents, "updated_at": utcnow()})
            record = self.audit.record(
                identity.id,
                "policy_dependents_updated",
                "policy",
                policy.id,
                {"before": len(policy.dependents), "after": len(dependents)},
            )
            await self.audit.commit(record, lambda: self._store(updated))
            return updated

    def _store(self, policy: Policy) -> Policy:
        self._policies[policy.id] = policy
        return policy
