"""
Process Monitor

Watches committed claim and policy state changes and triggers the
appropriate follow-up, by default notifying the affected owner.
"""
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List

from afyaclaims.core.models import Claim, NotificationCreate, NotificationMetadata, Policy
from afyaclaims.core.states import ClaimStatus, NotificationType, PolicyStatus

if TYPE_CHECKING:
    from afyaclaims.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

ClaimHandler = Callable[[Claim, str], Awaitable[None]]
PolicyHandler = Callable[[Policy], Awaitable[None]]

_CLAIM_OUTCOMES = {
    ClaimStatus.APPROVED: (NotificationType.SUCCESS, "Claim approved"),
    ClaimStatus.REJECTED: (NotificationType.ERROR, "Claim rejected"),
    ClaimStatus.FLAGGED_FOR_REVIEW: (NotificationType.WARNING, "Claim flagged for review"),
}


class ProcessMonitor:
    """
    Monitors claim and policy transitions and triggers event hooks.

    Handlers run only after the transition has been committed and audited.
    """

    def __init__(self, dispatcher: "NotificationDispatcher"):
        """
        Initialize the process monitor.

        Args:
            dispatcher: Used by the default handlers to notify owners
        """
        self.dispatcher = dispatcher
        self._claim_handlers: Dict[ClaimStatus, List[ClaimHandler]] = {}
        self._policy_handlers: Dict[PolicyStatus, List[PolicyHandler]] = {}

        # Register default handlers
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        for status in _CLAIM_OUTCOMES:
            self.register_claim_handler(status, self._notify_claim_owner)
        self.register_policy_handler(PolicyStatus.LAPSED, self._notify_policy_owner)
        self.register_policy_handler(PolicyStatus.CANCELLED, self._notify_policy_owner)

    def register_claim_handler(self, status: ClaimStatus, handler: ClaimHandler) -> None:
        """Register an async handler called with (claim, owner_id) when a claim enters a status."""
        self._claim_handlers.setdefault(status, []).append(handler)

    def register_policy_handler(self, status: PolicyStatus, handler: PolicyHandler) -> None:
        """Register an async handler called with the policy when it enters a status."""
        self._policy_handlers.setdefault(status, []).append(handler)

    async def on_claim_status_entered(self, claim: Claim, owner_id: str) -> None:
        for handler in self._claim_handlers.get(claim.status, []):
            await handler(claim, owner_id)

    async def on_policy_status_entered(self, policy: Policy) -> None:
        for handler in self._policy_handlers.get(policy.status, []):
            await handler(policy)

    async def _notify_claim_owner(self, claim: Claim, owner_id: str) -> None:
        """Tell the policy owner how their claim was adjudicated."""
        notification_type, title = _CLAIM_OUTCOMES[claim.status]
        message = f"Your claim of KSh {claim.claim_amount:,.2f} was {claim.status.value.replace('_', ' ')}."
        if claim.status == ClaimStatus.REJECTED:
            message += f" Reason: {claim.rejection_reason}"

        await self.dispatcher.send(
            NotificationCreate(
                title=title,
                message=message,
                type=notification_type,
                user_ids=[owner_id],
                metadata=NotificationMetadata(
                    action=f"claim_{claim.status.value}",
                    resource="claim",
                    resource_id=claim.id,
                    link=f"/claims/{claim.id}",
                ),
            ),
            sent_by=claim.processed_by,
        )
        logger.info(f"Owner {owner_id} notified of claim {claim.id} outcome {claim.status.value}")

    async def _notify_policy_owner(self, policy: Policy) -> None:
        await self.dispatcher.send(
            NotificationCreate(
                title=f"Policy {policy.status.value}",
                message=(
                    f"Your {policy.tier.value} policy is now {policy.status.value}. "
                    f"Claims cannot be submitted against it."
                ),
                type=NotificationType.WARNING,
                user_ids=[policy.owner_id],
                metadata=NotificationMetadata(
                    action=f"policy_{policy.status.value}",
                    resource="policy",
                    resource_id=policy.id,
                    link="/insurance",
                ),
            )
        )
        logger.info(f"Owner {policy.owner_id} notified that policy {policy.id} is {policy.status.value}")
