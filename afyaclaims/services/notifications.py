"""
Notification Dispatcher

Delivers notifications to explicit users or to every member of a role set
(expanded once, at send time) and tracks read state. Read and delete
operations are idempotent.
"""
import logging
from typing import Dict, List, Optional

from afyaclaims.core.concurrency import EntityLocks
from afyaclaims.core.errors import NotFoundError, ValidationError
from afyaclaims.core.models import (
    Identity,
    Notification,
    NotificationCreate,
    NotificationPage,
    new_id,
    paginate,
)
from afyaclaims.core.states import Operation
from afyaclaims.services.audit_trail import AuditTrail
from afyaclaims.services.authorization import AuthorizationGate
from afyaclaims.services.directory import UserDirectory

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Owns notifications and their read state.

    ``unread_count`` is never stored; it is recounted from the owner's
    notifications on every fetch.
    """

    def __init__(
        self,
        directory: UserDirectory,
        audit: AuditTrail,
        gate: AuthorizationGate,
        locks: Optional[EntityLocks] = None,
    ):
        self._directory = directory
        self._audit = audit
        self._gate = gate
        self._locks = locks or EntityLocks()
        self._notifications: Dict[str, Notification] = {}

    def resolve_recipients(self, request: NotificationCreate) -> List[str]:
        """Expand the target of a notification into recipient ids."""
        if not request.title.strip() or not request.message.strip():
            raise ValidationError("Title and message are required")
        if not request.user_ids and not request.roles:
            raise ValidationError("Either userIds or roles must be specified")

        recipients: List[str] = []
        if request.user_ids:
            recipients.extend(self._directory.existing(request.user_ids))
        if request.roles:
            recipients.extend(self._directory.members(request.roles))

        # Keep first occurrence order, drop duplicates
        recipients = list(dict.fromkeys(recipients))
        if not recipients:
            raise NotFoundError("No users found matching the criteria")
        return recipients

    async def send(self, request: NotificationCreate, sent_by: Optional[str] = None) -> str:
        """
        Create one notification per recipient.

        Returns:
            The dispatch id shared by every notification of this send
        """
        recipients = self.resolve_recipients(request)
        dispatch_id = self._deliver(request, recipients, new_id(), sent_by)
        logger.info(f"Notification '{request.title}' sent to {len(recipients)} users (dispatch {dispatch_id})")
        return dispatch_id

    async def broadcast(self, identity: Identity, request: NotificationCreate) -> str:
        """Send on behalf of an identity allowed to broadcast; the send is audited."""
        self._gate.require(identity, Operation.SEND_BROADCAST_NOTIFICATION)
        recipients = self.resolve_recipients(request)
        dispatch_id = new_id()
        record = self._audit.record(
            identity.id,
            "notification_sent",
            "notification",
            dispatch_id,
            {"title": request.title, "type": request.type.value, "recipients": len(recipients)},
        )

        await self._audit.commit(record, lambda: self._deliver(request, recipients, dispatch_id, identity.id))
        logger.info(f"Broadcast '{request.title}' by {identity.id} reached {len(recipients)} users")
        return dispatch_id

    def _deliver(
        self,
        request: NotificationCreate,
        recipients: List[str],
        dispatch_id: str,
        sent_by: Optional[str],
    ) -> str:
        for user_id in recipients:
            notification = Notification(
                dispatch_id=dispatch_id,
                user_id=user_id,
                title=request.title,
                message=request.message,
                type=request.type,
                metadata=request.metadata,
                sent_by=sent_by,
            )
            self._notifications[notification.id] = notification
        return dispatch_id

    def get(self, notification_id: str) -> Optional[Notification]:
        return self._notifications.get(notification_id)

    def fetch(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> NotificationPage:
        """Return a user's notifications newest first with the live unread count."""
        # Reversed insertion order breaks created_at ties newest first
        owned = [n for n in reversed(list(self._notifications.values())) if n.user_id == user_id]
        owned.sort(key=lambda n: n.created_at, reverse=True)
        unread_count = sum(1 for n in owned if not n.is_read)
        listed = [n for n in owned if not n.is_read] if unread_only else owned
        notifications, pagination = paginate(listed, page, limit)
        return NotificationPage(notifications=notifications, unread_count=unread_count, pagination=pagination)

    async def mark_read(self, notification_id: str) -> Optional[Notification]:
        return await self._set_read(notification_id, True)

    async def mark_unread(self, notification_id: str) -> Optional[Notification]:
        return await self._set_read(notification_id, False)

    async def _set_read(self, notification_id: str, is_read: bool) -> Optional[Notification]:
        async with self._locks.hold(f"notification:{notification_id}"):
            notification = self._notifications.get(notification_id)
            if notification is None or notification.is_read == is_read:
                return notification
            updated = notification.model_copy(update={"is_read": is_read})
            self._notifications[notification_id] = updated
            return updated

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user read; returns how many changed."""
        async with self._locks.hold(f"inbox:{user_id}"):
            changed = 0
            for notification in list(self._notifications.values()):
                if notification.user_id == user_id and not notification.is_read:
                    self._notifications[notification.id] = notification.model_copy(update={"is_read": True})
                    changed += 1
        logger.info(f"Marked {changed} notifications read for {user_id}")
        return changed

    async def delete(self, notification_id: str, actor: Optional[Identity] = None) -> bool:
        """
        Delete a notification. Deleting an absent one succeeds as a no-op.

        Returns:
            True if a notification was removed
        """
        async with self._locks.hold(f"notification:{notification_id}"):
            notification = self._notifications.get(notification_id)
            if notification is None:
                return False
            if actor is None:
                del self._notifications[notification_id]
                return True
            record = self._audit.record(
                actor.id,
                "notification_deleted",
                "notification",
                notification_id,
                {"owner": notification.user_id},
            )
            await self._audit.commit(record, lambda: self._notifications.pop(notification_id, None))
            return True

    def count_dispatch(self, dispatch_id: str) -> int:
        """How many recipients a dispatch reached that still hold it."""
        return sum(1 for n in self._notifications.values() if n.dispatch_id == dispatch_id)
