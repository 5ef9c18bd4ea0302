"""
Client-side projections.

Pure reducers over immutable views. Each reducer is applied only after the
server confirmed the change and returns a new view; the unread count is
derived from the view, never adjusted by hand.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from afyaclaims.core.models import Claim, Notification, NotificationPage
from afyaclaims.core.states import ClaimStatus


class NotificationsView(BaseModel):
    model_config = ConfigDict(frozen=True)

    notifications: List[Notification] = Field(default_factory=list)
    # Unread notifications on the server that are not on the loaded page
    unread_elsewhere: int = 0

    @property
    def unread_count(self) -> int:
        return self.unread_elsewhere + sum(1 for n in self.notifications if not n.is_read)

    def apply_fetch(self, page: NotificationPage) -> "NotificationsView":
        loaded_unread = sum(1 for n in page.notifications if not n.is_read)
        return NotificationsView(
            notifications=list(page.notifications),
            unread_elsewhere=max(page.unread_count - loaded_unread, 0),
        )

    def apply_mark_read(self, notification_id: str, is_read: bool = True) -> "NotificationsView":
        notifications = [
            n.model_copy(update={"is_read": is_read}) if n.id == notification_id else n
            for n in self.notifications
        ]
        return self.model_copy(update={"notifications": notifications})

    def apply_mark_all_read(self) -> "NotificationsView":
        notifications = [n.model_copy(update={"is_read": True}) for n in self.notifications]
        return NotificationsView(notifications=notifications, unread_elsewhere=0)

    def apply_delete(self, notification_id: str) -> "NotificationsView":
        notifications = [n for n in self.notifications if n.id != notification_id]
        return self.model_copy(update={"notifications": notifications})


class ClaimsView(BaseModel):
    """Claims as last confirmed by the server, newest first."""
    model_config = ConfigDict(frozen=True)

    claims: List[Claim] = Field(default_factory=list)

    def apply_claim(self, claim: Claim) -> "ClaimsView":
        """Insert a new claim or replace the stored version of an existing one."""
        if any(c.id == claim.id for c in self.claims):
            claims = [claim if c.id == claim.id else c for c in self.claims]
        else:
            claims = [claim, *self.claims]
        return ClaimsView(claims=claims)

    def get(self, claim_id: str) -> Optional[Claim]:
        return next((c for c in self.claims if c.id == claim_id), None)

    def with_status(self, status: ClaimStatus) -> List[Claim]:
        return [c for c in self.claims if c.status == status]
