# Client module - async API client, session handling and inbox polling
from .api import ApiClient
from .poller import NotificationPoller
from .projection import ClaimsView, NotificationsView
from .session import CredentialStore, MemoryCredentialStore, SessionManager

__all__ = [
    "ApiClient",
    "ClaimsView",
    "CredentialStore",
    "MemoryCredentialStore",
    "NotificationPoller",
    "NotificationsView",
    "SessionManager",
]
