# Core module - states, models and errors
from .states import (
    ClaimStatus,
    EnrollmentConflict,
    NotificationType,
    Operation,
    PolicyStatus,
    PolicyTier,
    Role,
    TIER_DEFAULTS,
)
from .models import (
    AuditPage,
    AuditQuery,
    AuditRecord,
    Claim,
    ClaimCreate,
    Dependent,
    Identity,
    Notification,
    NotificationCreate,
    NotificationMetadata,
    NotificationPage,
    Policy,
    PolicyCreate,
    Session,
)
from .errors import (
    AdjudicationError,
    AuthenticationError,
    AuthorizationError,
    DependencyError,
    NotFoundError,
    StateError,
    ValidationError,
)

__all__ = [
    "ClaimStatus", "EnrollmentConflict", "NotificationType", "Operation", "PolicyStatus",
    "PolicyTier", "Role", "TIER_DEFAULTS",
    "AuditPage", "AuditQuery", "AuditRecord", "Claim", "ClaimCreate", "Dependent", "Identity",
    "Notification", "NotificationCreate", "NotificationMetadata", "NotificationPage", "Policy",
    "PolicyCreate", "Session",
    "AdjudicationError", "AuthenticationError", "AuthorizationError", "DependencyError",
    "NotFoundError", "StateError", "ValidationError",
]
