"""
Domain State Definitions

Defines the closed vocabularies of the adjudication core: claim and policy
statuses, policy tiers, identity roles, notification types and the
operations checked by the authorization gate.
"""
from enum import Enum


class ClaimStatus(str, Enum):
    """
    Enum representing the possible states of an insurance claim.

    Flow: PENDING -> APPROVED | REJECTED | FLAGGED_FOR_REVIEW (all terminal)
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED_FOR_REVIEW = "flagged_for_review"


class PolicyStatus(str, Enum):
    """
    Enum representing the lifecycle of an insurance policy.

    Flow: PENDING -> ACTIVE <-> LAPSED, any non-terminal -> CANCELLED
    """
    PENDING = "pending"
    ACTIVE = "active"
    LAPSED = "lapsed"
    CANCELLED = "cancelled"


class PolicyTier(str, Enum):
    """The four fixed insurance plans."""
    MSINGI = "msingi"
    KATI = "kati"
    JUU = "juu"
    FAMILIA = "familia"


class Role(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    FRONT_DESK = "front-desk"
    PHARMACY = "pharmacy"
    PATIENT = "patient"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    ADMIN = "admin"


class Operation(str, Enum):
    """Operations guarded by the authorization gate."""
    SUBMIT_CLAIM = "submitClaim"
    SUBMIT_CLAIM_ON_BEHALF = "submitClaimOnBehalf"
    PROCESS_CLAIM = "processClaim"
    VIEW_ALL_CLAIMS = "viewAllClaims"
    VIEW_OWN_CLAIMS = "viewOwnClaims"
    ENROLL_POLICY = "enrollPolicy"
    UPDATE_POLICY_STATUS = "updatePolicyStatus"
    EDIT_DEPENDENTS = "editDependents"
    SEND_BROADCAST_NOTIFICATION = "sendBroadcastNotification"
    VIEW_AUDIT_TRAIL = "viewAuditTrail"
    READ_NOTIFICATIONS = "readNotifications"
    DELETE_NOTIFICATION = "deleteNotification"


class EnrollmentConflict(str, Enum):
    """What enrollment does when the owner already holds an active policy."""
    REJECT = "reject"
    SUPERSEDE = "supersede"


# Premium and coverage limit (KSh) preset for each tier
TIER_DEFAULTS = {
    PolicyTier.MSINGI: {"premium_amount": 500.0, "coverage_limit": 50000.0},
    PolicyTier.KATI: {"premium_amount": 1500.0, "coverage_limit": 150000.0},
    PolicyTier.JUU: {"premium_amount": 3000.0, "coverage_limit": 300000.0},
    PolicyTier.FAMILIA: {"premium_amount": 5000.0, "coverage_limit": 500000.0},
}
