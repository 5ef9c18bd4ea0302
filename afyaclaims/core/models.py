"""
Domain Pydantic Models

Defines identities, sessions, policies, claims, audit records and
notifications. Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .states import ClaimStatus, NotificationType, PolicyStatus, PolicyTier, Role


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class WireModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Identity(WireModel):
    """An authenticated principal."""
    id: str = Field(..., description="Identity id")
    email: str = Field(..., description="Login email")
    role: Role = Field(default=Role.PATIENT, description="Role used by the authorization gate")
    full_name: Optional[str] = Field(default=None, description="Display name")


class Session(WireModel):
    """
    Authenticated session held by the client.

    Returned by the login and refresh endpoints.
    """
    identity: Identity
    access_token: str
    refresh_token: str
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at


class Dependent(WireModel):
    """A person covered under a policy besides its owner."""
    name: str = Field(..., min_length=1)
    relationship: str = Field(..., min_length=1)


class Policy(WireModel):
    """
    Insurance Policy Model

    Created by enrollment; only its status and dependents change afterwards.
    """
    id: str = Field(default_factory=new_id, description="Unique policy identifier")
    owner_id: str = Field(..., description="Identity owning the policy")
    tier: PolicyTier
    status: PolicyStatus = Field(default=PolicyStatus.PENDING)
    coverage_limit: float = Field(..., gt=0)
    premium_amount: float = Field(..., gt=0)
    dependents: List[Dependent] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class PolicyCreate(WireModel):
    """Request model for enrolling in a policy tier."""
    tier: PolicyTier
    dependents: List[Dependent] = Field(default_factory=list)


class Claim(WireModel):
    """
    Insurance Claim Model

    Submitted as PENDING and adjudicated exactly once.
    """
    id: str = Field(default_factory=new_id, description="Unique claim identifier")
    policy_id: str
    patient_id: str
    facility_id: str
    claim_amount: float = Field(..., gt=0, description="Claim amount in KSh")
    services_rendered: List[str] = Field(..., min_length=1)
    status: ClaimStatus = Field(default=ClaimStatus.PENDING)
    rejection_reason: Optional[str] = None
    processed_by: Optional[str] = Field(default=None, description="Admin who adjudicated the claim")
    transaction_hash: Optional[str] = Field(default=None, description="Ledger attestation for approved claims")
    submitted_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_outcome_fields(self) -> "Claim":
        if self.status == ClaimStatus.REJECTED and not (self.rejection_reason or "").strip():
            raise ValueError("rejected claims require a rejection reason")
        if self.status == ClaimStatus.APPROVED and not self.transaction_hash:
            raise ValueError("approved claims require a transaction hash")
        if self.status != ClaimStatus.PENDING and not self.processed_by:
            raise ValueError("processed claims require processed_by")
        return self


class ClaimCreate(WireModel):
    """
    Request model for submitting a claim.

    Amount and services are checked by the claims engine rather than here so
    that rule violations surface as domain validation errors.
    """
    policy_id: str
    patient_id: Optional[str] = Field(default=None, description="The policy owner; defaults to them")
    facility_id: str
    claim_amount: float
    services_rendered: List[str] = Field(default_factory=list)


class AuditRecord(WireModel):
    """Immutable entry in the audit trail."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    sequence: int = Field(default=0, description="Append order, assigned by the trail")
    actor_id: str
    action: str
    resource_type: str
    resource_id: str
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class AuditQuery(WireModel):
    actor_id: Optional[str] = None
    action: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class Pagination(WireModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class AuditPage(WireModel):
    records: List[AuditRecord]
    pagination: Pagination


class NotificationMetadata(WireModel):
    action: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    link: Optional[str] = None


class NotificationCreate(WireModel):
    """
    A message to deliver.

    Targets explicit user ids, roles (expanded at send time), or both.
    """
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    user_ids: Optional[List[str]] = None
    roles: Optional[List[Role]] = None
    metadata: Optional[NotificationMetadata] = None


class Notification(WireModel):
    """A notification delivered to one recipient."""
    id: str = Field(default_factory=new_id)
    dispatch_id: str
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    is_read: bool = False
    metadata: Optional[NotificationMetadata] = None
    sent_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class NotificationPage(WireModel):
    notifications: List[Notification]
    unread_count: int
    pagination: Pagination


def paginate(items: List[Any], page: int, page_size: int) -> tuple[List[Any], Pagination]:
    """Slice a newest-first sequence into one page (pages start at 1)."""
    page = max(page, 1)
    page_size = max(page_size, 1)
    total = len(items)
    start = (page - 1) * page_size
    pagination = Pagination(
        current_page=page,
        total_pages=(total + page_size - 1) // page_size,
        total_items=total,
        items_per_page=page_size,
    )
    return items[start:start + page_size], pagination
