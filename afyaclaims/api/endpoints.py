"""
FastAPI Endpoints for the Adjudication Core

Provides the REST surface for authentication, policies, claims, the audit
trail and notifications. Successful responses use the envelope
``{"success": true, "data": ...}``; failures are rendered as
``{"error": "..."}`` by the handlers registered in main.py.
"""
import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from pydantic import Field

from afyaclaims.core.errors import AuthenticationError, AuthorizationError, NotFoundError
from afyaclaims.core.models import (
    AuditQuery,
    ClaimCreate,
    Dependent,
    Identity,
    NotificationCreate,
    PolicyCreate,
    WireModel,
)
from afyaclaims.core.states import ClaimStatus, Operation, PolicyStatus, Role
from afyaclaims.services import ServiceContainer
from afyaclaims.services.audit_trail import RequestOrigin, request_origin

logger = logging.getLogger(__name__)


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def bind_request_origin(
    request: Request,
    user_agent: Optional[str] = Header(default=None),
) -> None:
    """Expose client address and agent to audit records built for this request."""
    request_origin.set(RequestOrigin(
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent,
    ))


async def current_identity(
    authorization: Optional[str] = Header(default=None),
    services: ServiceContainer = Depends(get_services),
) -> Identity:
    """Resolve the identity behind the bearer token."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Authorization header missing or malformed")
    return services.tokens.authenticate(authorization.split(" ", 1)[1].strip())


# Initialize router
router = APIRouter(dependencies=[Depends(bind_request_origin)])


def envelope(data: Any) -> dict:
    if isinstance(data, WireModel):
        data = data.to_wire()
    elif isinstance(data, list):
        data = [item.to_wire() if isinstance(item, WireModel) else item for item in data]
    return {"success": True, "data": data}


# ============================================
# AUTH
# ============================================

class LoginRequest(WireModel):
    email: str
    password: str


class RegisterRequest(WireModel):
    email: str
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = None
    role: Role = Role.PATIENT


class RefreshRequest(WireModel):
    refresh_token: str


class LogoutRequest(WireModel):
    refresh_token: Optional[str] = None


@router.post("/auth/register", status_code=status.HTTP_201_CREATED, tags=["auth"])
async def register(body: RegisterRequest, services: ServiceContainer = Depends(get_services)) -> dict:
    """Register a new identity. Administrator accounts cannot self-register."""
    if body.role == Role.ADMIN:
        raise AuthorizationError("Administrator accounts cannot be self-registered")
    identity = services.directory.register(body.email, body.password, body.role, body.full_name)
    return envelope(identity)


@router.post("/auth/login", tags=["auth"])
async def login(body: LoginRequest, services: ServiceContainer = Depends(get_services)) -> dict:
    identity = services.directory.authenticate(body.email, body.password)
    logger.info(f"Identity {identity.id} logged in")
    return envelope(services.tokens.issue(identity))


@router.post("/auth/refresh", tags=["auth"])
async def refresh(body: RefreshRequest, services: ServiceContainer = Depends(get_services)) -> dict:
    return envelope(services.tokens.refresh(body.refresh_token))


@router.get("/auth/me", tags=["auth"])
async def me(identity: Identity = Depends(current_identity)) -> dict:
    return envelope(identity)


@router.post("/auth/logout", tags=["auth"])
async def logout(body: LogoutRequest, services: ServiceContainer = Depends(get_services)) -> dict:
    if body.refresh_token:
        services.tokens.revoke(body.refresh_token)
    return {"success": True, "message": "Logged out"}


# ============================================
# INSURANCE POLICIES
# ============================================

class PolicyStatusRequest(WireModel):
    status: PolicyStatus


class DependentsRequest(WireModel):
    dependents: List[Dependent]


@router.post("/insurance", status_code=status.HTTP_201_CREATED, tags=["insurance"])
async def enroll(
    body: PolicyCreate,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """Enroll the caller in a policy tier."""
    policy = await services.policies.enroll(identity, body.tier, body.dependents)
    return envelope(policy)


@router.get("/insurance/user/{user_id}", tags=["insurance"])
async def get_user_policy(
    user_id: str,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """The user's current policy. Front desk may look it up to file on their behalf."""
    if user_id != identity.id:
        services.gate.require(identity, Operation.SUBMIT_CLAIM_ON_BEHALF)
    policy = services.policies.get_by_owner(user_id)
    if policy is None:
        raise NotFoundError("Insurance policy not found")
    return envelope(policy)


@router.patch("/insurance/{policy_id}/status", tags=["insurance"])
async def update_policy_status(
    policy_id: str,
    body: PolicyStatusRequest,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    policy = await services.policies.update_status(identity, policy_id, body.status)
    return envelope(policy)


@router.put("/insurance/{policy_id}/dependents", tags=["insurance"])
async def update_dependents(
    policy_id: str,
    body: DependentsRequest,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    policy = await services.policies.update_dependents(identity, policy_id, body.dependents)
    return envelope(policy)


# ============================================
# CLAIMS
# ============================================

class ProcessRequest(WireModel):
    status: ClaimStatus
    rejection_reason: Optional[str] = None


@router.post("/claims", status_code=status.HTTP_201_CREATED, tags=["claims"])
async def submit_claim(
    body: ClaimCreate,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """
    Submit a claim.

    The claim starts in PENDING state.
    """
    claim = await services.claims.submit(identity, body)
    return envelope(claim)


@router.get("/claims", tags=["claims"])
async def list_claims(
    claim_status: Optional[ClaimStatus] = Query(default=None, alias="status"),
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """List every claim, optionally filtered by ``?status=`` (admin)."""
    return envelope(services.claims.list_all(identity, claim_status))


@router.get("/claims/patient/{patient_id}", tags=["claims"])
async def list_patient_claims(
    patient_id: str,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """Claim history of a patient: the patient themselves or an admin."""
    operation = Operation.VIEW_OWN_CLAIMS if patient_id == identity.id else Operation.VIEW_ALL_CLAIMS
    services.gate.require(identity, operation)
    return envelope(services.claims.list_for_owner(patient_id))


@router.patch("/claims/{claim_id}/process", tags=["claims"])
async def process_claim(
    claim_id: str,
    body: ProcessRequest,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """Approve, reject or flag a pending claim (admin)."""
    claim = await services.claims.process(identity, claim_id, body.status, body.rejection_reason)
    return envelope(claim)


# ============================================
# AUDIT TRAIL
# ============================================

@router.get("/audit-logs", tags=["audit"])
async def audit_logs(
    userId: Optional[str] = None,
    action: Optional[str] = None,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    page: int = 1,
    limit: int = 50,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    services.gate.require(identity, Operation.VIEW_AUDIT_TRAIL)
    filters = AuditQuery(actor_id=userId, action=action, start_date=startDate, end_date=endDate)
    result = await services.audit.query(filters, page, limit)
    return {
        "success": True,
        "data": [r.to_wire() for r in result.records],
        "pagination": result.pagination.to_wire(),
    }


# ============================================
# NOTIFICATIONS
# ============================================

class ReadAllRequest(WireModel):
    user_id: Optional[str] = None


def _require_inbox_access(identity: Identity, owner_id: str, operation: Operation, services: ServiceContainer) -> None:
    services.gate.require(identity, operation)
    if owner_id != identity.id and not services.gate.permit(identity, Operation.SEND_BROADCAST_NOTIFICATION):
        raise AuthorizationError("You can only manage your own notifications")


@router.get("/users/{user_id}/notifications", tags=["notifications"])
async def user_notifications(
    user_id: str,
    page: int = 1,
    limit: int = 20,
    unreadOnly: bool = False,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    _require_inbox_access(identity, user_id, Operation.READ_NOTIFICATIONS, services)
    result = services.notifications.fetch(user_id, page, limit, unreadOnly)
    return {
        "success": True,
        "data": [n.to_wire() for n in result.notifications],
        "pagination": result.pagination.to_wire(),
        "unreadCount": result.unread_count,
    }


@router.patch("/notifications/{notification_id}/read", tags=["notifications"])
async def mark_read(
    notification_id: str,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    existing = services.notifications.get(notification_id)
    if existing is None:
        return envelope(None)
    _require_inbox_access(identity, existing.user_id, Operation.READ_NOTIFICATIONS, services)
    return envelope(await services.notifications.mark_read(notification_id))


@router.patch("/notifications/{notification_id}/unread", tags=["notifications"])
async def mark_unread(
    notification_id: str,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    existing = services.notifications.get(notification_id)
    if existing is None:
        return envelope(None)
    _require_inbox_access(identity, existing.user_id, Operation.READ_NOTIFICATIONS, services)
    return envelope(await services.notifications.mark_unread(notification_id))


@router.post("/notifications/read-all", tags=["notifications"])
async def mark_all_read(
    body: Optional[ReadAllRequest] = None,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    user_id = (body.user_id if body else None) or identity.id
    _require_inbox_access(identity, user_id, Operation.READ_NOTIFICATIONS, services)
    changed = await services.notifications.mark_all_read(user_id)
    return {"success": True, "message": "All notifications marked as read", "updated": changed}


@router.delete("/notifications/{notification_id}", tags=["notifications"])
async def delete_notification(
    notification_id: str,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    existing = services.notifications.get(notification_id)
    if existing is not None:
        _require_inbox_access(identity, existing.user_id, Operation.DELETE_NOTIFICATION, services)
        await services.notifications.delete(notification_id, actor=identity)
    return {"success": True, "message": "Notification deleted"}


@router.post("/notifications/send", tags=["notifications"])
async def send_notification(
    body: NotificationCreate,
    identity: Identity = Depends(current_identity),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    dispatch_id = await services.notifications.broadcast(identity, body)
    sent = services.notifications.count_dispatch(dispatch_id)
    return {
        "success": True,
        "message": f"Notification sent to {sent} users",
        "sentCount": sent,
        "dispatchId": dispatch_id,
    }
