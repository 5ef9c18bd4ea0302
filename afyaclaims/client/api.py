"""
Async API Client

Typed calls against the adjudication REST surface. Every authenticated call
carries the session's bearer token; a 401 triggers one shared refresh and a
single retry, and a second 401 ends the session.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from afyaclaims.config import Settings, get_settings
from afyaclaims.core.errors import AuthenticationError
from afyaclaims.core.models import (
    AuditPage,
    AuditRecord,
    Claim,
    ClaimCreate,
    Dependent,
    Identity,
    Notification,
    NotificationCreate,
    NotificationPage,
    Pagination,
    Policy,
    Session,
)
from afyaclaims.core.states import ClaimStatus, PolicyStatus, PolicyTier, Role

from .session import CredentialStore, SessionManager
from .wire import call, error_message, unwrap

logger = logging.getLogger(__name__)


class ApiClient:
    """Client for the adjudication core. Use as an async context manager."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        credential_store: Optional[CredentialStore] = None,
    ):
        settings = settings or get_settings()
        self.http = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=settings.API_TIMEOUT_SECONDS,
            transport=transport,
        )
        self.sessions = SessionManager(self.http, credential_store)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Perform an authenticated request and return the decoded body.

        Raises:
            AuthenticationError: If there is no session, or it could not be recovered
            AdjudicationError: The mapped error of any other failure response
        """
        session = self.sessions.session
        if session is None:
            raise AuthenticationError("Not logged in")

        response = await call(self.http, method, path, token=session.access_token, **kwargs)
        if response.status_code == 401:
            renewed = await self.sessions.recover_from_unauthorized(session.access_token)
            response = await call(self.http, method, path, token=renewed.access_token, **kwargs)
            if response.status_code == 401:
                message = error_message(response)
                await self.sessions.force_logout(message)
                raise AuthenticationError(message)
        return unwrap(response)

    # ============================================
    # AUTH
    # ============================================

    async def login(self, email: str, password: str) -> Session:
        return await self.sessions.authenticate(email, password)

    async def register(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        role: Role = Role.PATIENT,
    ) -> Identity:
        payload = {"email": email, "password": password, "fullName": full_name, "role": Role(role).value}
        response = await call(self.http, "POST", "/auth/register", json=payload)
        return Identity.model_validate(unwrap(response)["data"])

    async def me(self) -> Identity:
        body = await self.request("GET", "/auth/me")
        return Identity.model_validate(body["data"])

    async def logout(self) -> None:
        await self.sessions.logout()

    # ============================================
    # INSURANCE POLICIES
    # ============================================

    async def enroll(self, tier: PolicyTier, dependents: Optional[List[Dependent]] = None) -> Policy:
        payload = {
            "tier": PolicyTier(tier).value,
            "dependents": [d.to_wire() for d in dependents or []],
        }
        body = await self.request("POST", "/insurance", json=payload)
        return Policy.model_validate(body["data"])

    async def get_user_policy(self, user_id: str) -> Policy:
        body = await self.request("GET", f"/insurance/user/{user_id}")
        return Policy.model_validate(body["data"])

    async def update_policy_status(self, policy_id: str, status: PolicyStatus) -> Policy:
        body = await self.request("PATCH", f"/insurance/{policy_id}/status", json={"status": PolicyStatus(status).value})
        return Policy.model_validate(body["data"])

    async def update_dependents(self, policy_id: str, dependents: List[Dependent]) -> Policy:
        payload = {"dependents": [d.to_wire() for d in dependents]}
        body = await self.request("PUT", f"/insurance/{policy_id}/dependents", json=payload)
        return Policy.model_validate(body["data"])

    # ============================================
    # CLAIMS
    # ============================================

    async def submit_claim(self, claim: ClaimCreate) -> Claim:
        body = await self.request("POST", "/claims", json=claim.to_wire())
        return Claim.model_validate(body["data"])

    async def list_claims(self, status: Optional[ClaimStatus] = None) -> List[Claim]:
        params = {"status": ClaimStatus(status).value} if status else None
        body = await self.request("GET", "/claims", params=params)
        return [Claim.model_validate(item) for item in body["data"]]

    async def list_patient_claims(self, patient_id: str) -> List[Claim]:
        body = await self.request("GET", f"/claims/patient/{patient_id}")
        return [Claim.model_validate(item) for item in body["data"]]

    async def process_claim(
        self,
        claim_id: str,
        status: ClaimStatus,
        rejection_reason: Optional[str] = None,
    ) -> Claim:
        payload = {"status": ClaimStatus(status).value, "rejectionReason": rejection_reason}
        body = await self.request("PATCH", f"/claims/{claim_id}/process", json=payload)
        return Claim.model_validate(body["data"])

    # ============================================
    # AUDIT TRAIL
    # ============================================

    async def audit_logs(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> AuditPage:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if user_id:
            params["userId"] = user_id
        if action:
            params["action"] = action
        if start_date:
            params["startDate"] = start_date.isoformat()
        if end_date:
            params["endDate"] = end_date.isoformat()
        body = await self.request("GET", "/audit-logs", params=params)
        return AuditPage(
            records=[AuditRecord.model_validate(item) for item in body["data"]],
            pagination=Pagination.model_validate(body["pagination"]),
        )

    # ============================================
    # NOTIFICATIONS
    # ============================================

    async def notifications(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> NotificationPage:
        params = {"page": page, "limit": limit, "unreadOnly": str(unread_only).lower()}
        body = await self.request("GET", f"/users/{user_id}/notifications", params=params)
        return NotificationPage(
            notifications=[Notification.model_validate(item) for item in body["data"]],
            unread_count=body["unreadCount"],
            pagination=Pagination.model_validate(body["pagination"]),
        )

    async def mark_read(self, notification_id: str) -> Optional[Notification]:
        body = await self.request("PATCH", f"/notifications/{notification_id}/read")
        return Notification.model_validate(body["data"]) if body.get("data") else None

    async def mark_unread(self, notification_id: str) -> Optional[Notification]:
        body = await self.request("PATCH", f"/notifications/{notification_id}/unread")
        return Notification.model_validate(body["data"]) if body.get("data") else None

    async def mark_all_read(self, user_id: Optional[str] = None) -> int:
        body = await self.request("POST", "/notifications/read-all", json={"userId": user_id})
        return body.get("updated", 0)

    async def delete_notification(self, notification_id: str) -> None:
        await self.request("DELETE", f"/notifications/{notification_id}")

    async def send_notification(self, notification: NotificationCreate) -> Dict[str, Any]:
        """Broadcast a notification (admin). Returns dispatch id and recipient count."""
        body = await self.request("POST", "/notifications/send", json=notification.to_wire())
        logger.info(f"Notification '{notification.title}' sent to {body.get('sentCount')} users")
        return {"dispatch_id": body["dispatchId"], "sent_count": body["sentCount"]}
