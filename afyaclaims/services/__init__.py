# Services module - one instance of each per process, wired by build_services
from dataclasses import dataclass
from typing import Optional

from afyaclaims.config import Settings, get_settings
from afyaclaims.core.concurrency import EntityLocks
from afyaclaims.integrations.ledger import EnrollmentVerifier, SimulatedLedger, TransactionLedger
from afyaclaims.monitors.process_monitor import ProcessMonitor

from .audit_trail import AuditStore, AuditTrail, RequestOrigin, request_origin
from .authorization import AuthorizationGate
from .claims_engine import ClaimsEngine
from .directory import UserDirectory
from .notifications import NotificationDispatcher
from .policy_ledger import PolicyLedger
from .tokens import TokenService


@dataclass
class ServiceContainer:
    """The adjudication core's service objects, shared by reference."""
    settings: Settings
    directory: UserDirectory
    tokens: TokenService
    gate: AuthorizationGate
    audit: AuditTrail
    notifications: NotificationDispatcher
    monitor: ProcessMonitor
    policies: PolicyLedger
    claims: ClaimsEngine


def build_services(
    settings: Optional[Settings] = None,
    ledger: Optional[TransactionLedger] = None,
    verifier: Optional[EnrollmentVerifier] = None,
    audit_store: Optional[AuditStore] = None,
) -> ServiceContainer:
    """Construct and wire every service once."""
    settings = settings or get_settings()
    locks = EntityLocks()
    directory = UserDirectory()
    tokens = TokenService(
        directory,
        secret_key=settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
        access_expires_seconds=settings.JWT_ACCESS_EXPIRES_SECONDS,
        refresh_expires_seconds=settings.JWT_REFRESH_EXPIRES_SECONDS,
    )
    gate = AuthorizationGate()
    audit = AuditTrail(audit_store)
    notifications = NotificationDispatcher(directory, audit, gate, locks)
    monitor = ProcessMonitor(notifications)
    policies = PolicyLedger(
        gate,
        audit,
        monitor,
        verifier=verifier,
        conflict=settings.ENROLLMENT_CONFLICT,
        locks=locks,
    )
    claims = ClaimsEngine(
        policies,
        gate,
        audit,
        ledger or SimulatedLedger(delay=settings.LEDGER_DELAY_SECONDS),
        monitor,
        locks=locks,
    )
    return ServiceContainer(
        settings=settings,
        directory=directory,
        tokens=tokens,
        gate=gate,
        audit=audit,
        notifications=notifications,
        monitor=monitor,
        policies=policies,
        claims=claims,
    )


__all__ = [
    "AuditStore",
    "AuditTrail",
    "AuthorizationGate",
    "ClaimsEngine",
    "NotificationDispatcher",
    "PolicyLedger",
    "RequestOrigin",
    "ServiceContainer",
    "TokenService",
    "UserDirectory",
    "build_services",
    "request_origin",
]
