"""
Authorization Gate

Maps (identity role, operation) to permit/deny. Anything not granted
below is denied.
"""
import logging
from typing import Dict, FrozenSet, Optional

from afyaclaims.core.errors import AuthorizationError
from afyaclaims.core.models import Identity
from afyaclaims.core.states import Operation, Role

logger = logging.getLogger(__name__)

_NOTIFICATION_SELF_SERVICE = frozenset({
    Operation.READ_NOTIFICATIONS,
    Operation.DELETE_NOTIFICATION,
})


class AuthorizationGate:
    """Role-based permission table for the adjudication core."""

    RULES: Dict[Role, FrozenSet[Operation]] = {
        Role.ADMIN: frozenset(Operation),
        Role.PATIENT: frozenset({
            Operation.SUBMIT_CLAIM,
            Operation.VIEW_OWN_CLAIMS,
            Operation.ENROLL_POLICY,
            Operation.EDIT_DEPENDENTS,
        }) | _NOTIFICATION_SELF_SERVICE,
        Role.FRONT_DESK: frozenset({Operation.SUBMIT_CLAIM_ON_BEHALF}) | _NOTIFICATION_SELF_SERVICE,
        Role.DOCTOR: _NOTIFICATION_SELF_SERVICE,
        Role.NURSE: _NOTIFICATION_SELF_SERVICE,
        Role.PHARMACY: _NOTIFICATION_SELF_SERVICE,
    }

    def permit(self, identity: Optional[Identity], operation: Operation) -> bool:
        if identity is None:
            return False
        try:
            role = Role(identity.role)
        except ValueError:
            return False
        return operation in self.RULES.get(role, frozenset())

    def require(self, identity: Optional[Identity], operation: Operation) -> None:
        """Raise AuthorizationError unless the identity may perform the operation."""
        if not self.permit(identity, operation):
            who = f"{identity.id} ({identity.role.value})" if identity else "anonymous caller"
            logger.warning(f"Denied {operation.value} for {who}")
            raise AuthorizationError(f"You are not allowed to perform {operation.value}")
