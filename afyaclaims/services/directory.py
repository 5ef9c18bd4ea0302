import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from afyaclaims.core.errors import AuthenticationError, StateError, ValidationError
from afyaclaims.core.models import Identity, new_id
from afyaclaims.core.states import Role

logger = logging.getLogger(__name__)


@dataclass
class _Account:
    identity: Identity
    password_hash: str


class UserDirectory:
    """Registered identities, used for login and for expanding role targets."""

    def __init__(self):
        self._accounts: Dict[str, _Account] = {}
        self._by_email: Dict[str, str] = {}

    def register(
        self,
        email: str,
        password: str,
        role: Role = Role.PATIENT,
        full_name: Optional[str] = None,
    ) -> Identity:
        """Create a new identity with a hashed password."""
        normalized_email = email.strip().lower()
        if not normalized_email or not password:
            raise ValidationError("Email and password are required")
        if normalized_email in self._by_email:
            raise StateError("Email is already registered")

        identity = Identity(id=new_id(), email=normalized_email, role=role, full_name=full_name)
        self._accounts[identity.id] = _Account(identity, generate_password_hash(password))
        self._by_email[normalized_email] = identity.id
        logger.info(f"Registered {role.value} identity {identity.id}")
        return identity

    def authenticate(self, email: str, password: str) -> Identity:
        """Validate credentials and return the identity."""
        account_id = self._by_email.get(email.strip().lower())
        account = self._accounts.get(account_id) if account_id else None
        if not account or not check_password_hash(account.password_hash, password):
            raise AuthenticationError("Invalid email or password")
        return account.identity

    def get(self, identity_id: str) -> Optional[Identity]:
        account = self._accounts.get(identity_id)
        return account.identity if account else None

    def members(self, roles: Iterable[Role]) -> List[str]:
        """Ids of every identity currently holding one of the roles."""
        wanted = set(roles)
        return [a.identity.id for a in self._accounts.values() if a.identity.role in wanted]

    def existing(self, identity_ids: Iterable[str]) -> List[str]:
        return [i for i in identity_ids if i in self._accounts]
