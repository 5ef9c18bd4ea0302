"""
Token Service

Issues signed access/refresh token pairs and verifies them. Refresh tokens
are single-use: a refresh rotates the pair and revokes the old one.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Set

import jwt

from afyaclaims.core.errors import AuthenticationError
from afyaclaims.core.models import Identity, Session, new_id, utcnow
from afyaclaims.services.directory import UserDirectory

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


class TokenService:
    def __init__(
        self,
        directory: UserDirectory,
        secret_key: str,
        algorithm: str = "HS256",
        access_expires_seconds: int = 900,
        refresh_expires_seconds: int = 7 * 24 * 3600,
    ):
        self._directory = directory
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._access_ttl = timedelta(seconds=access_expires_seconds)
        self._refresh_ttl = timedelta(seconds=refresh_expires_seconds)
        self._revoked: Set[str] = set()

    def issue(self, identity: Identity) -> Session:
        """Generate a signed token pair for the identity."""
        now = utcnow()
        expires_at = now + self._access_ttl
        access = self._encode(identity, ACCESS, now, expires_at)
        refresh = self._encode(identity, REFRESH, now, now + self._refresh_ttl)
        return Session(identity=identity, access_token=access, refresh_token=refresh, expires_at=expires_at)

    def authenticate(self, access_token: str) -> Identity:
        """Resolve the identity behind an access token."""
        payload = self._decode(access_token, ACCESS)
        identity = self._directory.get(payload.get("sub"))
        if identity is None:
            raise AuthenticationError("User not found")
        return identity

    def refresh(self, refresh_token: str) -> Session:
        """Exchange a refresh token for a new pair, revoking the old token."""
        payload = self._decode(refresh_token, REFRESH)
        identity = self._directory.get(payload.get("sub"))
        if identity is None:
            raise AuthenticationError("User not found")
        self._revoked.add(payload["jti"])
        logger.info(f"Rotated refresh token for {identity.id}")
        return self.issue(identity)

    def revoke(self, refresh_token: str) -> None:
        try:
            payload = self._decode(refresh_token, REFRESH)
        except AuthenticationError:
            # Expired or already revoked tokens need no revocation
            return
        self._revoked.add(payload["jti"])

    def _encode(self, identity: Identity, token_type: str, issued_at, expires_at) -> str:
        payload = {
            "sub": identity.id,
            "email": identity.email,
            "role": identity.role.value,
            "type": token_type,
            "jti": new_id(),
            "iat": issued_at,
            "exp": expires_at,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def _decode(self, token: str, token_type: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.PyJWTError as exc:
            raise AuthenticationError("Token is invalid") from exc

        if payload.get("type") != token_type:
            raise AuthenticationError("Token is invalid")
        if payload.get("jti") in self._revoked:
            raise AuthenticationError("Token has been revoked")
        return payload
