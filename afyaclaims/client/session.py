"""
Client Session Manager

Owns the authenticated identity on the client side. Refreshing is
single-flight and an authentication failure that cannot be recovered ends
the session and signals forced logout once.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional

import httpx

from afyaclaims.core.errors import AdjudicationError, AuthenticationError
from afyaclaims.core.models import Identity, Session

from .wire import call, unwrap

logger = logging.getLogger(__name__)

ForcedLogoutHandler = Callable[[str], Any]


class CredentialStore:
    """Where the refresh token survives between client runs."""

    def load(self) -> Optional[str]:
        raise NotImplementedError

    def save(self, refresh_token: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self, refresh_token: Optional[str] = None):
        self.refresh_token = refresh_token

    def load(self) -> Optional[str]:
        return self.refresh_token

    def save(self, refresh_token: str) -> None:
        self.refresh_token = refresh_token

    def clear(self) -> None:
        self.refresh_token = None


class SessionManager:
    """
    Holds at most one Session.

    Only the refresh token is handed to the credential store; access tokens
    live in memory for the lifetime of the process.
    """

    def __init__(self, http: httpx.AsyncClient, store: Optional[CredentialStore] = None):
        self._http = http
        self._store = store or MemoryCredentialStore()
        self._session: Optional[Session] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._handlers: List[ForcedLogoutHandler] = []
        # Bumped whenever the session is cleared so a late refresh cannot revive it
        self._epoch = 0

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def current_identity(self) -> Optional[Identity]:
        return self._session.identity if self._session else None

    def on_forced_logout(self, handler: ForcedLogoutHandler) -> None:
        """Register a callback (sync or async) receiving the logout reason."""
        self._handlers.append(handler)

    async def authenticate(self, email: str, password: str) -> Session:
        response = await call(self._http, "POST", "/auth/login", json={"email": email, "password": password})
        session = Session.model_validate(unwrap(response)["data"])
        self._install(session)
        logger.info(f"Logged in as {session.identity.email}")
        return session

    async def restore(self) -> Optional[Session]:
        """Resume from the stored refresh token, if there is a usable one."""
        if self._session is not None:
            return self._session
        if not self._store.load():
            return None
        try:
            return await self.refresh()
        except AuthenticationError as exc:
            logger.warning(f"Stored credential rejected: {exc.message}")
            self._store.clear()
            return None

    async def refresh(self) -> Session:
        """
        Exchange the refresh token for a new session.

        Concurrent callers share one refresh request. Cancelling a caller
        does not cancel the shared refresh.

        Raises:
            AuthenticationError: If there is no refresh token or the server rejects it
            DependencyError: If the service cannot be reached
        """
        if self._refresh_task is None:
            refresh_token = self._session.refresh_token if self._session else self._store.load()
            if not refresh_token:
                raise AuthenticationError("No session to refresh")
            task = asyncio.ensure_future(self._exchange(refresh_token, self._epoch))
            task.add_done_callback(self._refresh_finished)
            self._refresh_task = task
        return await asyncio.shield(self._refresh_task)

    async def _exchange(self, refresh_token: str, epoch: int) -> Session:
        response = await call(self._http, "POST", "/auth/refresh", json={"refreshToken": refresh_token})
        session = Session.model_validate(unwrap(response)["data"])
        if epoch != self._epoch:
            raise AuthenticationError("Session ended during refresh")
        self._install(session)
        logger.info(f"Session refreshed for {session.identity.email}")
        return session

    def _refresh_finished(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Refresh failed: {task.exception()!r}")

    async def recover_from_unauthorized(self, failed_token: str) -> Session:
        """
        React to a 401 received for ``failed_token``.

        Returns the session to retry with. If the token was already replaced
        the current session is returned without another refresh.

        Raises:
            AuthenticationError: After forcing logout, when refreshing fails
        """
        if self._session is None:
            raise AuthenticationError("Session has ended")
        if self._session.access_token != failed_token:
            return self._session
        try:
            return await self.refresh()
        except AuthenticationError as exc:
            await self.force_logout(exc.message)
            raise

    async def force_logout(self, reason: str) -> None:
        """End the session and notify handlers; repeated calls are no-ops."""
        if self._session is None:
            return
        self._clear()
        logger.warning(f"Forced logout: {reason}")
        for handler in list(self._handlers):
            try:
                result = handler(reason)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Forced logout handler failed")

    async def logout(self) -> None:
        """Clear the session locally, then revoke it on the server if possible."""
        session = self._session
        self._clear()
        if session is None:
            return
        try:
            response = await call(
                self._http,
                "POST",
                "/auth/logout",
                token=session.access_token,
                json={"refreshToken": session.refresh_token},
            )
            unwrap(response)
        except AdjudicationError as exc:
            logger.warning(f"Server logout failed, local session cleared anyway: {exc.message}")

    def _install(self, session: Session) -> None:
        self._session = session
        self._store.save(session.refresh_token)

    def _clear(self) -> None:
        self._session = None
        self._epoch += 1
        self._store.clear()
