"""
Audit Trail

Append-only record of every state-changing action. Appends are serialized
and each domain mutation is applied in the same critical section as its
record, so the trail order is the mutation order.
"""
import asyncio
import logging
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

from afyaclaims.core.errors import DependencyError
from afyaclaims.core.models import AuditPage, AuditQuery, AuditRecord, paginate

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RequestOrigin:
    """Client address and agent of the request being served."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


request_origin: ContextVar[RequestOrigin] = ContextVar("request_origin", default=RequestOrigin())


class AuditStore:
    """In-memory audit storage. Subclass to persist elsewhere."""

    def __init__(self):
        self._records: List[AuditRecord] = []

    async def append(self, record: AuditRecord) -> None:
        self._records.append(record)

    async def all(self) -> List[AuditRecord]:
        return list(self._records)


class AuditTrail:
    """Owns the audit store; exposes append, atomic commit and query."""

    def __init__(self, store: Optional[AuditStore] = None):
        self._store = store or AuditStore()
        self._lock = asyncio.Lock()
        self._sequence = 0

    def record(
        self,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        """Build a record stamped with the current request origin."""
        origin = request_origin.get()
        return AuditRecord(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            ip_address=origin.ip_address,
            user_agent=origin.user_agent,
        )

    async def append(self, record: AuditRecord) -> AuditRecord:
        async with self._lock:
            return await self._append_locked(record)

    async def commit(self, record: AuditRecord, apply: Callable[[], T]) -> T:
        """
        Append a record and apply the mutation it describes.

        ``apply`` runs only after the store accepted the record, and before any
        other commit can append, so an unaudited mutation is impossible.

        Raises:
            DependencyError: If the audit store rejects the record
        """
        async with self._lock:
            await self._append_locked(record)
            return apply()

    async def _append_locked(self, record: AuditRecord) -> AuditRecord:
        sequenced = record.model_copy(update={"sequence": self._sequence + 1})
        try:
            await self._store.append(sequenced)
        except Exception as exc:
            logger.error(f"Audit store unavailable, aborting {record.action}: {exc}")
            raise DependencyError("Audit trail is unavailable; the action was not applied") from exc
        self._sequence = sequenced.sequence
        logger.info(
            f"Audit #{sequenced.sequence}: {record.actor_id} {record.action} "
            f"{record.resource_type}:{record.resource_id}"
        )
        return sequenced

    async def query(
        self,
        filters: Optional[AuditQuery] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditPage:
        """Return matching records newest first, one page at a time."""
        filters = filters or AuditQuery()
        start = _as_utc(filters.start_date)
        end = _as_utc(filters.end_date)

        matches = []
        for rec in await self._store.all():
            if filters.actor_id and rec.actor_id != filters.actor_id:
                continue
            if filters.action and rec.action != filters.action:
                continue
            if start and rec.timestamp < start:
                continue
            if end and rec.timestamp > end:
                continue
            matches.append(rec)

        matches.sort(key=lambda r: r.sequence, reverse=True)
        records, pagination = paginate(matches, page, page_size)
        return AuditPage(records=records, pagination=pagination)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
