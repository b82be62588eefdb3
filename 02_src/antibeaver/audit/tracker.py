"""Audit tracker for operator commands and mode changes."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..errors import StoreUnavailableError
from ..logging_config import get_logger
from ..models import AuditEvent
from ..storage import IThoughtStore

logger = get_logger(__name__)


class IAuditTracker(Protocol):
    """Creating AuditEvents for governance actions."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create AuditEvent and save to the store."""
        ...


class AuditTracker:
    """Persists AuditEvents; a failing store only costs the audit entry."""

    def __init__(self, storage: IThoughtStore):
        self._storage = storage

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create AuditEvent and save to the store."""
        event = AuditEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        try:
            await self._storage.save_audit_event(event)
        except StoreUnavailableError as e:
            logger.warning(
                "Audit event %s dropped: %s",
                event_type,
                e,
                extra={"actor": actor, "event_type": event_type},
            )
