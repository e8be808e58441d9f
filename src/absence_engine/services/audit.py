"""Audit trail writer."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from absence_engine.models import AuditEvent

logger = logging.getLogger(__name__)


class AuditService:
    """Records audit events for transitions, alerts and override changes.

    Writes go through a savepoint so a failed audit insert never rolls back
    the primary write it describes.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        actor_id: UUID | None,
        organisation_id: UUID | None,
        action: str,
        entity: str,
        entity_id: UUID | None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEvent | None:
        """Record an audit event; returns None if the write failed."""
        event = AuditEvent(
            organisation_id=organisation_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity,
            entity_id=entity_id,
            metadata_json=_jsonable(metadata) if metadata else None,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(event)
        except SQLAlchemyError:
            logger.exception("Failed to record audit event %s for %s %s", action, entity, entity_id)
            return None
        return event

    async def list_for_entity(self, entity: str, entity_id: UUID) -> list[AuditEvent]:
        result = await self.session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.created_at)
        )
        return list(result.scalars().all())


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    """Stringify values the JSON column cannot store natively."""
    out: dict[str, Any] = {}
    for key, value in data.items():
        if value is None or isinstance(value, (str, int, float, bool)):
            out[key] = value
        elif hasattr(value, "isoformat"):
            out[key] = value.isoformat()
        else:
            out[key] = str(value)
    return out
