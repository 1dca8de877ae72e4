"""
Action item updates made by the document owner.

These edits are not protected from re-extraction: a retry replaces the
whole action-item set, notes and completion state included.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfix.core.dates import to_utc_midnight, utcnow
from paperfix.core.exceptions import ActionItemNotFound
from paperfix.models.documents import ActionItem, Document
from paperfix.schemas.documents import ActionItemUpdate, ActionStatus

logger = logging.getLogger(__name__)


class ActionItemService:
    """Runs inside the caller's transaction (the request session)."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _get_owned(self, action_item_id: uuid.UUID, owner_id: uuid.UUID) -> ActionItem:
        result = await self._db.execute(
            select(ActionItem)
            .join(Document, Document.id == ActionItem.document_id)
            .where(ActionItem.id == action_item_id, Document.owner_id == owner_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise ActionItemNotFound(action_item_id)
        return item

    async def mark_done(self, action_item_id: uuid.UUID, owner_id: uuid.UUID) -> ActionItem:
        item = await self._get_owned(action_item_id, owner_id)
        item.status = ActionStatus.DONE.value
        item.updated_at = utcnow()
        await self._db.flush()
        logger.info("Action item done | item=%s doc=%s", item.id, item.document_id)
        return item

    async def update(
        self,
        action_item_id: uuid.UUID,
        owner_id:       uuid.UUID,
        changes:        ActionItemUpdate,
    ) -> ActionItem:
        """Fields omitted from the request are untouched; explicit null clears deadline/notes."""
        item = await self._get_owned(action_item_id, owner_id)
        fields = changes.model_fields_set

        if "title" in fields and changes.title is not None:
            item.title = changes.title
        if "deadline" in fields:
            item.deadline = to_utc_midnight(changes.deadline)
        if "notes" in fields:
            item.notes = changes.notes

        item.updated_at = utcnow()
        await self._db.flush()
        logger.info("Action item updated | item=%s fields=%s", item.id, sorted(fields))
        return item
