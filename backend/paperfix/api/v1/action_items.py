"""
Action Items API Router

  POST  /api/v1/action-items/{id}/done   mark completed
  PATCH /api/v1/action-items/{id}        edit title / deadline / notes
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from paperfix.api.v1.documents import action_item_out
from paperfix.auth.dependencies import DB, CurrentUser
from paperfix.core.exceptions import ActionItemNotFound
from paperfix.schemas.documents import ActionItemOut, ActionItemUpdate, ApiErrors, ErrorResponse
from paperfix.services.action_items import ActionItemService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/action-items",
    tags=["Action Items"],
)


def _not_found(action_item_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=ApiErrors.action_item_not_found(action_item_id).model_dump(),
    )


@router.post(
    "/{action_item_id}/done",
    response_model=ActionItemOut,
    responses={404: {"model": ErrorResponse}},
)
async def mark_action_item_done(
    action_item_id: UUID,
    user:           CurrentUser,
    db:             DB,
) -> ActionItemOut:
    try:
        item = await ActionItemService(db).mark_done(action_item_id, user.user_id)
    except ActionItemNotFound:
        raise _not_found(action_item_id)
    return action_item_out(item)


@router.patch(
    "/{action_item_id}",
    response_model=ActionItemOut,
    responses={404: {"model": ErrorResponse}},
)
async def update_action_item(
    action_item_id: UUID,
    changes:        ActionItemUpdate,
    user:           CurrentUser,
    db:             DB,
) -> ActionItemOut:
    try:
        item = await ActionItemService(db).update(action_item_id, user.user_id, changes)
    except ActionItemNotFound:
        raise _not_found(action_item_id)
    return action_item_out(item)
