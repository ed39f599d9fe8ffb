"""Notification inbox and rule API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from inboxsync.api.deps import RequestContext, get_db, get_request_context
from inboxsync.config import get_settings
from inboxsync.errors import NotificationServiceError
from inboxsync.schemas.notification import (
    InboxActionRequest,
    InboxActionResponse,
    InboxResponse,
    RuleUpdateRequest,
    RuleUpdateResponse,
)
from inboxsync.services.inbox import get_notification_inbox, mark_notification_action
from inboxsync.services.rules import update_notification_rule

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _to_http_error(error: NotificationServiceError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


@router.get("/inbox", response_model=InboxResponse)
def get_inbox(
    status_filter: str | None = Query("ACTIVE", alias="filter"),
    limit: str | None = None,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Get the store's notifications with summary counts.

    Unknown filters fall back to ACTIVE and the limit is clamped to 1-200.
    """
    try:
        inbox = get_notification_inbox(
            db,
            context.store_id,
            status_filter=status_filter,
            limit=limit if limit is not None else get_settings().inbox_default_limit,
        )
    except NotificationServiceError as e:
        raise _to_http_error(e)
    return InboxResponse(**inbox)


@router.patch("/inbox", response_model=InboxActionResponse)
def update_inbox(
    request: InboxActionRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Mark one notification read/unread/resolved, or mark all unread as read."""
    try:
        summary = mark_notification_action(
            db,
            context.store_id,
            action=request.action,
            notification_id=request.notification_id,
        )
    except NotificationServiceError as e:
        raise _to_http_error(e)
    return InboxActionResponse(summary=summary)


@router.patch("/rules", response_model=RuleUpdateResponse)
def update_rule(
    request: RuleUpdateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Snooze, mute or clear notifications for one entity."""
    try:
        rule = update_notification_rule(
            db,
            context.store_id,
            context.user_id,
            topic=request.topic,
            entity_type=request.entity_type,
            entity_id=request.entity_id,
            mode=request.mode,
            until=request.until,
            forever=request.forever,
            note=request.note,
        )
    except NotificationServiceError as e:
        raise _to_http_error(e)
    return RuleUpdateResponse(rule=rule)
