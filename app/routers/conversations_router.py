"""Conversations API: list, messages, read receipts, presence and notifications."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.adapters.base import BaseEmailAdapter
from app.auth.dependencies import get_current_principal
from app.commands.mark_read_command import MarkReadCommand
from app.commands.send_batch_notification_command import SendBatchNotificationCommand
from app.commands.send_message_command import SendMessageCommand
from app.config import Settings, get_settings
from app.core.cooldown import NotificationCooldownEngine, direction_for
from app.core.presence import lookup_presence
from app.db import get_db
from app.models.order import Order
from app.realtime.base import PubSubTransport
from app.routers.utils.dependencies import (
    get_email_adapter,
    get_transport,
    get_visible_order,
)
from app.schemas.chat import (
    BatchNotificationResult,
    MarkReadResult,
    MessageRead,
    NotificationStatus,
    PresenceRead,
    SendMessageRequest,
    SendMessageResult,
)
from app.schemas.conversation import ConversationList
from app.schemas.principal import Principal
from app.services.chat_message_service import ChatMessageService
from app.services.conversation_service import ConversationService
from app.services.notification_cooldown_service import NotificationCooldownService
from app.services.order_service import OrderService

conversations_router = APIRouter(prefix="/conversations", tags=["Conversation"])


@conversations_router.get("", response_model=ConversationList)
def list_conversations(
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> ConversationList:
    """Conversations grouped into active, ready and closed with unread counts."""
    service = ConversationService(db, settings.conversation_closing_window)
    return service.list_for_principal(principal)


@conversations_router.post(
    "/{order_id}/messages",
    response_model=SendMessageResult,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    order_id: str,
    body: SendMessageRequest,
    principal: Principal = Depends(get_current_principal),
    transport: PubSubTransport = Depends(get_transport),
    email_adapter: Optional[BaseEmailAdapter] = Depends(get_email_adapter),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> SendMessageResult:
    """Send a message; the response carries any email warning."""
    command = SendMessageCommand(db, transport, email_adapter, settings)
    return command.execute(order_id, principal, body)


@conversations_router.get("/{order_id}/messages", response_model=Page[MessageRead])
def list_messages(
    order: Order = Depends(get_visible_order),
    params: Params = Depends(),
    db: Session = Depends(get_db),
) -> Page[MessageRead]:
    """Messages oldest first."""
    query = ChatMessageService(db).get_messages_query(order.id)
    return paginate(
        db,
        query,
        params=params,
        transformer=lambda rows: [MessageRead.model_validate(r) for r in rows],
    )


@conversations_router.post("/{order_id}/read", response_model=MarkReadResult)
def mark_conversation_read(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    transport: PubSubTransport = Depends(get_transport),
    db: Session = Depends(get_db),
) -> MarkReadResult:
    """Mark every inbound message in the conversation read."""
    return MarkReadCommand(db, transport).mark_conversation(order_id, principal)


@conversations_router.get("/{order_id}/presence", response_model=PresenceRead)
def get_presence(
    order: Order = Depends(get_visible_order),
    principal: Principal = Depends(get_current_principal),
    transport: PubSubTransport = Depends(get_transport),
    db: Session = Depends(get_db),
) -> PresenceRead:
    """Whether the other participant currently has the app open."""
    service = OrderService(db)
    other = service.counterpart(order, service.role_for(order, principal))
    other_id = other.id if other is not None else None
    presence = lookup_presence(transport, other_id)
    return PresenceRead(
        conversation_id=order.id,
        other_user_id=other_id,
        other_user_online=presence.other_user_online,
        other_user_last_seen=presence.other_user_last_seen,
    )


@conversations_router.get(
    "/{order_id}/notification-status", response_model=NotificationStatus
)
def get_notification_status(
    order: Order = Depends(get_visible_order),
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> NotificationStatus:
    """Cooldown state for the caller's outgoing notifications."""
    direction = direction_for(OrderService(db).role_for(order, principal))
    if direction is None:
        return NotificationStatus(
            conversation_id=order.id, direction="none", can_notify_now=False
        )
    engine = NotificationCooldownEngine(settings.notification_cooldown)
    return NotificationCooldownService(db).status(order.id, direction, engine)


@conversations_router.post("/{order_id}/notify", response_model=BatchNotificationResult)
def send_batch_notification(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    transport: PubSubTransport = Depends(get_transport),
    email_adapter: Optional[BaseEmailAdapter] = Depends(get_email_adapter),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> BatchNotificationResult:
    """Email the recipient a digest of unread messages once the cooldown allows."""
    command = SendBatchNotificationCommand(db, transport, email_adapter, settings)
    return command.execute(order_id, principal)
