from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_principal
from app.commands.mark_read_command import MarkReadCommand
from app.db import get_db
from app.realtime.base import PubSubTransport
from app.routers.utils.dependencies import get_transport
from app.schemas.chat import MessageRead
from app.schemas.principal import Principal

messages_router = APIRouter(prefix="/messages", tags=["Message"])


@messages_router.post("/{message_id}/read", response_model=MessageRead)
def mark_message_read(
    message_id: UUID,
    principal: Principal = Depends(get_current_principal),
    transport: PubSubTransport = Depends(get_transport),
    db: Session = Depends(get_db),
) -> MessageRead:
    """Mark one message read. Own and system messages are left as they are."""
    return MarkReadCommand(db, transport).mark_message(message_id, principal)
