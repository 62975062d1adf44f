"""Broadcast helpers for the send and mark-read paths. Failures never propagate."""

from __future__ import annotations

from typing import Iterable

from app.exceptions import TransportDisconnect
from app.infra.logging_config import get_logger
from app.realtime.base import PubSubTransport, conversation_channel
from app.schemas.chat import MessageRead
from app.utils.metrics import TRANSPORT_ERRORS_TOTAL

logger = get_logger("realtime")


def publish_inserted(transport: PubSubTransport, message: MessageRead) -> bool:
    try:
        transport.publish_insert(
            conversation_channel(message.conversation_id), message.model_dump(mode="json")
        )
    except TransportDisconnect as e:
        TRANSPORT_ERRORS_TOTAL.labels(operation="publish_insert").inc()
        logger.warning("Could not broadcast message %s: %s", message.id, e.detail)
        return False
    return True


def publish_updated(transport: PubSubTransport, messages: Iterable[MessageRead]) -> bool:
    ok = True
    for message in messages:
        try:
            transport.publish_update(
                conversation_channel(message.conversation_id),
                message.model_dump(mode="json"),
            )
        except TransportDisconnect as e:
            TRANSPORT_ERRORS_TOTAL.labels(operation="publish_update").inc()
            logger.warning("Could not broadcast update of %s: %s", message.id, e.detail)
            ok = False
    return ok
