"""
Live conversation channel over WebSocket.

Each socket owns a ChatSessionManager holding at most one open conversation.
All session work (opening, refetching and transport callbacks) runs on a
SessionWorker, one job at a time and off the event loop.

Client frames:
  {"type": "open", "conversation_id": "..."} switches to another conversation,
  {"type": "refresh"} refetches and retries presence,
  {"type": "ping"} is answered with {"type": "pong"}.
"""

from __future__ import annotations

import asyncio
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.auth.dependencies import get_identity_client
from app.auth.identity import IdentityClient
from app.config import Settings, get_settings
from app.core.conversation_session import (
    ChatSessionManager,
    ConversationSession,
    presence_payload,
)
from app.exceptions import ChatError
from app.infra.logging_config import get_logger
from app.realtime.base import PubSubTransport
from app.realtime.worker import SessionWorker
from app.routers.utils.dependencies import get_session_scope, get_transport
from app.schemas.principal import Principal
from app.services.chat_message_service import DatabaseMessageStore
from app.services.order_service import OrderService

logger = get_logger("realtime")

realtime_router = APIRouter(prefix="/realtime", tags=["Realtime"])

SessionScope = Callable[[], AbstractContextManager[Session]]


@dataclass(frozen=True)
class ConversationTarget:
    conversation_id: str
    other_id: Optional[str]
    read_only: bool


def _resolve_target(
    session_scope: SessionScope, order_id: str, principal: Principal
) -> ConversationTarget:
    with session_scope() as db:
        service = OrderService(db)
        order = service.get_order_for_principal(order_id, principal)
        other = service.counterpart(order, service.role_for(order, principal))
        return ConversationTarget(
            conversation_id=order.id,
            other_id=other.id if other is not None else None,
            read_only=not service.is_participant(order, principal),
        )


def _snapshot(session: ConversationSession, messages) -> dict[str, Any]:
    return {
        "conversation_id": session.conversation_id,
        "read_only": session.reconciler.read_only,
        "messages": [m.model_dump(mode="json") for m in messages],
        "presence": presence_payload(session.presence.state),
        "unread_count": session.unread_count,
    }


@realtime_router.websocket("/conversations/{order_id}")
async def conversation_socket(
    websocket: WebSocket,
    order_id: str,
    token: Optional[str] = Query(None),
    identity: IdentityClient = Depends(get_identity_client),
    transport: PubSubTransport = Depends(get_transport),
    session_scope: SessionScope = Depends(get_session_scope),
    settings: Settings = Depends(get_settings),
) -> None:
    try:
        principal = await run_in_threadpool(identity.get_current_principal, token)
        target = await run_in_threadpool(_resolve_target, session_scope, order_id, principal)
    except ChatError as e:
        logger.info("Rejecting realtime connection to %s: %s", order_id, e.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    outbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    worker = SessionWorker(loop)

    def on_event(event: str, data: dict[str, Any]) -> None:
        loop.call_soon_threadsafe(outbound.put_nowait, {"type": event, "data": data})

    manager = ChatSessionManager(
        transport,
        DatabaseMessageStore(session_scope, principal, transport=transport),
        dispatch=worker.dispatch,
        on_event=on_event,
        max_resubscribe_attempts=settings.presence_resubscribe_attempts,
    )

    def open_target(target: ConversationTarget) -> dict[str, Any]:
        session = manager.open(
            target.conversation_id,
            principal.id,
            target.other_id,
            read_only=target.read_only,
        )
        return _snapshot(session, session.messages)

    def switch_to(conversation_id: str) -> dict[str, Any]:
        return open_target(_resolve_target(session_scope, conversation_id, principal))

    def refresh() -> Optional[dict[str, Any]]:
        session = manager.current
        if session is None:
            return None
        return _snapshot(session, session.refresh())

    async def pump_outbound() -> None:
        while True:
            await websocket.send_json(await outbound.get())

    async def read_inbound() -> None:
        while True:
            frame = await websocket.receive_json()
            kind = frame.get("type") if isinstance(frame, dict) else None
            if kind == "ping":
                await websocket.send_json({"type": "pong"})
            elif kind == "refresh":
                snapshot = await worker.call(refresh)
                if snapshot is not None:
                    await websocket.send_json({"type": "session.refreshed", "data": snapshot})
            elif kind == "open":
                try:
                    snapshot = await worker.call(
                        lambda: switch_to(str(frame.get("conversation_id") or ""))
                    )
                except ChatError as e:
                    await websocket.send_json({"type": "error", "data": {"detail": e.detail}})
                    continue
                await websocket.send_json({"type": "session.opened", "data": snapshot})

    worker_task = asyncio.create_task(worker.run())
    try:
        snapshot = await worker.call(lambda: open_target(target))
        await websocket.send_json({"type": "session.opened", "data": snapshot})
        tasks = [
            asyncio.create_task(pump_outbound()),
            asyncio.create_task(read_inbound()),
        ]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc
    except WebSocketDisconnect:
        logger.debug("Realtime client left %s", target.conversation_id)
    finally:
        await worker.call(manager.close)
        worker_task.cancel()
