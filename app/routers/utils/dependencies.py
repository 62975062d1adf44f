from contextlib import AbstractContextManager
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.adapters.base import BaseEmailAdapter
from app.adapters.email import build_email_adapter
from app.auth.dependencies import get_current_principal
from app.config import Settings, get_settings
from app.core.app_state import state
from app.db import db_manager, get_db
from app.models.order import Order
from app.realtime.base import PubSubTransport
from app.schemas.principal import Principal
from app.services.order_service import OrderService


def get_transport() -> PubSubTransport:
    """FastAPI dependency for the process-wide realtime transport."""
    return state.transport


def get_email_adapter(
    settings: Settings = Depends(get_settings),
) -> Optional[BaseEmailAdapter]:
    """FastAPI dependency for the configured email adapter (None when disabled)."""
    return build_email_adapter(settings)


def get_visible_order(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> Order:
    """FastAPI dependency to get an order the caller participates in."""
    return OrderService(db).get_order_for_principal(order_id, principal)


def get_session_scope() -> Callable[[], AbstractContextManager[Session]]:
    """Per-call database session factory for long-lived (WebSocket) handlers."""
    return db_manager.db_session
