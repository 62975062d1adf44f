"""Read access to orders and participant resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models.order import Order
from app.schemas.chat import SenderRole
from app.schemas.principal import Principal, PrincipalRole

PARTICIPANT_ROLES = frozenset({SenderRole.CUSTOMER, SenderRole.EXPERT})


@dataclass(frozen=True)
class Participant:
    """One side of a conversation as far as notification needs it."""

    id: Optional[str]
    email: Optional[str]
    name: Optional[str]

    @property
    def display_name(self) -> str:
        return self.name or (self.email.split("@")[0] if self.email else "User")


class OrderService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.id == order_id).first()

    def role_for(self, order: Order, principal: Principal) -> Optional[SenderRole]:
        """The principal's side of this order's conversation, or None for outsiders."""
        if order.customer_id and order.customer_id == principal.id:
            return SenderRole.CUSTOMER
        if (
            principal.email
            and order.customer_email
            and order.customer_email.lower() == principal.email.lower()
        ):
            return SenderRole.CUSTOMER
        if order.expert_id and order.expert_id == principal.id:
            return SenderRole.EXPERT
        if principal.role == PrincipalRole.ADMIN:
            return SenderRole.SYSTEM
        return None

    def is_participant(self, order: Order, principal: Principal) -> bool:
        """Customer or expert of the order; admins only observe."""
        return self.role_for(order, principal) in PARTICIPANT_ROLES

    def get_order_for_principal(self, order_id: str, principal: Principal) -> Order:
        """Order visible to the principal. Outsiders get NotFound, not Forbidden."""
        order = self.get_order(order_id)
        if order is None or self.role_for(order, principal) is None:
            raise NotFoundError(f"Conversation {order_id} not found")
        return order

    def visible_orders(self, principal: Principal) -> List[Order]:
        """Orders that can have a conversation for this principal (expert assigned)."""
        query = self.db.query(Order).filter(Order.expert_id.isnot(None))
        if principal.role == PrincipalRole.ADMIN:
            return query.all()
        clauses = [Order.customer_id == principal.id, Order.expert_id == principal.id]
        if principal.email:
            clauses.append(Order.customer_email == principal.email)
        return query.filter(or_(*clauses)).all()

    def participant(self, order: Order, role: SenderRole) -> Participant:
        if role == SenderRole.CUSTOMER:
            return Participant(order.customer_id, order.customer_email, order.customer_name)
        if role == SenderRole.EXPERT:
            return Participant(order.expert_id, order.expert_email, order.expert_name)
        raise ValueError(f"No participant for role {role}")

    def counterpart(self, order: Order, role: SenderRole) -> Optional[Participant]:
        """The other side of the conversation from ``role``; None when unassigned."""
        if role == SenderRole.CUSTOMER:
            other = self.participant(order, SenderRole.EXPERT)
        elif role == SenderRole.EXPERT:
            other = self.participant(order, SenderRole.CUSTOMER)
        else:
            return None
        if not other.id and not other.email:
            return None
        return other
