"""Authenticated principal as returned by the identity provider."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PrincipalRole(str, Enum):
    CUSTOMER = "customer"
    EXPERT = "expert"
    ADMIN = "admin"


class Principal(BaseModel):
    id: str
    role: PrincipalRole
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or (self.email.split("@")[0] if self.email else "User")
