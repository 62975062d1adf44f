from app.adapters.base import BaseEmailAdapter
from app.adapters.email import ResendEmailAdapter, build_email_adapter

__all__ = [
    "BaseEmailAdapter",
    "ResendEmailAdapter",
    "build_email_adapter",
]
