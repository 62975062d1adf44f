"""Identity provider client: resolves a bearer token to a principal."""

from __future__ import annotations

from typing import Optional

import requests
from pydantic import ValidationError

from app.config import Settings, get_settings
from app.exceptions import UnauthorizedError
from app.infra.logging_config import get_logger
from app.schemas.principal import Principal

logger = get_logger("identity")

CURRENT_USER_PATH = "/user"


class IdentityClient:
    def __init__(
        self, base_url: Optional[str], api_key: Optional[str] = None, timeout: float = 10.0
    ) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._api_key = api_key
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "IdentityClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.identity_base_url,
            api_key=settings.identity_api_key,
            timeout=settings.http_timeout_seconds,
        )

    def get_current_principal(self, token: Optional[str]) -> Principal:
        if not token:
            raise UnauthorizedError("Missing bearer token")
        if not self._base_url:
            raise UnauthorizedError("Identity provider is not configured")

        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        if self._api_key:
            headers["X-API-Key"] = self._api_key
        try:
            resp = requests.get(
                f"{self._base_url}{CURRENT_USER_PATH}",
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("Identity provider request failed: %s", e)
            raise UnauthorizedError("Could not verify token") from e

        if resp.status_code in (401, 403):
            raise UnauthorizedError("Invalid or expired token")
        if resp.status_code != 200:
            logger.warning("Identity provider returned HTTP %s", resp.status_code)
            raise UnauthorizedError("Could not verify token")

        try:
            return Principal.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.warning("Identity provider returned an invalid principal: %s", e)
            raise UnauthorizedError("Could not verify token") from e
