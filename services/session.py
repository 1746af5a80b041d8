# User value: This file holds the bearer credential the Auth service hands over, so every API call is made as the signed-in user.
import logging
from typing import Optional

logger = logging.getLogger("client.session")


class SessionCredentials:
    """Opaque holder for the current bearer token. Token lifecycle belongs to the Auth service."""

    def __init__(self, token: Optional[str] = None):
        self._token = (token or "").strip() or None

    def set_token(self, token: str) -> None:
        self._token = (token or "").strip() or None
        logger.info("session_credential_set present=%s", self._token is not None)

    def clear(self) -> None:
        self._token = None
        logger.info("session_credential_cleared")

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def authorization_header(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
