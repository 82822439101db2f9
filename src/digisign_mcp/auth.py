from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .models import Credentials, SessionToken

logger = logging.getLogger(__name__)

TOKEN_PATH = "/api/auth-token"
EXPIRY_BUFFER_S = 60


class AuthError(RuntimeError):
    def __init__(self, status_code: int, body: Any):
        super().__init__(f"Auth failed ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


def _now_epoch() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp())


async def fetch_session_token(http: httpx.AsyncClient, base_url: str, credentials: Credentials) -> SessionToken:
    """Exchange the long-lived key pair for a short-lived bearer token."""
    url = f"{base_url.rstrip('/')}{TOKEN_PATH}"
    payload = {"accessKey": credentials.access_key, "secretKey": credentials.secret_key}
    resp = await http.post(url, json=payload)
    if not resp.is_success:
        raise AuthError(resp.status_code, resp.text)
    try:
        return SessionToken.model_validate(resp.json())
    except ValueError:
        # non-JSON body or missing token/exp
        raise AuthError(resp.status_code, resp.text) from None


class TokenCache:
    """Holds the current bearer token for one credential pair.

    A cached token is reused while ``now < exp - 60``; otherwise a new one is
    fetched and replaces it. Concurrent refreshes may race, the last write
    wins and both tokens are valid.
    """

    def __init__(self, credentials: Credentials, base_url: str, buffer_s: int = EXPIRY_BUFFER_S):
        self._credentials = credentials
        self._base_url = base_url
        self._buffer_s = buffer_s
        self._token: Optional[SessionToken] = None

    @property
    def current(self) -> Optional[SessionToken]:
        return self._token

    async def get_token(self, http: httpx.AsyncClient) -> str:
        cached = self._token
        if cached is not None and cached.is_valid(_now_epoch(), self._buffer_s):
            return cached.token

        logger.info("Requesting new DigiSign session token")
        fresh = await fetch_session_token(http, self._base_url, self._credentials)
        self._token = fresh
        logger.debug(f"Session token valid until {fresh.exp}")
        return fresh.token
