"""Kroger OAuth2 client-credentials token cache."""

from __future__ import annotations

import base64
import logging
import threading
import time
from typing import Callable

import requests

from eggprices.config import REQUEST_TIMEOUT, TOKEN_REFRESH_MARGIN, TOKEN_SCOPE, TOKEN_URL
from eggprices.errors import TokenError

logger = logging.getLogger(__name__)


class TokenProvider:
    """Owns the bearer token and its absolute expiry.

    get_valid() hands out the cached token until it is within
    TOKEN_REFRESH_MARGIN seconds of expiring. refresh() is called by a
    request that got a 401; the lock makes concurrent refreshes collapse
    into a single exchange.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        session: requests.Session | None = None,
        token_url: str = TOKEN_URL,
        scope: str = TOKEN_SCOPE,
        clock: Callable[[], float] = time.time,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._session = session or requests.Session()
        self._token_url = token_url
        self._scope = scope
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at = 0.0

    def get_valid(self) -> str:
        """Return a token with more than the refresh margin left."""
        with self._lock:
            if self._token and self._clock() < self._expires_at - TOKEN_REFRESH_MARGIN:
                return self._token
            return self._exchange()

    def refresh(self, stale_token: str | None = None) -> str:
        """Replace a token the API rejected.

        Args:
            stale_token: the token that got the 401. If another caller has
                already swapped it out, the current token is returned as is.
        """
        with self._lock:
            if self._token and stale_token is not None and self._token != stale_token:
                return self._token
            self._token = None
            return self._exchange()

    def _exchange(self) -> str:
        """POST the client credentials and cache the result. Caller holds the lock."""
        basic = base64.b64encode(f"{self._client_id}:{self._client_secret}".encode()).decode()
        headers = {
            "Authorization": f"Basic {basic}",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        data = {"grant_type": "client_credentials", "scope": self._scope}

        try:
            resp = self._session.post(
                self._token_url, headers=headers, data=data, timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            raise TokenError(f"Token request failed: {e}") from e

        if not resp.ok:
            logger.error("Token request rejected: status=%s, body=%s", resp.status_code, resp.text[:500])
            raise TokenError(f"Token request failed with status {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise TokenError("Token response is not JSON") from e

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            logger.error("No access_token in token response: %s", str(payload)[:200])
            raise TokenError("Token response has no access_token")

        expires_in = float(payload.get("expires_in") or 0)
        self._token = token
        self._expires_at = self._clock() + expires_in
        logger.info("Obtained access token (expires in %.0f s)", expires_in)
        return token
