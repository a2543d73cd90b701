import asyncio
import logging
from typing import Any, Optional

import requests

from planner.errors import ApiError, TransportError
from planner.storage import ACCESS_TOKEN_KEY, TokenStore

logger = logging.getLogger(__name__)


def safe_json(resp) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


def error_message(resp, payload) -> str:
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, list):
            return "; ".join(str(m) for m in message)
        if message:
            return str(message)
    return resp.reason or f"HTTP {resp.status_code}"


class ApiClient:
    """JSON-over-HTTP access to the budget backend.

    The bearer token is taken from the call when given, otherwise from the
    token store, so requests made after login pick up the new credentials.
    """

    def __init__(self, base_url: str, token_store: TokenStore, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.token_store = token_store
        self.timeout = timeout

    def _headers(self, token: Optional[str]) -> dict:
        headers = {"Accept": "application/json"}
        token = token or self.token_store.get(ACCESS_TOKEN_KEY)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(self, method: str, path: str, json=None, params=None, token: Optional[str] = None) -> Any:
        url = self.base_url + path
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            resp = requests.request(
                method.upper(),
                url,
                headers=self._headers(token),
                json=json,
                params=params or None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method.upper(), path, e)
            raise TransportError(f"{method.upper()} {path}: {e}") from e

        payload = safe_json(resp)
        if not 200 <= resp.status_code < 300:
            logger.debug("%s %s -> %s", method.upper(), path, resp.status_code)
            raise ApiError(resp.status_code, error_message(resp, payload), payload)
        return payload

    async def arequest(self, method: str, path: str, json=None, params=None, token: Optional[str] = None) -> Any:
        return await asyncio.to_thread(self.request, method, path, json, params, token)

    def get(self, path: str, **kwargs):
        return self.arequest("GET", path, **kwargs)

    def post(self, path: str, **kwargs):
        return self.arequest("POST", path, **kwargs)

    def put(self, path: str, **kwargs):
        return self.arequest("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs):
        return self.arequest("DELETE", path, **kwargs)
