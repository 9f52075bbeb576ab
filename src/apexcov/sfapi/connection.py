"""Authenticated request executor for a Salesforce org.

A ``Connection`` caches one client-credentials bearer token. When the org
answers 403 the token is refreshed once and the request is replayed once.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from apexcov.config import Credentials
from apexcov.errors import ApiError, AuthError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/services/oauth2/token"
_BODY_PREVIEW_CHARS = 500


class Connection:
    def __init__(
        self,
        credentials: Credentials,
        *,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credentials = credentials
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._access_token: str | None = None
        self._token_lock = asyncio.Lock()

    @property
    def base_url(self) -> str:
        return self.credentials.base_url

    @property
    def api_version(self) -> str:
        return self.credentials.api_version

    def data_url(self, path: str) -> str:
        return f"{self.base_url}/services/data/v{self.api_version}/{path.lstrip('/')}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def get_access_token(self) -> str:
        token = self._access_token
        if token:
            return token
        return await self.refresh_token(stale=None)

    async def refresh_token(self, stale: str | None) -> str:
        """Replace the cached token unless another caller already replaced ``stale``."""
        async with self._token_lock:
            current = self._access_token
            if current and current != stale:
                return current
            token = await self._request_token()
            self._access_token = token
            return token

    async def _request_token(self) -> str:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
        }
        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}{TOKEN_PATH}", data=form)
        except httpx.HTTPError as exc:
            raise AuthError(f"token request failed: {exc}") from exc
        if response.status_code != 200:
            raise AuthError(
                f"token request returned {response.status_code}: "
                f"{response.text[:_BODY_PREVIEW_CHARS]}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise AuthError(f"token response is not JSON: {exc}") from exc
        token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthError("token response missing access_token")
        logger.info("access token acquired", extra={"base_url": self.base_url})
        return token

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        *,
        params: Mapping[str, str] | None,
        json_body: Any,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        try:
            async with self._client() as client:
                if json_body is None:
                    return await client.request(method, url, params=params, headers=headers)
                return await client.request(
                    method, url, params=params, headers=headers, json=json_body
                )
        except httpx.HTTPError as exc:
            raise ApiError(
                f"{method} {url} failed: {exc}",
                retryable=isinstance(exc, httpx.TransportError),
            ) from exc

    async def do_request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> bytes:
        """Send a request with the bearer token attached and return the body bytes."""
        token = await self.get_access_token()
        response = await self._send(method, url, token, params=params, json_body=json_body)
        if response.status_code == 403:
            logger.info("authorization rejected; refreshing token", extra={"url": url})
            token = await self.refresh_token(stale=token)
            response = await self._send(method, url, token, params=params, json_body=json_body)
        if not response.is_success:
            raise ApiError(
                f"{method} {response.request.url.path} returned {response.status_code}: "
                f"{response.text[:_BODY_PREVIEW_CHARS]}",
                status_code=response.status_code,
                body=response.content,
                retryable=response.status_code >= 500,
            )
        return response.content

    async def get_json(self, url: str, *, params: Mapping[str, str] | None = None) -> Any:
        return _decode(await self.do_request("GET", url, params=params), url)

    async def post_json(self, url: str, payload: Any) -> Any:
        return _decode(await self.do_request("POST", url, json_body=payload), url)


def _decode(body: bytes, url: str) -> Any:
    try:
        return json.loads(body)
    except ValueError as exc:
        raise ApiError(f"response from {url} is not valid JSON: {exc}", body=body) from exc
