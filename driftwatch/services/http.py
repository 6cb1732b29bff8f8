from __future__ import annotations

import json

import httpx
import structlog

from ..errors import BackendError

log = structlog.get_logger()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP error {response.status_code}: {response.text[:500]}"
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return f"API error: {response.status_code}"


class BackendClient:
    """Thin JSON client for the portfolio backend.

    Every failure surfaces as BackendError; 204 responses come back as ``{}``.
    """

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport | None = None, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout, transport=transport
        )

    async def request(self, method: str, path: str, params: dict | None = None, json_body=None):
        try:
            r = await self._client.request(method, path, params=params, json=json_body)
        except httpx.TimeoutException as exc:
            log.warning("backend_timeout", method=method, path=path, timeout=self.timeout)
            raise BackendError(f"Request timeout after {self.timeout:g}s", timeout=True) from exc
        except httpx.HTTPError as exc:
            log.warning("backend_unreachable", method=method, path=path, error=str(exc))
            raise BackendError(f"Network error: {exc}") from exc

        if r.status_code < 200 or r.status_code >= 300:
            message = _error_message(r)
            log.warning("backend_error", method=method, path=path, status=r.status_code, error=message)
            raise BackendError(message, status_code=r.status_code)
        if r.status_code == 204 or not r.content:
            return {}
        try:
            return r.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise BackendError(f"Failed to parse JSON response: {exc}", status_code=r.status_code) from exc

    async def get(self, path: str, params: dict | None = None):
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json_body=None):
        return await self.request("POST", path, json_body=json_body)

    async def patch(self, path: str, json_body=None):
        return await self.request("PATCH", path, json_body=json_body)

    async def delete(self, path: str):
        return await self.request("DELETE", path)

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()
