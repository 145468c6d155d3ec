from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "network error"
INVALID_JSON_MESSAGE = "invalid JSON response"


class ApiError(Exception):
    """A request to the backend failed.

    ``status_code`` is the HTTP status of the error response, or ``0`` when no
    response was received at all (connection refused, timeout, ...).
    """

    def __init__(self, status_code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.data = data

    @property
    def is_network_error(self) -> bool:
        return self.status_code == 0


class ApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.headers = {"Content-Type": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self._transport = transport

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, params=params, json=json, headers=self.headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                error = _error_from_response(exc.response)
                _log_failure(method, path, error)
                raise error from exc
            except httpx.RequestError as exc:
                error = ApiError(0, NETWORK_ERROR_MESSAGE)
                logger.warning("network error method=%s path=%s error=%r", method, path, exc)
                raise error from exc

        try:
            body = response.json()
        except ValueError as exc:
            error = ApiError(response.status_code, INVALID_JSON_MESSAGE)
            _log_failure(method, path, error)
            raise error from exc
        return unwrap_envelope(body)


def unwrap_envelope(body: Any) -> Any:
    """Return ``data`` from a ``{code, message, data}`` envelope, or the body as-is."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _error_from_response(response: httpx.Response) -> ApiError:
    message = response.reason_phrase or "request failed"
    data: Any = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        raw_message = body.get("message") or body.get("detail")
        if isinstance(raw_message, str) and raw_message:
            message = raw_message
        data = body.get("data")
    return ApiError(response.status_code, message, data)


def _log_failure(method: str, path: str, error: ApiError) -> None:
    status_code = error.status_code
    if status_code == 401:
        label = "unauthorized"
    elif status_code == 403:
        label = "forbidden"
    elif status_code == 404:
        label = "not found"
    elif status_code >= 500:
        label = "server error"
    else:
        label = "request failed"
    logger.warning(
        "%s method=%s path=%s status=%s message=%s",
        label,
        method,
        path,
        status_code,
        error.message,
    )
