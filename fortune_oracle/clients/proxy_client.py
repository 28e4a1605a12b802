from __future__ import annotations

import json
from typing import Any

import httpx
from pydantic import ValidationError

from fortune_oracle.constants import DEFAULT_VIDEO_MIME, PROXY_PATH
from fortune_oracle.exceptions import ProxyTransportError, UpstreamError
from fortune_oracle.models import UpstreamErrorPayload

UNKNOWN_SERVER_ERROR = "An unknown server error occurred."

_STATUS_BY_HTTP_CODE = {
    429: "RESOURCE_EXHAUSTED",
    503: "UNAVAILABLE",
}


class ProxyClient:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_s),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(self, operation: str, params: dict[str, Any]) -> dict[str, Any]:
        resp = await self._post(operation, params)
        self._raise_for_status(resp)
        return resp.json()

    async def fetch_video(self, url: str) -> tuple[bytes, str]:
        resp = await self._post("fetchVideo", {"url": url})
        self._raise_for_status(resp)
        return resp.content, resp.headers.get("Content-Type", DEFAULT_VIDEO_MIME)

    async def _post(self, operation: str, params: dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.post(PROXY_PATH, json={"operation": operation, "params": params})
        except httpx.TransportError as e:
            raise ProxyTransportError(f"Failed to fetch: {e!r}") from e

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.is_success:
            return
        fallback_status = _STATUS_BY_HTTP_CODE.get(resp.status_code, "PROXY_ERROR")
        payload = parse_error_body(resp.text)
        if payload is not None:
            if payload.error.status is None:
                payload.error.status = fallback_status
            raise UpstreamError(
                status=payload.error.status,
                message=payload.error.message,
                http_status=resp.status_code,
                payload=payload,
            )
        raise UpstreamError(
            status=fallback_status,
            message=_message_from_body(resp.text),
            http_status=resp.status_code,
        )


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _as_envelope(raw: Any) -> UpstreamErrorPayload | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("error"), dict):
        return None
    try:
        return UpstreamErrorPayload.model_validate(raw)
    except ValidationError:
        return None


def parse_error_body(text: str) -> UpstreamErrorPayload | None:
    """
    Recover the upstream error envelope from a proxy error body.

    The proxy either forwards the envelope directly or wraps the SDK error text
    as {"message": "<envelope as JSON>"}.
    """

    raw = _load_json(text)
    payload = _as_envelope(raw)
    if payload is not None:
        return payload
    if isinstance(raw, dict) and isinstance(raw.get("message"), str):
        return _as_envelope(_load_json(raw["message"]))
    return None


def _message_from_body(text: str) -> str:
    raw = _load_json(text)
    if isinstance(raw, dict) and isinstance(raw.get("message"), str) and raw["message"]:
        return raw["message"]
    return UNKNOWN_SERVER_ERROR
