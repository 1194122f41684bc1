"""
HTTP client for the gfxs-studio render server.

This is the only suspension point of the orchestration loop: every method is
an awaited network call. Transport failures, non-success statuses and
malformed payloads all surface as ``RendererError``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from api.shared.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 60.0


class RendererError(Exception):
    """A call to the render server failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RenderResponse(BaseModel):
    """Payload of ``POST /render``."""

    update: bool = False
    original: str = ""
    processed: str = ""


@dataclass(frozen=True)
class DroppedFile:
    """A file handed to the upload pipeline."""

    name: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")


class RendererClient:
    """Async client for the render server endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Server root, e.g. ``http://127.0.0.1:8080``
            timeout: Seconds before any single call is abandoned
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "RendererClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RendererError(f"{method} {url} failed: {e}") from e

        if response.is_error:
            raise RendererError(_error_detail(response), status_code=response.status_code)
        return response

    async def render(self, document: str) -> RenderResponse:
        """Render a composite document against the current source image."""
        response = await self._request("POST", "/render", data={"gfxs": document})
        try:
            return RenderResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RendererError(f"Malformed render response: {e}") from e

    async def list_filters(self) -> list[str]:
        response = await self._request("GET", "/filters")
        try:
            names = response.json()
        except ValueError as e:
            raise RendererError(f"Malformed filter list: {e}") from e
        return [str(name) for name in names or []]

    async def read_filter(self, name: str) -> str:
        response = await self._request("GET", "/filter", params={"name": name})
        return response.text

    async def write_filter(self, name: str, document: str) -> None:
        await self._request("POST", "/saveFilter", data={"name": name, "filter": document})

    async def upload_image(self, file: DroppedFile) -> None:
        """Replace the server's current source image."""
        await self._request(
            "POST",
            "/upload",
            files={"image": (file.name, file.data, file.content_type)},
        )

    async def render_batch(self, document: str, files: Sequence[DroppedFile]) -> bytes:
        """Render ``document`` against every file; returns the zip archive bytes."""
        response = await self._request(
            "POST",
            "/renderBatch",
            data={"gfxs": document},
            files=[("images", (f.name, f.data, f.content_type)) for f in files],
        )
        return response.content

    async def render_filter(self, name: str, url: str) -> bytes:
        """Render a stored filter against an image fetched by the server from ``url``."""
        encoded = base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii")
        response = await self._request("GET", "/renderFilter", params={"name": name, "url": encoded})
        return response.content


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and "detail" in payload:
        return f"{response.status_code}: {payload['detail']}"
    return f"{response.status_code}: {response.text}"
