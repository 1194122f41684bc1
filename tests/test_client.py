"""
Tests for the render server HTTP client, using httpx.MockTransport.
"""

import base64
from urllib.parse import parse_qs

import httpx
import pytest

from studio.client import DroppedFile, RendererClient, RendererError


def make_client(handler):
    return RendererClient("http://renderer.test", transport=httpx.MockTransport(handler))


class TestRender:
    @pytest.mark.asyncio
    async def test_posts_document_as_form_field(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"update": True, "original": "AA==", "processed": "AQ=="})

        async with make_client(handler) as client:
            result = await client.render("[VARS]\n\n")

        assert seen["path"] == "/render"
        assert seen["form"]["gfxs"] == ["[VARS]\n\n"]
        assert result.update is True
        assert result.processed == "AQ=="

    @pytest.mark.asyncio
    async def test_no_update_payload(self):
        async with make_client(lambda r: httpx.Response(200, json={"update": False})) as client:
            result = await client.render("doc")
        assert result.update is False
        assert result.original == ""

    @pytest.mark.asyncio
    async def test_error_status_carries_detail(self):
        def handler(request):
            return httpx.Response(404, json={"detail": "No image file found"})

        async with make_client(handler) as client:
            with pytest.raises(RendererError) as exc_info:
                await client.render("doc")

        assert exc_info.value.status_code == 404
        assert "No image file found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        async with make_client(lambda r: httpx.Response(200, text="not json")) as client:
            with pytest.raises(RendererError, match="Malformed"):
                await client.render("doc")

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(RendererError) as exc_info:
                await client.render("doc")

        assert exc_info.value.status_code is None


class TestFilters:
    @pytest.mark.asyncio
    async def test_list_and_read(self):
        def handler(request):
            if request.url.path == "/filters":
                return httpx.Response(200, json=["a", "b"])
            assert request.url.params["name"] == "a"
            return httpx.Response(200, text="[FILTERS]\nblur 1\n")

        async with make_client(handler) as client:
            assert await client.list_filters() == ["a", "b"]
            assert await client.read_filter("a") == "[FILTERS]\nblur 1\n"

    @pytest.mark.asyncio
    async def test_write(self):
        seen = {}

        def handler(request):
            seen.update(parse_qs(request.content.decode()))
            return httpx.Response(200, text="OK")

        async with make_client(handler) as client:
            await client.write_filter("mine", "doc")

        assert seen == {"name": ["mine"], "filter": ["doc"]}


class TestUploads:
    @pytest.mark.asyncio
    async def test_upload_uses_image_field(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = request.content
            return httpx.Response(200, text="OK")

        async with make_client(handler) as client:
            await client.upload_image(DroppedFile("photo.png", b"PNGDATA", "image/png"))

        assert seen["path"] == "/upload"
        assert b'name="image"; filename="photo.png"' in seen["body"]
        assert b"PNGDATA" in seen["body"]

    @pytest.mark.asyncio
    async def test_batch_returns_archive_bytes(self):
        seen = {}

        def handler(request):
            seen["body"] = request.content
            return httpx.Response(200, content=b"PK\x03\x04zip")

        files = [DroppedFile("a.png", b"A", "image/png"), DroppedFile("b.png", b"B", "image/png")]
        async with make_client(handler) as client:
            archive = await client.render_batch("doc", files)

        assert archive == b"PK\x03\x04zip"
        assert seen["body"].count(b'name="images"') == 2
        assert b'name="gfxs"' in seen["body"]

    @pytest.mark.asyncio
    async def test_render_filter_encodes_url(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url.params["url"]
            return httpx.Response(200, content=b"png")

        async with make_client(handler) as client:
            await client.render_filter("sepia", "http://example.com/a.png")

        decoded = base64.urlsafe_b64decode(seen["url"]).decode()
        assert decoded == "http://example.com/a.png"


def test_dropped_file_is_image():
    assert DroppedFile("a.png", b"", "image/png").is_image
    assert not DroppedFile("a.txt", b"", "text/plain").is_image
