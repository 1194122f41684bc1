"""
Tests for the render server routes: upload, render, batch and image download.

Run with: pytest tests/test_render_api.py -v
"""

import base64
import io
import zipfile

import pytest
from PIL import Image

from conftest import make_jpeg, make_png

DOCUMENT = "[VARS]\n\n\n[FILTERS]\n\n\n[COMPOSITION]\n\n\n[LAYERS]\n$IMG\n"


def upload(client, data, name="photo.png", content_type="image/png"):
    return client.post("/upload", files={"image": (name, data, content_type)})


class TestUpload:
    def test_upload_png(self, client):
        response = upload(client, make_png(8, 6))

        assert response.status_code == 200
        assert response.text == "OK"
        with Image.open(client.workspace.source_path) as image:
            assert image.size == (8, 6)

    def test_upload_jpeg_is_stored_as_png(self, client):
        response = upload(client, make_jpeg(), "photo.jpg", "image/jpeg")

        assert response.status_code == 200
        with Image.open(client.workspace.source_path) as image:
            assert image.format == "PNG"

    def test_invalid_image(self, client):
        response = upload(client, b"definitely not an image", "x.png")

        assert response.status_code == 400
        assert "Invalid image file" in response.json()["detail"]

    def test_missing_file(self, client):
        response = client.post("/upload")
        assert response.status_code == 400

    def test_large_image_is_downscaled(self, client):
        client.workspace.max_pixels = 100

        upload(client, make_png(40, 10))

        with Image.open(client.workspace.source_path) as image:
            width, height = image.size
        assert width * height <= 100
        assert width > height


class TestRender:
    def test_render_returns_both_images(self, client):
        source = make_png(4, 4, (0, 0, 255, 255))
        upload(client, source)

        response = client.post("/render", data={"gfxs": DOCUMENT})

        assert response.status_code == 200
        payload = response.json()
        assert payload["update"] is True
        processed = base64.b64decode(payload["processed"])
        with Image.open(io.BytesIO(processed)) as image:
            assert image.size == (4, 4)
            assert image.convert("RGBA").getpixel((0, 0)) == (0, 0, 255, 255)
        assert base64.b64decode(payload["original"]) == client.workspace.source_path.read_bytes()
        assert client.workspace.processed_path.is_file()

    def test_empty_document(self, client):
        upload(client, make_png())
        response = client.post("/render", data={"gfxs": ""})
        assert response.status_code == 400

    def test_no_source_image(self, client):
        response = client.post("/render", data={"gfxs": DOCUMENT})
        assert response.status_code == 404

    def test_busy_workspace_answers_no_update(self, client):
        upload(client, make_png())
        client.workspace._rendering = True
        try:
            response = client.post("/render", data={"gfxs": DOCUMENT})
        finally:
            client.workspace._rendering = False

        assert response.status_code == 200
        assert response.json() == {"update": False, "original": "", "processed": ""}

    def test_compositor_failure(self, client):
        from api.engine import CompositionError

        class FailingEngine:
            async def render(self, document, source):
                raise CompositionError("unknown filter 'blurr'")

        upload(client, make_png())
        client.workspace.engine = FailingEngine()

        response = client.post("/render", data={"gfxs": DOCUMENT})

        assert response.status_code == 400
        assert "blurr" in response.json()["detail"]
        assert client.workspace.rendering is False

    def test_document_is_bound_before_rendering(self, client):
        seen = {}

        class RecordingEngine:
            async def render(self, document, source):
                seen["document"] = document
                return source.read_bytes()

        upload(client, make_png(8, 6))
        client.workspace.engine = RecordingEngine()

        client.post("/render", data={"gfxs": DOCUMENT})

        document = seen["document"]
        assert "$IMG" not in document
        assert str(client.workspace.source_path.resolve()) in document
        assert "width = 8" in document
        assert "height = 6" in document


class TestDownloads:
    def test_original(self, client):
        upload(client, make_png())
        response = client.get("/original")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"

    def test_original_missing(self, client):
        assert client.get("/original").status_code == 404

    def test_processed_after_render(self, client):
        upload(client, make_png())
        client.post("/render", data={"gfxs": DOCUMENT})

        response = client.get("/processed")

        assert response.status_code == 200
        assert response.content == client.workspace.processed_path.read_bytes()

    def test_processed_missing(self, client):
        assert client.get("/processed").status_code == 404


class TestBatch:
    def test_batch_returns_zip(self, client):
        files = [
            ("images", ("first.png", make_png(), "image/png")),
            ("images", ("second.jpg", make_jpeg(), "image/jpeg")),
        ]

        response = client.post("/renderBatch", data={"gfxs": DOCUMENT}, files=files)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert "batch.zip" in response.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert sorted(archive.namelist()) == ["first.png", "second.png"]

    def test_batch_does_not_replace_source(self, client):
        upload(client, make_png(8, 8))
        before = client.workspace.source_path.read_bytes()

        client.post(
            "/renderBatch",
            data={"gfxs": DOCUMENT},
            files=[("images", ("a.png", make_png(2, 2), "image/png"))],
        )

        assert client.workspace.source_path.read_bytes() == before

    def test_batch_invalid_image(self, client):
        files = [
            ("images", ("a.png", make_png(), "image/png")),
            ("images", ("b.png", b"garbage", "image/png")),
        ]
        response = client.post("/renderBatch", data={"gfxs": DOCUMENT}, files=files)
        assert response.status_code == 400

    @pytest.mark.parametrize("data", [{"gfxs": ""}, {"gfxs": DOCUMENT}])
    def test_batch_requires_document_and_images(self, client, data):
        files = None if data["gfxs"] else [("images", ("a.png", make_png(), "image/png"))]
        response = client.post("/renderBatch", data=data, files=files)
        assert response.status_code == 400


class TestRenderFilter:
    def test_missing_filter(self, client):
        url = base64.urlsafe_b64encode(b"http://example.com/a.png").decode()
        response = client.get("/renderFilter", params={"name": "nope", "url": url})
        assert response.status_code == 404

    def test_missing_url(self, client, settings):
        (settings.filters_dir / "sepia.gfxs").write_text(DOCUMENT)
        response = client.get("/renderFilter", params={"name": "sepia"})
        assert response.status_code == 400
