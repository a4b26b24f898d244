"""
Tests for the HTTP endpoints.

Each test builds its own app whose workspaces live under a per-test directory,
so leftover temporary files can be checked after every request.
"""

import logging
import zipfile
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from pypdf import PdfReader

from fileconv_server import tools
from fileconv_server.config import Settings
from fileconv_server.server import create_app


@pytest.fixture
def client(work_dir):
    """Create a test client whose workspaces live under ``work_dir``."""
    return TestClient(create_app(Settings(temp_dir=work_dir)))


def _image_file(content: bytes, name: str = "photo.png", content_type: str = "image/png"):
    return {"image": (name, content, content_type)}


def _open(content: bytes) -> Image.Image:
    image = Image.open(BytesIO(content))
    image.load()
    return image


class TestHealthCheck:
    def test_health_reports_dependencies(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "pypdf" in data["dependencies"]


class TestImageEndpoints:
    def test_jpg_to_png(self, client, image_factory):
        response = client.post(
            "/convert/jpg-to-png",
            files=_image_file(image_factory("JPEG"), "photo.jpg", "image/jpeg"),
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["content-disposition"] == 'attachment; filename="converted.png"'
        assert _open(response.content).format == "PNG"

    def test_png_to_jpg(self, client, image_factory):
        response = client.post("/convert/png-to-jpg", files=_image_file(image_factory("PNG")))
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert _open(response.content).format == "JPEG"

    def test_png_to_jpg_rejects_jpeg(self, client, image_factory):
        response = client.post(
            "/convert/png-to-jpg",
            files=_image_file(image_factory("JPEG"), "photo.jpg", "image/jpeg"),
        )
        assert response.status_code == 400
        assert response.text == "Failed to decode PNG"
        assert response.headers["content-type"].startswith("text/plain")

    def test_missing_upload(self, client):
        response = client.post("/convert/jpg-to-png", data={"quality": "10"})
        assert response.status_code == 400
        assert response.text == "Failed to get uploaded file"

    def test_wrong_method(self, client):
        response = client.get("/compress")
        assert response.status_code == 405
        assert response.headers["content-type"].startswith("text/plain")

    def test_compress_with_quality(self, client, image_factory):
        response = client.post(
            "/compress",
            files=_image_file(image_factory("JPEG"), "photo.jpg", "image/jpeg"),
            data={"quality": "30"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert "compressed.jpg" in response.headers["content-disposition"]

    def test_compress_with_invalid_quality_uses_default(self, client, image_factory):
        response = client.post(
            "/compress",
            files=_image_file(image_factory("PNG")),
            data={"quality": "not-a-number"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"

    def test_resize(self, client, image_factory):
        response = client.post(
            "/resize",
            files=_image_file(image_factory("PNG", size=(80, 60))),
            data={"width": "20", "height": "abc"},
        )
        assert response.status_code == 200
        assert _open(response.content).size == (20, 15)

    def test_resize_requires_dimension(self, client, image_factory):
        response = client.post(
            "/resize",
            files=_image_file(image_factory("PNG")),
            data={"width": "-4"},
        )
        assert response.status_code == 400
        assert "width or height" in response.text

    def test_transparent(self, client, image_factory):
        response = client.post(
            "/transparent",
            files=_image_file(image_factory("JPEG"), "photo.jpg", "image/jpeg"),
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert _open(response.content).getpixel((0, 0))[3] == 0

    def test_to_pdf(self, client, image_factory):
        response = client.post("/convert/to-pdf", files=_image_file(image_factory("PNG")))
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert len(PdfReader(BytesIO(response.content)).pages) == 1


class TestPdfEndpoints:
    def test_merge(self, client, pdf_factory, work_dir, leftovers):
        response = client.post(
            "/merge-pdfs",
            files=[
                ("pdfs", ("a.pdf", pdf_factory(2), "application/pdf")),
                ("pdfs", ("b.pdf", pdf_factory(1), "application/pdf")),
            ],
        )
        assert response.status_code == 200
        assert "merged.pdf" in response.headers["content-disposition"]
        assert len(PdfReader(BytesIO(response.content)).pages) == 3
        assert leftovers(work_dir) == []

    def test_merge_requires_two_files(self, client, pdf_factory, work_dir, leftovers):
        response = client.post(
            "/merge-pdfs",
            files=[("pdfs", ("a.pdf", pdf_factory(2), "application/pdf"))],
        )
        assert response.status_code == 400
        assert response.text == "At least two PDF files are required"
        assert leftovers(work_dir) == []

    def test_merge_corrupt_file(self, client, pdf_factory, work_dir, leftovers):
        response = client.post(
            "/merge-pdfs",
            files=[
                ("pdfs", ("a.pdf", pdf_factory(1), "application/pdf")),
                ("pdfs", ("b.pdf", b"%PDF-1.7 truncated", "application/pdf")),
            ],
        )
        assert response.status_code == 400
        assert leftovers(work_dir) == []

    def test_split_by_count(self, client, pdf_factory, work_dir, leftovers):
        response = client.post(
            "/split-pdf",
            files={"pdf": ("book.pdf", pdf_factory(5), "application/pdf")},
            data={"mode": "count", "count": "2"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert "split_pdfs.zip" in response.headers["content-disposition"]
        with zipfile.ZipFile(BytesIO(response.content)) as archive:
            assert len(archive.namelist()) == 3
            assert "book.pdf" not in archive.namelist()
        assert leftovers(work_dir) == []

    def test_split_by_pages(self, client, pdf_factory, work_dir, leftovers):
        response = client.post(
            "/split-pdf",
            files={"pdf": ("book.pdf", pdf_factory(6), "application/pdf")},
            data={"mode": "pages", "pages": "1, 3,5"},
        )
        assert response.status_code == 200
        with zipfile.ZipFile(BytesIO(response.content)) as archive:
            assert archive.namelist() == ["book_1-2.pdf", "book_3-4.pdf", "book_5-6.pdf"]
        assert leftovers(work_dir) == []

    @pytest.mark.parametrize(
        "data,message",
        [
            ({"mode": "halves"}, "Invalid split mode"),
            ({}, "Invalid split mode"),
            ({"mode": "count", "count": "zero"}, "Invalid page count"),
            ({"mode": "pages", "pages": "1,,2"}, "Invalid page ranges"),
        ],
    )
    def test_split_invalid_parameters(self, client, pdf_factory, work_dir, leftovers, data, message):
        response = client.post(
            "/split-pdf",
            files={"pdf": ("book.pdf", pdf_factory(3), "application/pdf")},
            data=data,
        )
        assert response.status_code == 400
        assert response.text == message
        assert leftovers(work_dir) == []

    def test_compress_pdf(self, client, pdf_factory, work_dir, leftovers):
        response = client.post(
            "/compress-pdf",
            files={"pdf": ("report.pdf", pdf_factory(2), "application/pdf")},
        )
        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="compressed_report.pdf"'
        assert len(PdfReader(BytesIO(response.content)).pages) == 2
        assert leftovers(work_dir) == []

    def test_compress_pdf_library_failure(self, client, pdf_factory, work_dir, leftovers, monkeypatch):
        def _fail(*args, **kwargs):
            raise RuntimeError("xref table broken")

        monkeypatch.setattr(tools.fitz, "open", _fail)
        response = client.post(
            "/compress-pdf",
            files={"pdf": ("report.pdf", pdf_factory(2), "application/pdf")},
        )
        assert response.status_code == 500
        assert response.text == "Error compressing PDF: xref table broken"
        assert response.headers["content-type"].startswith("text/plain")
        assert leftovers(work_dir) == []


class TestUploadLimit:
    def test_oversized_body_rejected_before_workspace(self, work_dir, leftovers, pdf_factory):
        client = TestClient(create_app(Settings(temp_dir=work_dir, max_upload_bytes=1024)))
        response = client.post(
            "/merge-pdfs",
            files=[
                ("pdfs", ("a.pdf", b"%PDF-" + b"0" * 4096, "application/pdf")),
                ("pdfs", ("b.pdf", pdf_factory(1), "application/pdf")),
            ],
        )
        assert response.status_code == 413
        assert response.text == "Request body too large"
        assert not work_dir.exists()
        assert leftovers(work_dir) == []

    def test_oversized_body_keeps_cors_headers(self, work_dir, pdf_factory):
        client = TestClient(create_app(Settings(temp_dir=work_dir, max_upload_bytes=1024)))
        response = client.post(
            "/compress-pdf",
            files={"pdf": ("big.pdf", b"%PDF-" + b"0" * 4096, "application/pdf")},
            headers={"Origin": "http://localhost:5173"},
        )
        assert response.status_code == 413
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
        assert not work_dir.exists()


class TestLogging:
    def test_create_app_applies_log_level(self, work_dir):
        package_logger = logging.getLogger("fileconv_server")
        previous = package_logger.level
        try:
            create_app(Settings(temp_dir=work_dir, log_level="DEBUG"))
            assert package_logger.level == logging.DEBUG
        finally:
            package_logger.setLevel(previous)
