"""HTTP entrypoint for the conversion service."""

import asyncio
import logging
import time
from importlib.metadata import version
from typing import Any, List, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from rich.console import Console
from rich.logging import RichHandler
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, get_settings
from .documents import merge_documents, optimize_document, split_document
from .errors import ConversionError, InputError
from .images import (
    compress_image,
    convert_image,
    image_to_pdf,
    remove_background,
    resize_image,
)
from .models import ConversionResult, Upload

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_int(value: Any, default: int) -> int:
    """Parse an integer with a safe fallback."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _send(result: ConversionResult) -> Response:
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": result.content_disposition},
    )


def _too_large() -> InputError:
    return InputError("Request body too large", status_code=413)


async def _read_upload(upload: Optional[UploadFile], settings: Settings) -> Upload:
    """Read one form file into memory, enforcing the upload ceiling."""
    if upload is None:
        raise InputError("Failed to get uploaded file")
    try:
        content = await upload.read()
    finally:
        await upload.close()
    if len(content) > settings.max_upload_bytes:
        raise _too_large()
    return Upload(filename=upload.filename or "", content=content)


async def _read_uploads(uploads: Optional[List[UploadFile]], settings: Settings) -> List[Upload]:
    files: List[Upload] = []
    total = 0
    for upload in uploads or []:
        item = await _read_upload(upload, settings)
        total += len(item.content)
        if total > settings.max_upload_bytes:
            raise _too_large()
        files.append(item)
    return files


@router.get("/health")
async def health_check():
    """Report service and library versions."""
    return {
        "status": "healthy",
        "version": __version__,
        "dependencies": {
            name: version(name) for name in ("Pillow", "pypdf", "PyMuPDF", "fpdf2", "numpy")
        },
    }


@router.post("/convert/jpg-to-png")
async def convert_jpg_to_png(request: Request, image: Optional[UploadFile] = File(None)):
    upload = await _read_upload(image, _settings(request))
    return _send(await asyncio.to_thread(convert_image, upload.content, "JPEG", "PNG"))


@router.post("/convert/png-to-jpg")
async def convert_png_to_jpg(request: Request, image: Optional[UploadFile] = File(None)):
    upload = await _read_upload(image, _settings(request))
    return _send(await asyncio.to_thread(convert_image, upload.content, "PNG", "JPEG"))


@router.post("/convert/to-pdf")
async def convert_to_pdf(request: Request, image: Optional[UploadFile] = File(None)):
    upload = await _read_upload(image, _settings(request))
    return _send(await asyncio.to_thread(image_to_pdf, upload.content))


@router.post("/compress")
async def compress(
    request: Request,
    image: Optional[UploadFile] = File(None),
    quality: Optional[str] = Form(None),
):
    """Re-encode an image; ``quality`` (1-100, default 50) applies to JPEG only."""
    upload = await _read_upload(image, _settings(request))
    result = await asyncio.to_thread(
        compress_image, upload.content, _parse_int(quality, 0)
    )
    return _send(result)


@router.post("/resize")
async def resize(
    request: Request,
    image: Optional[UploadFile] = File(None),
    width: Optional[str] = Form(None),
    height: Optional[str] = Form(None),
):
    upload = await _read_upload(image, _settings(request))
    result = await asyncio.to_thread(
        resize_image, upload.content, _parse_int(width, 0), _parse_int(height, 0)
    )
    return _send(result)


@router.post("/transparent")
async def transparent(request: Request, image: Optional[UploadFile] = File(None)):
    upload = await _read_upload(image, _settings(request))
    return _send(await asyncio.to_thread(remove_background, upload.content))


@router.post("/merge-pdfs")
async def merge_pdfs(request: Request, pdfs: Optional[List[UploadFile]] = File(None)):
    settings = _settings(request)
    uploads = await _read_uploads(pdfs, settings)
    return _send(await asyncio.to_thread(merge_documents, uploads, settings.temp_dir))


@router.post("/split-pdf")
async def split_pdf(
    request: Request,
    pdf: Optional[UploadFile] = File(None),
    mode: Optional[str] = Form(None),
    pages: Optional[str] = Form(None),
    count: Optional[str] = Form(None),
):
    """Split a PDF by page numbers (``mode=pages``) or by page count (``mode=count``)."""
    settings = _settings(request)
    upload = await _read_upload(pdf, settings)
    result = await asyncio.to_thread(
        split_document, upload, mode, pages, count, settings.temp_dir
    )
    return _send(result)


@router.post("/compress-pdf")
async def compress_pdf(request: Request, pdf: Optional[UploadFile] = File(None)):
    settings = _settings(request)
    upload = await _read_upload(pdf, settings)
    return _send(await asyncio.to_thread(optimize_document, upload, settings.temp_dir))


async def _conversion_error_handler(request: Request, exc: ConversionError) -> Response:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.public_message,
            exc_info=exc,
        )
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.public_message)
    return PlainTextResponse(exc.public_message, status_code=exc.status_code)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> Response:
    return PlainTextResponse(
        str(exc.detail), status_code=exc.status_code, headers=getattr(exc, "headers", None)
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    logger.warning("%s %s invalid form data: %s", request.method, request.url.path, exc.errors())
    return PlainTextResponse("Error parsing form data", status_code=400)


async def _unhandled_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error for %s %s", request.method, request.url.path)
    return PlainTextResponse("Internal Server Error", status_code=500)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application around ``settings``."""
    settings = settings or get_settings()
    app = FastAPI(
        title="File Conversion API",
        description="Convert, compress and repackage images and PDFs",
        version=__version__,
    )
    app.state.settings = settings
    configure_logging(settings.log_level)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        # Chunked bodies carry no length; _read_upload checks them after reading.
        length = request.headers.get("content-length", "")
        if length.isdigit() and int(length) > settings.max_upload_bytes:
            response = PlainTextResponse("Request body too large", status_code=413)
        else:
            response = await call_next(request)
        logger.info(
            "method=%s path=%s status=%d duration=%.1fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    # Outermost layer: responses from log_requests, including 413, get CORS headers.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ConversionError, _conversion_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    app.include_router(router)
    return app


def configure_logging(level: str = "INFO") -> Console:
    """
    Configure logging with a Rich handler.

    The Rich handler is installed only when the root logger has none yet, so
    calling this again just updates the levels.
    """
    console = Console()
    if not logging.getLogger().handlers:
        rich_handler = RichHandler(console=console, rich_tracebacks=True, show_time=False)
        logging.basicConfig(level=logging.WARNING, format="%(message)s", handlers=[rich_handler])
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("fileconv_server").setLevel(level)
    return console


app = create_app()


def main() -> None:
    """Entrypoint for the conversion server."""
    settings = get_settings()
    console = configure_logging(settings.log_level)
    console.print(f"[bold green]Starting server on http://{settings.host}:{settings.port}[/bold green]")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
