"""FastAPI application exposing upload validation, resizing and export."""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Tuple, Type, Union

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .config import settings
from .errors import (
    DecodeFailure,
    ImageHandlerError,
    InvalidDimensions,
    InvalidFormat,
    InvalidIdentifier,
    InvalidMode,
    InvalidName,
    TooLarge,
    UnknownIdentifier,
    UnsupportedType,
    ValidationError,
)
from .schemas import (
    DerivativeRequest,
    DerivativesResponse,
    ErrorResponse,
    HealthResponse,
    InspectResponse,
    SavedDerivative,
    UploadDescriptor,
)
from .services.session import initialize
from .utils.image import MIME_TYPES
from .utils.timing import timed
from .utils.validation import ALL_FORMATS, AllowedFormats

LOGGER = logging.getLogger(__name__)

app = FastAPI(
    title="Image Handler API",
    version="1.0.0",
    description="Validate uploaded images and export resized JPEG, GIF or PNG versions.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_DERIVATIVE_LIST = TypeAdapter(List[DerivativeRequest])

_STATUS_CODES: Tuple[Tuple[Union[Type[ImageHandlerError], Tuple[Type[ImageHandlerError], ...]], int], ...] = (
    (TooLarge, 413),
    (UnsupportedType, 415),
    (
        (InvalidMode, InvalidDimensions, InvalidName, InvalidFormat, InvalidIdentifier, UnknownIdentifier),
        422,
    ),
    ((ValidationError, DecodeFailure), 400),
)


def status_code_for(exc: ImageHandlerError) -> int:
    for error_types, status_code in _STATUS_CODES:
        if isinstance(exc, error_types):
            return status_code
    return 500


@app.exception_handler(ImageHandlerError)
async def image_handler_error(request: Request, exc: ImageHandlerError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        LOGGER.info("%s %s rejected: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=exc.safe_message, code=exc.code).model_dump(),
    )


async def _read_upload(file: UploadFile) -> bytes:
    """Read the upload body, refusing anything over the configured cap unread."""

    limit = settings.max_upload_bytes
    if file.size is not None and file.size > limit:
        raise TooLarge(f"(upload) declared size {file.size} > max upload size ({limit})")
    payload = await file.read(limit + 1)
    if len(payload) > limit:
        raise TooLarge(f"(upload) body exceeds max upload size ({limit})")
    return payload


def _allowed_formats() -> AllowedFormats:
    configured = tuple(fmt.strip().lower() for fmt in settings.allowed_formats)
    return ALL_FORMATS if ALL_FORMATS in configured else configured


@contextmanager
def _spooled_upload(file: UploadFile, payload: bytes) -> Iterator[UploadDescriptor]:
    """Write ``payload`` to the temp dir for the duration of the block."""

    handle, name = tempfile.mkstemp(prefix="upload_", dir=settings.temp_dir)
    path = Path(name)
    try:
        with os.fdopen(handle, "wb") as upload_file:
            upload_file.write(payload)
        yield UploadDescriptor(
            name=file.filename or path.name,
            declared_mime_type=file.content_type or "",
            byte_size=len(payload),
            source_path=path,
        )
    finally:
        path.unlink(missing_ok=True)


@app.get("/health", response_model=HealthResponse, tags=["Operations"])
def health_check() -> HealthResponse:
    """Expose service readiness and upload limits."""

    return HealthResponse(
        status="ok",
        max_upload_bytes=settings.max_upload_bytes,
        accepted_mime_types=sorted(MIME_TYPES),
    )


@app.post("/inspect", response_model=InspectResponse, tags=["Images"])
async def inspect(
    file: UploadFile = File(..., description="JPEG, GIF or PNG image."),
) -> InspectResponse:
    """Validate and decode an upload and report its dimensions."""

    payload = await _read_upload(file)
    with _spooled_upload(file, payload) as upload:
        with initialize(upload, _allowed_formats()) as session:
            width, height = session.original_size()
            return InspectResponse(width=width, height=height, format=session.original_format.value)


@app.post("/derivatives", response_model=DerivativesResponse, tags=["Images"])
async def create_derivatives(
    file: UploadFile = File(..., description="JPEG, GIF or PNG image."),
    derivatives: str = Form(..., description="JSON list of derivative requests."),
) -> DerivativesResponse:
    """Resize an upload into every requested version and save each one."""

    try:
        requests = _DERIVATIVE_LIST.validate_json(derivatives)
    except PydanticValidationError as exc:
        LOGGER.info("Rejected derivative list: %s", exc)
        raise HTTPException(status_code=422, detail="Invalid derivative list.") from exc
    if not requests:
        raise HTTPException(status_code=422, detail="At least one derivative is required.")

    output_dir = Path(settings.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = await _read_upload(file)
    saved: List[SavedDerivative] = []
    with timed("derivatives request", LOGGER) as elapsed_ms:
        with _spooled_upload(file, payload) as upload:
            with initialize(upload, _allowed_formats()) as session:
                original_width, original_height = session.original_size()
                for request in requests:
                    width, height = session.resize(
                        request.identifier, request.mode, request.width, request.height
                    )
                    path = session.save(
                        request.identifier, output_dir, request.base_name, request.format, request.quality
                    )
                    saved.append(
                        SavedDerivative(
                            identifier=request.identifier,
                            path=str(path),
                            width=width,
                            height=height,
                            format=path.suffix.lstrip("."),
                        )
                    )
        total_ms = elapsed_ms()

    return DerivativesResponse(
        original_width=original_width,
        original_height=original_height,
        derivatives=saved,
        elapsed_ms=total_ms,
    )
