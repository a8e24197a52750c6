"""Pydantic schemas shared across the image handler."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import MalformedUpload


class UploadDescriptor(BaseModel):
    """An uploaded file as handed over by the transport layer.

    Field names or the keys of a raw multipart file record (``type``,
    ``size``, ``tmp_name``) are both accepted.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    declared_mime_type: str = Field(validation_alias=AliasChoices("declared_mime_type", "type"))
    byte_size: int = Field(ge=0, validation_alias=AliasChoices("byte_size", "size"))
    source_path: Path = Field(validation_alias=AliasChoices("source_path", "tmp_name"))

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "UploadDescriptor":
        try:
            return cls.model_validate(record)
        except PydanticValidationError as exc:
            raise MalformedUpload(
                f"(initialize) upload record invalid: {exc.errors(include_url=False)!r} "
                f"dump: {dict(record)!r}"
            ) from exc

    @classmethod
    def coerce(cls, upload: Union["UploadDescriptor", Mapping[str, Any]]) -> "UploadDescriptor":
        if isinstance(upload, cls):
            return upload
        if isinstance(upload, Mapping):
            return cls.from_mapping(upload)
        raise MalformedUpload(f"(initialize) upload record invalid. dump: {upload!r}")


class DerivativeRequest(BaseModel):
    """One resized version requested from the /derivatives endpoint."""

    identifier: str = Field(..., min_length=1, description="Name of the resized version.")
    mode: Union[int, str] = Field(
        "shrink_keep_aspect",
        description="stretch (0), shrink_keep_aspect (1) or crop_center (2).",
    )
    width: int = Field(..., description="Target or maximum width in pixels.")
    height: int = Field(..., description="Target or maximum height in pixels.")
    format: str = Field("jpg", description="Output format: jpg, gif or png.")
    base_name: str = Field(..., description="File name without extension, [A-Za-z0-9_-]+.")
    quality: Optional[int] = Field(None, description="JPEG quality, 1-100.")


class SavedDerivative(BaseModel):
    identifier: str
    path: str
    width: int
    height: int
    format: str


class DerivativesResponse(BaseModel):
    """Response payload returned by the /derivatives endpoint."""

    original_width: int
    original_height: int
    derivatives: List[SavedDerivative]
    elapsed_ms: float = Field(..., ge=0, description="Total processing time in milliseconds.")


class InspectResponse(BaseModel):
    width: int
    height: int
    format: str


class HealthResponse(BaseModel):
    """Simple health response for uptime checks."""

    status: str = Field(..., description="Overall service status indicator.")
    max_upload_bytes: int = Field(..., description="Largest accepted upload in bytes.")
    accepted_mime_types: List[str]


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Message safe to show to the uploader.")
    code: str = Field(..., description="Stable machine-readable error code.")
