"""Application configuration for the image handler."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Literal, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_REPO_ROOT = Path(__file__).resolve().parent.parent

ResampleFilter = Literal["nearest", "box", "bilinear", "hamming", "bicubic", "lanczos"]


class Settings(BaseSettings):
    """Centralised runtime configuration.

    Values can be overridden using environment variables prefixed with
    ``IMAGE_HANDLER_`` (e.g. ``IMAGE_HANDLER_TEMP_DIR``). An optional ``.env``
    file located at the repository root will be read automatically if present.
    """

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_HANDLER_",
        env_file=_REPO_ROOT / ".env",
        extra="ignore",
    )

    max_upload_bytes: int = Field(5_242_880, gt=0)
    temp_dir: Path = Path(tempfile.gettempdir())
    default_jpeg_quality: int = 85
    resample_filter: ResampleFilter = "bicubic"
    spill_compress_level: int = Field(0, ge=0, le=9)
    allowed_formats: Tuple[str, ...] = ("all",)
    output_dir: Path = _REPO_ROOT / "derivatives"
    cors_allow_origins: Tuple[str, ...] = ("*",)
    log_level: str = "info"


settings = Settings()
