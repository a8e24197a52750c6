"""Shared fixtures: synthetic uploads written to ``tmp_path`` with Pillow."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from image_handler.schemas import UploadDescriptor
from image_handler.services.session import ImageSession

_EXTENSIONS = {"JPEG": "jpg", "GIF": "gif", "PNG": "png"}
_MIME_TYPES = {"JPEG": "image/jpeg", "GIF": "image/gif", "PNG": "image/png"}


def split_image(width: int, height: int, mode: str = "RGB") -> Image.Image:
    """Left half red, right half blue; makes crop offsets visible."""

    image = Image.new(mode, (width, height), (255, 0, 0) if mode == "RGB" else (255, 0, 0, 255))
    right = Image.new(mode, (width - width // 2, height), (0, 0, 255) if mode == "RGB" else (0, 0, 255, 255))
    image.paste(right, (width // 2, 0))
    return image


@pytest.fixture
def spill_dir(tmp_path: Path) -> Path:
    path = tmp_path / "spill"
    path.mkdir()
    return path


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def make_upload(tmp_path: Path) -> Callable[..., UploadDescriptor]:
    counter = {"n": 0}

    def _make(
        width: int = 800,
        height: int = 600,
        image_format: str = "JPEG",
        mime: str | None = None,
        byte_size: int | None = None,
        image: Image.Image | None = None,
    ) -> UploadDescriptor:
        counter["n"] += 1
        path = tmp_path / f"upload{counter['n']}.{_EXTENSIONS[image_format]}"
        (image if image is not None else split_image(width, height)).save(path, format=image_format)
        return UploadDescriptor(
            name=path.name,
            declared_mime_type=mime or _MIME_TYPES[image_format],
            byte_size=path.stat().st_size if byte_size is None else byte_size,
            source_path=path,
        )

    return _make


@pytest.fixture
def open_session(spill_dir: Path) -> Callable[..., ImageSession]:
    sessions = []

    def _open(upload, allowed_formats="all", **options) -> ImageSession:
        options.setdefault("temp_dir", spill_dir)
        session = ImageSession(upload, allowed_formats, **options)
        sessions.append(session)
        return session

    yield _open

    for session in sessions:
        session.close()
