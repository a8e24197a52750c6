"""Pillow-backed bitmap type and codec adapter.

The rest of the package never talks to Pillow's file plugins directly: it
decodes and encodes through :class:`PillowCodec`, which turns codec errors into
:class:`~image_handler.errors.DecodeFailure` or
:class:`~image_handler.errors.EncodeFailure`.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Tuple, Union

from PIL import Image

from ..errors import DecodeFailure, EncodeFailure

LOGGER = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 85

_TRUECOLOUR_MODES = ("RGB", "RGBA")
_ALPHA_MODES = ("LA", "La", "PA", "RGBa")


class ImageFormat(str, Enum):
    """Encoded formats accepted on upload and offered on save."""

    JPEG = "jpg"
    GIF = "gif"
    PNG = "png"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def pillow_name(self) -> str:
        return _PILLOW_NAMES[self]

    @classmethod
    def parse(cls, value: Union["ImageFormat", str]) -> "ImageFormat":
        """Resolve ``value`` to a format, accepting ``"jpeg"`` as an alias of ``"jpg"``."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            if key == "jpeg":
                key = "jpg"
            for member in cls:
                if member.value == key:
                    return member
        raise ValueError(f"Unknown image format: {value!r}")


_PILLOW_NAMES = {
    ImageFormat.JPEG: "JPEG",
    ImageFormat.GIF: "GIF",
    ImageFormat.PNG: "PNG",
}

MIME_TYPES = {
    "image/jpeg": ImageFormat.JPEG,
    "image/pjpeg": ImageFormat.JPEG,
    "image/gif": ImageFormat.GIF,
    "image/png": ImageFormat.PNG,
}


@dataclass(frozen=True)
class Bitmap:
    """A decoded image held in memory.

    Bitmaps are produced by :meth:`PillowCodec.decode` or by the resize engine
    and are never modified afterwards; every transformation creates a new one.
    """

    image: Image.Image

    def __post_init__(self) -> None:
        width, height = self.image.size
        if width <= 0 or height <= 0:
            raise ValueError(f"Bitmap dimensions must be positive, got {width}x{height}")

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def mode(self) -> str:
        return self.image.mode


def _to_truecolour(image: Image.Image) -> Image.Image:
    if image.mode in _TRUECOLOUR_MODES:
        return image.copy()
    has_alpha = image.mode in _ALPHA_MODES or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


class PillowCodec:
    """Decode and encode bitmaps for the formats in :class:`ImageFormat`."""

    def __init__(self, spill_compress_level: int = 0):
        self._spill_compress_level = spill_compress_level

    def decode(self, source: Union[Path, str, bytes], image_format: ImageFormat) -> Bitmap:
        """Decode ``source`` (a path or raw bytes) using only the plugin for ``image_format``."""

        origin = "<bytes>" if isinstance(source, (bytes, bytearray)) else str(source)
        stream = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source

        try:
            with Image.open(stream, formats=[image_format.pillow_name]) as img:
                img.load()
                decoded = _to_truecolour(img)
        except MemoryError as exc:
            raise DecodeFailure(
                f"(decode) not enough memory to decode {origin} as {image_format.pillow_name}"
            ) from exc
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
            raise DecodeFailure(
                f"(decode) failed creating an image from {origin} as "
                f"{image_format.pillow_name}: {exc}"
            ) from exc

        if decoded.width <= 0 or decoded.height <= 0:
            raise DecodeFailure(f"(decode) {origin} decoded to an empty {decoded.size} image")

        LOGGER.debug("Decoded %s as %s (%dx%d)", origin, image_format.name, *decoded.size)
        return Bitmap(decoded)

    def encode(
        self, bitmap: Bitmap, image_format: ImageFormat, quality: int | None = None
    ) -> bytes:
        """Encode ``bitmap`` to ``image_format``; ``quality`` only applies to JPEG."""

        image = bitmap.image
        options = {}
        if image_format is ImageFormat.JPEG:
            if quality is None:
                quality = DEFAULT_JPEG_QUALITY
            if isinstance(quality, bool) or not isinstance(quality, int) or not 1 <= quality <= 100:
                raise EncodeFailure(
                    f"(encode) JPEG quality must be an integer in 1-100, got {quality!r}"
                )
            options["quality"] = quality
            if image.mode != "RGB":
                image = image.convert("RGB")

        buffer = io.BytesIO()
        try:
            image.save(buffer, format=image_format.pillow_name, **options)
        except (MemoryError, OSError, ValueError, KeyError) as exc:
            raise EncodeFailure(
                f"(encode) {image_format.pillow_name} encoder failed for a "
                f"{bitmap.width}x{bitmap.height} {bitmap.mode} bitmap: {exc}",
                f"Something went wrong while trying to save this image as a {image_format.name}.",
            ) from exc
        return buffer.getvalue()

    def encode_lossless(self, bitmap: Bitmap) -> bytes:
        """Encode ``bitmap`` as PNG without any loss, for temporary storage."""

        buffer = io.BytesIO()
        try:
            bitmap.image.save(buffer, format="PNG", compress_level=self._spill_compress_level)
        except (MemoryError, OSError, ValueError) as exc:
            raise EncodeFailure(f"(encode_lossless) PNG encoder failed: {exc}") from exc
        return buffer.getvalue()
