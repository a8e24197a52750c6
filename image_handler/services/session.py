"""Image session: validated upload, its original bitmap and its derivatives.

Typical use::

    with initialize(upload, allowed_formats=["jpg", "png"]) as session:
        session.resize("thumb", ResizeMode.SHRINK_KEEP_ASPECT, 200, 200)
        session.save("thumb", "/srv/media", "t1", ImageFormat.JPEG, 90)

Every temporary file the session creates is removed when it is closed, when
an exception leaves the ``with`` block, or when the session object is garbage
collected or the interpreter exits without it being closed.
"""

from __future__ import annotations

import logging
import os
import weakref
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple, Union

from PIL import Image

from ..config import settings
from ..errors import ImageHandlerError, NotInitialized, ResizeError, SaveError
from ..schemas import UploadDescriptor
from ..utils.image import ImageFormat, PillowCodec
from ..utils.timing import timed
from ..utils.validation import ALL_FORMATS, AllowedFormats, validate
from . import encoder
from . import resize as resize_engine
from .store import ORIGINAL_IMAGE, DerivativeStore, remove_temp_files

LOGGER = logging.getLogger(__name__)

Upload = Union[UploadDescriptor, Mapping[str, Any]]


class ImageSession:
    """Owns one uploaded image and the resized versions derived from it.

    Construction never raises: if the upload is rejected, :attr:`is_initialized`
    is ``False``, :attr:`init_error` holds the reason and every other operation
    raises :class:`NotInitialized`. Use :func:`initialize` to get the error
    raised directly instead.
    """

    def __init__(
        self,
        upload: Upload,
        allowed_formats: AllowedFormats = ALL_FORMATS,
        *,
        temp_dir: Union[str, os.PathLike, None] = None,
        codec: Optional[PillowCodec] = None,
        max_upload_bytes: Optional[int] = None,
        resample: Union[str, Image.Resampling, None] = None,
        default_jpeg_quality: Optional[int] = None,
    ):
        self._codec = codec or PillowCodec(settings.spill_compress_level)
        self._temp_dir = Path(temp_dir if temp_dir is not None else settings.temp_dir)
        self._max_upload_bytes = (
            max_upload_bytes if max_upload_bytes is not None else settings.max_upload_bytes
        )
        self._resample = resample if resample is not None else settings.resample_filter
        self._default_jpeg_quality = (
            default_jpeg_quality if default_jpeg_quality is not None else settings.default_jpeg_quality
        )

        self._temp_files: List[Path] = []
        self._finalizer = weakref.finalize(self, remove_temp_files, self._temp_files)
        self._store: Optional[DerivativeStore] = None
        self._closed = False

        self.upload: Optional[UploadDescriptor] = None
        self.original_format: Optional[ImageFormat] = None
        self.init_error: Optional[ImageHandlerError] = None

        try:
            self._initialize(upload, allowed_formats)
        except ImageHandlerError as exc:
            self.init_error = exc
            LOGGER.info("Image session rejected upload: %s", exc.detail)

    def _initialize(self, upload: Upload, allowed_formats: AllowedFormats) -> None:
        descriptor = UploadDescriptor.coerce(upload)
        image_format = validate(
            descriptor.declared_mime_type,
            descriptor.byte_size,
            allowed_formats,
            self._max_upload_bytes,
        )
        with timed(f"decode {descriptor.name}", LOGGER):
            original = self._codec.decode(descriptor.source_path, image_format)

        self._store = DerivativeStore(original, self._temp_dir, self._codec, self._temp_files)
        self.upload = descriptor
        self.original_format = image_format
        LOGGER.info(
            "Image session opened for %s (%s, %dx%d)",
            descriptor.name,
            image_format.name,
            *original.size,
        )

    def __enter__(self) -> "ImageSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_initialized(self) -> bool:
        return self._store is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_identifier(self) -> str:
        return self._require_store("active_identifier").active_identifier

    @property
    def identifiers(self) -> Tuple[str, ...]:
        return self._require_store("identifiers").identifiers

    @property
    def temp_files(self) -> Tuple[Path, ...]:
        return tuple(self._temp_files)

    def resident_identifiers(self) -> List[str]:
        """Derivatives currently decoded in memory (at most one)."""

        return self._require_store("resident_identifiers").resident_identifiers()

    def _require_store(
        self, operation: str, safe_message: Optional[str] = None
    ) -> DerivativeStore:
        if self._store is None or self._closed:
            reason = "session closed" if self._closed else "not initialized"
            if self.init_error is not None:
                reason = f"{reason} ({self.init_error.code}: {self.init_error.detail})"
            raise NotInitialized(f"({operation}) {reason}", safe_message)
        return self._store

    def resize(
        self,
        identifier: str,
        mode: Union[resize_engine.ResizeMode, int, str],
        width: int,
        height: int,
    ) -> Tuple[int, int]:
        """Create or replace derivative ``identifier`` from the original image.

        Returns the dimensions of the new derivative, which becomes the active
        one.
        """

        store = self._require_store("resize", ResizeError.default_safe_message)
        store.check_writable(identifier)
        mode = resize_engine.ResizeMode.parse(mode)
        width, height = resize_engine.check_dimensions(width, height)

        store.make_room(identifier)
        with timed(f"resize {identifier}", LOGGER):
            bitmap = resize_engine.resize(store.original, mode, width, height, self._resample)
        store.put(identifier, bitmap)
        return bitmap.size

    def save(
        self,
        identifier: str,
        directory: Union[str, os.PathLike],
        base_name: str,
        image_format: Union[ImageFormat, str],
        quality: Optional[int] = None,
    ) -> Path:
        """Encode ``identifier`` to ``directory/base_name.<ext>`` and return the path."""

        store = self._require_store("save", SaveError.default_safe_message)
        if quality is None:
            quality = self._default_jpeg_quality
        with timed(f"save {identifier}", LOGGER):
            return encoder.save(
                store, self._codec, identifier, directory, base_name, image_format, quality
            )

    def original_size(self) -> Tuple[int, int]:
        return self._require_store("original_size").size_of(ORIGINAL_IMAGE)

    def size_of(self, identifier: str) -> Tuple[int, int]:
        return self._require_store("size_of").size_of(identifier)

    def close(self) -> None:
        """Release every bitmap and remove every temporary file. Idempotent."""

        if self._closed:
            return
        self._closed = True
        if self._store is not None:
            self._store.close()
            self._store = None
            LOGGER.info("Image session closed for %s", self.upload.name if self.upload else "?")
        self._finalizer()


def initialize(
    upload: Upload, allowed_formats: AllowedFormats = ALL_FORMATS, **options: Any
) -> ImageSession:
    """Open a session for ``upload`` or raise the reason it was rejected."""

    session = ImageSession(upload, allowed_formats, **options)
    if not session.is_initialized:
        session.close()
        raise session.init_error
    return session
