"""Persist a derivative to disk in a chosen format."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Union

from ..errors import EncodeFailure, InvalidFormat, InvalidName, InvalidPath
from ..utils.image import DEFAULT_JPEG_QUALITY, ImageFormat, PillowCodec
from .store import DerivativeStore

LOGGER = logging.getLogger(__name__)

BASE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def _check_directory(directory: object) -> Path:
    if not isinstance(directory, (str, os.PathLike)) or not Path(directory).is_dir():
        raise InvalidPath(f"(save) invalid save path: {directory!r}")
    return Path(directory)


def _check_base_name(base_name: object) -> str:
    if not isinstance(base_name, str) or BASE_NAME_PATTERN.fullmatch(base_name) is None:
        raise InvalidName(
            f"(save) illegal base name, characters allowed: [a-zA-Z0-9-_], given: {base_name!r}"
        )
    return base_name


def _check_format(image_format: object) -> ImageFormat:
    try:
        return ImageFormat.parse(image_format)
    except ValueError as exc:
        raise InvalidFormat(f"(save) invalid save type: {image_format!r}") from exc


def save(
    store: DerivativeStore,
    codec: PillowCodec,
    identifier: str,
    directory: Union[str, os.PathLike],
    base_name: str,
    image_format: Union[ImageFormat, str],
    quality: int | None = None,
) -> Path:
    """Write ``identifier`` to ``directory/base_name.<ext>`` and return that path.

    Arguments are checked in order (directory, name, format) before the store
    is touched, so an invalid request never spills or reloads anything.
    ``quality`` only applies to JPEG and defaults to 85.
    """

    target_dir = _check_directory(directory)
    base_name = _check_base_name(base_name)
    image_format = _check_format(image_format)

    store.activate(identifier)
    bitmap = store.current()

    if image_format is ImageFormat.JPEG:
        data = codec.encode(bitmap, image_format, DEFAULT_JPEG_QUALITY if quality is None else quality)
    else:
        data = codec.encode(bitmap, image_format)

    target = target_dir / f"{base_name}.{image_format.extension}"
    # Staged beside the target, then renamed into place.
    partial = None
    try:
        handle, name = tempfile.mkstemp(prefix=f".{base_name}.", suffix=".part", dir=target_dir)
        partial = Path(name)
        with os.fdopen(handle, "wb") as output_file:
            output_file.write(data)
        os.chmod(partial, 0o644)
        os.replace(partial, target)
    except OSError as exc:
        if partial is not None:
            partial.unlink(missing_ok=True)
        raise EncodeFailure(f"(save) failed writing {target}: {exc}") from exc

    LOGGER.info("Saved %r as %s (%dx%d)", identifier, target, *bitmap.size)
    return target
