"""Resize engine: output geometry for the three resize modes and resampling."""

from __future__ import annotations

import logging
import math
import operator
from enum import IntEnum
from fractions import Fraction
from typing import Tuple, Union

from PIL import Image

from ..config import settings
from ..errors import AllocationFailure, InvalidDimensions, InvalidMode, ResampleFailure
from ..utils.image import Bitmap

LOGGER = logging.getLogger(__name__)

Size = Tuple[int, int]
Box = Tuple[int, int, int, int]

_RESAMPLE_FILTERS = {
    "nearest": Image.Resampling.NEAREST,
    "box": Image.Resampling.BOX,
    "bilinear": Image.Resampling.BILINEAR,
    "hamming": Image.Resampling.HAMMING,
    "bicubic": Image.Resampling.BICUBIC,
    "lanczos": Image.Resampling.LANCZOS,
}


class ResizeMode(IntEnum):
    STRETCH = 0
    SHRINK_KEEP_ASPECT = 1
    CROP_CENTER = 2

    @classmethod
    def parse(cls, value: Union["ResizeMode", int, str]) -> "ResizeMode":
        """Accept a member, its integer value, or its name (case and dash insensitive)."""

        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        elif isinstance(value, str):
            key = value.strip().upper().replace("-", "_")
            if key in cls.__members__:
                return cls[key]
        raise InvalidMode(f"(resize) resize mode not defined, was {value!r}")


def resolve_resample_filter(name: Union[str, Image.Resampling, None]) -> Image.Resampling:
    if name is None:
        name = settings.resample_filter
    if isinstance(name, Image.Resampling):
        return name
    try:
        return _RESAMPLE_FILTERS[name.lower()]
    except (AttributeError, KeyError) as exc:
        raise ResampleFailure(f"(resize) unknown resample filter {name!r}") from exc


def shrink_keep_aspect_size(source: Size, target: Size) -> Size:
    """Size that fits ``source`` inside ``target`` keeping its aspect ratio.

    Sources that already fit are returned unchanged, so this never upscales.
    Portrait sources are pinned to the target height, everything else to the
    target width; the other side is floored.
    """

    source_width, source_height = source
    target_width, target_height = target

    if source_width <= target_width and source_height <= target_height:
        return source_width, source_height

    if source_width < source_height:
        new_width = (source_width * target_height) // source_height
        return max(new_width, 1), target_height

    new_height = (source_height * target_width) // source_width
    return target_width, max(new_height, 1)


def crop_center_box(source: Size, target: Size) -> Box:
    """Centered crop rectangle of ``source`` with the aspect ratio of ``target``.

    Returns ``(left, upper, right, lower)`` in source coordinates.
    """

    source_width, source_height = source
    target_width, target_height = target

    output_ar = Fraction(target_width, target_height)
    input_ar = Fraction(source_width, source_height)

    height_match = (output_ar <= 1 and input_ar >= 1) or (
        output_ar > 1 and input_ar > 1 and input_ar >= output_ar
    )
    width_match = (output_ar >= 1 and input_ar <= 1) or (
        output_ar < 1 and input_ar < 1 and output_ar >= input_ar
    )

    if height_match:
        grab_height = source_height
        grab_width = source_width if width_match else math.floor(output_ar * source_height)
    else:
        # Taken whenever height_match is false, including the case where
        # width_match is false as well.
        grab_width = source_width
        grab_height = math.floor(source_width / output_ar)

    if grab_width > source_width or grab_height > source_height:
        LOGGER.warning(
            "Crop of %dx%d from a %dx%d source for a %dx%d target exceeds the source; "
            "clamping to the source bounds",
            grab_width,
            grab_height,
            source_width,
            source_height,
            target_width,
            target_height,
        )
        grab_width = min(grab_width, source_width)
        grab_height = min(grab_height, source_height)

    grab_width = max(grab_width, 1)
    grab_height = max(grab_height, 1)
    left = (source_width - grab_width) // 2
    upper = (source_height - grab_height) // 2
    return left, upper, left + grab_width, upper + grab_height


def _positive_int(name: str, value: object) -> int:
    if isinstance(value, bool):
        raise InvalidDimensions(f"(resize) non-integer {name}: {value!r}")
    try:
        number = operator.index(value)
    except TypeError as exc:
        raise InvalidDimensions(f"(resize) non-integer {name}: {value!r}") from exc
    if number <= 0:
        raise InvalidDimensions(f"(resize) {name} must be positive, got {number}")
    return number


def check_dimensions(width: object, height: object) -> Tuple[int, int]:
    return _positive_int("width", width), _positive_int("height", height)


def plan(source: Size, mode: ResizeMode, target_width: int, target_height: int) -> Tuple[Size, Box]:
    """Output size and source rectangle for resizing ``source`` with ``mode``."""

    full_source = (0, 0) + tuple(source)
    if mode is ResizeMode.STRETCH:
        return (target_width, target_height), full_source
    if mode is ResizeMode.SHRINK_KEEP_ASPECT:
        return shrink_keep_aspect_size(source, (target_width, target_height)), full_source
    return (target_width, target_height), crop_center_box(source, (target_width, target_height))


def resize(
    source: Bitmap,
    mode: Union[ResizeMode, int, str],
    target_width: int,
    target_height: int,
    resample: Union[str, Image.Resampling, None] = None,
) -> Bitmap:
    """Produce a new bitmap from ``source`` according to ``mode``.

    ``source`` is never modified. ``resample`` defaults to the configured filter.
    """

    mode = ResizeMode.parse(mode)
    target_width, target_height = check_dimensions(target_width, target_height)
    resample_filter = resolve_resample_filter(resample)

    size, box = plan(source.size, mode, target_width, target_height)
    LOGGER.debug(
        "Resizing %dx%d with %s: box=%s -> %dx%d", *source.size, mode.name, box, *size
    )

    try:
        resized = source.image.resize(size, resample=resample_filter, box=box)
    except MemoryError as exc:
        raise AllocationFailure(
            f"(resize) failed to set up new {size[0]}x{size[1]} image (possible memory overload) "
            f"mode={mode.name} target={target_width}x{target_height}"
        ) from exc
    except (ValueError, OSError) as exc:
        raise ResampleFailure(
            f"(resize) resampling {source.size} box={box} into {size} failed: {exc}"
        ) from exc

    return Bitmap(resized)
