"""Upload checks performed before any decode is attempted."""

from __future__ import annotations

from typing import FrozenSet, Iterable, Union

from ..errors import ConfigurationError, TooLarge, UnsupportedType
from .image import MIME_TYPES, ImageFormat

ALL_FORMATS = "all"
MAX_UPLOAD_BYTES = 5_242_880

AllowedFormats = Union[str, ImageFormat, Iterable[Union[str, ImageFormat]]]


def resolve_allowed_formats(allowed_formats: AllowedFormats) -> FrozenSet[ImageFormat]:
    """Normalise an allow-list to a set of formats.

    Accepts the ``"all"`` sentinel, a single format, or an iterable of formats
    (members or their names). Empty or unrecognised values raise
    :class:`ConfigurationError`.
    """

    if isinstance(allowed_formats, str) and allowed_formats.strip().lower() == ALL_FORMATS:
        return frozenset(ImageFormat)

    candidates = (
        [allowed_formats] if isinstance(allowed_formats, (str, ImageFormat)) else allowed_formats
    )
    try:
        resolved = frozenset(ImageFormat.parse(candidate) for candidate in candidates)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"(validate) invalid allowed_formats: {allowed_formats!r}"
        ) from exc

    if not resolved:
        raise ConfigurationError(f"(validate) empty allowed_formats: {allowed_formats!r}")
    return resolved


def validate(
    declared_mime_type: str,
    byte_size: int,
    allowed_formats: AllowedFormats = ALL_FORMATS,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> ImageFormat:
    """Check an upload's declared type and size and return the matched format."""

    allowed = resolve_allowed_formats(allowed_formats)

    if byte_size > max_bytes:
        raise TooLarge(f"(validate) filesize({byte_size}) > max upload size ({max_bytes})")

    matched = MIME_TYPES.get((declared_mime_type or "").strip().lower())
    if matched is None or matched not in allowed:
        raise UnsupportedType(
            f"(validate) invalid file type uploaded: {declared_mime_type!r} | "
            f"allowed_formats: {sorted(fmt.value for fmt in allowed)}"
        )
    return matched
