"""Error taxonomy shared by every image handler component.

Each error carries two messages: ``detail`` describes what went wrong with
enough context (operation, path, offending values) to diagnose it, while
``safe_message`` is generic and can be shown to the person who uploaded the
image.
"""

from __future__ import annotations

_GENERIC_SAFE_MESSAGE = "Something went wrong while processing the image."


class ImageHandlerError(Exception):
    """Base class for every failure surfaced by the image handler."""

    code = "image_handler_error"
    default_safe_message = _GENERIC_SAFE_MESSAGE

    def __init__(self, detail: str, safe_message: str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.safe_message = safe_message or self.default_safe_message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, detail={self.detail!r})"


class ConfigurationError(ImageHandlerError):
    code = "configuration_error"
    default_safe_message = "Something went wrong while initializing the image resizer."


class ValidationError(ImageHandlerError):
    code = "validation_error"


class TooLarge(ValidationError):
    code = "too_large"
    default_safe_message = (
        "The image you uploaded was too big to process. "
        "Please reduce its filesize so it's less than 5MB."
    )


class UnsupportedType(ValidationError):
    code = "unsupported_type"
    default_safe_message = "You tried to upload an image of a type that is not allowed."


class MalformedUpload(ValidationError):
    code = "malformed_upload"
    default_safe_message = "Something went wrong while initializing the image resizer."


class DecodeFailure(ImageHandlerError):
    code = "decode_failure"
    default_safe_message = "Something went wrong while trying to parse the uploaded image."


class ResizeError(ImageHandlerError):
    code = "resize_error"
    default_safe_message = "Something went wrong while trying to resize the image."


class InvalidMode(ResizeError):
    code = "invalid_mode"


class InvalidDimensions(ResizeError):
    code = "invalid_dimensions"


class AllocationFailure(ResizeError):
    code = "allocation_failure"


class ResampleFailure(ResizeError):
    code = "resample_failure"


class StoreError(ImageHandlerError):
    code = "store_error"


class SpillFailure(StoreError):
    code = "spill_failure"


class ReloadFailure(StoreError):
    code = "reload_failure"


class UnknownIdentifier(StoreError):
    code = "unknown_identifier"
    default_safe_message = "The requested image version does not exist."


class InvalidIdentifier(StoreError):
    code = "invalid_identifier"
    default_safe_message = "Invalid name for an image version."


class SaveError(ImageHandlerError):
    code = "save_error"
    default_safe_message = "Something went wrong while trying to save the image."


class InvalidPath(SaveError):
    code = "invalid_path"
    default_safe_message = "Invalid saving location."


class InvalidName(SaveError):
    code = "invalid_name"
    default_safe_message = "Invalid file name to save the image to."


class InvalidFormat(SaveError):
    code = "invalid_format"
    default_safe_message = "Invalid image type to save to."


class EncodeFailure(SaveError):
    code = "encode_failure"


class NotInitialized(ImageHandlerError):
    code = "not_initialized"
