import pytest

from image_handler.errors import ConfigurationError, TooLarge, UnsupportedType
from image_handler.utils.image import ImageFormat
from image_handler.utils.validation import MAX_UPLOAD_BYTES, resolve_allowed_formats, validate


@pytest.mark.parametrize(
    "mime, expected",
    [
        ("image/jpeg", ImageFormat.JPEG),
        ("image/pjpeg", ImageFormat.JPEG),
        ("image/gif", ImageFormat.GIF),
        ("image/png", ImageFormat.PNG),
    ],
)
def test_known_mime_types_map_to_formats(mime, expected):
    assert validate(mime, 1024) is expected


def test_size_cap_is_inclusive():
    assert MAX_UPLOAD_BYTES == 5_242_880
    assert validate("image/png", MAX_UPLOAD_BYTES) is ImageFormat.PNG

    with pytest.raises(TooLarge) as excinfo:
        validate("image/png", MAX_UPLOAD_BYTES + 1)
    assert "5242881" in excinfo.value.detail
    assert "5MB" in excinfo.value.safe_message


def test_size_is_checked_before_type():
    with pytest.raises(TooLarge):
        validate("application/pdf", MAX_UPLOAD_BYTES * 2)


def test_custom_size_cap():
    with pytest.raises(TooLarge):
        validate("image/gif", 101, max_bytes=100)


@pytest.mark.parametrize("mime", ["image/webp", "text/plain", "", "image/jpg"])
def test_unknown_mime_types_are_unsupported_even_when_all_allowed(mime):
    with pytest.raises(UnsupportedType) as excinfo:
        validate(mime, 10, "all")
    assert excinfo.value.safe_message == "You tried to upload an image of a type that is not allowed."


def test_known_type_outside_allow_list_is_unsupported():
    with pytest.raises(UnsupportedType):
        validate("image/gif", 10, ["jpg", "png"])
    assert validate("image/png", 10, ["jpg", "png"]) is ImageFormat.PNG


@pytest.mark.parametrize(
    "allowed, expected",
    [
        ("all", set(ImageFormat)),
        ("ALL", set(ImageFormat)),
        ("png", {ImageFormat.PNG}),
        (ImageFormat.GIF, {ImageFormat.GIF}),
        (["jpeg", ImageFormat.PNG], {ImageFormat.JPEG, ImageFormat.PNG}),
        (("gif",), {ImageFormat.GIF}),
    ],
)
def test_resolve_allowed_formats(allowed, expected):
    assert resolve_allowed_formats(allowed) == expected


@pytest.mark.parametrize("allowed", [[], (), "bmp", ["jpg", "bmp"], ["all"], 5, None])
def test_invalid_allow_lists_are_configuration_errors(allowed):
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_allowed_formats(allowed)
    assert excinfo.value.code == "configuration_error"


def test_configuration_is_checked_before_size():
    with pytest.raises(ConfigurationError):
        validate("image/png", MAX_UPLOAD_BYTES * 2, [])
