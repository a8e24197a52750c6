import os

import pytest
from PIL import Image

from image_handler.errors import EncodeFailure, InvalidFormat, InvalidName, InvalidPath, UnknownIdentifier
from image_handler.services import encoder
from image_handler.services.store import ORIGINAL_IMAGE, DerivativeStore
from image_handler.utils.image import Bitmap, ImageFormat, PillowCodec


class RecordingCodec(PillowCodec):
    def __init__(self):
        super().__init__()
        self.calls = []

    def encode(self, bitmap, image_format, quality=None):
        self.calls.append((bitmap.size, image_format, quality))
        return super().encode(bitmap, image_format, quality)


@pytest.fixture
def codec():
    return RecordingCodec()


@pytest.fixture
def store(spill_dir, codec):
    store = DerivativeStore(Bitmap(Image.new("RGB", (80, 60), (9, 99, 199))), spill_dir, codec)
    store.put("thumb", Bitmap(Image.new("RGB", (20, 15), (200, 10, 10))))
    yield store
    store.close()


@pytest.mark.parametrize(
    "image_format, extension",
    [(ImageFormat.JPEG, "jpg"), ("jpeg", "jpg"), ("gif", "gif"), (ImageFormat.PNG, "png")],
)
def test_save_writes_directory_base_name_extension(store, codec, output_dir, image_format, extension):
    path = encoder.save(store, codec, "thumb", output_dir, "t1", image_format)

    assert path == output_dir / f"t1.{extension}"
    with Image.open(path) as saved:
        assert saved.size == (20, 15)


def test_jpeg_quality_defaults_to_85(store, codec, output_dir):
    encoder.save(store, codec, "thumb", output_dir, "t1", ImageFormat.JPEG)
    encoder.save(store, codec, "thumb", output_dir, "t2", ImageFormat.JPEG, 40)
    encoder.save(store, codec, "thumb", output_dir, "t3", ImageFormat.PNG, 40)

    assert [quality for _, _, quality in codec.calls] == [85, 40, None]


def test_save_activates_the_requested_identifier(store, codec, output_dir):
    path = encoder.save(store, codec, ORIGINAL_IMAGE, str(output_dir), "full", "png")

    assert store.active_identifier == ORIGINAL_IMAGE
    with Image.open(path) as saved:
        assert saved.size == (80, 60)


@pytest.mark.parametrize("base_name", ["t 1", "a/b", "", "t1.jpg", "../up", "name\n", None])
def test_invalid_base_name_is_rejected_before_encoding(store, codec, output_dir, base_name):
    with pytest.raises(InvalidName) as excinfo:
        encoder.save(store, codec, "thumb", output_dir, base_name, ImageFormat.JPEG)

    assert excinfo.value.safe_message == "Invalid file name to save the image to."
    assert codec.calls == []
    assert list(output_dir.iterdir()) == []


def test_missing_or_non_directory_path_is_invalid(store, codec, tmp_path):
    a_file = tmp_path / "file.txt"
    a_file.write_text("x")

    for directory in (tmp_path / "missing", a_file, None):
        with pytest.raises(InvalidPath):
            encoder.save(store, codec, "thumb", directory, "t1", ImageFormat.PNG)
    assert codec.calls == []


@pytest.mark.parametrize("image_format", ["bmp", "webp", 3, None])
def test_unknown_format_is_invalid(store, codec, output_dir, image_format):
    with pytest.raises(InvalidFormat):
        encoder.save(store, codec, "thumb", output_dir, "t1", image_format)


def test_checks_run_in_order(store, codec, tmp_path):
    with pytest.raises(InvalidPath):
        encoder.save(store, codec, "thumb", tmp_path / "missing", "bad name", "bmp")
    with pytest.raises(InvalidName):
        encoder.save(store, codec, "thumb", tmp_path, "bad name", "bmp")


def test_invalid_request_does_not_touch_the_store(store, codec, output_dir):
    store.activate(ORIGINAL_IMAGE)
    temp_files = list(store.temp_files)

    with pytest.raises(InvalidName):
        encoder.save(store, codec, "thumb", output_dir, "bad name", ImageFormat.PNG)

    assert store.active_identifier == ORIGINAL_IMAGE
    assert store.temp_files == temp_files


def test_unknown_identifier(store, codec, output_dir):
    with pytest.raises(UnknownIdentifier):
        encoder.save(store, codec, "missing", output_dir, "t1", ImageFormat.PNG)


def test_out_of_range_quality_is_an_encode_failure(store, codec, output_dir):
    with pytest.raises(EncodeFailure):
        encoder.save(store, codec, "thumb", output_dir, "t1", ImageFormat.JPEG, 150)
    assert not (output_dir / "t1.jpg").exists()


def test_failed_write_leaves_no_partial_file(store, codec, output_dir, monkeypatch):
    def _disk_full(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(encoder.os, "replace", _disk_full)

    with pytest.raises(EncodeFailure) as excinfo:
        encoder.save(store, codec, "thumb", output_dir, "t1", ImageFormat.PNG)

    assert "No space left" in excinfo.value.detail
    assert list(output_dir.iterdir()) == []


def test_failed_write_keeps_the_previous_file(store, codec, output_dir, monkeypatch):
    previous = encoder.save(store, codec, "thumb", output_dir, "t1", ImageFormat.PNG)
    contents = previous.read_bytes()

    def _short_write(handle, mode):
        os.close(handle)
        raise PermissionError("read-only file system")

    monkeypatch.setattr(encoder.os, "fdopen", _short_write)

    with pytest.raises(EncodeFailure):
        encoder.save(store, codec, "thumb", output_dir, "t1", ImageFormat.PNG)

    assert previous.read_bytes() == contents
    assert [p.name for p in output_dir.iterdir()] == ["t1.png"]
