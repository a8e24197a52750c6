"""Derivative store: named resized versions with a single resident bitmap.

The original bitmap is retained for the whole session because every resize
reads from it. Derivatives are either :class:`Resident` (decoded, in memory)
or :class:`Spilled` (written to a lossless temporary PNG). Only the active
derivative is ever resident; :meth:`DerivativeStore.activate` is the one
transition that moves entries between the two states.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..errors import (
    DecodeFailure,
    EncodeFailure,
    InvalidIdentifier,
    ReloadFailure,
    SpillFailure,
    UnknownIdentifier,
)
from ..utils.image import Bitmap, ImageFormat, PillowCodec

LOGGER = logging.getLogger(__name__)

ORIGINAL_IMAGE = "original_image"

_SPILL_PREFIX = "image_handler_"
_SPILL_SUFFIX = ".png"


@dataclass(frozen=True)
class Resident:
    bitmap: Bitmap
    # Lossless copy already on disk, reusable by the next spill.
    backing_path: Optional[Path] = None


@dataclass(frozen=True)
class Spilled:
    path: Path
    size: Tuple[int, int]


DerivativeEntry = Union[Resident, Spilled]


def remove_temp_files(paths: List[Path]) -> None:
    """Delete every path in ``paths``, emptying the list as it goes."""

    while paths:
        path = paths.pop()
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Could not remove temporary file %s: %s", path, exc)


class DerivativeStore:
    """Keeps derivatives addressable by identifier while holding one in memory."""

    def __init__(
        self,
        original: Bitmap,
        temp_dir: Path,
        codec: PillowCodec,
        temp_files: Optional[List[Path]] = None,
    ):
        self._original = original
        self._temp_dir = Path(temp_dir)
        self._codec = codec
        self._entries: Dict[str, DerivativeEntry] = {}
        self._active = ORIGINAL_IMAGE
        # Shared with the owning session so its finalizer can clean up.
        self.temp_files: List[Path] = temp_files if temp_files is not None else []

    @property
    def original(self) -> Bitmap:
        return self._original

    @property
    def active_identifier(self) -> str:
        return self._active

    @property
    def identifiers(self) -> Tuple[str, ...]:
        return (ORIGINAL_IMAGE, *self._entries)

    def entry(self, identifier: str) -> Optional[DerivativeEntry]:
        return self._entries.get(identifier)

    def resident_identifiers(self) -> List[str]:
        """Identifiers whose bitmap is currently held in memory besides the retained original."""

        return [name for name, entry in self._entries.items() if isinstance(entry, Resident)]

    def current(self) -> Bitmap:
        if self._active == ORIGINAL_IMAGE:
            return self._original
        entry = self._entries[self._active]
        assert isinstance(entry, Resident), "Active derivative must be resident."
        return entry.bitmap

    def size_of(self, identifier: str) -> Tuple[int, int]:
        if identifier == ORIGINAL_IMAGE:
            return self._original.size
        entry = self._entries.get(identifier)
        if entry is None:
            raise UnknownIdentifier(f"(size_of) no image {identifier!r} found")
        return entry.bitmap.size if isinstance(entry, Resident) else entry.size

    def check_writable(self, identifier: object) -> str:
        if not isinstance(identifier, str) or not identifier:
            raise InvalidIdentifier(f"(put) identifier must be a non-empty string, got {identifier!r}")
        if identifier == ORIGINAL_IMAGE:
            raise InvalidIdentifier(f"(put) {ORIGINAL_IMAGE!r} is reserved for the uploaded image")
        return identifier

    def activate(self, identifier: str) -> None:
        """Make ``identifier`` the resident entry.

        The previously active derivative is spilled first. If the spill or the
        reload fails, the store is left exactly as it was.
        """

        if identifier == self._active:
            return
        if identifier != ORIGINAL_IMAGE and identifier not in self._entries:
            raise UnknownIdentifier(f"(activate) no image {identifier!r} found")

        previous = self._active
        spilled, fresh = self._spill(previous) if previous != ORIGINAL_IMAGE else (None, False)
        try:
            loaded = self._load(identifier)
        except ReloadFailure:
            if fresh:
                self._discard(spilled.path)
            raise

        if spilled is not None:
            self._entries[previous] = spilled
        if loaded is not None:
            self._entries[identifier] = loaded
        self._active = identifier
        LOGGER.debug("Activated %r (previously %r)", identifier, previous)

    def make_room(self, identifier: str) -> None:
        """Spill the active derivative unless it is ``identifier`` itself."""

        if identifier != self._active:
            self.activate(ORIGINAL_IMAGE)

    def put(self, identifier: str, bitmap: Bitmap) -> None:
        """Install ``bitmap`` as the resident entry for ``identifier``."""

        self.check_writable(identifier)
        self.make_room(identifier)

        stale = self._entries.get(identifier)
        self._entries[identifier] = Resident(bitmap)
        self._active = identifier

        stale_path = stale.path if isinstance(stale, Spilled) else getattr(stale, "backing_path", None)
        if stale_path is not None:
            self._discard(stale_path)
        LOGGER.debug("Stored %r (%dx%d)", identifier, *bitmap.size)

    def close(self) -> None:
        remove_temp_files(self.temp_files)
        self._entries.clear()
        self._active = ORIGINAL_IMAGE

    def _spill(self, identifier: str) -> Tuple[Spilled, bool]:
        entry = self._entries[identifier]
        assert isinstance(entry, Resident), "Only a resident entry can be spilled."

        if entry.backing_path is not None and entry.backing_path.is_file():
            return Spilled(entry.backing_path, entry.bitmap.size), False

        if not self._temp_dir.is_dir():
            raise SpillFailure(f"(spill) {self._temp_dir} is not a directory")

        try:
            data = self._codec.encode_lossless(entry.bitmap)
        except EncodeFailure as exc:
            raise SpillFailure(f"(spill) failed to encode {identifier!r}: {exc.detail}") from exc

        try:
            handle, name = tempfile.mkstemp(
                prefix=_SPILL_PREFIX, suffix=_SPILL_SUFFIX, dir=self._temp_dir
            )
        except OSError as exc:
            raise SpillFailure(f"(spill) could not create a file in {self._temp_dir}: {exc}") from exc

        path = Path(name)
        self.temp_files.append(path)
        try:
            with os.fdopen(handle, "wb") as spill_file:
                spill_file.write(data)
        except OSError as exc:
            self._discard(path)
            raise SpillFailure(f"(spill) failed writing {path}: {exc}") from exc

        LOGGER.debug("Spilled %r to %s", identifier, path)
        return Spilled(path, entry.bitmap.size), True

    def _load(self, identifier: str) -> Optional[Resident]:
        if identifier == ORIGINAL_IMAGE:
            return None

        entry = self._entries[identifier]
        if isinstance(entry, Resident):
            return entry

        if not entry.path.is_file():
            raise ReloadFailure(f"(reload) file not found ({entry.path})")
        try:
            bitmap = self._codec.decode(entry.path, ImageFormat.PNG)
        except DecodeFailure as exc:
            raise ReloadFailure(f"(reload) failed to decode {entry.path}: {exc.detail}") from exc

        LOGGER.debug("Reloaded %r from %s", identifier, entry.path)
        return Resident(bitmap, backing_path=entry.path)

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Could not remove temporary file %s: %s", path, exc)
            return
        if path in self.temp_files:
            self.temp_files.remove(path)
