"""Context manager for timing and logging named operations."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Generator

LOGGER = logging.getLogger(__name__)


@contextmanager
def timed(operation: str, logger: logging.Logger = LOGGER) -> Generator[Callable[[], float], None, None]:
    """Yield a callback returning milliseconds since entry; log the total on exit."""

    start = time.perf_counter()

    def _elapsed_ms() -> float:
        return (time.perf_counter() - start) * 1000.0

    try:
        yield _elapsed_ms
    finally:
        logger.debug("%s took %.1f ms", operation, _elapsed_ms())
