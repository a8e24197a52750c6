"""Entry point for running the image handler API via `python -m image_handler`."""

from __future__ import annotations

import uvicorn

from .config import settings


if __name__ == "__main__":
    uvicorn.run(
        "image_handler.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level=settings.log_level,
    )
