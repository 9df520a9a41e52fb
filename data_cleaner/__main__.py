"""Run the API server: `python -m data_cleaner`."""
from __future__ import annotations

import uvicorn

from .config import get_settings
from .main import app


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
