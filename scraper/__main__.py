"""Run the extraction service: ``python -m scraper``."""

from __future__ import annotations

import uvicorn

from scraper.config.settings import ServiceConfig


def main() -> None:
    config = ServiceConfig()
    uvicorn.run(
        "scraper.api.app:app",
        host="0.0.0.0",
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
