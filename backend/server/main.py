"""
Development entry point.

Runs the ASGI app under uvicorn with the configured log level.
"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from config import AppConfig


def main() -> None:
    """Load .env, then serve server.asgi:app."""
    load_dotenv()
    config = AppConfig.load_from_env()

    uvicorn.run(
        "server.asgi:app",
        host="0.0.0.0",
        port=8000,
        log_level=config.log_level.lower(),
        reload=config.env == "dev",
    )


if __name__ == "__main__":
    main()
