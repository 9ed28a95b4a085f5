"""API server entry point.

Bind address and port default to API_HOST/API_PORT from the environment
and can be overridden on the command line.
"""

import argparse
import logging

import uvicorn
from dotenv import load_dotenv

from rukun.config import get_settings
from rukun.services.logging import get_log_level, setup_server_logging

load_dotenv()

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Rukun RT/RW API server")
    parser.add_argument("--host", default=settings.api_host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_server_logging()

    logger.info(
        "Starting %s %s on %s:%d",
        get_settings().api_title,
        get_settings().api_version,
        args.host,
        args.port,
    )
    uvicorn.run(
        "rukun.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=logging.getLevelName(get_log_level()).lower(),
    )


if __name__ == "__main__":
    main()
