"""
GridLog server entry point.

Usage:
    python -m gridlog.main [--host HOST] [--port PORT]
"""

import argparse
import logging

import uvicorn

from .config import get_settings

logger = logging.getLogger(__name__)


def main(argv=None):
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    parser = argparse.ArgumentParser(description="GridLog telemetry API server")
    parser.add_argument("--host", "-H", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=8000, help="Port to run server on (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args(argv)

    logger.info("Database: %s", settings.db_path)
    logger.info("Telemetry source expected at %s:%d", settings.udp_addr, settings.udp_port)

    uvicorn.run(
        "gridlog.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
