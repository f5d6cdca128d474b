#!/usr/bin/env python3
"""
M3U8 Window Proxy
Reverse proxy in front of an HLS origin that trims playlists to the
?start=&end= window requested by the client
"""

import sys
import logging
import argparse

import uvicorn
from pydantic import ValidationError

from m3u8proxy.config import ProxySettings, parse_listen
from m3u8proxy.server import create_app

logger = logging.getLogger("m3u8proxy")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="HLS playlist time-window proxy")
    parser.add_argument("--upstream", default="", help="Upstream server to proxy requests to")
    parser.add_argument("--listen", default=":8080", help="Interface to listen on ([host]:port)")
    parser.add_argument("--timeout", type=float, default=30.0, help="Upstream timeout in seconds")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def load_settings(args) -> ProxySettings:
    """
    Validate command line arguments into ProxySettings

    Raises:
        ValueError: upstream missing, or listen address malformed
        ValidationError: a setting failed validation
    """
    if not args.upstream:
        raise ValueError("Upstream server is required")

    host, port = parse_listen(args.listen)
    return ProxySettings(
        upstream=args.upstream,
        host=host,
        port=port,
        timeout=args.timeout,
        log_level=args.log_level,
    )


def run(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.debug("Starting up")

    try:
        settings = load_settings(args)
    except (ValueError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    app = create_app(settings)
    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    except (OSError, SystemExit) as e:
        logger.error(f"Unable to launch server: {e}")
        return 1

    return 0


def main():
    error_code = run()
    if error_code != 0:
        logger.error(f"Process terminating with non-zero error code {error_code}")
    else:
        logger.info("Process exiting successfully")
    sys.exit(error_code)


if __name__ == "__main__":
    main()
