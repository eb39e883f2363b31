# /nft_gateway/cli.py
"""
Command-line entry point: `gateway [--port N] [--host H]`.

Exit codes: 0 normal shutdown, 2 configuration error, 1 anything else.
"""
import argparse
import logging
import sys
from typing import List, Optional

import uvicorn

from nft_gateway.config import load_settings
from nft_gateway.errors import ConfigError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def build_parser(default_port: int) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gateway", description="NFT / social-graph aggregation gateway")
    parser.add_argument("--port", type=int, default=default_port, help=f"Listen port (default {default_port})")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default 0.0.0.0)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_CONFIG

    args = build_parser(settings.port).parse_args(argv)

    # nft_gateway.main reads settings at import time
    from nft_gateway.main import create_app, setup_logging

    setup_logging(settings.log_level)
    try:
        settings.validate_strict()
    except ConfigError as e:
        logger.error(f"{e.message}: {', '.join((e.details or {}).get('missing', []))}")
        return EXIT_CONFIG

    try:
        app = create_app(settings.model_copy(update={"port": args.port}))
        logger.info(f"Starting gateway on {args.host}:{args.port}")
        uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    except KeyboardInterrupt:
        return EXIT_OK
    except Exception:
        logger.exception("Gateway stopped on an unexpected error")
        return EXIT_FATAL
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
