#!/usr/bin/env python3
"""Command-line interface for the time-series cache service."""

from __future__ import annotations

import argparse
import json
import logging
import sys

logger = logging.getLogger("tscache")


def configure_logging(level: str) -> None:
    """Configure root logging for a CLI process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP service."""
    import uvicorn

    from tscache.api import create_app
    from tscache.config import build_materializer, load_service_config
    from tscache.exceptions import ConfigError

    try:
        config = load_service_config(args.config)
        materializer = build_materializer(config)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1

    configure_logging(config.logging.level)
    host = args.host or config.server.host
    port = args.port if args.port is not None else config.server.port

    app = create_app(materializer)
    logger.info("Server is running on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=config.logging.level.lower())
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    """Resolve a single range and print it as JSON."""
    from fastapi.encoders import jsonable_encoder

    from tscache.api import parse_query
    from tscache.config import build_materializer, load_service_config
    from tscache.exceptions import ConfigError, QueryValidationError, UpstreamError

    try:
        config = load_service_config(args.config)
        materializer = build_materializer(config)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1

    configure_logging(config.logging.level)

    try:
        query = parse_query(args.symbol, args.period, args.start, args.end)
    except QueryValidationError as e:
        print(f"Invalid query: {e}")
        return 1

    try:
        series = materializer.resolve(query.symbol, query.period, query.start, query.end)
    except QueryValidationError as e:
        print(f"Invalid query: {e}")
        return 1
    except UpstreamError as e:
        print(f"Failed to fetch data: {e}")
        return 1

    print(json.dumps(jsonable_encoder(list(series)), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Cached time-series range queries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument(
        "-c", "--config", default=None, help="Path to YAML configuration file"
    )
    serve_parser.add_argument("--host", default=None, help="Listen address")
    serve_parser.add_argument("--port", type=int, default=None, help="Listen port")

    # Query command
    query_parser = subparsers.add_parser(
        "query", help="Resolve one range and print it as JSON"
    )
    query_parser.add_argument("symbol", help="Symbol (e.g., AAPL)")
    query_parser.add_argument("period", help="Sampling period label (e.g., 1m)")
    query_parser.add_argument("start", help="Range start (ISO-8601)")
    query_parser.add_argument("end", help="Range end (ISO-8601)")
    query_parser.add_argument(
        "-c", "--config", default=None, help="Path to YAML configuration file"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        return cmd_serve(args)
    elif args.command == "query":
        return cmd_query(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
