"""
Command-line interface for sharebatch.

Provides commands for fetching a request digest and for executing a batch
described in a JSON file.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import structlog

from sharebatch import __version__
from sharebatch.config import TransportConfig, set_config
from sharebatch.core.batch import Batch
from sharebatch.core.executor import BatchExecutor
from sharebatch.core.request import PendingRequest
from sharebatch.errors import ShareBatchError
from sharebatch.transport.retrying import RetryingTransport


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # logs go to stderr, stdout carries command output
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def parse_header(value: str) -> tuple:
    """Parse a ``Name: value`` command-line header."""
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Invalid header '{value}', expected 'Name: value'")
    return name.strip(), header_value.strip()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sharebatch",
        description="Batched, retrying transport for document/list REST services",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--site-url",
        required=True,
        help="Absolute site URL",
    )
    common.add_argument(
        "--header",
        action="append",
        type=parse_header,
        default=[],
        help="Header sent with every request, e.g. 'Authorization: Bearer ...' (repeatable)",
    )
    common.add_argument(
        "--max-attempts",
        type=int,
        default=7,
        help="Maximum attempts for throttled requests (default: 7)",
    )
    common.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    common.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Digest command
    subparsers.add_parser("digest", parents=[common], help="Fetch a request digest for the site")

    # Batch command
    batch_parser = subparsers.add_parser(
        "batch",
        parents=[common],
        help="Execute the requests in a JSON file as one batch",
    )
    batch_parser.add_argument(
        "file",
        type=Path,
        help="JSON list of {method, url, headers?, body?} objects",
    )

    return parser


def build_config(args: argparse.Namespace) -> TransportConfig:
    """Build the configuration snapshot from command-line arguments."""
    return TransportConfig(
        base_url=args.site_url,
        headers=dict(args.header),
        max_attempts=args.max_attempts,
        log_level=args.log_level,
        log_json=args.log_json,
    )


def load_requests(path: Path) -> List[PendingRequest]:
    """
    Load request descriptions from a JSON file.

    Raises:
        ValueError: If the file does not hold a list of request objects
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of requests")

    requests = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or "url" not in item:
            raise ValueError(f"Request #{i + 1} in {path} must be an object with a 'url'")

        body = item.get("body")
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)

        requests.append(PendingRequest(
            method=item.get("method", "GET"),
            url=item["url"],
            headers=dict(item.get("headers") or {}),
            body=body,
        ))
    return requests


async def fetch_digest(args: argparse.Namespace) -> int:
    """Fetch and print a request digest."""
    config = build_config(args)
    set_config(config)

    client = RetryingTransport(config)
    try:
        digest = await client.digest_cache.get_token(client.get_transport(), args.site_url)
    finally:
        await client.close()

    print(digest)
    return 0


async def run_batch(args: argparse.Namespace) -> int:
    """Execute a batch file and print per-request outcomes as JSON."""
    config = build_config(args)
    set_config(config)

    client = RetryingTransport(config)
    executor = BatchExecutor(client, config)

    batch = Batch(base_url=args.site_url)
    for request in load_requests(args.file):
        batch.add_request(request)

    try:
        await executor.execute(batch)
    finally:
        await client.close()

    results: List[Dict[str, Any]] = []
    for i, request in enumerate(batch.requests):
        try:
            results.append({"index": i, "status": "ok", "value": await request})
        except ShareBatchError as e:
            results.append({"index": i, "status": "error", "error": str(e)})

    print(json.dumps(results, indent=2, default=str))
    return 0 if all(r["status"] == "ok" for r in results) else 2


def main() -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Setup logging
    setup_logging(args.log_level, args.log_json)

    try:
        if args.command == "digest":
            code = asyncio.run(fetch_digest(args))
        else:
            code = asyncio.run(run_batch(args))
    except (ShareBatchError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
