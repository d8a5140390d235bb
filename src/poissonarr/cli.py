"""CLI entry point for Poissonarr."""

import argparse
import json
import logging
import sys
from pathlib import Path

import httpx
import structlog
import uvicorn

from .config import Config


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Route structlog through stdlib logging on stdout."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def serve(args: argparse.Namespace) -> int:
    from .api import create_app

    configure_logging(args.log_level, args.json_logs)
    config = Config.from_yaml(str(args.config)) if args.config else Config.load()
    app = create_app(config)
    uvicorn.run(
        app,
        host=args.host or config.control_host,
        port=args.port or config.control_port,
        log_config=None,
    )
    return 0


def send(args: argparse.Namespace) -> int:
    message = {"action": args.action}
    if args.value is not None:
        try:
            message["value"] = json.loads(args.value)
        except json.JSONDecodeError:
            # bare words like `medium` are sent as strings
            message["value"] = args.value

    try:
        response = httpx.post(f"{args.url.rstrip('/')}/command", json=message, timeout=30.0)
    except httpx.HTTPError as e:
        print(f"Error contacting engine: {e}", file=sys.stderr)
        return 1

    print(json.dumps(response.json(), indent=2))
    return 0 if response.is_success else 1


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Poissonarr - Poisson-timed traffic noise engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the engine and its control API")
    serve_parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to configuration YAML file (default: $CONFIG_PATH)",
    )
    serve_parser.add_argument("--host", type=str, help="Bind address for the control API")
    serve_parser.add_argument("--port", type=int, help="Port for the control API")
    serve_parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    serve_parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    serve_parser.set_defaults(func=serve)

    send_parser = subparsers.add_parser("send", help="Send a command to a running engine")
    send_parser.add_argument("action", help="Protocol action, e.g. start, get-status")
    send_parser.add_argument("value", nargs="?", help="Action value as JSON")
    send_parser.add_argument(
        "--url",
        default="http://localhost:8080",
        help="Control API base URL (default: http://localhost:8080)",
    )
    send_parser.set_defaults(func=send)

    args = parser.parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
