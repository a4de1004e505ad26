"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the signal engine.

- Provides argparse-based CLI
- Loads configuration from environment (.env) and CLI flags
- Entry point for the application

============================================================
USAGE
============================================================
python -m orchestrator.cli run               # background workers
python -m orchestrator.cli serve --port 8080 # read API
python -m orchestrator.cli aggregate         # one statistics run
python -m orchestrator.cli track --klines    # one tracking cycle

============================================================
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

import uvicorn

from core.exceptions import ConfigurationError
from dashboard.api import create_app

from .config import AppConfig
from .core import SignalEngine, setup_logging
from .scheduler import Scheduler


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="signal-engine",
        description="Signal lifecycle tracking and strategy performance analytics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run        - Run tracking, kline and aggregation workers
  serve      - Serve the read-only REST API
  aggregate  - Compute statistics snapshots once and exit
  track      - Run a single tracking cycle and exit

Examples:
  %(prog)s run
  %(prog)s serve --port 9000
  %(prog)s track --klines
        """
    )

    # --------------------------------------------------------
    # Global Options
    # --------------------------------------------------------
    parser.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Path to a .env file (default: search from the working directory)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: LOG_FORMAT or json)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the background workers")
    run.add_argument(
        "--shutdown-grace",
        type=float,
        metavar="SECONDS",
        help="Drain time for in-flight cycles (default: SHUTDOWN_GRACE_SECONDS or 30)",
    )

    serve = subparsers.add_parser("serve", help="Serve the REST API")
    serve.add_argument("--host", type=str, help="Bind host (default: API_HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, help="Bind port (default: API_PORT or 8080)")

    subparsers.add_parser("aggregate", help="Compute statistics snapshots once")

    track = subparsers.add_parser("track", help="Run one tracking cycle")
    track.add_argument(
        "--klines",
        action="store_true",
        help="Also sample closed klines for tracked signals",
    )

    return parser


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> AppConfig:
    """
    Build application configuration from environment and CLI arguments.

    CLI flags take precedence over environment variables.
    """
    config = AppConfig.from_env(args.env_file)

    if args.log_level:
        config.logging.level = args.log_level
    if args.log_format:
        config.logging.format = args.log_format
    if getattr(args, "shutdown_grace", None) is not None:
        config.scheduler.shutdown_grace_seconds = args.shutdown_grace
    if getattr(args, "host", None):
        config.api.host = args.host
    if getattr(args, "port", None):
        config.api.port = args.port

    config.validate()
    return config


# ============================================================
# COMMANDS
# ============================================================

async def run_workers(engine: SignalEngine) -> int:
    """Run the scheduler until SIGINT/SIGTERM."""
    scheduler = Scheduler(engine)
    loop = asyncio.get_running_loop()

    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, scheduler.request_stop)

    scheduler.start()
    try:
        await scheduler.wait_stopped()
    finally:
        await scheduler.stop()
        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
    return 0


async def serve_api(engine: SignalEngine) -> int:
    api = engine.config.api
    app = create_app(engine.store, clock=engine.clock, cors_origins=api.cors_origins)
    server = uvicorn.Server(
        uvicorn.Config(app, host=api.host, port=api.port, log_config=None)
    )
    await server.serve()
    return 0


async def aggregate_once(engine: SignalEngine) -> int:
    snapshots = await engine.aggregator.calculate_all()
    print(json.dumps({"snapshots_written": len(snapshots)}))
    return 0


async def track_once(engine: SignalEngine, with_klines: bool) -> int:
    result = await engine.tracker.track_all()
    report = {"tracking": result.to_dict()}
    if with_klines:
        report["klines"] = (await engine.tracker.track_all_klines()).to_dict()
    print(json.dumps(report, default=str))
    return 0 if not result.failures else 1


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: AppConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    engine = SignalEngine(config)
    await engine.start()

    try:
        if args.command == "run":
            return await run_workers(engine)
        if args.command == "serve":
            return await serve_api(engine)
        if args.command == "aggregate":
            return await aggregate_once(engine)
        return await track_once(engine, args.klines)

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await engine.stop()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging.level, config.logging.format)

    return asyncio.run(async_main(args, config))


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
