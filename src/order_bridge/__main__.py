"""Order bridge worker orchestration. Use --help for usage."""

import argparse
import asyncio
import logging
import socket
import sys
from pathlib import Path

from dotenv import load_dotenv
from prometheus_client import start_http_server

from config.config import BridgeConfig, load_config, set_config
from core.errors.exceptions import ConfigurationError
from core.logging.setup import setup_logging
from order_bridge.common.signals import setup_shutdown_signal_handlers
from order_bridge.runners import WORKER_RUNNERS
from order_bridge.tools.sample_orders import SAMPLE_ORDERS, send_samples
from order_bridge.transform.faults import (
    AlwaysFail,
    CompositeFaults,
    FailFirstAttempts,
    FaultInjector,
    NoFaults,
)
from order_bridge.transform.transformer import MessageTransformer

# Project root directory (where .env file is located)
# __main__.py is at src/order_bridge/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

COMMANDS = ("run", "validate-config", "send-sample")

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    if argv is None:
        argv = sys.argv[1:]
    # "run" is the default command
    if not argv or (argv[0] not in COMMANDS and argv[0] not in ("-h", "--help")):
        argv = ["run", *argv]

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: src/config/config.yaml)",
    )
    common.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: from config, INFO)",
    )
    common.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines on the console",
    )

    parser = argparse.ArgumentParser(
        prog="python -m order_bridge",
        description="Bridge orders between SQS and Kafka with retry and DLQ handling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run the bridge and retry workers
    python -m order_bridge

    # Run only the retry worker with a metrics endpoint
    python -m order_bridge run --worker retry --metrics-port 9090

    # Force the retry and DLQ paths for the sample orders
    python -m order_bridge run --fail-once-keys ORD-RETRY-90001 --fail-keys ORD-DLQ-90001

    # Check configuration, then publish sample orders
    python -m order_bridge validate-config
    python -m order_bridge send-sample standard bulk retry dlq
        """,
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", parents=[common], help="Run workers (default)")
    run_parser.add_argument(
        "--worker",
        choices=[*WORKER_RUNNERS, "all"],
        default="all",
        help="Which worker(s) to run (default: all)",
    )
    run_parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for the Prometheus metrics server (default: disabled)",
    )
    run_parser.add_argument(
        "--fail-once-keys",
        nargs="+",
        default=[],
        metavar="KEY",
        help="Message keys whose first transformation attempt fails (retry path testing)",
    )
    run_parser.add_argument(
        "--fail-keys",
        nargs="+",
        default=[],
        metavar="KEY",
        help="Message keys whose transformation always fails (DLQ path testing)",
    )

    subparsers.add_parser("validate-config", parents=[common], help="Load and validate configuration")

    sample_parser = subparsers.add_parser(
        "send-sample", parents=[common], help="Publish sample orders to the bridge source"
    )
    sample_parser.add_argument(
        "samples",
        nargs="*",
        metavar="SAMPLE",
        help=f"Samples to send: {', '.join(SAMPLE_ORDERS)} (default: standard priority bulk invalid)",
    )

    return parser.parse_args(argv)


def build_fault_injector(fail_once_keys: list[str], fail_keys: list[str]) -> FaultInjector:
    """Fault injector for the ``--fail-once-keys``/``--fail-keys`` flags."""
    injectors: list[FaultInjector] = []
    if fail_once_keys:
        injectors.append(FailFirstAttempts({key: 1 for key in fail_once_keys}))
    if fail_keys:
        injectors.append(AlwaysFail(fail_keys))

    if not injectors:
        return NoFaults()
    if len(injectors) == 1:
        return injectors[0]
    return CompositeFaults(*injectors)


def start_metrics_server(preferred_port: int) -> int:
    """Start Prometheus metrics server with automatic port fallback.
    Returns actual port number that the server is listening on."""
    try:
        start_http_server(preferred_port)
        return preferred_port
    except OSError as e:
        if e.errno != 98:
            raise
        logger.info(
            "Port already in use, finding available port",
            extra={"preferred_port": preferred_port},
        )
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("", 0))
            available_port = s.getsockname()[1]
        start_http_server(available_port)
        return available_port


async def run_workers(config: BridgeConfig, transformer: MessageTransformer, worker: str = "all") -> None:
    """Run the selected workers until a shutdown signal arrives.

    First SIGINT/SIGTERM: workers finish their in-flight batch and stop.
    Second signal: all worker tasks are cancelled.
    """
    shutdown_event = asyncio.Event()
    names = list(WORKER_RUNNERS) if worker == "all" else [worker]
    tasks = [
        asyncio.create_task(WORKER_RUNNERS[name](config, transformer, shutdown_event), name=name)
        for name in names
    ]

    def request_shutdown() -> None:
        if not shutdown_event.is_set():
            logger.info("Received signal, initiating graceful shutdown")
            shutdown_event.set()
        else:
            logger.warning("Received second signal, forcing immediate shutdown...")
            for task in tasks:
                task.cancel()

    setup_shutdown_signal_handlers(request_shutdown)
    logger.info("Starting workers", extra={"count": len(tasks), "workers": names})

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Workers cancelled, shutting down")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    except Exception:
        # One worker failed for good: stop the others before propagating
        shutdown_event.set()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _load_config(args: argparse.Namespace) -> BridgeConfig:
    config = load_config(Path(args.config) if args.config else None)
    if args.log_level:
        config.log_level = args.log_level
    if args.json_logs:
        config.json_logs = True
    set_config(config)
    return config


def _setup_logging(config: BridgeConfig, stage: str) -> None:
    global logger
    setup_logging(
        stage=stage,
        domain="orders",
        log_dir=Path(config.log_dir) if config.log_dir else None,
        json_format=config.json_logs,
        console_level=getattr(logging, config.log_level, logging.INFO),
    )
    logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    load_dotenv(PROJECT_ROOT / ".env")

    try:
        config = _load_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.command == "validate-config":
        print("Configuration OK")
        print(f"  direction:   {config.direction}")
        print(f"  source:      {config.source_name}")
        print(f"  destination: {config.destination_name}")
        print(f"  retry topic: {config.kafka.retry_topic}")
        print(f"  dlq topic:   {config.kafka.dlq_topic}")
        print(f"  max retries: {config.retry.max_retries}")
        return 0

    if args.command == "send-sample":
        _setup_logging(config, stage="sample")
        try:
            sent = asyncio.run(send_samples(config, args.samples))
        except KeyError as e:
            print(f"Error: {e.args[0]}", file=sys.stderr)
            return 2
        logger.info("Sent %d sample order(s)", sent, extra={"direction": config.direction})
        return 0

    _setup_logging(config, stage=args.worker)

    if args.metrics_port is not None:
        port = start_metrics_server(args.metrics_port)
        logger.info("Metrics server started", extra={"port": port})

    transformer = MessageTransformer(
        fault_injector=build_fault_injector(args.fail_once_keys, args.fail_keys)
    )
    if args.fail_once_keys or args.fail_keys:
        logger.warning(
            "Fault injection enabled",
            extra={"fail_once_keys": args.fail_once_keys, "fail_keys": args.fail_keys},
        )

    try:
        asyncio.run(run_workers(config, transformer, args.worker))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
    except Exception as e:
        logger.error("Fatal error", extra={"error": str(e)}, exc_info=True)
        return 1

    logger.info("Bridge shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
