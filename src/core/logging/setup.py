"""Logging setup and configuration."""

import logging
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiokafka",
    "aiobotocore",
    "botocore",
    "urllib3",
]


def get_log_file_path(log_dir: Path, domain: str | None = None, stage: str | None = None) -> Path:
    """
    Build log file path with a date subfolder.

    Structure: {log_dir}/{YYYY-MM-DD}/{domain}_{stage}.log

    Examples:
        logs/2026-01-05/orders_bridge.log
        logs/2026-01-05/orders_retry.log
    """
    date_folder = datetime.now().strftime("%Y-%m-%d")
    parts = [p for p in (domain, stage) if p] or ["bridge"]
    return log_dir / date_folder / f"{'_'.join(parts)}.log"


def setup_logging(
    name: str = "order_bridge",
    stage: str | None = None,
    domain: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = False,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
) -> logging.Logger:
    """
    Configure logging with a console handler and an optional rotating file.

    Console output uses the JSON formatter when json_format is set (container
    deployments), otherwise the colored console formatter. File output, when
    log_dir is given, is always JSON and rotates at midnight.

    Args:
        name: Logger name returned to the caller
        stage: Stage name for context (bridge/retry)
        domain: Domain name for context
        log_dir: Directory for log files; no file handler when None
        json_format: Emit JSON lines on the console
        console_level: Console handler level (default: INFO)
        file_level: File handler level (default: DEBUG)
        suppress_noisy: Quiet down Kafka and AWS client loggers
        worker_id: Worker identifier for context

    Returns:
        Configured logger instance
    """
    if worker_id:
        set_log_context(worker_id=worker_id)
    if stage:
        set_log_context(stage=stage)
    if domain:
        set_log_context(domain=domain)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_file = get_log_file_path(log_dir, domain=domain, stage=stage)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = TimedRotatingFileHandler(
            log_file,
            when=DEFAULT_ROTATION_WHEN,
            backupCount=DEFAULT_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        "Logging initialized",
        extra={"stage": stage or "bridge", "domain": domain or "orders", "log_file": str(log_file)},
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


def log_worker_startup(
    logger: logging.Logger,
    worker_name: str,
    source: str | None = None,
    destination: str | None = None,
    consumer_group: str | None = None,
    extra_config: dict | None = None,
) -> None:
    """
    Log standard worker startup information.

    Call this at worker startup so the source/destination wiring is visible
    in the first lines of every worker log.
    """
    logger.info("=" * 70)
    logger.info("Starting %s", worker_name)
    logger.info("=" * 70)

    if source:
        logger.info("Source: %s", source)
    if destination:
        logger.info("Destination: %s", destination)
    if consumer_group:
        logger.info("Consumer group: %s", consumer_group)

    if extra_config:
        for key, value in extra_config.items():
            logger.info("%s: %s", key, value)

    logger.info("=" * 70)
