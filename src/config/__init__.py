"""Configuration loading for the order bridge.

Configuration is loaded once at startup from ``config/config.yaml``.
Values may reference environment variables with ``${VAR}`` or
``${VAR:-default}``; a ``.env`` file is loaded by the CLI before the YAML is
read.

Usage:
    >>> from config import load_config
    >>> config = load_config()
    >>> config.kafka.retry_topic
    'place-order-retry-topic'
"""

from config.config import (
    DIRECTION_KAFKA_TO_SQS,
    DIRECTION_SQS_TO_KAFKA,
    BridgeConfig,
    KafkaConfig,
    RetryConfig,
    SqsConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "BridgeConfig",
    "SqsConfig",
    "KafkaConfig",
    "RetryConfig",
    "DIRECTION_SQS_TO_KAFKA",
    "DIRECTION_KAFKA_TO_SQS",
]
