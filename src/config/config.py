"""Order bridge configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Bridge direction and loop settings
- SQS connection and long-poll settings
- Kafka connection, topics and consumer/producer settings
- Retry policy (attempt limit and backoff bounds)

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files. The configuration is read once at
startup and treated as immutable for the process lifetime.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DIRECTION_SQS_TO_KAFKA = "sqs_to_kafka"
DIRECTION_KAFKA_TO_SQS = "kafka_to_sqs"
VALID_DIRECTIONS = (DIRECTION_SQS_TO_KAFKA, DIRECTION_KAFKA_TO_SQS)

# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent.parent / "config" / "config.yaml"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}", cause=e) from e


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be a number, got {value!r}", cause=e) from e


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class SqsConfig:
    """SQS queue and client settings."""

    queue_url: str = "http://localhost:4566/000000000000/place-order-queue"
    endpoint_url: str = "http://localhost:4566"
    region: str = "us-east-1"
    access_key_id: str = "test"
    secret_access_key: str = "test"
    max_messages: int = 10
    wait_time_seconds: int = 20
    visibility_timeout: int = 30

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``AioSession.create_client("sqs", ...)``."""
        kwargs: Dict[str, Any] = {}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id:
            kwargs["aws_access_key_id"] = self.access_key_id
        if self.secret_access_key:
            kwargs["aws_secret_access_key"] = self.secret_access_key
        return kwargs


@dataclass
class KafkaConfig:
    """Kafka connection, topics and client settings.

    All timing values in milliseconds.
    """

    bootstrap_servers: str = "localhost:9092"
    orders_topic: str = "place-order-topic"
    retry_topic: str = "place-order-retry-topic"
    dlq_topic: str = "place-order-dlq-topic"
    consumer_group_prefix: str = "order-bridge"
    max_poll_records: int = 10
    poll_timeout_ms: int = 10000
    auto_offset_reset: str = "earliest"
    session_timeout_ms: int = 30000
    max_poll_interval_ms: int = 600000
    acks: str = "all"
    request_timeout_ms: int = 30000

    def get_consumer_group(self, worker_name: str) -> str:
        return f"{self.consumer_group_prefix}-{worker_name}"


@dataclass
class RetryConfig:
    """Retry policy: attempt limit and exponential backoff bounds (seconds)."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    max_exponent: int = 5


@dataclass
class BridgeConfig:
    """Order bridge configuration.

    Configuration structure:
        bridge:
          direction: sqs_to_kafka | kafka_to_sqs
          error_backoff_seconds: 5.0
        sqs: {...}        # queue url, endpoint, credentials, long-poll settings
        kafka:
          bootstrap_servers: ...
          topics: {orders, retry, dlq}
          consumer: {...}
          producer: {...}
        retry: {...}      # max_retries and backoff bounds
        logging: {...}
    """

    direction: str = DIRECTION_SQS_TO_KAFKA
    error_backoff_seconds: float = 5.0
    sqs: SqsConfig = field(default_factory=SqsConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    log_level: str = "INFO"
    json_logs: bool = False
    log_dir: str = ""

    @property
    def source_name(self) -> str:
        """Human-readable name of the source transport."""
        if self.direction == DIRECTION_KAFKA_TO_SQS:
            return f"kafka:{self.kafka.orders_topic}"
        return f"sqs:{self.sqs.queue_url}"

    @property
    def destination_name(self) -> str:
        """Human-readable name of the destination transport."""
        if self.direction == DIRECTION_KAFKA_TO_SQS:
            return f"sqs:{self.sqs.queue_url}"
        return f"kafka:{self.kafka.orders_topic}"

    def validate(self) -> None:
        """Validate configuration for correctness and constraints.

        Raises:
            ConfigurationError: On the first invalid setting found
        """
        if self.direction not in VALID_DIRECTIONS:
            raise ConfigurationError(
                f"bridge.direction must be one of {list(VALID_DIRECTIONS)}, got '{self.direction}'"
            )

        if not self.kafka.bootstrap_servers:
            raise ConfigurationError("kafka.bootstrap_servers is required")
        if not self.sqs.queue_url:
            raise ConfigurationError("sqs.queue_url is required")

        topics = {
            "kafka.topics.orders": self.kafka.orders_topic,
            "kafka.topics.retry": self.kafka.retry_topic,
            "kafka.topics.dlq": self.kafka.dlq_topic,
        }
        for key, value in topics.items():
            if not value:
                raise ConfigurationError(f"{key} is required")
        if len(set(topics.values())) != len(topics):
            raise ConfigurationError(
                f"kafka topics must be distinct, got {sorted(topics.values())}"
            )

        self._validate_range("sqs.max_messages", self.sqs.max_messages, 1, 10)
        self._validate_range("sqs.wait_time_seconds", self.sqs.wait_time_seconds, 0, 20)
        self._validate_min("sqs.visibility_timeout", self.sqs.visibility_timeout, 0)
        self._validate_min("kafka.consumer.max_poll_records", self.kafka.max_poll_records, 1)
        self._validate_min("kafka.consumer.poll_timeout_ms", self.kafka.poll_timeout_ms, 0)
        if self.kafka.auto_offset_reset not in ("earliest", "latest", "none"):
            raise ConfigurationError(
                "kafka.consumer.auto_offset_reset must be one of ['earliest', 'latest', 'none'], "
                f"got '{self.kafka.auto_offset_reset}'"
            )
        if self.kafka.session_timeout_ms >= self.kafka.max_poll_interval_ms:
            raise ConfigurationError(
                f"kafka.consumer.session_timeout_ms ({self.kafka.session_timeout_ms}) must be < "
                f"max_poll_interval_ms ({self.kafka.max_poll_interval_ms})"
            )
        if str(self.kafka.acks) not in ("0", "1", "all"):
            raise ConfigurationError(
                f"kafka.producer.acks must be one of ['0', '1', 'all'], got '{self.kafka.acks}'"
            )

        self._validate_min("retry.max_retries", self.retry.max_retries, 1)
        self._validate_min("retry.base_delay_seconds", self.retry.base_delay_seconds, 0)
        self._validate_min("retry.max_exponent", self.retry.max_exponent, 0)
        if self.retry.max_delay_seconds < self.retry.base_delay_seconds:
            raise ConfigurationError(
                f"retry.max_delay_seconds ({self.retry.max_delay_seconds}) must be >= "
                f"base_delay_seconds ({self.retry.base_delay_seconds})"
            )
        self._validate_min("bridge.error_backoff_seconds", self.error_backoff_seconds, 0)

    @staticmethod
    def _validate_min(key: str, value: float, min_value: float) -> None:
        if value < min_value:
            raise ConfigurationError(f"{key} must be >= {min_value}, got {value}")

    @staticmethod
    def _validate_range(key: str, value: float, min_value: float, max_value: float) -> None:
        if not (min_value <= value <= max_value):
            raise ConfigurationError(
                f"{key} must be between {min_value} and {max_value}, got {value}"
            )


def _build_config(data: Dict[str, Any]) -> BridgeConfig:
    bridge = data.get("bridge", {}) or {}
    sqs = data.get("sqs", {}) or {}
    kafka = data.get("kafka", {}) or {}
    topics = kafka.get("topics", {}) or {}
    consumer = kafka.get("consumer", {}) or {}
    producer = kafka.get("producer", {}) or {}
    retry = data.get("retry", {}) or {}
    log = data.get("logging", {}) or {}

    defaults = BridgeConfig()

    return BridgeConfig(
        direction=str(bridge.get("direction", defaults.direction)).strip().lower(),
        error_backoff_seconds=_as_float(
            bridge.get("error_backoff_seconds", defaults.error_backoff_seconds),
            "bridge.error_backoff_seconds",
        ),
        sqs=SqsConfig(
            queue_url=str(sqs.get("queue_url", defaults.sqs.queue_url)),
            endpoint_url=str(sqs.get("endpoint_url", defaults.sqs.endpoint_url) or ""),
            region=str(sqs.get("region", defaults.sqs.region)),
            access_key_id=str(sqs.get("access_key_id", defaults.sqs.access_key_id) or ""),
            secret_access_key=str(sqs.get("secret_access_key", defaults.sqs.secret_access_key) or ""),
            max_messages=_as_int(sqs.get("max_messages", defaults.sqs.max_messages), "sqs.max_messages"),
            wait_time_seconds=_as_int(
                sqs.get("wait_time_seconds", defaults.sqs.wait_time_seconds), "sqs.wait_time_seconds"
            ),
            visibility_timeout=_as_int(
                sqs.get("visibility_timeout", defaults.sqs.visibility_timeout), "sqs.visibility_timeout"
            ),
        ),
        kafka=KafkaConfig(
            bootstrap_servers=str(kafka.get("bootstrap_servers", defaults.kafka.bootstrap_servers)),
            orders_topic=str(topics.get("orders", defaults.kafka.orders_topic)),
            retry_topic=str(topics.get("retry", defaults.kafka.retry_topic)),
            dlq_topic=str(topics.get("dlq", defaults.kafka.dlq_topic)),
            consumer_group_prefix=str(kafka.get("consumer_group_prefix", defaults.kafka.consumer_group_prefix)),
            max_poll_records=_as_int(
                consumer.get("max_poll_records", defaults.kafka.max_poll_records),
                "kafka.consumer.max_poll_records",
            ),
            poll_timeout_ms=_as_int(
                consumer.get("poll_timeout_ms", defaults.kafka.poll_timeout_ms),
                "kafka.consumer.poll_timeout_ms",
            ),
            auto_offset_reset=str(consumer.get("auto_offset_reset", defaults.kafka.auto_offset_reset)),
            session_timeout_ms=_as_int(
                consumer.get("session_timeout_ms", defaults.kafka.session_timeout_ms),
                "kafka.consumer.session_timeout_ms",
            ),
            max_poll_interval_ms=_as_int(
                consumer.get("max_poll_interval_ms", defaults.kafka.max_poll_interval_ms),
                "kafka.consumer.max_poll_interval_ms",
            ),
            acks=str(producer.get("acks", defaults.kafka.acks)),
            request_timeout_ms=_as_int(
                producer.get("request_timeout_ms", defaults.kafka.request_timeout_ms),
                "kafka.producer.request_timeout_ms",
            ),
        ),
        retry=RetryConfig(
            max_retries=_as_int(retry.get("max_retries", defaults.retry.max_retries), "retry.max_retries"),
            base_delay_seconds=_as_float(
                retry.get("base_delay_seconds", defaults.retry.base_delay_seconds), "retry.base_delay_seconds"
            ),
            max_delay_seconds=_as_float(
                retry.get("max_delay_seconds", defaults.retry.max_delay_seconds), "retry.max_delay_seconds"
            ),
            max_exponent=_as_int(retry.get("max_exponent", defaults.retry.max_exponent), "retry.max_exponent"),
        ),
        log_level=str(log.get("level", defaults.log_level)).upper(),
        json_logs=_as_bool(log.get("json", defaults.json_logs)),
        log_dir=str(log.get("log_dir", defaults.log_dir) or ""),
    )


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> BridgeConfig:
    """Load bridge configuration from config.yaml file.

    Args:
        config_path: YAML file to read (default: src/config/config.yaml)
        overrides: Nested dict deep-merged over the file contents

    Raises:
        ConfigurationError: If the file is missing or a setting is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    logger.info("Loading configuration from file: %s", config_path)
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if overrides:
        logger.debug("Applying overrides: %s", list(overrides.keys()))
        yaml_data = _deep_merge(yaml_data, overrides)

    config = _build_config(yaml_data)

    logger.debug(
        "Configuration loaded",
        extra={"direction": config.direction, "max_retries": config.retry.max_retries},
    )
    config.validate()
    return config


_bridge_config: Optional[BridgeConfig] = None


def get_config() -> BridgeConfig:
    """Get or load the singleton bridge config instance."""
    global _bridge_config
    if _bridge_config is None:
        _bridge_config = load_config()
    return _bridge_config


def set_config(config: BridgeConfig) -> None:
    """Set the singleton bridge config instance (useful for testing)."""
    global _bridge_config
    _bridge_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _bridge_config
    _bridge_config = None
