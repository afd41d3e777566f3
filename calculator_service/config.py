"""Environment configuration for the Calculator service.

Components never read the environment themselves: the composition root
builds one ``Settings`` instance and passes it to every constructor.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            f"Invalid integer for {name}, using default",
            extra={"value": raw, "default": default},
        )
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Application settings.

    Attributes:
        KAFKA_BOOTSTRAP_SERVERS: Comma separated broker addresses
        KAFKA_CLIENT_ID: Client id reported to the broker
        KAFKA_TOPIC_CALCULATION_STARTED: Topic for CalculationStarted events
        KAFKA_TOPIC_CALCULATION_COMPLETED: Topic for CalculationCompleted events
        KAFKA_CONSUMER_GROUP_ID: Consumer group of the background consumer
        KAFKA_REQUEST_TIMEOUT_MS: Producer request timeout
        KAFKA_COMPRESSION_TYPE: Producer compression codec (None disables it)
        KAFKA_CONSUMER_ENABLED: Start the background consumer with the runtime
        REDIS_URL: Cache connection URL
        CACHE_TTL_SECONDS: Lifetime of cached results
        LOG_LEVEL: Root logging level name
    """

    KAFKA_BOOTSTRAP_SERVERS: str = "localhost:9092"
    KAFKA_CLIENT_ID: str = "calculator-service"
    KAFKA_TOPIC_CALCULATION_STARTED: str = "calculation-started"
    KAFKA_TOPIC_CALCULATION_COMPLETED: str = "calculation-completed"
    KAFKA_CONSUMER_GROUP_ID: str = "calculator-consumer-group"
    KAFKA_REQUEST_TIMEOUT_MS: int = 30000
    KAFKA_COMPRESSION_TYPE: str | None = None
    KAFKA_CONSUMER_ENABLED: bool = True
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL_SECONDS: int = 30
    LOG_LEVEL: str = "INFO"

    @property
    def topics(self) -> list[str]:
        """Both calculation topics, Started first."""
        return [
            self.KAFKA_TOPIC_CALCULATION_STARTED,
            self.KAFKA_TOPIC_CALCULATION_COMPLETED,
        ]

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        load_dotenv()
        defaults = cls()
        return cls(
            KAFKA_BOOTSTRAP_SERVERS=os.getenv(
                "KAFKA_BOOTSTRAP_SERVERS", defaults.KAFKA_BOOTSTRAP_SERVERS
            ),
            KAFKA_CLIENT_ID=os.getenv("KAFKA_CLIENT_ID", defaults.KAFKA_CLIENT_ID),
            KAFKA_TOPIC_CALCULATION_STARTED=os.getenv(
                "KAFKA_TOPIC_CALCULATION_STARTED",
                defaults.KAFKA_TOPIC_CALCULATION_STARTED,
            ),
            KAFKA_TOPIC_CALCULATION_COMPLETED=os.getenv(
                "KAFKA_TOPIC_CALCULATION_COMPLETED",
                defaults.KAFKA_TOPIC_CALCULATION_COMPLETED,
            ),
            KAFKA_CONSUMER_GROUP_ID=os.getenv(
                "KAFKA_CONSUMER_GROUP_ID", defaults.KAFKA_CONSUMER_GROUP_ID
            ),
            KAFKA_REQUEST_TIMEOUT_MS=_env_int(
                "KAFKA_REQUEST_TIMEOUT_MS", defaults.KAFKA_REQUEST_TIMEOUT_MS
            ),
            KAFKA_COMPRESSION_TYPE=os.getenv("KAFKA_COMPRESSION_TYPE") or None,
            KAFKA_CONSUMER_ENABLED=_env_bool(
                "KAFKA_CONSUMER_ENABLED", defaults.KAFKA_CONSUMER_ENABLED
            ),
            REDIS_URL=os.getenv("REDIS_URL", defaults.REDIS_URL),
            CACHE_TTL_SECONDS=_env_int("CACHE_TTL_SECONDS", defaults.CACHE_TTL_SECONDS),
            LOG_LEVEL=os.getenv("LOG_LEVEL", defaults.LOG_LEVEL).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
