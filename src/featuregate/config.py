"""Service configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


class FeatureGateSettings(BaseSettings):
    """All configuration loaded from FEATUREGATE_* env vars or .env file."""

    # Storage: empty keeps flags in process memory
    database_url: str = ""
    storage_timeout_seconds: float = 2.0
    max_write_retries: int = 3
    retry_backoff_seconds: float = 0.05

    # Cross-instance propagation: empty disables Redis pub/sub
    redis_url: str = ""
    staleness_seconds: float = 5.0

    # Admin API
    admin_token: str = "dev-token-change-me"

    log_level: str = "INFO"
    seed_defaults: bool = True

    model_config = {
        "env_prefix": "FEATUREGATE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
