"""
Configuration module for the DMS endpoint operator.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class AWSConfig:
    """Control plane connection settings. Credentials come from the AWS chain."""

    region: Optional[str] = None
    profile: Optional[str] = None
    endpoint_url: Optional[str] = None

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"),
            profile=os.getenv("AWS_PROFILE") or None,
            endpoint_url=os.getenv("DMS_ENDPOINT_URL") or None,
        )


@dataclass
class RetryConfig:
    """Retry policy for endpoint creation."""

    create_timeout: float = 300.0  # seconds (5 minutes)

    # Exponential backoff configuration
    base_delay: float = 1.0  # base delay in seconds
    max_delay: float = 10.0  # max delay between attempts
    jitter_factor: float = 0.1  # ±10% jitter

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            create_timeout=float(os.getenv("DMS_CREATE_TIMEOUT", "300")),
            base_delay=float(os.getenv("DMS_RETRY_BASE_DELAY", "1")),
            max_delay=float(os.getenv("DMS_RETRY_MAX_DELAY", "10")),
            jitter_factor=float(os.getenv("DMS_RETRY_JITTER_FACTOR", "0.1")),
        )


@dataclass
class ControllerConfig:
    """Reconciler loop and local state configuration."""

    reconcile_interval: int = 60  # seconds
    state_path: str = "dms-state.json"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            reconcile_interval=int(os.getenv("RECONCILE_INTERVAL", "60")),
            state_path=os.getenv("DMS_STATE_PATH", "dms-state.json"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class Config:
    """Main configuration object."""

    aws: AWSConfig
    retry: RetryConfig
    controller: ControllerConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            aws=AWSConfig.from_env(),
            retry=RetryConfig.from_env(),
            controller=ControllerConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            aws=AWSConfig(),
            retry=RetryConfig(),
            controller=ControllerConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
