"""Configuration management with validation.

Provider settings are validated once at load time so a bad URL or an
out-of-range timeout fails before the first API call is made.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_OPERATION_TIMEOUT_SECONDS = 1200  # 20 minutes per create/update/delete
MIN_OPERATION_TIMEOUT_SECONDS = 1
MAX_OPERATION_TIMEOUT_SECONDS = 86400

DEFAULT_POLL_INTERVAL_SECONDS = 3
MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 60

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30

DEFAULT_MUTATION_POLICY = "sharded"
VALID_MUTATION_POLICIES = ("sharded", "flat")

VALID_BASE_URL_PATTERN = r"^https?://[^\s/]+(:\d+)?(/\S*)?$"


@dataclass(frozen=True)
class Config:
    """Provider configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    base_url: str
    username: str
    password: str = field(repr=False)

    # Per-operation convergence budgets
    create_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS
    update_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS
    delete_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS

    # Polling and transport
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS
    verify_tls: bool = True

    # Which mutation rule table guards in-place updates
    mutation_policy: str = DEFAULT_MUTATION_POLICY

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.base_url:
            errors.append("REDIS_ENTERPRISE_URL is required")
        elif not re.match(VALID_BASE_URL_PATTERN, self.base_url):
            errors.append(f"REDIS_ENTERPRISE_URL must be an http(s) URL: {self.base_url}")

        if not self.username:
            errors.append("REDIS_ENTERPRISE_USERNAME is required")

        if not self.password:
            errors.append("REDIS_ENTERPRISE_PASSWORD is required")

        for name, value in (
            ("CREATE_TIMEOUT", self.create_timeout_seconds),
            ("UPDATE_TIMEOUT", self.update_timeout_seconds),
            ("DELETE_TIMEOUT", self.delete_timeout_seconds),
        ):
            if not MIN_OPERATION_TIMEOUT_SECONDS <= value <= MAX_OPERATION_TIMEOUT_SECONDS:
                errors.append(
                    f"{name} must be between {MIN_OPERATION_TIMEOUT_SECONDS} "
                    f"and {MAX_OPERATION_TIMEOUT_SECONDS} seconds"
                )

        if not MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS:
            errors.append(
                f"POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if self.request_timeout_seconds < 1:
            errors.append("REQUEST_TIMEOUT must be at least 1 second")

        if self.mutation_policy not in VALID_MUTATION_POLICIES:
            errors.append(
                f"MUTATION_POLICY must be one of {list(VALID_MUTATION_POLICIES)}: "
                f"{self.mutation_policy}"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            REDIS_ENTERPRISE_URL: Base URL of the cluster management API
            REDIS_ENTERPRISE_USERNAME: Username for the management API
            REDIS_ENTERPRISE_PASSWORD: Password for the management API
            CREATE_TIMEOUT: Seconds to wait for a database to become active (default: 1200)
            UPDATE_TIMEOUT: Seconds to wait for a change to be applied (default: 1200)
            DELETE_TIMEOUT: Seconds to wait for a database to disappear (default: 1200)
            POLL_INTERVAL: Seconds between status polls (default: 3)
            REQUEST_TIMEOUT: Per-request HTTP timeout in seconds (default: 30)
            VERIFY_TLS: If "false", skip certificate verification (default: true)
            MUTATION_POLICY: One of sharded, flat (default: sharded)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            base_url=os.environ.get("REDIS_ENTERPRISE_URL", ""),
            username=os.environ.get("REDIS_ENTERPRISE_USERNAME", ""),
            password=os.environ.get("REDIS_ENTERPRISE_PASSWORD", ""),
            create_timeout_seconds=get_int("CREATE_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS),
            update_timeout_seconds=get_int("UPDATE_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS),
            delete_timeout_seconds=get_int("DELETE_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS),
            poll_interval_seconds=get_int("POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            request_timeout_seconds=get_int("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS),
            verify_tls=get_bool("VERIFY_TLS", True),
            mutation_policy=os.environ.get("MUTATION_POLICY", DEFAULT_MUTATION_POLICY),
        )
