"""Provider wiring: turns a validated Config into the handle every operation takes."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .client import DatabasesApi
from .config import Config
from .mutation import MutationValidator
from .waiter import StatusWaiter

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "redisenterprise_database"


@dataclass(frozen=True)
class OperationTimeouts:
    """Convergence budget per state-changing operation, in seconds."""

    create: float = 1200
    update: float = 1200
    delete: float = 1200


@dataclass(frozen=True)
class ProviderContext:
    """Authenticated client plus the policies operations run under.

    Shared read-only across operations and resources; passed explicitly to
    every reconciler call.
    """

    client: DatabasesApi
    waiter: StatusWaiter
    validator: MutationValidator
    timeouts: OperationTimeouts = OperationTimeouts()


def configure(config: Config) -> ProviderContext:
    """Build the provider context for a configuration."""
    client = DatabasesApi(
        config.base_url,
        config.username,
        config.password,
        request_timeout_seconds=config.request_timeout_seconds,
        verify_tls=config.verify_tls,
    )

    logger.info(
        "Configured provider",
        extra={
            "base_url": config.base_url,
            "username": config.username,
            "mutation_policy": config.mutation_policy,
            "verify_tls": config.verify_tls,
        },
    )

    return ProviderContext(
        client=client,
        waiter=StatusWaiter(config.poll_interval_seconds),
        validator=MutationValidator.for_policy(config.mutation_policy),
        timeouts=OperationTimeouts(
            create=config.create_timeout_seconds,
            update=config.update_timeout_seconds,
            delete=config.delete_timeout_seconds,
        ),
    )
