"""Convergence polling for asynchronous control-plane operations.

Creating, resizing, or deleting a database returns immediately while the
cluster does the work in the background. StatusWaiter polls the database
status on a fixed interval until it reaches a target status, leaves the
expected path, or the operation's time budget runs out.

Only the status is retried. A failed fetch ends the wait immediately, with
one exception: for deletions "not found" is the target.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from .errors import ApiError, ProvisionerError, normalize_client_error
from .models import Database

logger = logging.getLogger(__name__)

# Status value standing in for "the database no longer exists"
STATUS_ABSENT = ""


class ConvergenceError(ProvisionerError):
    """Waiting for a status transition failed."""

    def __init__(self, message: str, operation: PendingOperation | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class UnexpectedStateError(ConvergenceError):
    """The database reached a status outside both the pending and target sets."""

    def __init__(self, status: str, operation: PendingOperation) -> None:
        self.status = status
        super().__init__(
            f"{operation.context}: unexpected state '{status}', "
            f"wanted target {sorted(operation.target)}",
            operation,
        )


class ConvergenceTimeoutError(ConvergenceError):
    """The database was still in a pending status when the budget ran out."""

    def __init__(self, last_status: str, operation: PendingOperation) -> None:
        self.last_status = last_status
        super().__init__(
            f"{operation.context}: timeout while waiting for state to become "
            f"{sorted(operation.target)} "
            f"(last state: '{last_status}', timeout: {operation.timeout_seconds:g}s)",
            operation,
        )


class ConvergenceCancelledError(ConvergenceError):
    """The wait was cancelled from outside before the database converged."""

    pass


_OPERATION_VERBS = {"create": "creating", "update": "updating", "delete": "deleting"}


def _status_values(statuses: Iterable[str | Enum]) -> frozenset[str]:
    return frozenset(s.value if isinstance(s, Enum) else s for s in statuses)


@dataclass(frozen=True)
class PendingOperation:
    """One bounded wait: which statuses to ride out and which to stop at.

    Attributes:
        operation: Human-readable operation name (create, update, delete).
        uid: Database being waited on.
        pending: Statuses that mean "keep polling".
        target: Statuses that mean "done".
        timeout_seconds: Total budget for the wait.
        not_found_is_target: A "not found" fetch counts as converged.
    """

    operation: str
    uid: int
    pending: frozenset[str]
    target: frozenset[str]
    timeout_seconds: float
    not_found_is_target: bool = False

    @classmethod
    def build(
        cls,
        operation: str,
        uid: int,
        pending: Iterable[str | Enum],
        target: Iterable[str | Enum],
        timeout_seconds: float,
    ) -> PendingOperation:
        target_values = _status_values(target)
        return cls(
            operation=operation,
            uid=uid,
            pending=_status_values(pending),
            target=target_values,
            timeout_seconds=timeout_seconds,
            not_found_is_target=STATUS_ABSENT in target_values,
        )

    @property
    def context(self) -> str:
        """Error prefix naming the operation and database, e.g. "error creating database 3"."""
        verb = _OPERATION_VERBS.get(self.operation, self.operation)
        return f"error {verb} database {self.uid}"


class StatusWaiter:
    """Blocks until a database reaches one of an operation's target statuses.

    The clock and sleep functions are injectable so tests can simulate
    elapsed time without real delays.
    """

    def __init__(
        self,
        poll_interval_seconds: float = 3.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        self._poll_interval = poll_interval_seconds
        self._clock = clock
        self._sleep = sleep

    @property
    def poll_interval_seconds(self) -> float:
        return self._poll_interval

    def wait(
        self,
        fetch: Callable[[], Database],
        operation: PendingOperation,
        cancel_event: threading.Event | None = None,
    ) -> Database | None:
        """Poll ``fetch`` until the operation converges.

        Args:
            fetch: Returns the current remote database or raises ApiError.
            operation: Pending and target statuses plus the time budget.
            cancel_event: Optional event that aborts the wait when set.

        Returns:
            The converged database, or None if the target was "absent" and
            the database is gone.

        Raises:
            UnexpectedStateError: Status left the expected transition path.
            ConvergenceTimeoutError: Still pending when the budget ran out.
            ConvergenceCancelledError: cancel_event was set.
            ConvergenceError: fetch failed.
        """
        start = self._clock()
        polls = 0
        last_status = ""

        logger.debug(
            "Waiting for database status",
            extra={
                "operation": operation.operation,
                "uid": operation.uid,
                "pending": sorted(operation.pending),
                "target": sorted(operation.target),
                "timeout_seconds": operation.timeout_seconds,
            },
        )

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise ConvergenceCancelledError(
                    f"{operation.context}: cancelled while waiting for status", operation
                )

            polls += 1
            try:
                database = fetch()
            except ApiError as e:
                if operation.not_found_is_target and e.is_not_found:
                    logger.info(
                        "Database no longer exists",
                        extra={"operation": operation.operation, "uid": operation.uid, "polls": polls},
                    )
                    return None
                raise ConvergenceError(
                    f"error getting database {operation.uid} during status refresh: "
                    f"{normalize_client_error(e)}",
                    operation,
                ) from e

            last_status = database.status

            if last_status in operation.target:
                logger.info(
                    "Database converged",
                    extra={
                        "operation": operation.operation,
                        "uid": operation.uid,
                        "status": last_status,
                        "polls": polls,
                    },
                )
                return database

            if last_status not in operation.pending:
                logger.warning(
                    "Database reached unexpected status",
                    extra={"operation": operation.operation, "uid": operation.uid, "status": last_status},
                )
                raise UnexpectedStateError(last_status, operation)

            elapsed = self._clock() - start
            remaining = operation.timeout_seconds - elapsed
            if remaining <= 0:
                logger.error(
                    "Timed out waiting for database",
                    extra={
                        "operation": operation.operation,
                        "uid": operation.uid,
                        "status": last_status,
                        "elapsed_seconds": elapsed,
                    },
                )
                raise ConvergenceTimeoutError(last_status, operation)

            self._pause(min(self._poll_interval, remaining), cancel_event)

    def _pause(self, seconds: float, cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and self._sleep is time.sleep:
            # Interruptible when running on the real clock
            cancel_event.wait(seconds)
            return
        self._sleep(seconds)
