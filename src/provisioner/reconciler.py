"""Lifecycle reconciliation for a single Redis Enterprise database.

Each operation moves one declared database one step towards the control
plane's state:

1. exists: is the database behind this id still there?
2. create: POST the declared fields, wait pending -> active, re-read
3. read: overwrite every declared field from the remote (drift shows up here)
4. update: PUT only changed fields, wait active-change-pending -> active, re-read
5. delete: DELETE, wait delete-pending -> gone

Remote failures are normalized and wrapped with the operation and database
id. Convergence failures surface as their own types. Mutating requests are
never re-sent: a half-applied create or update could otherwise produce a
duplicate or conflicting database.

Operations on one database must not interleave. Distinct databases can be
reconciled concurrently; nothing here is shared between them except the
read-only ProviderContext.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass

from .errors import ApiError, OperationError, normalize_client_error
from .models import TRACKED_FIELDS, Database, DatabaseSpec, DatabaseStatus
from .mutation import MutationAction, MutationPlan
from .provider import OperationTimeouts, ProviderContext
from .waiter import ConvergenceTimeoutError, PendingOperation, STATUS_ABSENT

logger = logging.getLogger(__name__)


@dataclass
class ResourceData:
    """Declared state of one database as handed over by the plan engine.

    Attributes:
        id: String form of the database uid, None until created.
        spec: Desired field values. Only needed for create and update.
        prior: Last-known field values, used to detect changes.
        timeouts: Per-operation overrides of the provider's budgets.
    """

    id: str | None = None
    spec: DatabaseSpec | None = None
    prior: DatabaseSpec | None = None
    timeouts: OperationTimeouts | None = None

    def has_change(self, name: str) -> bool:
        """Whether ``name`` differs from the prior snapshot.

        Fields left unset (None) in the spec are never changes.
        """
        if self.spec is None or getattr(self.spec, name) is None:
            return False
        if self.prior is None:
            return True
        return getattr(self.prior, name) != getattr(self.spec, name)

    def changed_fields(self) -> list[str]:
        return [name for name in TRACKED_FIELDS if self.has_change(name)]

    def set_id(self, uid: int | str | None) -> None:
        self.id = None if uid is None else str(uid)

    def sync_from_remote(self, database: Database) -> None:
        """Overwrite every declared field with what the control plane reports."""
        remote = database.to_spec()
        self.spec = remote
        self.prior = remote.model_copy()


class DatabaseReconciler:
    """Create, read, update, delete and existence checks for one resource type.

    The provider context is passed to every call rather than looked up, so
    one reconciler can serve any number of clusters.
    """

    def __init__(self, cancel_event: threading.Event | None = None) -> None:
        self._cancel_event = cancel_event

    def plan(self, provider: ProviderContext, data: ResourceData) -> MutationPlan:
        """Run the mutation rules over the pending change set.

        Raises:
            PlanValidationError: If any change is rejected outright.
        """
        if data.spec is None:
            return MutationPlan()
        return provider.validator.plan(data.prior, data.spec)

    def import_database(self, provider: ProviderContext, uid: int | str) -> ResourceData:
        """Adopt an existing database: its current remote fields become the declared state."""
        data = ResourceData(id=str(uid))
        self.read(provider, data)
        return data

    def exists(self, provider: ProviderContext, data: ResourceData) -> bool:
        uid = self._uid(data, "checking")
        logger.debug("Checking for existence of database", extra={"uid": uid})

        try:
            provider.client.get_database(uid)
        except ApiError as e:
            if e.is_not_found:
                return False
            raise self._wrap("checking", e, data.id) from e

        return True

    def create(self, provider: ProviderContext, data: ResourceData) -> None:
        if data.id is not None:
            raise OperationError("creating", f"database already exists with id {data.id}")
        if data.spec is None:
            raise OperationError("creating", "no declared configuration")

        payload = data.spec.to_create_payload()
        logger.debug("Creating database", extra={"payload": json.dumps(payload)})

        try:
            response = provider.client.create_database(payload)
        except ApiError as e:
            raise self._wrap("creating", e) from e

        database = response.body
        logger.info("Created database", extra={"uid": database.uid, "name": database.name})
        data.set_id(database.uid)

        provider.waiter.wait(
            lambda: provider.client.get_database(database.uid).body,
            PendingOperation.build(
                "create",
                database.uid,
                pending={DatabaseStatus.PENDING},
                target={DatabaseStatus.ACTIVE},
                timeout_seconds=self._timeouts(provider, data).create,
            ),
            self._cancel_event,
        )

        self.read(provider, data)

    def read(self, provider: ProviderContext, data: ResourceData) -> None:
        uid = self._uid(data, "getting")

        try:
            database = provider.client.get_database(uid).body
        except ApiError as e:
            raise self._wrap("getting", e, data.id) from e

        logger.debug("Read database", extra={"uid": uid, "database": database.model_dump()})
        data.sync_from_remote(database)

    def update(self, provider: ProviderContext, data: ResourceData) -> None:
        uid = self._uid(data, "updating")
        if data.spec is None:
            raise OperationError("updating", "no declared configuration", data.id)

        if data.prior is None:
            # No snapshot yet; compare against the remote
            try:
                data.prior = provider.client.get_database(uid).body.to_spec()
            except ApiError as e:
                raise self._wrap("updating", e, data.id) from e

        plan = self.plan(provider, data)
        if plan.requires_replacement:
            fields = [d.field for d in plan.decisions if d.action == MutationAction.FORCE_REPLACE]
            raise OperationError(
                "updating", f"change to {', '.join(fields)} requires replacement", data.id
            )

        changed = data.changed_fields()
        if not changed:
            logger.info("No changes to apply", extra={"uid": uid})
            self.read(provider, data)
            return

        payload = data.spec.to_update_payload(changed)
        logger.debug("Updating database", extra={"uid": uid, "payload": json.dumps(payload)})

        try:
            provider.client.update_database(uid, payload)
        except ApiError as e:
            raise self._wrap("updating", e, data.id) from e

        provider.waiter.wait(
            lambda: provider.client.get_database(uid).body,
            PendingOperation.build(
                "update",
                uid,
                pending={DatabaseStatus.ACTIVE_CHANGE_PENDING},
                target={DatabaseStatus.ACTIVE},
                timeout_seconds=self._timeouts(provider, data).update,
            ),
            self._cancel_event,
        )

        self.read(provider, data)

    def delete(self, provider: ProviderContext, data: ResourceData) -> None:
        uid = self._uid(data, "deleting")

        try:
            provider.client.delete_database(uid)
        except ApiError as e:
            if not e.is_not_found:
                raise self._wrap("deleting", e, data.id) from e
            logger.info("Database already deleted", extra={"uid": uid})
            data.set_id(None)
            return

        operation = PendingOperation.build(
            "delete",
            uid,
            pending={DatabaseStatus.DELETE_PENDING},
            target={STATUS_ABSENT},
            timeout_seconds=self._timeouts(provider, data).delete,
        )

        try:
            provider.waiter.wait(
                lambda: provider.client.get_database(uid).body,
                operation,
                self._cancel_event,
            )
        except ConvergenceTimeoutError:
            if not self._is_gone(provider, uid):
                raise
            logger.info("Database disappeared after delete wait timed out", extra={"uid": uid})

        logger.info("Deleted database", extra={"uid": uid})
        data.set_id(None)

    def _is_gone(self, provider: ProviderContext, uid: int) -> bool:
        try:
            provider.client.get_database(uid)
        except ApiError as e:
            return e.is_not_found
        return False

    def _timeouts(self, provider: ProviderContext, data: ResourceData) -> OperationTimeouts:
        return data.timeouts or provider.timeouts

    def _uid(self, data: ResourceData, operation: str) -> int:
        if data.id is None:
            raise OperationError(operation, "database has no id")
        try:
            return int(data.id)
        except ValueError as e:
            raise OperationError(operation, f"invalid database id '{data.id}'") from e

    def _wrap(self, operation: str, error: ApiError, resource_id: str | None = None) -> OperationError:
        normalized = normalize_client_error(error)
        logger.error(
            "Management API call failed",
            extra={
                "operation": operation,
                "uid": resource_id,
                "kind": error.kind.value,
                "status_code": error.status_code,
                "error": str(normalized),
            },
        )
        return OperationError(operation, str(normalized), resource_id)
