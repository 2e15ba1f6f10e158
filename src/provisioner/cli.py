"""Redis Enterprise provisioner CLI (redb).

Drives the database reconciler against a live cluster.

Usage:
    redb db get 3                      # Show a database
    redb db exists 3                   # Exit 0 if it exists, 1 if not
    redb db create --name cache --memory-size 1073741824
    redb db plan 3 --shard-count 4     # Show what an update would do
    redb db update 3 --shard-count 4   # Apply it and wait
    redb db delete 3                   # Delete and wait

Connection settings come from REDIS_ENTERPRISE_URL, REDIS_ENTERPRISE_USERNAME
and REDIS_ENTERPRISE_PASSWORD (see provisioner.config).
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import click
import yaml
from pydantic import ValidationError

from . import __version__
from .config import Config, ConfigurationError
from .errors import OperationError, PlanValidationError, ProvisionerError
from .main import setup_logging
from .models import DatabaseSpec, ShardPlacement
from .mutation import MutationAction, MutationPlan
from .provider import ProviderContext, configure
from .reconciler import DatabaseReconciler, ResourceData

OUTPUT_FORMATS = ("json", "yaml")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class CliState:
    """Per-invocation settings shared by subcommands."""

    output: str = "json"
    provider: ProviderContext | None = None


def get_provider(state: CliState) -> ProviderContext:
    """Build the provider context on first use."""
    if state.provider is None:
        try:
            state.provider = configure(Config.from_env())
        except ConfigurationError as e:
            raise click.ClickException(str(e)) from e
    return state.provider


def emit(state: CliState, value: Any) -> None:
    """Print a value in the selected output format."""
    if state.output == "yaml":
        click.echo(yaml.safe_dump(value, sort_keys=False), nl=False)
    else:
        click.echo(json.dumps(value, indent=2))


def render_data(data: ResourceData) -> dict[str, Any]:
    rendered: dict[str, Any] = {"id": data.id}
    if data.spec is not None:
        rendered.update(data.spec.model_dump(mode="json"))
    return rendered


def render_plan(plan: MutationPlan) -> dict[str, Any]:
    return {
        "requires_replacement": plan.requires_replacement,
        "changes": [
            {
                "field": d.field,
                "action": d.action.value,
                "old": d.old,
                "new": d.new,
                **({"reason": d.reason} if d.reason else {}),
            }
            for d in plan.decisions
        ],
    }


def spec_options(required: bool) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Declared-field options shared by create, update and plan."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        options = [
            click.option("--name", required=required, help="Database name."),
            click.option(
                "--memory-size", type=int, required=required, help="Memory limit in bytes."
            ),
            click.option("--type", "db_type", help="Database type (force-new)."),
            click.option("--port", type=click.IntRange(1, 65535), help="Endpoint port."),
            click.option("--replication/--no-replication", default=None),
            click.option("--sharding/--no-sharding", default=None),
            click.option("--shard-count", type=click.IntRange(1, 512)),
            click.option(
                "--shard-placement",
                type=click.Choice([p.value for p in ShardPlacement]),
            ),
        ]
        for option in reversed(options):
            func = option(func)
        return func

    return decorator


def collect_overrides(**options: Any) -> dict[str, Any]:
    """Map CLI options onto declared field names, dropping unset ones."""
    fields = {
        "name": options.get("name"),
        "memory_size": options.get("memory_size"),
        "type": options.get("db_type"),
        "port": options.get("port"),
        "replication": options.get("replication"),
        "sharding": options.get("sharding"),
        "shard_count": options.get("shard_count"),
        "shard_placement": options.get("shard_placement"),
    }
    return {k: v for k, v in fields.items() if v is not None}


def build_spec(base: dict[str, Any], overrides: dict[str, Any]) -> DatabaseSpec:
    """Validate the merged field values, reporting every problem at once."""
    try:
        return DatabaseSpec.model_validate({**base, **overrides})
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        raise click.ClickException("Invalid database configuration:\n" + "\n".join(errors)) from e


def plan_change(
    reconciler: DatabaseReconciler, provider: ProviderContext, uid: str, overrides: dict[str, Any]
) -> tuple[ResourceData, MutationPlan]:
    """Import the current database and plan the requested overrides on top."""
    data = reconciler.import_database(provider, uid)
    if data.spec is None:
        raise OperationError("getting", "no configuration returned", data.id)
    data.spec = build_spec(data.spec.model_dump(mode="json"), overrides)
    try:
        mutation_plan = reconciler.plan(provider, data)
    except PlanValidationError as e:
        raise click.ClickException(f"Change rejected: {e}") from e
    return data, mutation_plan


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="redb")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level for JSON logs on stderr.",
)
@click.option(
    "--output",
    "-o",
    type=click.Choice(OUTPUT_FORMATS),
    default="json",
    show_default=True,
    help="Output format.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, output: str) -> None:
    """Redis Enterprise provisioner CLI (redb).

    Creates, inspects, resizes and deletes databases on a Redis Enterprise
    cluster, waiting for each change to converge.
    """
    setup_logging(log_level.upper())
    ctx.obj = CliState(output=output)


@cli.group()
def db() -> None:
    """Database commands: get, exists, create, plan, update, delete."""
    pass


@db.command()
@click.argument("uid")
@click.pass_obj
def get(state: CliState, uid: str) -> None:
    """Show the current configuration of database UID."""
    provider = get_provider(state)
    try:
        data = DatabaseReconciler().import_database(provider, uid)
    except ProvisionerError as e:
        raise click.ClickException(str(e)) from e
    emit(state, render_data(data))


@db.command()
@click.argument("uid")
@click.pass_obj
def exists(state: CliState, uid: str) -> None:
    """Exit 0 if database UID exists, 1 if it does not."""
    provider = get_provider(state)
    try:
        found = DatabaseReconciler().exists(provider, ResourceData(id=uid))
    except ProvisionerError as e:
        raise click.ClickException(str(e)) from e
    emit(state, {"id": uid, "exists": found})
    if not found:
        click.get_current_context().exit(1)


@db.command()
@spec_options(required=True)
@click.pass_obj
def create(state: CliState, **options: Any) -> None:
    """Create a database and wait until it is active."""
    spec = build_spec({}, collect_overrides(**options))
    provider = get_provider(state)
    data = ResourceData(spec=spec)
    try:
        DatabaseReconciler().create(provider, data)
    except ProvisionerError as e:
        raise click.ClickException(str(e)) from e
    emit(state, render_data(data))


@db.command()
@click.argument("uid")
@spec_options(required=False)
@click.pass_obj
def plan(state: CliState, uid: str, **options: Any) -> None:
    """Show how database UID would change, without applying anything."""
    provider = get_provider(state)
    try:
        _, mutation_plan = plan_change(DatabaseReconciler(), provider, uid, collect_overrides(**options))
    except ProvisionerError as e:
        raise click.ClickException(str(e)) from e
    emit(state, render_plan(mutation_plan))


@db.command()
@click.argument("uid")
@spec_options(required=False)
@click.option(
    "--allow-replace",
    is_flag=True,
    help="Delete and recreate the database when a change cannot be applied in place.",
)
@click.pass_obj
def update(state: CliState, uid: str, allow_replace: bool, **options: Any) -> None:
    """Apply changes to database UID and wait until they converge."""
    provider = get_provider(state)
    reconciler = DatabaseReconciler()

    try:
        data, mutation_plan = plan_change(reconciler, provider, uid, collect_overrides(**options))

        if not mutation_plan.has_changes:
            emit(state, render_data(data))
            return

        if mutation_plan.requires_replacement:
            fields = [
                d.field
                for d in mutation_plan.decisions
                if d.action == MutationAction.FORCE_REPLACE
            ]
            if not allow_replace:
                raise click.ClickException(
                    f"Change to {', '.join(fields)} requires replacing database {uid}. "
                    "Rerun with --allow-replace to delete and recreate it."
                )
            click.echo(f"Replacing database {uid} ({', '.join(fields)})", err=True)
            reconciler.delete(provider, data)
            data = ResourceData(spec=data.spec)
            reconciler.create(provider, data)
        else:
            reconciler.update(provider, data)
    except ProvisionerError as e:
        raise click.ClickException(str(e)) from e

    emit(state, render_data(data))


@db.command()
@click.argument("uid")
@click.pass_obj
def delete(state: CliState, uid: str) -> None:
    """Delete database UID and wait until it is gone."""
    provider = get_provider(state)
    try:
        DatabaseReconciler().delete(provider, ResourceData(id=uid))
    except ProvisionerError as e:
        raise click.ClickException(str(e)) from e
    emit(state, {"id": uid, "deleted": True})
