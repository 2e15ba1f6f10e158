"""Pydantic models for the database resource.

Two views of the same database are modelled here:

1. DatabaseSpec - the declared (desired) configuration, validated at the
   boundary so bad values never reach the control plane.
2. Database - the control plane's JSON representation of a bdb, decoded
   leniently so statuses and fields we do not know about still parse.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_SHARD_COUNT = 1
MAX_SHARD_COUNT = 512


class DatabaseStatus(str, Enum):
    """Known bdb statuses reported by the control plane."""

    PENDING = "pending"
    ACTIVE = "active"
    ACTIVE_CHANGE_PENDING = "active-change-pending"
    DELETE_PENDING = "delete-pending"
    IMPORT_PENDING = "import-pending"
    CREATION_FAILED = "creation-failed"
    RECOVERY = "recovery"


class ShardPlacement(str, Enum):
    """Shard placement policies."""

    DENSE = "dense"
    SPARSE = "sparse"


# Declared fields, in the order they are synced from the remote
TRACKED_FIELDS: tuple[str, ...] = (
    "name",
    "type",
    "port",
    "memory_size",
    "replication",
    "sharding",
    "shard_count",
    "shard_placement",
)


class DatabaseSpec(BaseModel):
    """Declared configuration for one database."""

    model_config = ConfigDict(extra="forbid")

    name: Annotated[str, Field(min_length=1)]
    type: str | None = None
    port: Annotated[int, Field(ge=1, le=65535)] | None = None
    memory_size: Annotated[int, Field(gt=0)]
    replication: bool | None = None
    sharding: bool = False
    shard_count: Annotated[int, Field(ge=MIN_SHARD_COUNT, le=MAX_SHARD_COUNT)] = 1
    shard_placement: str = ShardPlacement.DENSE.value

    @field_validator("shard_placement", mode="before")
    @classmethod
    def validate_shard_placement(cls, v: Any) -> Any:
        if isinstance(v, ShardPlacement):
            return v.value
        if v not in {p.value for p in ShardPlacement}:
            raise ValueError("shard placement policy should be one of 'dense' or 'sparse'")
        return v

    def to_create_payload(self) -> dict[str, Any]:
        """Build the POST /v1/bdbs body, omitting unset optional fields."""
        payload: dict[str, Any] = {"name": self.name, "memory_size": self.memory_size}

        if self.type:
            payload["type"] = self.type
        if self.port is not None:
            payload["port"] = self.port
        if self.replication is not None:
            payload["replication"] = self.replication

        payload["sharding"] = self.sharding
        payload["shards_count"] = self.shard_count
        payload["shards_placement"] = self.shard_placement
        return payload

    def to_update_payload(self, fields: list[str]) -> dict[str, Any]:
        """Build a partial PUT /v1/bdbs/{uid} body carrying only ``fields``.

        Unset (None) fields are omitted rather than sent as null.
        """
        payload: dict[str, Any] = {}
        for name in fields:
            if name == "type":
                # Force-new; never sent in place
                continue
            value = getattr(self, name)
            if value is None:
                # Unset; the cluster keeps its current value
                continue
            payload[API_FIELD_NAMES.get(name, name)] = value
        return payload


class Database(BaseModel):
    """A bdb object as returned by the management API."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    uid: int
    name: str = ""
    type: str | None = None
    port: int | None = None
    memory_size: int = 0
    replication: bool | None = None
    sharding: bool = False
    shard_count: int = Field(1, alias="shards_count")
    shard_placement: str = Field(ShardPlacement.DENSE.value, alias="shards_placement")
    status: str = ""

    def to_spec(self) -> DatabaseSpec:
        """Project the remote representation onto the declared fields.

        Values the control plane reports outside the declared constraints are
        passed through unvalidated so drift stays visible instead of failing.
        """
        return DatabaseSpec.model_construct(
            name=self.name,
            type=self.type or None,
            port=self.port or None,
            memory_size=self.memory_size,
            replication=self.replication,
            sharding=self.sharding,
            shard_count=self.shard_count,
            shard_placement=self.shard_placement,
        )


# Declared field name -> management API field name
API_FIELD_NAMES: dict[str, str] = {
    "shard_count": "shards_count",
    "shard_placement": "shards_placement",
}
