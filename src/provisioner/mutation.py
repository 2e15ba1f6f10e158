"""Plan-time mutation safety rules.

Before any API call, every watched field whose value changes is run through
the rule table. A rule returns one of three decisions:

- ALLOW: the change can be applied in place
- FORCE_REPLACE: the database must be destroyed and recreated
- REJECT: the change is not possible at all; planning stops

Rules are keyed by field name so the policy can change without touching the
reconciler. The "sharded" policy is the default; "flat" keeps only the
static force-new fields.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import PlanValidationError
from .models import TRACKED_FIELDS, DatabaseSpec

logger = logging.getLogger(__name__)


class MutationAction(str, Enum):
    """What to do about a single field change."""

    ALLOW = "allow"
    FORCE_REPLACE = "force_replace"
    REJECT = "reject"


@dataclass(frozen=True)
class MutationDecision:
    """Decision for one changed field."""

    field: str
    action: MutationAction
    reason: str = ""
    old: Any = None
    new: Any = None

    @classmethod
    def allow(cls, name: str, old: Any = None, new: Any = None) -> MutationDecision:
        return cls(name, MutationAction.ALLOW, old=old, new=new)

    @classmethod
    def force_replace(cls, name: str, reason: str, old: Any = None, new: Any = None) -> MutationDecision:
        return cls(name, MutationAction.FORCE_REPLACE, reason, old, new)

    @classmethod
    def reject(cls, name: str, reason: str, old: Any = None, new: Any = None) -> MutationDecision:
        return cls(name, MutationAction.REJECT, reason, old, new)


# A rule inspects (old, new) for one field. None means "no opinion".
MutationRule = Callable[[str, Any, Any], "MutationDecision | None"]


def sharding_rule(name: str, old: Any, new: Any) -> MutationDecision | None:
    """Sharding can be enabled in place but never disabled."""
    if old is True and new is False:
        return MutationDecision.force_replace(
            name, "sharding cannot be disabled in place", old, new
        )
    return None


def shard_count_decrease_rule(name: str, old: Any, new: Any) -> MutationDecision | None:
    """The shard count cannot shrink in place."""
    if isinstance(old, int) and isinstance(new, int) and new < old:
        return MutationDecision.force_replace(
            name, f"shard count cannot be decreased in place ({old} -> {new})", old, new
        )
    return None


def shard_count_multiple_rule(name: str, old: Any, new: Any) -> MutationDecision | None:
    """Resharding only multiplies the existing shard count."""
    if not isinstance(old, int) or not isinstance(new, int):
        return None
    if old <= 0:
        # Not yet set, nothing to constrain against
        return None
    if new <= old:
        return None
    if new % old != 0:
        return MutationDecision.reject(
            name, f"new shard count must be a multiple of the old value: {old}", old, new
        )
    return None


# Fields that can never change in place, whatever the policy
FORCE_NEW_FIELDS: frozenset[str] = frozenset({"type"})

SHARDED_RULES: dict[str, list[MutationRule]] = {
    "sharding": [sharding_rule],
    "shard_count": [shard_count_decrease_rule, shard_count_multiple_rule],
}

MUTATION_POLICIES: dict[str, dict[str, list[MutationRule]]] = {
    "sharded": SHARDED_RULES,
    "flat": {},
}


@dataclass
class MutationPlan:
    """Per-field decisions for one proposed change set."""

    decisions: list[MutationDecision] = field(default_factory=list)

    @property
    def changed_fields(self) -> list[str]:
        return [d.field for d in self.decisions]

    @property
    def requires_replacement(self) -> bool:
        return any(d.action == MutationAction.FORCE_REPLACE for d in self.decisions)

    @property
    def rejections(self) -> list[MutationDecision]:
        return [d for d in self.decisions if d.action == MutationAction.REJECT]

    @property
    def has_changes(self) -> bool:
        return bool(self.decisions)

    def decision_for(self, name: str) -> MutationDecision | None:
        for decision in self.decisions:
            if decision.field == name:
                return decision
        return None


class MutationValidator:
    """Applies a rule table to proposed field transitions."""

    def __init__(
        self,
        rules: Mapping[str, list[MutationRule]] | None = None,
        force_new_fields: frozenset[str] = FORCE_NEW_FIELDS,
    ) -> None:
        self._rules = dict(SHARDED_RULES if rules is None else rules)
        self._force_new_fields = force_new_fields

    @classmethod
    def for_policy(cls, policy: str) -> MutationValidator:
        try:
            rules = MUTATION_POLICIES[policy]
        except KeyError as e:
            raise ValueError(
                f"Unknown mutation policy '{policy}'. Valid policies: {list(MUTATION_POLICIES)}"
            ) from e
        return cls(rules)

    @property
    def watched_fields(self) -> frozenset[str]:
        return frozenset(self._rules) | self._force_new_fields

    def evaluate(self, name: str, old: Any, new: Any) -> MutationDecision:
        """Decide a single field transition.

        The first rule with an opinion wins; rules are ordered so that
        force-replacement outranks rejection for the same field.
        """
        if old == new:
            return MutationDecision.allow(name, old, new)

        if name in self._force_new_fields:
            return MutationDecision.force_replace(
                name, f"{name} cannot be changed after creation", old, new
            )

        for rule in self._rules.get(name, []):
            decision = rule(name, old, new)
            if decision is not None:
                return decision

        return MutationDecision.allow(name, old, new)

    def plan(self, prior: DatabaseSpec | None, desired: DatabaseSpec) -> MutationPlan:
        """Evaluate every changed field between ``prior`` and ``desired``.

        A missing prior (nothing created yet) yields an empty plan. Fields left
        unset in ``desired`` are not changes.

        Raises:
            PlanValidationError: If any change is rejected.
        """
        plan = MutationPlan()
        if prior is None:
            return plan

        for name in TRACKED_FIELDS:
            old = getattr(prior, name)
            new = getattr(desired, name)
            if new is None or old == new:
                continue
            if name in self.watched_fields:
                decision = self.evaluate(name, old, new)
            else:
                decision = MutationDecision.allow(name, old, new)
            plan.decisions.append(decision)

        rejections = plan.rejections
        if rejections:
            logger.warning(
                "Planned change rejected",
                extra={"fields": [d.field for d in rejections]},
            )
            raise PlanValidationError([d.reason for d in rejections])

        if plan.requires_replacement:
            logger.info(
                "Planned change requires replacement",
                extra={
                    "fields": [
                        d.field for d in plan.decisions if d.action == MutationAction.FORCE_REPLACE
                    ]
                },
            )

        return plan
