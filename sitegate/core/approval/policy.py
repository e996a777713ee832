"""Financial threshold policy and role hierarchy.

The role ladder is a total order, lowest authority first. Each role on
the ladder carries an ``ApprovalThreshold``. Amounts are in LYD.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sitegate.core.errors import PolicyError

UNLIMITED = math.inf


@dataclass(frozen=True)
class ApprovalThreshold:
    """Amounts a role may approve.

    ``org_level_threshold`` applies to requests raised inside the approver's
    own org subtree, ``cross_org_threshold`` to requests from elsewhere.
    """

    role: str
    org_level_threshold: float
    cross_org_threshold: float
    escalation_threshold: float

    def limit_for(self, within_subtree: bool) -> float:
        return self.org_level_threshold if within_subtree else self.cross_org_threshold


@dataclass
class ThresholdPolicy:
    """Ordered role ladder plus per-role thresholds."""

    hierarchy: List[str]
    thresholds: Dict[str, ApprovalThreshold] = field(default_factory=dict)

    def __post_init__(self):
        if not self.hierarchy:
            raise PolicyError("Role hierarchy must not be empty")
        if len(set(self.hierarchy)) != len(self.hierarchy):
            raise PolicyError(f"Role hierarchy has duplicate roles: {self.hierarchy}")
        missing = [role for role in self.hierarchy if role not in self.thresholds]
        if missing:
            raise PolicyError(f"No threshold defined for roles: {', '.join(missing)}")

    @property
    def top_role(self) -> str:
        return self.hierarchy[-1]

    def is_top(self, role: str) -> bool:
        return role == self.top_role

    def rank(self, role: str) -> Optional[int]:
        """Position of a role on the ladder, or None if it is not on it."""
        try:
            return self.hierarchy.index(role)
        except ValueError:
            return None

    def supervisor_role(self, role: str) -> Optional[str]:
        """Role one level above ``role``; None at the top or off the ladder."""
        rank = self.rank(role)
        if rank is None or rank == len(self.hierarchy) - 1:
            return None
        return self.hierarchy[rank + 1]

    def threshold_for(self, role: str) -> ApprovalThreshold:
        try:
            return self.thresholds[role]
        except KeyError:
            raise PolicyError(f"Role {role} has no approval threshold") from None

    def can_approve(self, role: str, amount: float, within_subtree: bool) -> bool:
        return amount <= self.threshold_for(role).limit_for(within_subtree)


def build_policy(rows: Sequence[tuple]) -> ThresholdPolicy:
    """Build a policy from ``(role, org_level, cross_org, escalation)`` rows.

    Row order defines the ladder, lowest authority first.
    """
    thresholds = {row[0]: ApprovalThreshold(*row) for row in rows}
    return ThresholdPolicy(hierarchy=[row[0] for row in rows], thresholds=thresholds)


DEFAULT_THRESHOLDS = [
    ("SITE_ENGINEER", 5_000, 0, 5_000),
    ("ZONE_MANAGER", 25_000, 10_000, 25_000),
    ("PROJECT_MANAGER", 100_000, 50_000, 100_000),
    ("AREA_MANAGER", 500_000, 250_000, 500_000),
    ("PMO", UNLIMITED, UNLIMITED, UNLIMITED),
]


def default_policy() -> ThresholdPolicy:
    """Standard construction-company ladder: site → zone → project → area → PMO."""
    return build_policy(DEFAULT_THRESHOLDS)
