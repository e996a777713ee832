"""Configuration file loading for SiteGate.

Handles loading and validation of the YAML files that define the
threshold policy and the identity/org directory.

Policy file::

    hierarchy:
      - role: SITE_ENGINEER
        org_level_threshold: 5000
        cross_org_threshold: 0
        escalation_threshold: 5000
      - role: PMO
        org_level_threshold: unlimited
        ...

Directory file::

    org_units:
      - {id: pmo, type: PMO, name: PMO}
      - {id: area-west, type: AREA, name: West, parent_id: pmo}
    users:
      - {id: u1, name: Salem, role: PMO, org_unit_id: pmo}
"""

import math
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

from sitegate.core.approval.policy import ApprovalThreshold, ThresholdPolicy, default_policy
from sitegate.core.errors import PolicyError
from sitegate.core.org.directory import InMemoryDirectory, OrgUnit, User

UNLIMITED_VALUES = {"unlimited", "inf", "infinity"}
REQUIRED_THRESHOLD_KEYS = ("org_level_threshold", "cross_org_threshold")


def parse_amount(value: Any) -> float:
    """Parse a threshold amount; ``unlimited`` or null mean no limit."""
    if value is None:
        return math.inf
    if isinstance(value, str):
        if value.strip().lower() in UNLIMITED_VALUES:
            return math.inf
        try:
            return float(value.replace(",", "").replace("_", ""))
        except ValueError:
            raise PolicyError(f"Invalid threshold amount: {value!r}") from None
    return float(value)


def parse_threshold(threshold_dict: Dict[str, Any]) -> ApprovalThreshold:
    """Parse one ladder entry.

    Args:
        threshold_dict: Entry with ``role`` and the three thresholds

    Returns:
        ApprovalThreshold instance
    """
    if "role" not in threshold_dict:
        raise PolicyError(f"Threshold entry is missing a role: {threshold_dict}")

    # Only an explicit null or "unlimited" means no limit; a missing key is an error.
    for key in REQUIRED_THRESHOLD_KEYS:
        if key not in threshold_dict:
            raise PolicyError(f"Threshold entry for {threshold_dict['role']} is missing {key}")

    org_level = threshold_dict["org_level_threshold"]
    return ApprovalThreshold(
        role=threshold_dict["role"],
        org_level_threshold=parse_amount(org_level),
        cross_org_threshold=parse_amount(threshold_dict["cross_org_threshold"]),
        escalation_threshold=parse_amount(threshold_dict.get("escalation_threshold", org_level)),
    )


def parse_policy_config(config_dict: Dict[str, Any]) -> ThresholdPolicy:
    """Parse the policy configuration dictionary.

    An empty dictionary yields the default policy.

    Args:
        config_dict: Policy configuration dictionary

    Returns:
        ThresholdPolicy instance
    """
    entries = config_dict.get("hierarchy") or []
    if not entries:
        return default_policy()

    thresholds = [parse_threshold(entry) for entry in entries]
    return ThresholdPolicy(
        hierarchy=[t.role for t in thresholds],
        thresholds={t.role: t for t in thresholds},
    )


def parse_directory_config(config_dict: Dict[str, Any]) -> InMemoryDirectory:
    """Parse the directory configuration dictionary.

    Args:
        config_dict: Directory configuration with ``org_units`` and ``users``

    Returns:
        InMemoryDirectory instance
    """
    units: List[OrgUnit] = []
    for unit_dict in config_dict.get("org_units", []):
        units.append(
            OrgUnit(
                id=str(unit_dict["id"]),
                type=unit_dict.get("type", ""),
                name=unit_dict.get("name", str(unit_dict["id"])),
                parent_id=unit_dict.get("parent_id"),
            )
        )

    users: List[User] = []
    for user_dict in config_dict.get("users", []):
        users.append(
            User(
                id=str(user_dict["id"]),
                name=user_dict.get("name", str(user_dict["id"])),
                role=user_dict["role"],
                org_unit_id=str(user_dict["org_unit_id"]),
                active=user_dict.get("active", True),
            )
        )

    return InMemoryDirectory(users=users, org_units=units)


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid YAML
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_policy(config_path: str) -> ThresholdPolicy:
    """Load and parse a threshold policy file."""
    return parse_policy_config(load_config(config_path))


def load_directory(config_path: str) -> InMemoryDirectory:
    """Load and parse a directory file."""
    return parse_directory_config(load_config(config_path))
