"""Pytest configuration and shared fixtures."""

import pytest

from sitegate.core.approval.policy import default_policy
from sitegate.core.approval.service import ApprovalWorkflowService
from sitegate.core.approval.store import InMemoryRequestStore

from tests.factories import FakeClock, build_directory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory():
    return build_directory()


@pytest.fixture
def policy():
    return default_policy()


@pytest.fixture
def store():
    return InMemoryRequestStore()


@pytest.fixture
def service(store, directory, policy, clock):
    return ApprovalWorkflowService(store, directory, policy, clock=clock)


@pytest.fixture
def sample_policy_config():
    """Sample threshold policy dictionary."""
    return {
        "hierarchy": [
            {
                "role": "FOREMAN",
                "org_level_threshold": 1000,
                "cross_org_threshold": 0,
                "escalation_threshold": 1000,
            },
            {
                "role": "SITE_MANAGER",
                "org_level_threshold": "20,000",
                "cross_org_threshold": 5000,
            },
            {
                "role": "DIRECTOR",
                "org_level_threshold": "unlimited",
                "cross_org_threshold": None,
                "escalation_threshold": "unlimited",
            },
        ],
    }


@pytest.fixture
def sample_directory_config():
    """Sample directory dictionary."""
    return {
        "org_units": [
            {"id": "hq", "type": "PMO", "name": "Head Office"},
            {"id": "site-a", "type": "ZONE", "name": "Site A", "parent_id": "hq"},
        ],
        "users": [
            {"id": "d1", "name": "Dina", "role": "DIRECTOR", "org_unit_id": "hq"},
            {"id": "s1", "name": "Sami", "role": "SITE_MANAGER", "org_unit_id": "site-a"},
            {"id": "f1", "name": "Fadi", "role": "FOREMAN", "org_unit_id": "site-a"},
            {"id": "f2", "name": "Old Fadi", "role": "FOREMAN", "org_unit_id": "site-a", "active": False},
        ],
    }
