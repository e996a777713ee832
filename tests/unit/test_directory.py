"""Tests for the in-memory identity/org directory."""

import pytest

from sitegate.core.errors import NotFound, PolicyError
from sitegate.core.org.directory import InMemoryDirectory, OrgUnit

from tests.factories import build_directory, create_user


class TestLookups:

    def test_get_user(self, directory):
        user = directory.get_user("pm1")
        assert user.role == "PROJECT_MANAGER"
        assert user.org_unit_id == "project-alpha"

    def test_unknown_user(self, directory):
        assert directory.find_user("ghost") is None
        with pytest.raises(NotFound):
            directory.get_user("ghost")

    def test_users_with_role_skips_inactive(self):
        retired = create_user(role="ZONE_MANAGER", org_unit_id="zone-2", active=False)
        directory = build_directory(users=[retired])
        assert directory.users_with_role("ZONE_MANAGER") == []

    def test_duplicates_rejected(self):
        directory = InMemoryDirectory(org_units=[OrgUnit("a", "AREA", "A")])
        with pytest.raises(PolicyError):
            directory.add_org_unit(OrgUnit("a", "AREA", "A again"))


class TestAncestry:

    def test_ancestors_nearest_first(self, directory):
        assert directory.ancestors("zone-1") == ["project-alpha", "area-west", "pmo"]
        assert directory.ancestors("pmo") == []

    def test_is_ancestor(self, directory):
        assert directory.is_ancestor("area-west", "zone-3")
        assert directory.is_ancestor("project-alpha", "zone-2")
        assert not directory.is_ancestor("project-beta", "zone-1")
        assert not directory.is_ancestor("zone-1", "zone-1")

    def test_subtree(self, directory):
        assert set(directory.subtree_ids("project-alpha")) == {"project-alpha", "zone-1", "zone-2"}

    def test_cycle_terminates(self):
        directory = InMemoryDirectory(org_units=[OrgUnit("a", "X", "A", "b"), OrgUnit("b", "X", "B", "a")])
        assert directory.ancestors("a") == ["b"]
