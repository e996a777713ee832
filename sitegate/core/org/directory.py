"""Identity and organizational directory.

The engine only reads from the directory: user lookup, org-unit parents and
role membership. ``InMemoryDirectory`` is the reference implementation;
anything satisfying the ``Directory`` protocol can be plugged in.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Set

from sitegate.core.errors import NotFound, PolicyError


@dataclass(frozen=True)
class OrgUnit:
    """Node in the organizational tree (PMO, area, project, zone)."""

    id: str
    type: str
    name: str
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class User:
    id: str
    name: str
    role: str
    org_unit_id: str
    active: bool = True


class Directory(Protocol):
    """What the engine needs from an identity/org service."""

    def get_user(self, user_id: str) -> User: ...

    def find_user(self, user_id: str) -> Optional[User]: ...

    def get_parent(self, org_unit_id: str) -> Optional[str]: ...

    def users_with_role(self, role: str) -> List[User]: ...

    def is_ancestor(self, ancestor_id: str, unit_id: str) -> bool: ...


class InMemoryDirectory:
    """Directory backed by in-process user and org-unit lists."""

    def __init__(self, users: Iterable[User] = (), org_units: Iterable[OrgUnit] = ()):
        self._users: Dict[str, User] = {}
        self._units: Dict[str, OrgUnit] = {}
        self._children: Dict[str, List[str]] = {}
        for unit in org_units:
            self.add_org_unit(unit)
        for user in users:
            self.add_user(user)

    def add_org_unit(self, unit: OrgUnit) -> None:
        if unit.id in self._units:
            raise PolicyError(f"Duplicate org unit {unit.id}")
        self._units[unit.id] = unit
        if unit.parent_id:
            self._children.setdefault(unit.parent_id, []).append(unit.id)

    def add_user(self, user: User) -> None:
        if user.id in self._users:
            raise PolicyError(f"Duplicate user {user.id}")
        self._users[user.id] = user

    @property
    def users(self) -> List[User]:
        return list(self._users.values())

    @property
    def org_units(self) -> List[OrgUnit]:
        return list(self._units.values())

    def get_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFound("User", user_id)
        return user

    def find_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_org_unit(self, org_unit_id: str) -> Optional[OrgUnit]:
        return self._units.get(org_unit_id)

    def get_parent(self, org_unit_id: str) -> Optional[str]:
        unit = self._units.get(org_unit_id)
        return unit.parent_id if unit else None

    def users_with_role(self, role: str) -> List[User]:
        """Active users holding ``role``, in registration order."""
        return [u for u in self._users.values() if u.role == role and u.active]

    def ancestors(self, org_unit_id: str) -> List[str]:
        """Ancestor unit ids, nearest parent first."""
        result: List[str] = []
        seen: Set[str] = {org_unit_id}
        parent = self.get_parent(org_unit_id)
        while parent and parent not in seen:
            result.append(parent)
            seen.add(parent)
            parent = self.get_parent(parent)
        return result

    def is_ancestor(self, ancestor_id: str, unit_id: str) -> bool:
        """True if ``ancestor_id`` is a strict ancestor of ``unit_id``."""
        return ancestor_id in self.ancestors(unit_id)

    def subtree_ids(self, org_unit_id: str) -> List[str]:
        """The unit itself followed by all of its descendants."""
        result = [org_unit_id]
        stack = [org_unit_id]
        while stack:
            for child in self._children.get(stack.pop(), []):
                if child not in result:
                    result.append(child)
                    stack.append(child)
        return result
