"""Identity and organizational hierarchy."""

from .directory import Directory, InMemoryDirectory, OrgUnit, User

__all__ = [
    "Directory",
    "InMemoryDirectory",
    "OrgUnit",
    "User",
]
