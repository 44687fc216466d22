from pydantic import field_validator

from .model import BaseModel


class GroupMembership(BaseModel):
    """Declared membership of a single IAM group.

    Attributes:
        name: Caller-chosen name of the declaration, not meaningful to IAM.
        group: Name of the target IAM group.
        users: User names that should be members. Unique, order kept as declared.
    """

    name: str
    group: str
    users: tuple[str, ...] = ()

    @field_validator("name", "group")
    @classmethod
    def not_empty(cls, v: str) -> str:  # noqa: ANN102
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("users")
    @classmethod
    def unique_users(cls, v: tuple[str, ...]) -> tuple[str, ...]:  # noqa: ANN102
        seen: set[str] = set()
        duplicates: set[str] = set()
        for user in v:
            if user in seen:
                duplicates.add(user)
            seen.add(user)
        if duplicates:
            raise ValueError(f"duplicate users: {sorted(duplicates)}")
        if any(not user for user in v):
            raise ValueError("user names must not be empty")
        return v

    @property
    def user_set(self) -> frozenset[str]:
        return frozenset(self.users)


class RemoteGroup(BaseModel):
    """Snapshot of a group's membership as listed by IAM, all pages concatenated."""

    name: str
    members: tuple[str, ...] = ()

    @property
    def member_set(self) -> frozenset[str]:
        return frozenset(self.members)


class MembershipDiff(BaseModel):
    additions: frozenset[str] = frozenset()
    removals: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.additions and not self.removals
