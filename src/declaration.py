"""Mapping between the host framework's attribute map and GroupMembership."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError

import entities
import errors


def _to_list_if_str(v: Any) -> Any:  # noqa: ANN401
    return [v] if isinstance(v, str) else v


def from_attributes(attributes: Mapping[str, Any]) -> entities.GroupMembership:
    """Build a declaration from `name`, `group` and `users` attributes.

    Raises:
        InvalidDeclaration: If an attribute is missing or invalid, or users repeat.
    """
    missing = [key for key in ("name", "group") if key not in attributes]
    if missing:
        raise errors.InvalidDeclaration(f"missing required attributes: {missing}")

    users = _to_list_if_str(attributes.get("users", []))
    if users is None:
        users = []
    if isinstance(users, (set, frozenset)):
        # Unordered input gets a stable order.
        users = sorted(users, key=str)
    if not isinstance(users, (list, tuple)):
        raise errors.InvalidDeclaration(f"users must be a list or set of user names, got {type(users).__name__}")

    try:
        return entities.GroupMembership.model_validate(
            {
                "name": attributes["name"],
                "group": attributes["group"],
                "users": tuple(users),
            }
        )
    except ValidationError as e:
        raise errors.InvalidDeclaration(str(e)) from e


def to_attributes(membership: entities.GroupMembership) -> dict:
    return {
        "id": membership.name,
        "name": membership.name,
        "group": membership.group,
        "users": list(membership.users),
        "users_count": len(membership.users),
    }
