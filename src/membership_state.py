"""Desired vs. actual group membership."""

from __future__ import annotations

from typing import Iterable

import entities


def compute_diff(desired: Iterable[str], actual: Iterable[str]) -> entities.MembershipDiff:
    """Compute the changes that turn actual membership into desired membership.

    additions = desired - actual, removals = actual - desired. The two sets are disjoint and
    both empty when desired equals actual.
    """
    desired_set = frozenset(desired)
    actual_set = frozenset(actual)
    return entities.MembershipDiff(
        additions=desired_set - actual_set,
        removals=actual_set - desired_set,
    )


def project_members(declared: Iterable[str], observed: Iterable[str]) -> tuple[str, ...]:
    """Order observed members like the declaration, undeclared ones after in listing order."""
    observed = tuple(observed)
    observed_set = frozenset(observed)
    declared = tuple(declared)
    declared_set = frozenset(declared)
    return tuple(user for user in declared if user in observed_set) + tuple(user for user in observed if user not in declared_set)


def is_applied(diff: entities.MembershipDiff, group: entities.RemoteGroup) -> bool:
    """True once every addition is listed and no removal is. Members added elsewhere meanwhile are ignored."""
    return diff.additions <= group.member_set and not (diff.removals & group.member_set)
