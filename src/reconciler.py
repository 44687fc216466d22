"""Reconciles one declared group membership against IAM.

Create and Update converge the group to exactly the declared users, Read projects the remote
membership back into the declaration's shape, Delete removes the declared users from the group
and leaves the group and the users themselves in place.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import config
import entities
import errors
import iam
import membership_state
from membership_applier import ApplyResult, MembershipApplier
from retries import RetryPolicy

if TYPE_CHECKING:
    from mypy_boto3_iam import IAMClient

logger = config.get_logger(service="reconciler")


class ReconcileState(enum.Enum):
    Reconciled = "reconciled"
    Destroyed = "destroyed"


@dataclass(frozen=True)
class ReconcileOutcome:
    state: ReconcileState
    diff: entities.MembershipDiff
    applied: ApplyResult
    observed: Optional[entities.GroupMembership] = None


class Reconciler:
    def __init__(
        self,
        client: IAMClient,
        page_size: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        convergence_timeout_seconds: float = 60,
        destroy_verification_timeout_seconds: float = 60,
        max_workers: int = 1,
    ) -> None:
        self._client = client
        self._page_size = page_size
        self._retry_policy = retry_policy or RetryPolicy()
        self._convergence_policy = self._retry_policy.with_timeout(convergence_timeout_seconds)
        self._destroy_policy = self._retry_policy.with_timeout(destroy_verification_timeout_seconds)
        self._applier = MembershipApplier(client, retry_policy=self._retry_policy, max_workers=max_workers)

    @staticmethod
    def from_config(client: IAMClient, cfg: config.Config) -> Reconciler:
        return Reconciler(
            client,
            page_size=cfg.page_size,
            retry_policy=RetryPolicy.from_config(cfg),
            convergence_timeout_seconds=cfg.convergence_timeout_seconds,
            destroy_verification_timeout_seconds=cfg.destroy_verification_timeout_seconds,
            max_workers=cfg.apply_max_workers,
        )

    def _read_group(self, group_name: str) -> entities.RemoteGroup:
        return self._retry_policy.call(lambda: iam.read_group_members(self._client, group_name, self._page_size))

    def _project(self, declaration: entities.GroupMembership, group: entities.RemoteGroup) -> entities.GroupMembership:
        return entities.GroupMembership(
            name=declaration.name,
            group=group.name,
            users=membership_state.project_members(declaration.users, group.members),
        )

    def create(self, declaration: entities.GroupMembership) -> ReconcileOutcome:
        logger.info("Creating group membership", extra={"declaration": declaration})
        return self._converge(declaration)

    def update(self, previous: Optional[entities.GroupMembership], declaration: entities.GroupMembership) -> ReconcileOutcome:
        logger.info("Updating group membership", extra={"previous": previous, "declaration": declaration})
        if previous is not None and previous.group != declaration.group:
            logger.info(
                "Group changed, removing previous membership",
                extra={"previous_group": previous.group, "group": declaration.group},
            )
            self.delete(previous)
        return self._converge(declaration)

    def _converge(self, declaration: entities.GroupMembership) -> ReconcileOutcome:
        current = self._read_group(declaration.group)
        diff = membership_state.compute_diff(declaration.users, current.members)
        logger.info(
            "Computed membership diff",
            extra={"group_name": declaration.group, "additions": diff.additions, "removals": diff.removals},
        )
        applied = self._applier.apply(declaration.group, diff)
        applied.raise_for_failures()

        if diff.is_empty:
            observed = current
        else:
            observed = self._convergence_policy.wait_until(
                lambda: iam.read_group_members(self._client, declaration.group, self._page_size),
                condition=lambda group: membership_state.is_applied(diff, group),
                description=f"membership changes to show up in group {declaration.group}",
            )
        logger.info("Group membership reconciled", extra={"group_name": declaration.group, "members": len(observed.members)})
        return ReconcileOutcome(
            state=ReconcileState.Reconciled,
            diff=diff,
            applied=applied,
            observed=self._project(declaration, observed),
        )

    def read(self, declaration: entities.GroupMembership) -> Optional[entities.GroupMembership]:
        """Observed membership in the declaration's shape, or None when the group is gone."""
        try:
            group = self._read_group(declaration.group)
        except errors.NotFound:
            logger.warning("Group not found, membership is gone", extra={"group_name": declaration.group})
            return None
        return self._project(declaration, group)

    def delete(self, declaration: entities.GroupMembership) -> ReconcileOutcome:
        """Remove the declared users that are still members. The group and the users are kept."""
        logger.info("Deleting group membership", extra={"declaration": declaration})
        try:
            current = self._read_group(declaration.group)
        except errors.NotFound:
            logger.info("Group already gone, nothing to remove", extra={"group_name": declaration.group})
            return ReconcileOutcome(
                state=ReconcileState.Destroyed,
                diff=entities.MembershipDiff(),
                applied=ApplyResult(group_name=declaration.group),
            )

        declared = declaration.user_set
        managed = [member for member in current.members if member in declared]
        diff = membership_state.compute_diff((), managed)
        applied = self._applier.apply(declaration.group, diff)
        applied.raise_for_failures()

        if not diff.is_empty:
            self._convergence_policy.wait_until(
                lambda: self._read_group_or_empty(declaration.group),
                condition=lambda group: not (group.member_set & declared),
                description=f"declared users to leave group {declaration.group}",
            )
        logger.info("Group membership deleted", extra={"group_name": declaration.group, "removed": len(diff.removals)})
        return ReconcileOutcome(state=ReconcileState.Destroyed, diff=diff, applied=applied)

    def _read_group_or_empty(self, group_name: str) -> entities.RemoteGroup:
        try:
            return iam.read_group_members(self._client, group_name, self._page_size)
        except errors.NotFound:
            return entities.RemoteGroup(name=group_name)

    def verify_destroyed(self, group_name: str) -> None:
        """Succeed only once the group reports NotFound.

        Raises:
            DestroyVerificationFailed: If the group still exists when the verification timeout runs out.
        """
        try:
            self._destroy_policy.wait_until(
                lambda: iam.check_group_exists(self._client, group_name),
                condition=lambda existence: existence == iam.GroupExistence.NotFound,
                description=f"group {group_name} to be destroyed",
            )
        except errors.ConsistencyTimeout as e:
            raise errors.DestroyVerificationFailed(group_name) from e
        logger.info("Group destroyed", extra={"group_name": group_name})

    def verify_exists(self, group_name: str) -> None:
        existence = self._retry_policy.call(lambda: iam.check_group_exists(self._client, group_name))
        if existence == iam.GroupExistence.NotFound:
            raise errors.NotFound(group_name)
