"""Apply a membership diff to an IAM group, one call per user."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Literal

import config
import entities
import errors
import iam
from retries import RetryPolicy

if TYPE_CHECKING:
    from mypy_boto3_iam import IAMClient

logger = config.get_logger(service="membership_applier")

Operation = Literal["add", "remove"]
Outcome = Literal["applied", "already_satisfied", "failed"]


@dataclass(frozen=True)
class MutationFailure:
    operation: Operation
    user_name: str
    error: Exception

    def describe(self) -> str:
        return f"{self.operation} {self.user_name}: {self.error}"


@dataclass
class ApplyResult:
    """What a single apply pass achieved. Applied changes stay in effect even when others failed."""

    group_name: str
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    already_satisfied: list[str] = field(default_factory=list)
    failures: list[MutationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise errors.PartialApplyFailure(self.group_name, list(self.failures))


def _is_tolerated(operation: Operation, e: errors.MembershipError) -> bool:
    # The listing the diff came from can be stale, so the change may already be in place.
    if operation == "remove":
        return isinstance(e, errors.NotFound)
    return isinstance(e, errors.RemoteCallFailed) and e.code == iam.ENTITY_ALREADY_EXISTS


class MembershipApplier:
    def __init__(self, client: IAMClient, retry_policy: RetryPolicy | None = None, max_workers: int = 1) -> None:
        self._client = client
        self._retry_policy = retry_policy or RetryPolicy()
        self._max_workers = max_workers

    def apply(self, group_name: str, diff: entities.MembershipDiff) -> ApplyResult:
        """Issue one remove call per removal and one add call per addition.

        Every change is attempted even if earlier ones fail; failures are collected in the result.
        """
        result = ApplyResult(group_name=group_name)
        if diff.is_empty:
            logger.info("Group membership already up to date", extra={"group_name": group_name})
            return result

        tasks: list[tuple[Operation, str]] = [("remove", user) for user in sorted(diff.removals)]
        tasks += [("add", user) for user in sorted(diff.additions)]
        logger.info(
            "Applying group membership changes",
            extra={"group_name": group_name, "additions": len(diff.additions), "removals": len(diff.removals)},
        )

        if self._max_workers > 1 and len(tasks) > 1:
            with ThreadPoolExecutor(max_workers=min(self._max_workers, len(tasks))) as executor:
                outcomes = list(executor.map(lambda task: self._apply_one(group_name, *task), tasks))
        else:
            outcomes = [self._apply_one(group_name, *task) for task in tasks]

        for (operation, user_name), (outcome, error) in zip(tasks, outcomes):
            if outcome == "failed":
                result.failures.append(MutationFailure(operation=operation, user_name=user_name, error=error))  # type: ignore[arg-type]
            elif outcome == "already_satisfied":
                result.already_satisfied.append(user_name)
            elif operation == "add":
                result.added.append(user_name)
            else:
                result.removed.append(user_name)

        logger.info(
            "Group membership changes applied",
            extra={
                "group_name": group_name,
                "added": result.added,
                "removed": result.removed,
                "already_satisfied": result.already_satisfied,
                "failed": [failure.user_name for failure in result.failures],
            },
        )
        return result

    def _apply_one(self, group_name: str, operation: Operation, user_name: str) -> tuple[Outcome, Exception | None]:
        call: Callable[[IAMClient, str, str], None] = iam.add_user_to_group if operation == "add" else iam.remove_user_from_group
        try:
            self._retry_policy.call(lambda: call(self._client, group_name, user_name))
        except errors.MembershipError as e:
            if _is_tolerated(operation, e):
                logger.info(
                    "Membership change already in place",
                    extra={"group_name": group_name, "user_name": user_name, "operation": operation},
                )
                return "already_satisfied", None
            logger.error(
                "Membership change failed",
                extra={"group_name": group_name, "user_name": user_name, "operation": operation, "error": e},
            )
            return "failed", e
        return "applied", None
