from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, Optional

import config

if TYPE_CHECKING:
    from membership_applier import MutationFailure


class MembershipError(Exception):
    ...


class InvalidDeclaration(MembershipError):
    ...


class NotFound(MembershipError):
    def __init__(self, group_name: str, operation: str = "get_group", member: Optional[str] = None) -> None:
        self.group_name = group_name
        self.operation = operation
        self.member = member
        target = f"group {group_name}" if member is None else f"group {group_name} or user {member}"
        super().__init__(f"{operation}: {target} not found")


class RemoteCallFailed(MembershipError):
    def __init__(
        self,
        group_name: str,
        operation: str,
        code: str,
        message: str,
        member: Optional[str] = None,
        retryable: bool = False,
    ) -> None:
        self.group_name = group_name
        self.operation = operation
        self.code = code
        self.member = member
        self.retryable = retryable
        on_member = f" for user {member}" if member is not None else ""
        super().__init__(f"{operation} on group {group_name}{on_member} failed ({code}): {message}")


class PaginationInconsistency(MembershipError):
    def __init__(self, group_name: str, reason: str) -> None:
        self.group_name = group_name
        self.reason = reason
        super().__init__(f"Inconsistent pagination while listing group {group_name}: {reason}")


class PartialApplyFailure(MembershipError):
    def __init__(self, group_name: str, failures: list[MutationFailure]) -> None:
        self.group_name = group_name
        self.failures = failures
        details = "; ".join(failure.describe() for failure in failures)
        super().__init__(f"{len(failures)} membership change(s) failed on group {group_name}: {details}")

    @property
    def failed_users(self) -> list[str]:
        return [failure.user_name for failure in self.failures]


class ConsistencyTimeout(MembershipError):
    def __init__(
        self,
        description: str,
        timeout_seconds: float,
        last_observed: Any = None,  # noqa: ANN401
        attempts: Optional[int] = None,
        elapsed_seconds: Optional[float] = None,
    ) -> None:
        self.description = description
        self.timeout_seconds = timeout_seconds
        self.last_observed = last_observed
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds
        spent = f"{attempts} attempt(s)" if attempts is not None else "retries"
        if elapsed_seconds is not None:
            spent += f" over {elapsed_seconds:.2f}s"
        super().__init__(f"Gave up waiting for {description} after {spent} (timeout {timeout_seconds}s)")


class DestroyVerificationFailed(MembershipError):
    def __init__(self, group_name: str) -> None:
        self.group_name = group_name
        super().__init__(f"Group {group_name} still exists after destroy")


logger = config.get_logger(service="errors")


def status_code_for(e: Exception) -> int:
    if isinstance(e, InvalidDeclaration):
        return 400
    if isinstance(e, NotFound):
        return 404
    return 500


def error_body(e: Exception) -> dict:
    body: dict[str, Any] = {"success": False, "error": str(e), "error_type": type(e).__name__}
    for attr in ("group_name", "operation", "member", "code"):
        value = getattr(e, attr, None)
        if value is not None:
            body[attr] = value
    if isinstance(e, PartialApplyFailure):
        body["failed_users"] = e.failed_users
    return body


def handle_errors(fn):  # noqa: ANN001, ANN201
    # Lambda handlers report reconciliation failures in the response instead of crashing the invocation,
    # anything outside the taxonomy is unexpected and propagates.
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
        try:
            return fn(*args, **kwargs)
        except MembershipError as e:
            logger.exception("Group membership request failed", extra={"error": error_body(e)})
            return {"statusCode": status_code_for(e), "body": error_body(e)}

    return wrapper
