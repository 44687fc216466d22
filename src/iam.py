from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generator, Optional

from botocore.exceptions import BotoCoreError, ClientError, PaginationError

import config
import entities
import errors

if TYPE_CHECKING:
    from mypy_boto3_iam import IAMClient
    from mypy_boto3_iam import type_defs

logger = config.get_logger(service="iam")

NO_SUCH_ENTITY = "NoSuchEntity"
ENTITY_ALREADY_EXISTS = "EntityAlreadyExists"

RETRYABLE_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "ServiceFailure",
        "ServiceUnavailable",
        "InternalFailure",
        "InternalError",
        "RequestTimeout",
        "RequestTimeoutException",
        "ConcurrentModification",
    }
)


def error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def translate_error(
    e: Exception,
    group_name: str,
    operation: str,
    member: Optional[str] = None,
) -> errors.MembershipError:
    """Map a botocore failure onto the membership error taxonomy.

    NoSuchEntity becomes NotFound, everything else RemoteCallFailed. Throttling, service-side
    and connection-level failures are flagged retryable.
    """
    if isinstance(e, ClientError):
        code = error_code(e)
        if code == NO_SUCH_ENTITY:
            return errors.NotFound(group_name, operation=operation, member=member)
        return errors.RemoteCallFailed(
            group_name,
            operation,
            code=code or "Unknown",
            message=e.response.get("Error", {}).get("Message", str(e)),
            member=member,
            retryable=code in RETRYABLE_ERROR_CODES,
        )
    return errors.RemoteCallFailed(
        group_name,
        operation,
        code=type(e).__name__,
        message=str(e),
        member=member,
        retryable=True,
    )


@dataclass(frozen=True)
class GroupPage:
    group_name: str
    members: tuple[str, ...]
    is_truncated: bool
    marker: Optional[str]

    @staticmethod
    def from_type_def(td: type_defs.GetGroupResponseTypeDef) -> GroupPage:
        return GroupPage(
            group_name=td["Group"]["GroupName"],
            members=tuple(user["UserName"] for user in td.get("Users", [])),
            is_truncated=td.get("IsTruncated", False),
            marker=td.get("Marker") or None,
        )


def get_group_page(
    client: IAMClient,
    group_name: str,
    marker: Optional[str] = None,
    max_items: Optional[int] = None,
) -> GroupPage:
    kwargs: dict = {"GroupName": group_name}
    if marker is not None:
        kwargs["Marker"] = marker
    if max_items is not None:
        kwargs["MaxItems"] = max_items
    try:
        response = client.get_group(**kwargs)
    except (ClientError, BotoCoreError) as e:
        raise translate_error(e, group_name, "get_group") from e
    return GroupPage.from_type_def(response)


def iter_group_pages(client: IAMClient, group_name: str, page_size: Optional[int] = None) -> Generator[GroupPage, None, None]:
    """Yield every page of a group listing from the get_group paginator.

    The paginator follows markers until a page is no longer truncated. A page holding exactly
    page_size members is not assumed to be the last one.

    Raises:
        PaginationInconsistency: If a truncated page carries no marker or a marker repeats.
    """
    pagination_config = {"PageSize": page_size} if page_size is not None else {}
    paginator = client.get_paginator("get_group")
    seen_markers: set[str] = set()
    try:
        for response in paginator.paginate(GroupName=group_name, PaginationConfig=pagination_config):
            page = GroupPage.from_type_def(response)
            if page.is_truncated and page.marker is None:
                raise errors.PaginationInconsistency(group_name, "truncated page returned no marker")
            if page.marker is not None:
                if page.marker in seen_markers:
                    raise errors.PaginationInconsistency(group_name, f"marker {page.marker!r} returned twice")
                seen_markers.add(page.marker)
            yield page
    except PaginationError as e:
        raise errors.PaginationInconsistency(group_name, str(e)) from e
    except (ClientError, BotoCoreError) as e:
        raise translate_error(e, group_name, "get_group") from e


def read_group_members(client: IAMClient, group_name: str, page_size: Optional[int] = None) -> entities.RemoteGroup:
    """Read the complete membership of a group across all pages.

    Args:
        client: IAM client.
        group_name: Name of the group.
        page_size: MaxItems for each GetGroup call, IAM's default when None.

    Returns:
        RemoteGroup: The group with every member, in listing order.

    Raises:
        NotFound: If the group does not exist.
        RemoteCallFailed: On any other API or transport failure.
        PaginationInconsistency: If the listing loops or repeats a member.
    """
    if not group_name:
        raise errors.InvalidDeclaration("group name must not be empty")

    members: list[str] = []
    seen: set[str] = set()
    pages = 0
    for page in iter_group_pages(client, group_name, page_size):
        pages += 1
        for member in page.members:
            if member in seen:
                raise errors.PaginationInconsistency(group_name, f"user {member!r} listed more than once")
            seen.add(member)
            members.append(member)

    logger.info("Got group membership", extra={"group_name": group_name, "members": len(members), "pages": pages})
    return entities.RemoteGroup(name=group_name, members=tuple(members))


def add_user_to_group(client: IAMClient, group_name: str, user_name: str) -> None:
    try:
        client.add_user_to_group(GroupName=group_name, UserName=user_name)
    except (ClientError, BotoCoreError) as e:
        raise translate_error(e, group_name, "add_user_to_group", member=user_name) from e
    logger.info("User added to the group", extra={"group_name": group_name, "user_name": user_name})


def remove_user_from_group(client: IAMClient, group_name: str, user_name: str) -> None:
    try:
        client.remove_user_from_group(GroupName=group_name, UserName=user_name)
    except (ClientError, BotoCoreError) as e:
        raise translate_error(e, group_name, "remove_user_from_group", member=user_name) from e
    logger.info("User removed from the group", extra={"group_name": group_name, "user_name": user_name})


class GroupExistence(enum.Enum):
    Exists = "exists"
    NotFound = "not_found"


def check_group_exists(client: IAMClient, group_name: str) -> GroupExistence:
    """Only NoSuchEntity counts as NotFound; any other failure propagates as RemoteCallFailed."""
    try:
        get_group_page(client, group_name, max_items=1)
    except errors.NotFound:
        logger.info("Group does not exist", extra={"group_name": group_name})
        return GroupExistence.NotFound
    return GroupExistence.Exists
