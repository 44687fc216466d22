import functools
import uuid

import botocore.session
from aws_lambda_powertools.utilities.typing import LambdaContext
from botocore.exceptions import ClientError, EndpointConnectionError
from botocore.paginate import Paginator

from retries import RetryPolicy


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


def no_wait_policy(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(timeout_seconds=60, initial_wait_seconds=0.01, max_wait_seconds=0.01, max_attempts=max_attempts, sleep=lambda _: None)


@functools.cache
def iam_paginator_model(operation_name: str) -> tuple[dict, object]:
    session = botocore.session.get_session()
    paginator_config = session.get_paginator_model("iam").get_paginator(operation_name)
    return paginator_config, session.get_service_model("iam").operation_model(operation_name)


class FakeIAMClient:
    """In-memory IAM group store speaking the boto3 get_group/add_user_to_group/remove_user_from_group shape.

    Markers are opaque strings encoding the offset of the next page. `read_lag` makes the next
    listings after a mutation return the membership as it was before the mutation.
    `failures` maps (operation, user_name) to a list of exceptions raised one per call.
    Listings go through botocore's own GetGroup paginator, driven by `get_group`.
    """

    def __init__(self, groups: dict[str, list[str]] | None = None, users: set[str] | None = None, read_lag: int = 0) -> None:
        self.groups: dict[str, list[str]] = {name: list(members) for name, members in (groups or {}).items()}
        self.users: set[str] = set(users or ()) | {member for members in self.groups.values() for member in members}
        self.read_lag = read_lag
        self.failures: dict[tuple[str, str], list[Exception]] = {}
        self.calls: list[tuple] = []
        self._stale: dict[str, tuple[list[str], int]] = {}
        self._listing: dict[str, list[str]] = {}

    def _raise_injected(self, operation: str, key: str) -> None:
        pending = self.failures.get((operation, key))
        if pending:
            raise pending.pop(0)

    def _mark_stale(self, group_name: str) -> None:
        if self.read_lag and group_name not in self._stale:
            self._stale[group_name] = (list(self.groups[group_name]), self.read_lag)

    def _source(self, group_name: str, marker: str | None) -> list[str]:
        if marker is not None:
            return self._listing[group_name]
        source = self.groups[group_name]
        if group_name in self._stale:
            snapshot, remaining = self._stale[group_name]
            source = snapshot
            if remaining <= 1:
                del self._stale[group_name]
            else:
                self._stale[group_name] = (snapshot, remaining - 1)
        self._listing[group_name] = list(source)
        return self._listing[group_name]

    def get_group(self, GroupName: str, Marker: str | None = None, MaxItems: int = 100) -> dict:  # noqa: N803
        self.calls.append(("get_group", GroupName, Marker, MaxItems))
        self._raise_injected("get_group", GroupName)
        if GroupName not in self.groups:
            raise client_error("NoSuchEntity", "GetGroup", f"The group with name {GroupName} cannot be found.")
        members = self._source(GroupName, Marker)
        start = int(Marker) if Marker is not None else 0
        end = start + MaxItems
        response = {
            "Group": {"GroupName": GroupName, "GroupId": f"AGPA{GroupName.upper()}", "Path": "/"},
            "Users": [{"UserName": member, "UserId": f"AIDA{member.upper()}"} for member in members[start:end]],
            "IsTruncated": end < len(members),
        }
        if end < len(members):
            response["Marker"] = str(end)
        return response

    def add_user_to_group(self, GroupName: str, UserName: str) -> dict:  # noqa: N803
        self.calls.append(("add_user_to_group", GroupName, UserName))
        self._raise_injected("add_user_to_group", UserName)
        if GroupName not in self.groups or UserName not in self.users:
            raise client_error("NoSuchEntity", "AddUserToGroup")
        self._mark_stale(GroupName)
        if UserName not in self.groups[GroupName]:
            self.groups[GroupName].append(UserName)
        return {}

    def remove_user_from_group(self, GroupName: str, UserName: str) -> dict:  # noqa: N803
        self.calls.append(("remove_user_from_group", GroupName, UserName))
        self._raise_injected("remove_user_from_group", UserName)
        if GroupName not in self.groups or UserName not in self.groups[GroupName]:
            raise client_error("NoSuchEntity", "RemoveUserFromGroup")
        self._mark_stale(GroupName)
        self.groups[GroupName].remove(UserName)
        return {}

    def get_paginator(self, operation_name: str) -> Paginator:
        paginator_config, operation_model = iam_paginator_model("".join(part.capitalize() for part in operation_name.split("_")))
        return Paginator(getattr(self, operation_name), paginator_config, operation_model)

    def delete_group(self, GroupName: str) -> None:  # noqa: N803
        del self.groups[GroupName]

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


def connection_error() -> EndpointConnectionError:
    return EndpointConnectionError(endpoint_url="https://iam.amazonaws.com")


def user_names(count: int, prefix: str = "tf-acc-user-") -> list[str]:
    return [f"{prefix}{i}" for i in range(1, count + 1)]


class LambdaTestContext(LambdaContext):
    def __init__(self, name: str, version: int = 1, region: str = "us-east-1", account_id: str = "111122223333"):
        self._function_name = name
        self._function_version = str(version)
        self._memory_limit_in_mb = 128
        self._invoked_function_arn = f"arn:aws:lambda:{region}:{account_id}:function:{name}:{version}"
        self._aws_request_id = str(uuid.uuid4())
        self._log_group_name = f"/aws/lambda/{name}"
        self._log_stream_name = str(uuid.uuid4())
