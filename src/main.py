from typing import Any

import boto3

import config
import declaration
import errors
from reconciler import Reconciler

logger = config.get_logger(service="main")

REQUEST_TYPES = ("Create", "Update", "Read", "Delete", "VerifyDestroy")


def build_reconciler() -> Reconciler:
    # New client per invocation, injected into every component.
    cfg = config.get_config()
    iam_client = boto3.client("iam")
    return Reconciler.from_config(iam_client, cfg)


def _response(body: dict, status_code: int = 200) -> dict:
    return {"statusCode": status_code, "body": {"success": status_code < 400} | body}


@errors.handle_errors
def lambda_handler(event: dict[str, Any], context: object) -> dict[str, Any]:  # noqa: ARG001
    """Dispatch a host lifecycle request for one group membership declaration.

    Event keys:
        RequestType: One of Create, Update, Read, Delete, VerifyDestroy.
        ResourceProperties: Declared attributes (name, group, users).
        OldResourceProperties: Previous attributes, Update only.
    """
    request_type = event.get("RequestType")
    logger.info("Group membership request received", extra={"request_type": request_type})
    if request_type not in REQUEST_TYPES:
        raise errors.InvalidDeclaration(f"unsupported RequestType {request_type!r}, expected one of {REQUEST_TYPES}")

    desired = declaration.from_attributes(event.get("ResourceProperties") or {})
    reconciler = build_reconciler()

    match request_type:
        case "Create":
            outcome = reconciler.create(desired)
            return _response(declaration.to_attributes(outcome.observed))  # type: ignore # noqa: PGH003
        case "Update":
            old = event.get("OldResourceProperties")
            previous = declaration.from_attributes(old) if old else None
            outcome = reconciler.update(previous, desired)
            return _response(declaration.to_attributes(outcome.observed))  # type: ignore # noqa: PGH003
        case "Read":
            observed = reconciler.read(desired)
            if observed is None:
                return _response({"id": desired.name, "gone": True})
            return _response(declaration.to_attributes(observed))
        case "Delete":
            outcome = reconciler.delete(desired)
            return _response({"id": desired.name, "removed": sorted(outcome.diff.removals)})
        case "VerifyDestroy":
            reconciler.verify_destroyed(desired.group)
            return _response({"id": desired.name, "group": desired.group, "destroyed": True})
    raise errors.InvalidDeclaration(f"unsupported RequestType {request_type!r}")
