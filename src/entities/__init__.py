from . import iam
from .iam import GroupMembership, MembershipDiff, RemoteGroup
from .model import BaseModel, json_default

__all__ = [
    "BaseModel",
    "GroupMembership",
    "MembershipDiff",
    "RemoteGroup",
    "iam",
    "json_default",
]
