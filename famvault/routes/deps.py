"""
Route dependencies

The identity layer in front of this API authenticates the member and
forwards their id in the X-Member-Id header. The core re-loads that member
on every call.
"""

from typing import TypeVar

from fastapi import Header, Request

from famvault.errors import OperationResult
from famvault.services.access import FamilyAccessService

T = TypeVar("T")


def get_access_service(request: Request) -> FamilyAccessService:
    return request.app.state.access_service


def get_actor_id(x_member_id: str = Header(..., alias="X-Member-Id")) -> str:
    return x_member_id


def unwrap(result: OperationResult[T]) -> T:
    """Return the value or raise the failure for the FamVaultError handler"""
    return result.unwrap()
