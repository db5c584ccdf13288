"""
Permission check endpoints.

Called by the execution path before it performs a transaction. Bytes travel
as 0x-prefixed hex; operation is "call", "delegate_call" or its integer.
A rejection is a normal 200 response with allowed=false; only malformed
requests produce HTTP errors.
"""

import logging
from typing import List, Union

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..core.engine import CheckRequest
from ..core.errors import GuardError
from ..core.models import parse_role_ref
from ..guard_system import PermissionGuard
from .errors import http_error

logger = logging.getLogger("permguard.api.check")


class TransactionModel(BaseModel):
    target: str
    value: int = Field(0, ge=0)
    data: str = "0x"
    operation: Union[int, str] = "call"


class CheckBody(TransactionModel):
    caller: str


class RoleCheckBody(CheckBody):
    role: str


class BatchCheckBody(BaseModel):
    caller: str
    transactions: List[TransactionModel]


def create_check_routes(guard: PermissionGuard) -> APIRouter:
    router = APIRouter(prefix="/api/v1/permissions", tags=["check"])

    @router.post("/check")
    async def check(body: CheckBody):
        try:
            result = guard.check(
                body.caller, body.target, body.value, body.data, body.operation
            )
        except (GuardError, ValueError) as e:
            raise http_error(e)
        return result.to_dict()

    @router.post("/check/role")
    async def check_with_role(body: RoleCheckBody):
        try:
            result = guard.check_with_role(
                body.caller,
                parse_role_ref(body.role),
                body.target,
                body.value,
                body.data,
                body.operation,
            )
        except (GuardError, ValueError) as e:
            raise http_error(e)
        return result.to_dict()

    @router.post("/check/batch")
    async def check_batch(body: BatchCheckBody):
        requests = [
            CheckRequest(
                target=tx.target,
                value=tx.value,
                calldata=tx.data,
                operation=tx.operation,
            )
            for tx in body.transactions
        ]
        try:
            batch = guard.check_batch(body.caller, requests)
        except (GuardError, ValueError) as e:
            raise http_error(e)
        return batch.to_dict()

    return router
