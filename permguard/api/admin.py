"""
Owner configuration endpoints.

Every write names its sender; the guard rejects anyone but the owner with
403. When an auth token is configured, every request here must also carry
it as a bearer token. Roles may be given as 0x-hex ids or as names
(keccak256 of the name).
"""

import logging
from typing import Callable, List, Optional, Union

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from ..core.errors import GuardError
from ..core.models import BLANK_ROLE, parse_role_ref, role_hex
from ..guard_system import PermissionGuard
from ..service.audit.merkle_chain import MerkleAuditLog
from ..service.policy.policy_pack import apply_pack, load_pack, parse_pack
from .errors import http_error, require_token

logger = logging.getLogger("permguard.api.admin")


class OwnerRequest(BaseModel):
    sender: str


class AssignRolesRequest(OwnerRequest):
    member: str
    roles: List[str]


class RevokeRoleRequest(OwnerRequest):
    member: str
    role: str


class DeprecateRoleRequest(OwnerRequest):
    role: str


class DropMemberRequest(OwnerRequest):
    member: str


class ContractRequest(OwnerRequest):
    role: str
    target: str
    operation: Union[int, str] = "call"


class FunctionRequest(ContractRequest):
    selector: str
    value_limit: Optional[int] = None


class ScopeFunctionRequest(FunctionRequest):
    is_scoped: List[bool]
    param_types: List[Union[int, str]]
    comparisons: List[Union[int, str]]
    expected: List[str]


class ValueLimitRequest(OwnerRequest):
    role: str
    target: str
    selector: str
    value_limit: Optional[int] = None


class TransferOwnershipRequest(OwnerRequest):
    new_owner: str


class LoadPackRequest(OwnerRequest):
    path: Optional[str] = None
    content: Optional[str] = None


def create_admin_routes(
    guard: PermissionGuard,
    auth_token: str = "",
    audit_log: Optional[MerkleAuditLog] = None,
    on_change: Optional[Callable[[], None]] = None,
) -> APIRouter:
    router = APIRouter(prefix="/api/v1/permissions", tags=["admin"])

    def write(authorization: Optional[str], op: Callable[[], object]) -> dict:
        require_token(auth_token, authorization)
        try:
            result = op()
        except (GuardError, ValueError) as e:
            raise http_error(e)
        if on_change:
            on_change()
        return {"status": "ok", "result": result}

    # -------------------------------------------------------------------------
    # Roles and members
    # -------------------------------------------------------------------------

    @router.post("/roles/assign")
    async def assign_roles(
        request: AssignRolesRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.assign_roles(
                request.sender, request.member, [parse_role_ref(r) for r in request.roles]
            ),
        )

    @router.post("/roles/revoke")
    async def revoke_role(
        request: RevokeRoleRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.revoke_role(
                request.sender, request.member, parse_role_ref(request.role)
            ),
        )

    @router.post("/roles/deprecate")
    async def deprecate_role(
        request: DeprecateRoleRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.deprecate_role(request.sender, parse_role_ref(request.role)),
        )

    @router.post("/members/drop")
    async def drop_member(
        request: DropMemberRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization, lambda: guard.drop_member(request.sender, request.member)
        )

    @router.get("/members/{address}/roles")
    async def member_roles(address: str, authorization: Optional[str] = Header(None)):
        require_token(auth_token, authorization)
        try:
            slots = guard.roles_of(address)
        except GuardError as e:
            raise http_error(e)
        blank = role_hex(BLANK_ROLE)
        return {
            "member": address,
            "roles": [r for r in slots if r != blank],
            "slots": slots,
        }

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    @router.post("/contracts/allow")
    async def allow_contract(
        request: ContractRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.allow_contract(
                request.sender,
                parse_role_ref(request.role),
                request.target,
                request.operation,
            ),
        )

    @router.post("/contracts/scope")
    async def scope_contract(
        request: ContractRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.scope_contract(
                request.sender, parse_role_ref(request.role), request.target
            ),
        )

    @router.post("/contracts/revoke")
    async def revoke_contract(
        request: ContractRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.revoke_contract(
                request.sender, parse_role_ref(request.role), request.target
            ),
        )

    # -------------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------------

    @router.post("/functions/allow")
    async def allow_function(
        request: FunctionRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.allow_function(
                request.sender,
                parse_role_ref(request.role),
                request.target,
                request.selector,
                request.operation,
                request.value_limit,
            ),
        )

    @router.post("/functions/scope")
    async def scope_function(
        request: ScopeFunctionRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.scope_function(
                request.sender,
                parse_role_ref(request.role),
                request.target,
                request.selector,
                request.is_scoped,
                request.param_types,
                request.comparisons,
                request.expected,
                request.operation,
                request.value_limit,
            ),
        )

    @router.post("/functions/revoke")
    async def revoke_function(
        request: FunctionRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.revoke_function(
                request.sender,
                parse_role_ref(request.role),
                request.target,
                request.selector,
            ),
        )

    @router.post("/functions/value-limit")
    async def set_value_limit(
        request: ValueLimitRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.set_value_limit(
                request.sender,
                parse_role_ref(request.role),
                request.target,
                request.selector,
                request.value_limit,
            ),
        )

    # -------------------------------------------------------------------------
    # Ownership, packs, audit
    # -------------------------------------------------------------------------

    @router.post("/owner/transfer")
    async def transfer_ownership(
        request: TransferOwnershipRequest, authorization: Optional[str] = Header(None)
    ):
        return write(
            authorization,
            lambda: guard.transfer_ownership(request.sender, request.new_owner),
        )

    @router.post("/packs/load")
    async def load_policy_pack(
        request: LoadPackRequest, authorization: Optional[str] = Header(None)
    ):
        if bool(request.path) == bool(request.content):
            raise HTTPException(
                status_code=422,
                detail={"error": "invalid_input", "message": "give exactly one of path or content"},
            )

        def load():
            pack = load_pack(request.path) if request.path else parse_pack(request.content)
            return apply_pack(guard, request.sender, pack)

        return write(authorization, load)

    @router.get("/audit")
    async def get_audit(
        limit: int = 50,
        event_type: Optional[str] = None,
        authorization: Optional[str] = Header(None),
    ):
        require_token(auth_token, authorization)
        if audit_log is None:
            events = guard.events.events(event_type)
            return {
                "source": "memory",
                "entries": [e.to_dict() for e in reversed(events[-limit:])] if limit > 0 else [],
            }
        return {
            "source": str(audit_log.log_file),
            "verification": audit_log.verify_chain().to_dict(),
            "entries": [e.to_dict() for e in audit_log.get_recent(limit, event_type)],
        }

    @router.get("/stats")
    async def get_stats(authorization: Optional[str] = Header(None)):
        require_token(auth_token, authorization)
        return guard.get_stats()

    return router
