"""Core permission engine: calldata decoding, scopes, membership, resolution."""

from .calldata import CalldataView
from .comparison import Comparison, ParameterType, compare
from .engine import BatchCheckResult, CheckRequest, CheckResult, PermissionEngine
from .events import EventLog, GuardEvent
from .membership import MembershipTable
from .models import (
    BLANK_ROLE,
    ROLE_SLOTS,
    FunctionAllowance,
    Operation,
    Outcome,
    ParameterScope,
    TargetAllowance,
    role_id_from_name,
    to_role_id,
)
from .registry import PermissionRegistry, Resolution

__all__ = [
    "CalldataView",
    "Comparison",
    "ParameterType",
    "compare",
    "BatchCheckResult",
    "CheckRequest",
    "CheckResult",
    "PermissionEngine",
    "EventLog",
    "GuardEvent",
    "MembershipTable",
    "BLANK_ROLE",
    "ROLE_SLOTS",
    "FunctionAllowance",
    "Operation",
    "Outcome",
    "ParameterScope",
    "TargetAllowance",
    "role_id_from_name",
    "to_role_id",
    "PermissionRegistry",
    "Resolution",
]
