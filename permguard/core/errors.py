"""
Error taxonomy for the permission engine.

Three families, all derived from GuardError:
- ConfigurationError: rejected owner writes (malformed scopes, bad role ids)
- CalldataError: structurally broken calldata, aborts the whole check
- CallerError: the request itself is unusable (no roles, confused operation)

Policy rejections are NOT exceptions. They are Outcome values carried in
check results so callers can report precise reasons per role slot.
"""

from typing import Optional


class GuardError(Exception):
    """Base class for every error raised by PermGuard."""

    code = "guard_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(GuardError):
    code = "configuration_error"


class ArraysDifferentLength(ConfigurationError):
    code = "arrays_different_length"

    def __init__(self):
        super().__init__("length of arrays should be the same")


class UnsuitableRelativeComparison(ConfigurationError):
    code = "unsuitable_relative_comparison"

    def __init__(self, index: Optional[int] = None):
        prefix = f"parameter {index}: " if index is not None else ""
        super().__init__(f"{prefix}only supports eq comparison for non-static type")
        self.index = index


class UnsuitableStaticValueSize(ConfigurationError):
    code = "unsuitable_static_value_size"

    def __init__(self, index: int, size: int):
        super().__init__(
            f"parameter {index}: static expected value must be 32 bytes, got {size}"
        )
        self.index = index


class UnsuitableDynamic32ValueSize(ConfigurationError):
    code = "unsuitable_dynamic32_value_size"

    def __init__(self, index: int, size: int):
        super().__init__(
            f"parameter {index}: dynamic32 expected value must be a multiple "
            f"of 32 bytes, got {size}"
        )
        self.index = index


class InvalidEnumValue(ConfigurationError):
    code = "invalid_enum_value"

    def __init__(self, kind: str, value):
        super().__init__(f"invalid {kind}: {value!r}")
        self.kind = kind


class InvalidAddress(ConfigurationError):
    code = "invalid_address"

    def __init__(self, value):
        super().__init__(f"invalid address: {value!r}")


class BlankRoleId(ConfigurationError):
    code = "blank_role_id"

    def __init__(self):
        super().__init__("role id must not be blank")


class RoleDeprecated(ConfigurationError):
    code = "role_deprecated"

    def __init__(self, role_hex: str):
        super().__init__(f"role {role_hex} is deprecated")
        self.role = role_hex


class RoleExceeded(ConfigurationError):
    code = "role_exceeded"

    def __init__(self, member: str, capacity: int):
        super().__init__(f"member {member} already holds {capacity} roles")
        self.member = member


class InvalidValueLimit(ConfigurationError):
    code = "invalid_value_limit"

    def __init__(self, value):
        super().__init__(f"value limit must be a non-negative integer, got {value!r}")


class FunctionNotConfigured(ConfigurationError):
    code = "function_not_configured"

    def __init__(self, selector_hex: str, target: str):
        super().__init__(f"function {selector_hex} on {target} is not configured")


class PolicyPackError(ConfigurationError):
    code = "policy_pack_error"


# =============================================================================
# Calldata errors
# =============================================================================


class CalldataError(GuardError):
    code = "calldata_error"


class FunctionSignatureTooShort(CalldataError):
    code = "function_signature_too_short"

    def __init__(self, size: int = 0):
        super().__init__(f"function signature too short ({size} bytes)")
        self.size = size


class CalldataOutOfBounds(CalldataError):
    """
    Raised when a decode step would read past the end of the calldata.

    kind is the parameter type being read (static, dynamic, dynamic32).
    position is where the read failed: "word" for static words, "head" for the
    pointer or length word of a dynamic parameter, "tail" for its payload.
    """

    code = "calldata_out_of_bounds"

    _POSITION_TEXT = {"word": "", "head": " at the first", "tail": " at the end"}

    def __init__(self, kind: str, position: str, offset: Optional[int] = None):
        super().__init__(
            f"calldata out of bounds for {kind} type{self._POSITION_TEXT[position]}"
        )
        self.kind = kind
        self.position = position
        self.offset = offset

    def to_dict(self) -> dict:
        d = super().to_dict()
        d.update({"kind": self.kind, "position": self.position})
        return d


# =============================================================================
# Caller errors
# =============================================================================


class CallerError(GuardError):
    code = "caller_error"


class RoleNotFound(CallerError):
    code = "role_not_found"

    def __init__(self, caller: str, role_hex: Optional[str] = None):
        if role_hex:
            message = f"sender {caller} doesn't have role {role_hex}"
        else:
            message = f"sender {caller} doesn't have any role"
        super().__init__(message)
        self.caller = caller


class ConfusedOperation(CallerError):
    code = "confused_operation"

    def __init__(self, operation):
        super().__init__(f"only support call or delegatecall, got {operation!r}")


class InvalidValue(CallerError):
    code = "invalid_value"

    def __init__(self, value):
        super().__init__(f"transaction value must be a non-negative integer, got {value!r}")


class NotOwner(CallerError):
    code = "not_owner"

    def __init__(self, sender: str):
        super().__init__(f"caller {sender} is not the owner")
        self.sender = sender
