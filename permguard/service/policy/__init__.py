"""
Policy service - YAML policy packs for bulk permission configuration.
"""

from .policy_pack import (
    FunctionSpec,
    PolicyPack,
    TargetSpec,
    apply_pack,
    export_pack,
    load_pack,
    parse_pack,
)

__all__ = [
    "FunctionSpec",
    "PolicyPack",
    "TargetSpec",
    "apply_pack",
    "export_pack",
    "load_pack",
    "parse_pack",
]
