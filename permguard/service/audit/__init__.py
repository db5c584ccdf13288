"""
Audit service - tamper-evident log of guard events with Merkle chains.
"""

from .merkle_chain import AuditEntry, ChainVerification, MerkleAuditLog

__all__ = [
    "AuditEntry",
    "ChainVerification",
    "MerkleAuditLog",
]
