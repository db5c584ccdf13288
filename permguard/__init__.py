"""
PermGuard - Transaction Permission Engine for Smart Accounts

Sits in front of a smart account's execution path and decides, for every
attempted transaction (caller, target, value, calldata, operation), whether
the caller may perform it and, if not, why.

Architecture:
- Membership: up to 16 role slots per member, deprecated role ids
- Registry: per-role target and function scopes with ABI parameter checks
- Engine: first fulfilling role authorizes, otherwise per-slot outcomes
- Guard: owner-gated configuration, events, audit chain, persistence

Key Properties:
- Deterministic: same configuration and transaction, same answer
- Fail-closed: malformed calldata aborts the check, never passes it
- Tamper-evident: every write and decision lands in a hash chain
"""

__version__ = "0.1.0"
