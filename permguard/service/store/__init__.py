"""
Store service - SQLite persistence of the permission state.
"""

from .sqlite_store import PolicyStore

__all__ = ["PolicyStore"]
