"""
SQLite Policy Store

Persists the whole permission state (owner, role slots, deprecated roles,
target and function allowances) so a restarted guard makes the same
decisions as before. Each save replaces the stored state in one
transaction; a failed save leaves the previous state intact.

Value limits are stored as decimal text since they can exceed SQLite's
64-bit integers.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("permguard.store")


class PolicyStore:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(str(self.db_path))
            self._local.conn.row_factory = sqlite3.Row
        return self._local.conn

    def _init_db(self):
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS member_roles (
                member TEXT NOT NULL,
                slot INTEGER NOT NULL,
                role TEXT NOT NULL,
                PRIMARY KEY (member, slot)
            );

            CREATE TABLE IF NOT EXISTS deprecated_roles (
                role TEXT PRIMARY KEY
            );

            CREATE TABLE IF NOT EXISTS target_allowances (
                role TEXT NOT NULL,
                target TEXT NOT NULL,
                operation TEXT NOT NULL,
                scoped INTEGER NOT NULL,
                PRIMARY KEY (role, target)
            );

            CREATE TABLE IF NOT EXISTS function_allowances (
                role TEXT NOT NULL,
                target TEXT NOT NULL,
                selector TEXT NOT NULL,
                operation TEXT NOT NULL,
                parameters TEXT NOT NULL,
                value_limit TEXT,
                PRIMARY KEY (role, target, selector)
            );

            CREATE INDEX IF NOT EXISTS idx_function_target
                ON function_allowances(role, target);
        """)
        conn.commit()

    def save_state(self, state: Dict[str, Any]) -> None:
        """Replace the stored state with state (as produced by export_state())."""
        conn = self._get_conn()
        membership = state.get("membership", {})
        registry = state.get("registry", {})

        try:
            with conn:
                conn.execute("DELETE FROM member_roles")
                conn.execute("DELETE FROM deprecated_roles")
                conn.execute("DELETE FROM target_allowances")
                conn.execute("DELETE FROM function_allowances")

                conn.execute(
                    "INSERT OR REPLACE INTO meta (key, value) VALUES ('owner', ?)",
                    (state["owner"],),
                )
                conn.execute(
                    "INSERT OR REPLACE INTO meta (key, value) VALUES ('saved_at', ?)",
                    (datetime.utcnow().isoformat() + "Z",),
                )
                conn.executemany(
                    "INSERT INTO member_roles (member, slot, role) VALUES (?, ?, ?)",
                    [
                        (member, slot, role)
                        for member, slots in membership.get("members", {}).items()
                        for slot, role in enumerate(slots)
                    ],
                )
                conn.executemany(
                    "INSERT INTO deprecated_roles (role) VALUES (?)",
                    [(role,) for role in membership.get("deprecated", [])],
                )
                conn.executemany(
                    """INSERT INTO target_allowances (role, target, operation, scoped)
                       VALUES (?, ?, ?, ?)""",
                    [
                        (t["role"], t["target"], t["operation"], int(t["scoped"]))
                        for t in registry.get("targets", [])
                    ],
                )
                conn.executemany(
                    """INSERT INTO function_allowances
                       (role, target, selector, operation, parameters, value_limit)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    [
                        (
                            f["role"],
                            f["target"],
                            f["selector"],
                            f["operation"],
                            json.dumps(f["parameters"]),
                            None if f["value_limit"] is None else str(f["value_limit"]),
                        )
                        for f in registry.get("functions", [])
                    ],
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to save policy state: {e}")
            raise

        logger.info(
            f"Saved policy state to {self.db_path}: "
            f"{len(membership.get('members', {}))} member(s), "
            f"{len(registry.get('targets', []))} target(s), "
            f"{len(registry.get('functions', []))} function(s)"
        )

    def load_state(self) -> Optional[Dict[str, Any]]:
        """Return the stored state, or None if nothing was ever saved."""
        conn = self._get_conn()
        row = conn.execute("SELECT value FROM meta WHERE key = 'owner'").fetchone()
        if row is None:
            return None

        members: Dict[str, list] = {}
        for r in conn.execute(
            "SELECT member, slot, role FROM member_roles ORDER BY member, slot"
        ):
            members.setdefault(r["member"], []).append(r["role"])

        deprecated = [
            r["role"] for r in conn.execute("SELECT role FROM deprecated_roles ORDER BY role")
        ]
        targets = [
            {
                "role": r["role"],
                "target": r["target"],
                "operation": r["operation"],
                "scoped": bool(r["scoped"]),
            }
            for r in conn.execute("SELECT * FROM target_allowances ORDER BY rowid")
        ]
        functions = [
            {
                "role": r["role"],
                "target": r["target"],
                "selector": r["selector"],
                "operation": r["operation"],
                "parameters": json.loads(r["parameters"]),
                "value_limit": None if r["value_limit"] is None else int(r["value_limit"]),
            }
            for r in conn.execute("SELECT * FROM function_allowances ORDER BY rowid")
        ]

        return {
            "owner": row["value"],
            "membership": {"members": members, "deprecated": deprecated},
            "registry": {"targets": targets, "functions": functions},
        }

    def save(self, guard) -> None:
        self.save_state(guard.export_state())

    def load(self, guard) -> bool:
        """Restore guard from the store. Returns False when the store is empty."""
        state = self.load_state()
        if state is None:
            logger.info(f"No saved policy state in {self.db_path}")
            return False
        guard.import_state(state)
        return True

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
