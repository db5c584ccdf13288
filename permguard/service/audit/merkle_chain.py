"""
Merkle Chain Audit Log - tamper-evident record of guard events.

Every GuardEvent (configuration writes, check decisions) is appended to a
JSONL file. Each line carries the hash of the previous line, so editing,
reordering or deleting any entry breaks the chain and verify_chain() points
at the broken index.

Hash = SHA256(canonical JSON of entry without entry_hash), genesis is 64 zeros.
"""

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ...core.events import GuardEvent

logger = logging.getLogger("permguard.audit")

GENESIS_HASH = "0" * 64


@dataclass
class AuditEntry:
    index: int
    timestamp: str
    event_type: str
    args: Dict[str, Any]
    prev_hash: str
    entry_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "args": self.args,
            "prev_hash": self.prev_hash,
            "entry_hash": self.entry_hash,
        }


@dataclass
class ChainVerification:
    valid: bool
    total_entries: int
    last_hash: str
    broken_links: List[int]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "total_entries": self.total_entries,
            "last_hash": self.last_hash,
            "broken_links": self.broken_links,
            "message": self.message,
        }


class MerkleAuditLog:
    """
    Append-only hash chain over guard events.

    Use as an EventLog listener:

        audit = MerkleAuditLog(path)
        guard.events.subscribe(audit.record)
    """

    def __init__(self, log_file: Path):
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._last_hash: Optional[str] = None
        self._count: Optional[int] = None

        logger.info(f"MerkleAuditLog initialized with log_file={self.log_file}")

    def record(self, event: GuardEvent) -> str:
        return self.append(event.name, event.args, event.timestamp)

    def append(self, event_type: str, args: Dict[str, Any], timestamp: str) -> str:
        """Append one entry and return its hash."""
        with self._lock:
            if self._last_hash is None:
                entries = self._read_all_entries()
                self._count = len(entries)
                self._last_hash = entries[-1]["entry_hash"] if entries else GENESIS_HASH

            entry = {
                "index": self._count,
                "timestamp": timestamp,
                "event_type": event_type,
                "args": args,
                "prev_hash": self._last_hash,
            }
            entry["entry_hash"] = _compute_hash(entry)

            with open(self.log_file, "a") as f:
                f.write(json.dumps(entry, sort_keys=True) + "\n")

            self._last_hash = entry["entry_hash"]
            self._count += 1

        logger.debug(f"Audit entry {entry['index']}: {event_type} ({entry['entry_hash'][:12]})")
        return entry["entry_hash"]

    def verify_chain(self) -> ChainVerification:
        entries = self._read_all_entries()
        if not entries:
            return ChainVerification(
                valid=True,
                total_entries=0,
                last_hash=GENESIS_HASH,
                broken_links=[],
                message="Audit log is empty",
            )

        broken_links = []
        expected_prev = GENESIS_HASH
        for i, entry in enumerate(entries):
            if entry.get("prev_hash") != expected_prev or entry.get(
                "entry_hash"
            ) != _compute_hash(entry):
                broken_links.append(i)
                logger.warning(f"Audit chain broken at entry {i}")
            expected_prev = entry.get("entry_hash")

        valid = not broken_links
        return ChainVerification(
            valid=valid,
            total_entries=len(entries),
            last_hash=entries[-1].get("entry_hash", ""),
            broken_links=broken_links,
            message=f"Chain valid: {valid}, {len(entries)} entries, "
            f"{len(broken_links)} broken links",
        )

    def get_recent(self, limit: int = 100, event_type: Optional[str] = None) -> List[AuditEntry]:
        """Most recent entries, newest first."""
        entries = [
            _to_entry(e)
            for e in self._read_all_entries()
            if event_type is None or e["event_type"] == event_type
        ]
        return list(reversed(entries[-limit:])) if limit > 0 else []

    def count(self) -> int:
        return len(self._read_all_entries())

    def _read_all_entries(self) -> List[Dict[str, Any]]:
        if not self.log_file.exists():
            return []
        entries = []
        with open(self.log_file, "r") as f:
            for line_no, line in enumerate(f):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError as e:
                    # keep a placeholder so the chain reports the break here
                    logger.warning(f"Unparseable audit line {line_no}: {e}")
                    entries.append({"event_type": "", "args": {}})
        return entries


def _compute_hash(entry: Dict[str, Any]) -> str:
    canonical = {k: v for k, v in entry.items() if k != "entry_hash"}
    data = json.dumps(canonical, sort_keys=True)
    return hashlib.sha256(data.encode()).hexdigest()


def _to_entry(data: Dict[str, Any]) -> AuditEntry:
    return AuditEntry(
        index=data.get("index", -1),
        timestamp=data.get("timestamp", ""),
        event_type=data.get("event_type", ""),
        args=data.get("args", {}),
        prev_hash=data.get("prev_hash", ""),
        entry_hash=data.get("entry_hash", ""),
    )
