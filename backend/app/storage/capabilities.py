"""Capability store — every capability the agent has created, shared by all canvases.

Stored as ``{"capabilities": [...]}`` in ``<data_dir>/capabilities.json``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from app.config import settings
from app.models.capability import CapabilityRecord
from app.storage.json_store import read_json, write_json

logger = logging.getLogger(__name__)


class CapabilityStore:
    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or settings.data_dir
        self.path = self.data_dir / "capabilities.json"

    def load_all(self) -> list[CapabilityRecord]:
        """Every stored record. An unreadable or invalid file is logged and reads as empty."""
        try:
            data = read_json(self.path, default={}) or {}
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            return [CapabilityRecord.model_validate(c) for c in data.get("capabilities", [])]
        except (OSError, ValueError):
            logger.exception("Could not read capabilities from %s", self.path)
            return []

    def get_by_name(self, name: str) -> CapabilityRecord | None:
        """Exact, case-sensitive name match; the first record wins."""
        return next((c for c in self.load_all() if c.name == name), None)

    def save(self, record: CapabilityRecord) -> CapabilityRecord:
        records = self.load_all()
        records.append(record)
        self._write(records)
        logger.info("Stored capability %s (%s)", record.name, record.id)
        return record

    def increment_usage(self, capability_id: str) -> CapabilityRecord | None:
        records = self.load_all()
        for record in records:
            if record.id == capability_id:
                record.usage_count += 1
                self._write(records)
                return record
        return None

    def _write(self, records: list[CapabilityRecord]) -> None:
        write_json(self.path, {"capabilities": [r.model_dump(by_alias=True, mode="json") for r in records]})


_store: CapabilityStore | None = None


def get_capability_store() -> CapabilityStore:
    """Get or create the global CapabilityStore singleton."""
    global _store
    if _store is None:
        _store = CapabilityStore()
    return _store
