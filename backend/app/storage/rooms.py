"""Room store (``rooms.json``) and per-canvas scene snapshots (``scenes/<id>.json``)."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from app.config import settings
from app.models.room import RoomConfig, RoomRecord
from app.models.scene import SceneSnapshot
from app.storage.json_store import read_json, write_json

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class RoomStore:
    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or settings.data_dir
        self.path = self.data_dir / "rooms.json"

    def load_all(self) -> list[RoomRecord]:
        data = read_json(self.path, default={}) or {}
        return [RoomRecord.model_validate(r) for r in data.get("rooms", [])]

    def get(self, room_id: str) -> RoomRecord | None:
        return next((r for r in self.load_all() if r.id == room_id), None)

    def create(self, room_name: str, snapshot: SceneSnapshot) -> RoomRecord:
        room = RoomRecord(
            config=RoomConfig(
                prompt=room_name,
                elements=snapshot.elements,
                background=snapshot.background,
                capabilities=snapshot.capabilities,
            )
        )
        rooms = self.load_all()
        rooms.append(room)
        write_json(self.path, {"rooms": [r.model_dump(by_alias=True, mode="json") for r in rooms]})
        logger.info("Saved room %s (%r, %d elements)", room.id, room_name, len(snapshot.elements))
        return room


class SceneRepository:
    """Durable scene snapshots keyed by canvas id."""

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or settings.data_dir
        self.scenes_dir = self.data_dir / "scenes"

    def _path(self, canvas_id: str) -> Path:
        if not _SAFE_ID.match(canvas_id):
            raise ValueError(f"invalid canvas id {canvas_id!r}")
        return self.scenes_dir / f"{canvas_id}.json"

    def load(self, canvas_id: str) -> SceneSnapshot | None:
        data = read_json(self._path(canvas_id))
        if data is None:
            return None
        return SceneSnapshot.model_validate(data)

    def save(self, canvas_id: str, snapshot: SceneSnapshot) -> None:
        write_json(self._path(canvas_id), snapshot.model_dump(by_alias=True, mode="json"))
        logger.debug("Saved scene %s (%d elements)", canvas_id, len(snapshot.elements))

    def delete(self, canvas_id: str) -> None:
        self._path(canvas_id).unlink(missing_ok=True)
