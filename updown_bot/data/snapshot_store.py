from __future__ import annotations

import json
from pathlib import Path
from typing import Any


class SnapshotStore:
    """Status snapshot file shared with an external dashboard process."""

    def __init__(self, data_dir: str):
        self.path = Path(data_dir) / "status_snapshot.json"

    def write(self, payload: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str))
        tmp.replace(self.path)

    def read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {
                "ok": True,
                "running": False,
                "history": [],
                "message": "snapshot not ready",
            }
        try:
            return json.loads(self.path.read_text())
        except ValueError:
            return {
                "ok": False,
                "running": False,
                "history": [],
                "message": "snapshot parse error",
            }
