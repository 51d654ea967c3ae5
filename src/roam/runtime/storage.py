from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def session_archive_path(base_dir: Path, session_id: str) -> Path:
    p = base_dir / "sessions"
    ensure_dir(p)
    return p / f"{session_id}.json"


def write_session_archive(base_dir: Path, session_id: str, data: dict[str, Any]) -> Path:
    path = session_archive_path(base_dir, session_id)
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    return path
