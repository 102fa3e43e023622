"""File-based persistence helpers for analysis outputs and checkpoints."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import settings


class FileStorage:
    """Thin wrapper around the data root for storing JSON and CSV outputs."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.output_root = self.root / "outputs"
        self.output_root.mkdir(parents=True, exist_ok=True)

    def make_run_directory(self, prefix: str = "run") -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = self.output_root / f"{prefix}_{timestamp}"
        path.mkdir(parents=True, exist_ok=False)
        return path

    def write_json(self, path: Path, data: Any, *, indent: int = 2) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=indent)

    def write_csv(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)

    def write_atomic(self, path: Path, content: str) -> None:
        """Write ``content`` so readers only ever see the old or the new file."""

        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(f".{path.name}.tmp")
        with temp_path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)


class CheckpointWriter:
    """Overwrites named checkpoint files inside one run directory."""

    MATRIX_FILE = "matrix.checkpoint.csv"
    FAILURES_FILE = "failures.checkpoint.csv"
    TRIPS_FILE = "trips.checkpoint.csv"

    def __init__(self, storage: FileStorage, run_dir: Path) -> None:
        self.run_dir = run_dir
        self.storage = storage
        self.writes = 0

    def path(self, name: str) -> Path:
        return self.run_dir / name

    def write(self, files: dict[str, str]) -> None:
        for name, content in files.items():
            self.storage.write_atomic(self.path(name), content)
        self.writes += 1
