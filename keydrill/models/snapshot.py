"""Persisted drill state and the JSON file store that reads and writes it.

Snapshots carry a ``version``; anything without the current version is
refused rather than migrated, and the caller starts from fresh state.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from keydrill.models.corpus import LAYOUTS
from keydrill.models.drill_config import DATA_CURRENT_VERSION
from keydrill.models.ngram import nfc
from keydrill.models.performance import PerformanceRecord

logger = logging.getLogger(__name__)


class SnapshotIntegrityError(Exception):
    """Raised when persisted drill state is corrupt or has the wrong version."""

    def __init__(self, message: str = "Snapshot is corrupt or incompatible") -> None:
        """Initialize the error with a helpful message."""
        self.message = message
        super().__init__(self.message)


class DrillSnapshot(BaseModel):
    """Serializable view of the drill state."""

    version: int
    item_performance: Dict[str, PerformanceRecord] = Field(default_factory=dict)
    chars: str = LAYOUTS["letters"]
    current_layout: str = "letters"

    model_config = ConfigDict(extra="ignore")

    @field_validator("item_performance", mode="before")
    @classmethod
    def _normalize_keys(cls, v: object) -> object:
        if isinstance(v, dict):
            return {nfc(k): rec for k, rec in v.items()}
        return v

    @classmethod
    def from_dict(cls, *, data: Any, expected_version: int = DATA_CURRENT_VERSION) -> "DrillSnapshot":
        """Validate raw decoded data into a snapshot.

        Raises:
            SnapshotIntegrityError: If the data is not a mapping, has a
                missing or different version, or fails validation.
        """
        if not isinstance(data, dict):
            raise SnapshotIntegrityError("snapshot must be a JSON object")
        if "version" not in data:
            raise SnapshotIntegrityError("snapshot has no version field")
        if data["version"] != expected_version:
            raise SnapshotIntegrityError(
                f"snapshot version {data['version']!r} does not match {expected_version}"
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SnapshotIntegrityError(f"snapshot failed validation: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class SnapshotStore:
    """Read and write `DrillSnapshot` objects as JSON files."""

    def __init__(self, path: str | Path, expected_version: int = DATA_CURRENT_VERSION) -> None:
        self.path = Path(path)
        self.expected_version = expected_version

    def read(self, path: str | Path | None = None) -> DrillSnapshot:
        """Read a snapshot, raising on any problem.

        Raises:
            FileNotFoundError: If there is no file.
            SnapshotIntegrityError: If the file is not a valid current snapshot.
        """
        target = Path(path) if path is not None else self.path
        try:
            raw = json.loads(target.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise SnapshotIntegrityError(f"snapshot is not valid JSON: {e}") from e
        except UnicodeDecodeError as e:
            raise SnapshotIntegrityError(f"snapshot is not UTF-8 text: {e}") from e
        return DrillSnapshot.from_dict(data=raw, expected_version=self.expected_version)

    def save(self, snapshot: DrillSnapshot, path: str | Path | None = None) -> None:
        """Write a snapshot, replacing the target file atomically."""
        target = Path(path) if path is not None else self.path
        if target.parent and not target.parent.exists():
            target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_text(json.dumps(snapshot.to_dict(), ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, target)

    def export_to(self, path: str | Path, snapshot: DrillSnapshot) -> None:
        self.save(snapshot, path)
        logger.info("Exported drill state to %s", path)

    def import_from(self, path: str | Path) -> DrillSnapshot:
        """Read a snapshot exported elsewhere.

        Raises:
            FileNotFoundError: If there is no file.
            SnapshotIntegrityError: If the file is not a valid current snapshot.
        """
        snapshot = self.read(path)
        logger.info("Imported drill state from %s (%d records)", path, len(snapshot.item_performance))
        return snapshot
