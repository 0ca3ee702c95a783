"""
Device-local JSON file store.

Keeps review state on the learner's machine, e.g. for guest mode or
offline study:
- items.json      - item state keyed by id
- attempts.jsonl  - append-only attempt log, one JSON object per line
- metrics.json    - learner metrics keyed by user id

Default location: ~/.spaced_review/
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from spaced_review.config import DEFAULT_DATA_DIR
from spaced_review.core.errors import NotFoundError, PersistenceError
from spaced_review.core.models import ReviewableItem, ReviewAttempt, UserMetrics
from spaced_review.stores.base import AttemptFilter, check_stale_write, select_due


class JsonFileStore:
    """
    Implements ItemStore, AttemptStore and MetricsStore over JSON files.

    Whole-file writes go through a temp file and os.replace so a crash
    never leaves a half-written file behind.
    """

    def __init__(self, data_dir: Path | None = None):
        self.data_dir = Path(data_dir or DEFAULT_DATA_DIR)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.items_path = self.data_dir / "items.json"
        self.attempts_path = self.data_dir / "attempts.jsonl"
        self.metrics_path = self.data_dir / "metrics.json"
        logger.debug(f"JsonFileStore using {self.data_dir}")

    # =========================================================================
    # File helpers
    # =========================================================================

    def _read_json(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    def _write_json(self, path: Path, data: dict[str, Any]) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

    # =========================================================================
    # ItemStore
    # =========================================================================

    def get_item(self, item_id: str) -> ReviewableItem:
        record = self._read_json(self.items_path).get(item_id)
        if record is None:
            raise NotFoundError(f"Item not found: {item_id}")
        return ReviewableItem.from_dict(record)

    def all_items(self) -> list[ReviewableItem]:
        return [ReviewableItem.from_dict(r) for r in self._read_json(self.items_path).values()]

    def list_due_items(
        self, before: datetime, limit: int, category_filter: str | None = None
    ) -> list[ReviewableItem]:
        return select_due(self.all_items(), before, limit, category_filter)

    def upsert_item(self, item: ReviewableItem) -> None:
        records = self._read_json(self.items_path)
        stored = records.get(item.id)
        check_stale_write(ReviewableItem.from_dict(stored) if stored else None, item)
        records[item.id] = item.to_dict()
        self._write_json(self.items_path, records)

    # =========================================================================
    # AttemptStore
    # =========================================================================

    def append_attempt(self, attempt: ReviewAttempt) -> None:
        try:
            with open(self.attempts_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(attempt.to_dict()) + "\n")
        except OSError as e:
            raise PersistenceError(f"Failed to append attempt {attempt.id}: {e}") from e

    def list_attempts(
        self, user_id: str, filters: AttemptFilter | None = None
    ) -> list[ReviewAttempt]:
        if not self.attempts_path.exists():
            return []
        attempts = []
        try:
            with open(self.attempts_path, encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    record = json.loads(line)
                    if record.get("user_id") == user_id:
                        attempts.append(ReviewAttempt.from_dict(record))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read attempts: {e}") from e
        return (filters or AttemptFilter()).apply(attempts)

    # =========================================================================
    # MetricsStore
    # =========================================================================

    def get_user_metrics(self, user_id: str) -> UserMetrics:
        record = self._read_json(self.metrics_path).get(user_id)
        if record is None:
            return UserMetrics(user_id=user_id)
        return UserMetrics.from_dict(record)

    def upsert_user_metrics(self, user_id: str, metrics: UserMetrics) -> None:
        records = self._read_json(self.metrics_path)
        records[user_id] = metrics.to_dict()
        self._write_json(self.metrics_path, records)
