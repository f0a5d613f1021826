"""
Persisted recommendation list.

The store keeps the authoritative list in memory and writes the whole list
through a backend after every change. Backends only need ``load()`` and
``save(list)``; a JSON file and any string key/value mapping are provided.
"""
import dataclasses
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, MutableMapping, Protocol

from pydantic import TypeAdapter, ValidationError

from config import STORAGE_KEY
from models import Recommendation

logger = logging.getLogger(__name__)

_codec = TypeAdapter(list[Recommendation])


def dump_recommendations(recs: list[Recommendation]) -> str:
    # datetimes are written as ISO-8601 strings
    return _codec.dump_json(recs, indent=2).decode("utf-8")


def parse_recommendations(raw: str | bytes) -> list[Recommendation]:
    """Raises ValueError (json or schema) on malformed input."""
    return _codec.validate_json(raw)


class RecommendationBackend(Protocol):
    def load(self) -> list[Recommendation]: ...

    def save(self, recs: list[Recommendation]) -> None: ...


class JsonFileBackend:
    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> list[Recommendation]:
        if not self.path.exists():
            return []
        try:
            return parse_recommendations(self.path.read_bytes())
        except (ValidationError, ValueError, OSError) as e:
            logger.warning(f"Discarding corrupt recommendations file {self.path}: {e}")
            try:
                self.path.rename(self.path.with_suffix(".json.corrupted"))
            except OSError as rename_err:
                logger.debug(f"Could not move {self.path} aside: {rename_err}")
            return []

    def save(self, recs: list[Recommendation]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(dump_recommendations(recs))
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise


class KeyValueBackend:
    """Stores the encoded list under one key of a str -> str mapping."""

    def __init__(self, storage: MutableMapping[str, str] | None = None, key: str = STORAGE_KEY):
        self.storage = {} if storage is None else storage
        self.key = key

    def load(self) -> list[Recommendation]:
        raw = self.storage.get(self.key)
        if raw is None:
            return []
        try:
            return parse_recommendations(raw)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Discarding corrupt record under '{self.key}': {e}")
            del self.storage[self.key]
            return []

    def save(self, recs: list[Recommendation]) -> None:
        self.storage[self.key] = dump_recommendations(recs)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecommendationStore:
    def __init__(self, backend: RecommendationBackend, clock: Callable[[], datetime] = _utcnow):
        self.backend = backend
        self.clock = clock
        self._items: list[Recommendation] = []

    def load(self) -> None:
        now = self.clock()
        loaded = self.backend.load()
        self._items = [r for r in loaded if not r.is_expired(now)]
        logger.info(f"Loaded {len(self._items)} recommendations ({len(loaded) - len(self._items)} expired)")

    @property
    def recommendations(self) -> list[Recommendation]:
        now = self.clock()
        return [r for r in self._items if not r.is_expired(now)]

    def entries(self) -> list[Recommendation]:
        """Everything held, including entries that expired since the last merge."""
        return list(self._items)

    def get(self, rec_id: str) -> Recommendation | None:
        return next((r for r in self._items if r.id == rec_id), None)

    def replace(self, recs: list[Recommendation]) -> None:
        self._items = list(recs)
        self._persist()

    def mark_read(self, rec_id: str) -> None:
        if not any(r.id == rec_id and not r.is_read for r in self._items):
            return
        self._items = [_read(r) if r.id == rec_id else r for r in self._items]
        self._persist()

    def dismiss(self, rec_id: str) -> None:
        kept = [r for r in self._items if r.id != rec_id]
        if len(kept) == len(self._items):
            return
        self._items = kept
        self._persist()

    def mark_all_read(self) -> None:
        if all(r.is_read for r in self._items):
            return
        self._items = [_read(r) for r in self._items]
        self._persist()

    def unread_count(self) -> int:
        return sum(1 for r in self.recommendations if not r.is_read)

    def priority_unread(self) -> list[Recommendation]:
        return [r for r in self.recommendations if r.priority == "high" and not r.is_read]

    def _persist(self) -> None:
        # The in-memory list is already updated; a failed write only loses durability
        try:
            self.backend.save(self._items)
        except OSError as e:
            logger.error(f"Failed to persist recommendations: {e}")


def _read(rec: Recommendation) -> Recommendation:
    return rec if rec.is_read else dataclasses.replace(rec, is_read=True)
