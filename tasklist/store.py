"""File-backed record store.

Each collection (tasks, users) lives in a single JSON document holding a list
of records. Every operation is a complete read-modify-write cycle executed
while holding the collection's lock, so overlapping requests are applied one
after another instead of overwriting each other's changes.
"""

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .exceptions import CorruptCollectionError, StorageError
from .utils import now_iso

logger = logging.getLogger(__name__)

Record = Dict
Mutator = Callable[[Record], None]
Predicate = Callable[[Record], bool]


def _matches(record: Record, record_id: str, owner_id: Optional[str]) -> bool:
    if record.get("id") != record_id:
        return False
    return owner_id is None or record.get("ownerId") == owner_id


class JsonCollection:
    """One JSON document guarded by one asyncio lock.

    When ``owner_id`` is passed to a lookup, a record only matches if both its
    id and its ``ownerId`` match; another owner's record is indistinguishable
    from a missing one.
    """

    def __init__(self, path: Path, lenient: bool = False):
        self.path = Path(path)
        self.lenient = lenient
        self._lock = asyncio.Lock()

    # Disk access (runs in a worker thread)

    def _read_sync(self) -> List[Record]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            return self._corrupt(f"invalid JSON ({e})")

        if not isinstance(data, list):
            return self._corrupt("document is not a JSON list")
        return data

    def _corrupt(self, reason: str) -> List[Record]:
        if self.lenient:
            logger.warning("Treating %s as empty: %s", self.path, reason)
            return []
        logger.error("Refusing to use %s: %s", self.path, reason)
        raise CorruptCollectionError(self.path, reason)

    def _write_sync(self, records: List[Record]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(records, fh, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e

    async def _read(self) -> List[Record]:
        return await asyncio.to_thread(self._read_sync)

    async def _write(self, records: List[Record]) -> None:
        await asyncio.to_thread(self._write_sync, records)

    # Public operations

    async def load_all(self) -> List[Record]:
        """Return every record; a missing document is an empty collection."""
        async with self._lock:
            return await self._read()

    async def save_all(self, records: List[Record]) -> None:
        """Overwrite the document with ``records``."""
        async with self._lock:
            await self._write(records)

    async def find_by_id(self, record_id: str, owner_id: Optional[str] = None) -> Optional[Record]:
        async with self._lock:
            records = await self._read()
        return next((r for r in records if _matches(r, record_id, owner_id)), None)

    async def find_one(self, predicate: Predicate) -> Optional[Record]:
        async with self._lock:
            records = await self._read()
        return next((r for r in records if predicate(r)), None)

    async def filter(self, predicate: Predicate) -> List[Record]:
        async with self._lock:
            records = await self._read()
        return [r for r in records if predicate(r)]

    async def insert(self, record: Record) -> Record:
        async with self._lock:
            records = await self._read()
            records.append(record)
            await self._write(records)
        return record

    async def insert_unique(self, record: Record, key: str) -> Optional[Record]:
        """Insert unless a record already has the same value for ``key``.

        Returns None (and writes nothing) on a conflict.
        """
        async with self._lock:
            records = await self._read()
            if any(r.get(key) == record.get(key) for r in records):
                return None
            records.append(record)
            await self._write(records)
        return record

    async def update(
        self,
        record_id: str,
        mutator: Mutator,
        owner_id: Optional[str] = None,
    ) -> Optional[Record]:
        """Apply ``mutator`` in place and stamp ``updatedAt``.

        Returns the updated record, or None if no record matches. If the
        mutator raises, nothing is written.
        """
        async with self._lock:
            records = await self._read()
            record = next((r for r in records if _matches(r, record_id, owner_id)), None)
            if record is None:
                return None

            mutator(record)
            record["updatedAt"] = now_iso()
            await self._write(records)
        return record

    async def remove(self, record_id: str, owner_id: Optional[str] = None) -> Optional[Record]:
        """Delete a record and return it so the caller can clean up after it."""
        async with self._lock:
            records = await self._read()
            index = next(
                (i for i, r in enumerate(records) if _matches(r, record_id, owner_id)),
                None,
            )
            if index is None:
                return None

            removed = records.pop(index)
            await self._write(records)
        return removed


class RecordStore:
    """Hands out one shared JsonCollection per collection name."""

    def __init__(self, data_dir: Path, lenient: bool = False):
        self.data_dir = Path(data_dir)
        self.lenient = lenient
        self._collections: Dict[str, JsonCollection] = {}

    def collection(self, name: str) -> JsonCollection:
        if name not in self._collections:
            path = self.data_dir / f"{name}.json"
            self._collections[name] = JsonCollection(path, lenient=self.lenient)
        return self._collections[name]

    @property
    def tasks(self) -> JsonCollection:
        return self.collection("tasks")

    @property
    def users(self) -> JsonCollection:
        return self.collection("users")
