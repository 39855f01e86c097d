"""
Document-store backends for leaderboard persistence.
"""
import asyncio
import copy
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)

ASCENDING = "asc"
DESCENDING = "desc"


class ScoreStore:
    """
    Minimal document-store interface.

    Documents live in named collections and are addressed by a string key.
    """

    async def upsert(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def query(
        self,
        collection: str,
        order_by: str,
        direction: str = ASCENDING,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError


def _check_direction(direction: str) -> None:
    if direction not in (ASCENDING, DESCENDING):
        raise StoreReadError(f"Unknown sort direction: {direction}")


def order_documents(
    documents: List[Dict[str, Any]],
    order_by: str,
    direction: str,
    limit: Optional[int]
) -> List[Dict[str, Any]]:
    """Sort documents by a field and apply a limit. Documents missing the field are skipped."""
    _check_direction(direction)
    ordered = sorted(
        (doc for doc in documents if order_by in doc),
        key=lambda doc: doc[order_by],
        reverse=direction == DESCENDING
    )
    if limit is not None:
        ordered = ordered[:max(limit, 0)]
    return ordered


class MemoryScoreStore(ScoreStore):
    """Score store kept in process memory."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    async def upsert(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[key] = copy.deepcopy(record)

    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        record = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(record) if record is not None else None

    async def query(
        self,
        collection: str,
        order_by: str,
        direction: str = ASCENDING,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        documents = list(self._collections.get(collection, {}).values())
        return copy.deepcopy(order_documents(documents, order_by, direction, limit))


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode_object(obj: Dict[str, Any]) -> Any:
    if set(obj) == {"$date"}:
        return datetime.fromisoformat(obj["$date"])
    return obj


class JsonFileScoreStore(ScoreStore):
    """
    Score store persisted as one JSON file per collection.

    File IO runs in a worker thread so the event loop is never blocked.
    Writes are serialized with a lock since each one rewrites the whole file.
    """

    def __init__(self, directory: str = "./data/"):
        """
        Initialize the store.

        Args:
            directory: Directory holding ``<collection>.json`` files
        """
        self.directory = Path(directory)
        self._write_lock = asyncio.Lock()

    def _collection_path(self, collection: str) -> Path:
        if not collection or os.sep in collection or collection.startswith("."):
            raise ValueError(f"Invalid collection name: {collection!r}")
        return self.directory / f"{collection}.json"

    def _read_collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        path = self._collection_path(collection)
        if not path.exists():
            return {}
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f, object_hook=_decode_object)
        if not isinstance(data, dict):
            raise ValueError(f"Collection file {path} must contain a JSON object")
        return data

    def _write_collection(self, collection: str, documents: Dict[str, Dict[str, Any]]) -> None:
        path = self._collection_path(collection)
        self.directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.directory, prefix=f".{collection}.", suffix=".tmp", delete=False
        ) as f:
            temp_path = f.name
            try:
                json.dump(documents, f, indent=2, ensure_ascii=False, default=_encode_value)
            except (TypeError, ValueError):
                f.close()
                os.unlink(temp_path)
                raise
        os.replace(temp_path, path)

    def _upsert_sync(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        documents = self._read_collection(collection)
        documents[key] = record
        self._write_collection(collection, documents)

    async def upsert(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        try:
            async with self._write_lock:
                await asyncio.to_thread(self._upsert_sync, collection, key, record)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to write '{key}' to collection '{collection}': {e}")
            raise StoreWriteError(f"Could not save record: {e}") from e
        logger.debug(f"Upserted '{key}' into collection '{collection}'")

    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            documents = await asyncio.to_thread(self._read_collection, collection)
        except (OSError, ValueError) as e:
            raise StoreReadError(f"Could not read collection '{collection}': {e}") from e
        return documents.get(key)

    async def query(
        self,
        collection: str,
        order_by: str,
        direction: str = ASCENDING,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        try:
            documents = await asyncio.to_thread(self._read_collection, collection)
        except (OSError, ValueError) as e:
            raise StoreReadError(f"Could not read collection '{collection}': {e}") from e
        try:
            return order_documents(list(documents.values()), order_by, direction, limit)
        except TypeError as e:
            raise StoreReadError(f"Cannot order collection '{collection}' by '{order_by}': {e}") from e
