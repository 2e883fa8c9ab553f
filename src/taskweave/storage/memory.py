"""Dictionary-backed store, used in tests and single-run tooling."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .base import TASK, Record, StateStore, deserialize_record, record_kind, serialize_record


logger = logging.getLogger(__name__)


class InMemoryStateStore(StateStore):
    """Keeps JSON-mode dumps so loaded records never alias live ones."""

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], Dict[str, Any]] = {}

    async def save(self, record: Record) -> None:
        kind = record_kind(record)
        self._records[(kind, record.id)] = serialize_record(record)
        logger.debug(f"Saved {kind} {record.id} to memory")

    async def load(self, record_id: str, kind: str = TASK) -> Optional[Record]:
        data = self._records.get((kind, record_id))
        if data is None:
            logger.debug(f"No {kind} found for id {record_id}")
            return None
        return deserialize_record(kind, data)

    async def delete(self, record_id: str, kind: str = TASK) -> bool:
        return self._records.pop((kind, record_id), None) is not None

    async def list_all(self, kind: str = TASK) -> List[Record]:
        return [
            deserialize_record(k, data)
            for (k, _), data in self._records.items()
            if k == kind
        ]
