"""Record storage for the workflow engine.

Repositories hold one kind of pydantic record keyed by its ``id``.
Derived fields are never stored as input: records are rebuilt through
``model_validate`` on every read, so computed properties are re-derived.
"""

import json
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

from irb_compliance.errors import NotFoundError

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class Repository(Protocol[RecordT]):
    """Storage contract consumed by the unit of work."""

    entity_type: str

    def get(self, record_id: str) -> RecordT: ...

    def create(self, record: RecordT) -> RecordT: ...

    def update(self, record_id: str, changes: dict[str, Any]) -> RecordT: ...

    def delete(self, record_id: str) -> None: ...

    def find(self, predicate: Callable[[RecordT], bool] | None = None) -> list[RecordT]: ...


def _merge(model: type[RecordT], current: RecordT, changes: dict[str, Any]) -> RecordT:
    data = current.model_dump()
    data.update(changes)
    return model.model_validate(data)


class InMemoryRepository(Generic[RecordT]):
    """Dictionary-backed repository that hands out copies."""

    def __init__(self, model: type[RecordT], entity_type: str):
        self.model = model
        self.entity_type = entity_type
        self._records: dict[str, dict[str, Any]] = {}

    def get(self, record_id: str) -> RecordT:
        try:
            data = self._records[record_id]
        except KeyError:
            raise NotFoundError(self.entity_type, record_id) from None
        return self.model.model_validate(data)

    def create(self, record: RecordT) -> RecordT:
        record_id = getattr(record, "id")
        if record_id in self._records:
            raise ValueError(f"{self.entity_type} {record_id} already exists")
        self._records[record_id] = record.model_dump()
        return self.get(record_id)

    def update(self, record_id: str, changes: dict[str, Any]) -> RecordT:
        updated = _merge(self.model, self.get(record_id), changes)
        self._records[record_id] = updated.model_dump()
        return self.get(record_id)

    def delete(self, record_id: str) -> None:
        self._records.pop(record_id, None)

    def find(self, predicate: Callable[[RecordT], bool] | None = None) -> list[RecordT]:
        records = [self.model.model_validate(data) for data in self._records.values()]
        if predicate is None:
            return records
        return [record for record in records if predicate(record)]

    def __len__(self) -> int:
        return len(self._records)


class JsonFileRepository(Generic[RecordT]):
    """Repository storing one JSON document per record in a directory.

    Example:
        repo = JsonFileRepository(AdverseEvent, "adverse_event", Path("data/adverse_events"))
        repo.create(event)
        repo.get(event.id)
    """

    def __init__(self, model: type[RecordT], entity_type: str, directory: Path):
        self.model = model
        self.entity_type = entity_type
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, record_id: str) -> Path:
        return self.directory / f"{record_id}.json"

    def _write(self, record: RecordT) -> None:
        path = self._path(getattr(record, "id"))
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record.model_dump(mode="json"), f, indent=2)
        logger.debug("Saved %s to %s", self.entity_type, path)

    def _load(self, path: Path) -> RecordT:
        with open(path, encoding="utf-8") as f:
            return self.model.model_validate(json.load(f))

    def get(self, record_id: str) -> RecordT:
        path = self._path(record_id)
        if not path.exists():
            raise NotFoundError(self.entity_type, record_id)
        return self._load(path)

    def create(self, record: RecordT) -> RecordT:
        record_id = getattr(record, "id")
        if self._path(record_id).exists():
            raise ValueError(f"{self.entity_type} {record_id} already exists")
        self._write(record)
        return self.get(record_id)

    def update(self, record_id: str, changes: dict[str, Any]) -> RecordT:
        updated = _merge(self.model, self.get(record_id), changes)
        self._write(updated)
        return self.get(record_id)

    def delete(self, record_id: str) -> None:
        self._path(record_id).unlink(missing_ok=True)

    def _iter_records(self) -> Iterator[RecordT]:
        for path in sorted(self.directory.glob("*.json")):
            try:
                yield self._load(path)
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning("Skipping unreadable %s file %s: %s", self.entity_type, path, e)

    def find(self, predicate: Callable[[RecordT], bool] | None = None) -> list[RecordT]:
        records = list(self._iter_records())
        if predicate is None:
            return records
        return [record for record in records if predicate(record)]
