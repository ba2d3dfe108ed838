"""Record-storage collaborators used by the link workflow.

The link graph owns edges only. Source and golden records live in a
record store reached through these protocols; candidate retrieval is
delegated to an index/search collaborator.
"""
from __future__ import annotations

import copy
import threading
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from golden_link.exceptions import RecordNotFoundError
from golden_link.links.models import RecordReference
from golden_link.rules.accessors import FieldAccessor, MappingFieldAccessor


@runtime_checkable
class RecordRepository(Protocol):
    """Read access to records plus golden-record creation."""

    def read_record(self, ref: RecordReference) -> Any:
        """Return the record for ``ref``.

        Raises:
            RecordNotFoundError: if no such record exists
        """
        ...

    def create_golden_record(self, seed_fields: Any) -> RecordReference:
        """Create a golden record seeded from a source record."""
        ...


@runtime_checkable
class CandidateFinder(Protocol):
    """Finds existing golden records worth comparing with a source record."""

    def find_candidate_golden_records(self, source_record: Any) -> list[RecordReference]:
        ...


class InMemoryRecordRepository:
    """Dict-backed RecordRepository and CandidateFinder.

    Records are JSON-shaped mappings. Candidate retrieval returns every
    golden record, or only those sharing a value at ``blocking_path`` with
    the source record when one is configured.
    """

    def __init__(
        self,
        golden_type: str = "Person",
        blocking_path: str | None = None,
        accessor: FieldAccessor | None = None,
    ) -> None:
        self.golden_type = golden_type
        self.blocking_path = blocking_path
        self.accessor = accessor or MappingFieldAccessor()
        self._records: dict[RecordReference, dict[str, Any]] = {}
        self._next_id: dict[str, int] = {}
        self._lock = threading.Lock()

    def _allocate(self, resource_type: str) -> RecordReference:
        next_id = self._next_id.get(resource_type, 1)
        self._next_id[resource_type] = next_id + 1
        return RecordReference(resource_type=resource_type, id=next_id)

    def add_record(self, resource_type: str, record: Mapping[str, Any]) -> RecordReference:
        """Store a record under a freshly allocated id."""
        with self._lock:
            ref = self._allocate(resource_type)
            self._records[ref] = {**copy.deepcopy(dict(record)), "resourceType": resource_type, "id": ref.id}
            return ref

    def put_record(self, ref: RecordReference, record: Mapping[str, Any]) -> None:
        """Create or replace the record at a known reference."""
        with self._lock:
            self._records[ref] = {**copy.deepcopy(dict(record)), "resourceType": ref.resource_type, "id": ref.id}
            self._next_id[ref.resource_type] = max(self._next_id.get(ref.resource_type, 1), ref.id + 1)

    def delete_record(self, ref: RecordReference) -> bool:
        with self._lock:
            return self._records.pop(ref, None) is not None

    def read_record(self, ref: RecordReference) -> dict[str, Any]:
        with self._lock:
            record = self._records.get(ref)
            if record is None:
                raise RecordNotFoundError(f"No record {ref}")
            return copy.deepcopy(record)

    def create_golden_record(self, seed_fields: Any) -> RecordReference:
        seed = dict(seed_fields) if isinstance(seed_fields, Mapping) else {}
        seed.pop("id", None)
        return self.add_record(self.golden_type, seed)

    def golden_records(self) -> list[RecordReference]:
        with self._lock:
            refs = [r for r in self._records if r.resource_type == self.golden_type]
        return sorted(refs, key=lambda r: r.id)

    def find_candidate_golden_records(self, source_record: Any) -> list[RecordReference]:
        candidates = self.golden_records()
        if self.blocking_path is None:
            return candidates
        keys = set(map(repr, self.accessor.get_field_values(source_record, self.blocking_path)))
        if not keys:
            return []
        with self._lock:
            records = {ref: self._records.get(ref) for ref in candidates}
        return [
            ref
            for ref, record in records.items()
            if record is not None
            and keys & set(map(repr, self.accessor.get_field_values(record, self.blocking_path)))
        ]
