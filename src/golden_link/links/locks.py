"""Exclusive sections keyed by record identity.

Every operation that reads-then-writes a source record's links holds the
locks for that source and for every golden record it may touch. Keys are
always taken in sorted order by one ``hold()``, so two runs sharing keys
cannot deadlock; a key discovered mid-section is only try-acquired with
``hold_if_free()``. Runs sharing no key proceed in parallel.
"""
from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from golden_link.links.models import RecordReference


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """A lock per RecordReference, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[RecordReference, _Entry] = {}

    def _checkout(self, key: RecordReference) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: RecordReference, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @staticmethod
    def _ordered(keys: Iterable[RecordReference]) -> tuple[RecordReference, ...]:
        return tuple(sorted(set(keys), key=lambda r: (r.resource_type, r.id)))

    def _release(self, held: list[tuple[RecordReference, _Entry]]) -> None:
        while held:
            key, entry = held.pop()
            entry.lock.release()
            self._checkin(key, entry)

    @contextmanager
    def hold(self, keys: Iterable[RecordReference]) -> Iterator[tuple[RecordReference, ...]]:
        """Hold the locks for ``keys`` for the duration of the block."""
        ordered = self._ordered(keys)
        held: list[tuple[RecordReference, _Entry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                try:
                    entry.lock.acquire()
                except BaseException:
                    self._checkin(key, entry)
                    raise
                held.append((key, entry))
            yield ordered
        finally:
            self._release(held)

    @contextmanager
    def hold_if_free(self, keys: Iterable[RecordReference]) -> Iterator[bool]:
        """Hold the locks for ``keys`` only if none is taken; never waits.

        Yields False, holding nothing, when any key is busy. Safe to use
        inside ``hold()`` because it cannot block.
        """
        ordered = self._ordered(keys)
        held: list[tuple[RecordReference, _Entry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                if not entry.lock.acquire(blocking=False):
                    self._checkin(key, entry)
                    self._release(held)
                    break
                held.append((key, entry))
            yield len(held) == len(ordered)
        finally:
            self._release(held)


    def active_keys(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._entries)
