"""Link graph storage.

Persists source -> golden edges. Every call is atomic on its own; changes
spanning several links are sequenced (and undone on failure) by LinkGraph.
Both stores refuse a second MATCH link for one source record.

SQLite for durable storage, in-memory for tests and embedding.
"""
from __future__ import annotations

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from golden_link.exceptions import LinkIntegrityError, LinkStoreError
from golden_link.links.models import Link, LinkSource, RecordReference
from golden_link.rules.models import MatchResult


class LinkStore(ABC):
    """Abstract base class for link storage."""

    @abstractmethod
    def upsert_link(self, link: Link) -> Link:
        """Insert or replace the link for (link.source, link.golden)."""
        ...

    @abstractmethod
    def delete_link(self, source: RecordReference, golden: RecordReference) -> bool:
        """Delete one link; False when it did not exist."""
        ...

    @abstractmethod
    def get_link(self, source: RecordReference, golden: RecordReference) -> Link | None:
        """Get the link between a source and a golden record."""
        ...

    @abstractmethod
    def find_links_for(self, source: RecordReference) -> list[Link]:
        """All links of a source record, MATCH and POSSIBLE_MATCH."""
        ...

    @abstractmethod
    def find_links_to(self, golden: RecordReference) -> list[Link]:
        """All links pointing at a golden record."""
        ...

    @abstractmethod
    def all_links(self) -> list[Link]:
        ...

    @abstractmethod
    def count_links(self) -> int:
        ...

    @abstractmethod
    def add_exclusion(self, source: RecordReference, golden: RecordReference) -> None:
        """Remember a manual NO_MATCH decision for a pair."""
        ...

    @abstractmethod
    def remove_exclusion(self, source: RecordReference, golden: RecordReference) -> bool:
        ...

    @abstractmethod
    def is_excluded(self, source: RecordReference, golden: RecordReference) -> bool:
        ...

    @abstractmethod
    def delete_links_involving(self, ref: RecordReference) -> int:
        """Drop every link and exclusion where ``ref`` is source or golden."""
        ...

    def find_link(self, source: RecordReference) -> Link | None:
        """The source's MATCH link, if it has one."""
        for link in self.find_links_for(source):
            if link.is_match:
                return link
        return None

    def find_possible_matches(self, source: RecordReference) -> list[Link]:
        return [link for link in self.find_links_for(source) if link.is_possible_match]

    def close(self) -> None:
        """Release resources held by the store."""


def _sorted(links: list[Link]) -> list[Link]:
    return sorted(links, key=lambda link: (link.source.sort_key(), link.golden.sort_key()))


class InMemoryLinkStore(LinkStore):
    """Dictionary-backed store guarded by a single lock."""

    def __init__(self) -> None:
        self._links: dict[tuple[RecordReference, RecordReference], Link] = {}
        self._exclusions: set[tuple[RecordReference, RecordReference]] = set()
        self._lock = threading.Lock()

    def upsert_link(self, link: Link) -> Link:
        with self._lock:
            if link.is_match:
                for other in self._links.values():
                    if other.source == link.source and other.is_match and other.golden != link.golden:
                        raise LinkIntegrityError(
                            f"{link.source} already has a MATCH link to {other.golden}"
                        )
            self._links[link.key] = link
            return link

    def delete_link(self, source: RecordReference, golden: RecordReference) -> bool:
        with self._lock:
            return self._links.pop((source, golden), None) is not None

    def get_link(self, source: RecordReference, golden: RecordReference) -> Link | None:
        with self._lock:
            return self._links.get((source, golden))

    def find_links_for(self, source: RecordReference) -> list[Link]:
        with self._lock:
            return _sorted([link for link in self._links.values() if link.source == source])

    def find_links_to(self, golden: RecordReference) -> list[Link]:
        with self._lock:
            return _sorted([link for link in self._links.values() if link.golden == golden])

    def all_links(self) -> list[Link]:
        with self._lock:
            return _sorted(list(self._links.values()))

    def count_links(self) -> int:
        with self._lock:
            return len(self._links)

    def add_exclusion(self, source: RecordReference, golden: RecordReference) -> None:
        with self._lock:
            self._exclusions.add((source, golden))

    def remove_exclusion(self, source: RecordReference, golden: RecordReference) -> bool:
        with self._lock:
            if (source, golden) in self._exclusions:
                self._exclusions.discard((source, golden))
                return True
            return False

    def is_excluded(self, source: RecordReference, golden: RecordReference) -> bool:
        with self._lock:
            return (source, golden) in self._exclusions

    def delete_links_involving(self, ref: RecordReference) -> int:
        with self._lock:
            doomed = [key for key in self._links if ref in key]
            for key in doomed:
                del self._links[key]
            self._exclusions = {pair for pair in self._exclusions if ref not in pair}
            return len(doomed)


class SQLiteLinkStore(LinkStore):
    """SQLite-backed link store.

    Tables:
    - links(source, golden -> classification, vector, score, ...)
      with a partial unique index allowing one MATCH row per source
    - link_exclusions(source, golden) for manual NO_MATCH decisions
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _get_conn(self):
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise LinkStoreError(f"Cannot open link store {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            # Enforce PRAGMAs per-connection
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            yield conn
        except sqlite3.IntegrityError as e:
            raise LinkIntegrityError(str(e)) from e
        except sqlite3.Error as e:
            raise LinkStoreError(f"Link store I/O failure: {e}") from e
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._get_conn() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS links (
                    source_type TEXT NOT NULL,
                    source_id INTEGER NOT NULL,
                    golden_type TEXT NOT NULL,
                    golden_id INTEGER NOT NULL,
                    classification TEXT NOT NULL,
                    vector INTEGER NOT NULL,
                    score REAL NOT NULL,
                    rule_count INTEGER NOT NULL,
                    link_source TEXT NOT NULL,
                    created_new_golden INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (source_type, source_id, golden_type, golden_id)
                );

                CREATE INDEX IF NOT EXISTS idx_links_golden ON links(golden_type, golden_id);
                CREATE UNIQUE INDEX IF NOT EXISTS idx_links_one_match
                    ON links(source_type, source_id) WHERE classification = 'MATCH';

                CREATE TABLE IF NOT EXISTS link_exclusions (
                    source_type TEXT NOT NULL,
                    source_id INTEGER NOT NULL,
                    golden_type TEXT NOT NULL,
                    golden_id INTEGER NOT NULL,
                    PRIMARY KEY (source_type, source_id, golden_type, golden_id)
                );
                """
            )
            conn.commit()

    @staticmethod
    def _row_to_link(row: sqlite3.Row) -> Link:
        return Link(
            source=RecordReference(resource_type=row["source_type"], id=row["source_id"]),
            golden=RecordReference(resource_type=row["golden_type"], id=row["golden_id"]),
            classification=MatchResult(row["classification"]),
            vector=row["vector"],
            score=row["score"],
            rule_count=row["rule_count"],
            link_source=LinkSource(row["link_source"]),
            created_new_golden=bool(row["created_new_golden"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # ---------------------------- Links API -----------------------------

    def upsert_link(self, link: Link) -> Link:
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT INTO links (
                    source_type, source_id, golden_type, golden_id,
                    classification, vector, score, rule_count, link_source,
                    created_new_golden, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(source_type, source_id, golden_type, golden_id) DO UPDATE SET
                    classification = excluded.classification,
                    vector = excluded.vector,
                    score = excluded.score,
                    rule_count = excluded.rule_count,
                    link_source = excluded.link_source,
                    created_new_golden = excluded.created_new_golden,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at
                """,
                (
                    link.source.resource_type,
                    link.source.id,
                    link.golden.resource_type,
                    link.golden.id,
                    link.classification.value,
                    link.vector,
                    link.score,
                    link.rule_count,
                    link.link_source.value,
                    int(link.created_new_golden),
                    link.created_at.isoformat(),
                    link.updated_at.isoformat(),
                ),
            )
            conn.commit()
        return link

    def delete_link(self, source: RecordReference, golden: RecordReference) -> bool:
        with self._get_conn() as conn:
            cur = conn.execute(
                """
                DELETE FROM links
                WHERE source_type = ? AND source_id = ? AND golden_type = ? AND golden_id = ?
                """,
                (source.resource_type, source.id, golden.resource_type, golden.id),
            )
            conn.commit()
            return cur.rowcount > 0

    def get_link(self, source: RecordReference, golden: RecordReference) -> Link | None:
        with self._get_conn() as conn:
            row = conn.execute(
                """
                SELECT * FROM links
                WHERE source_type = ? AND source_id = ? AND golden_type = ? AND golden_id = ?
                """,
                (source.resource_type, source.id, golden.resource_type, golden.id),
            ).fetchone()
            return self._row_to_link(row) if row else None

    def find_links_for(self, source: RecordReference) -> list[Link]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM links WHERE source_type = ? AND source_id = ?
                ORDER BY golden_id, golden_type
                """,
                (source.resource_type, source.id),
            ).fetchall()
            return [self._row_to_link(r) for r in rows]

    def find_links_to(self, golden: RecordReference) -> list[Link]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM links WHERE golden_type = ? AND golden_id = ?
                ORDER BY source_id, source_type
                """,
                (golden.resource_type, golden.id),
            ).fetchall()
            return [self._row_to_link(r) for r in rows]

    def all_links(self) -> list[Link]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM links ORDER BY source_id, source_type, golden_id, golden_type"
            ).fetchall()
            return [self._row_to_link(r) for r in rows]

    def count_links(self) -> int:
        with self._get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM links").fetchone()[0]

    # -------------------------- Exclusions API --------------------------

    def add_exclusion(self, source: RecordReference, golden: RecordReference) -> None:
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO link_exclusions (source_type, source_id, golden_type, golden_id)
                VALUES (?, ?, ?, ?)
                """,
                (source.resource_type, source.id, golden.resource_type, golden.id),
            )
            conn.commit()

    def remove_exclusion(self, source: RecordReference, golden: RecordReference) -> bool:
        with self._get_conn() as conn:
            cur = conn.execute(
                """
                DELETE FROM link_exclusions
                WHERE source_type = ? AND source_id = ? AND golden_type = ? AND golden_id = ?
                """,
                (source.resource_type, source.id, golden.resource_type, golden.id),
            )
            conn.commit()
            return cur.rowcount > 0

    def is_excluded(self, source: RecordReference, golden: RecordReference) -> bool:
        with self._get_conn() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM link_exclusions
                WHERE source_type = ? AND source_id = ? AND golden_type = ? AND golden_id = ?
                """,
                (source.resource_type, source.id, golden.resource_type, golden.id),
            ).fetchone()
            return row is not None

    def delete_links_involving(self, ref: RecordReference) -> int:
        params = (ref.resource_type, ref.id, ref.resource_type, ref.id)
        where = "(source_type = ? AND source_id = ?) OR (golden_type = ? AND golden_id = ?)"
        with self._get_conn() as conn:
            cur = conn.execute(f"DELETE FROM links WHERE {where}", params)
            conn.execute(f"DELETE FROM link_exclusions WHERE {where}", params)
            conn.commit()
            return cur.rowcount
