"""Link graph: exclusive sections, retried store calls, all-or-nothing commits.

LinkGraph wraps a LinkStore with the concurrency and failure discipline
shared by automatic link maintenance and manual review:

- every read-then-write of a source's links happens inside ``section()``,
  which holds the locks for the source and every golden record involved
- every store call is retried on LinkStoreError (tenacity, bounded by
  LinkConfig)
- ``commit()`` applies a change list in order and, if a call still fails,
  restores every link it already touched before raising LinkUpdateError
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from golden_link.config import CONFIG, LinkConfig
from golden_link.exceptions import (
    GoldenLinkError,
    InvalidResolutionError,
    LinkStoreError,
    LinkUpdateError,
)
from golden_link.links.locks import KeyedLocks
from golden_link.links.models import ChangeKind, Link, LinkChange, RecordReference
from golden_link.links.planner import plan_resolution
from golden_link.links.store import LinkStore
from golden_link.logging import get_logger
from golden_link.rules.models import MatchResult

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LinkGraph:
    """Concurrency-safe front end to a LinkStore."""

    def __init__(
        self,
        store: LinkStore,
        config: LinkConfig = CONFIG,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.config = config
        self.locks = locks or KeyedLocks()
        self.clock = clock

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    def _retrying(self) -> Retrying:
        return Retrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.config.store_retries)),
            wait=wait_exponential_jitter(
                initial=self.config.retry_initial_wait,
                max=self.config.retry_max_wait,
            ),
            retry=retry_if_exception_type(LinkStoreError),
        )

    def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run one atomic store call, retrying I/O failures."""
        return self._retrying()(fn, *args)

    def links_for(self, source: RecordReference) -> list[Link]:
        return self.call(self.store.find_links_for, source)

    def now(self) -> datetime:
        return self.clock()

    # ------------------------------------------------------------------
    # Exclusive sections
    # ------------------------------------------------------------------

    @contextmanager
    def exclusive(self, refs: Iterable[RecordReference]) -> Iterator[tuple[RecordReference, ...]]:
        """Hold the locks for ``refs``; released on every exit path."""
        with self.locks.hold(refs) as held:
            yield held

    @contextmanager
    def exclusive_if_free(self, refs: Iterable[RecordReference]) -> Iterator[bool]:
        """Try to lock ``refs`` without waiting; yields whether they are held."""
        with self.locks.hold_if_free(refs) as held:
            yield held

    @contextmanager
    def section(
        self,
        source: RecordReference,
        extra: Iterable[RecordReference] = (),
    ) -> Iterator[list[Link]]:
        """Lock a source, ``extra`` and the goldens it links to; yield its links.

        The links are read again once the locks are held. If they point at a
        golden record that was not locked, the locks are dropped and the
        section retried with the larger key set.
        """
        wanted = {source, *extra}
        while True:
            wanted |= {link.golden for link in self.links_for(source)}
            with self.locks.hold(wanted):
                links = self.links_for(source)
                if {link.golden for link in links} <= wanted:
                    yield links
                    return
            log.debug("link_section_widened", source=str(source), keys=len(wanted))

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _apply(self, change: LinkChange) -> None:
        if change.kind == ChangeKind.DELETE:
            self.call(self.store.delete_link, change.source, change.golden)
        else:
            self.call(self.store.upsert_link, change.link)

    def _restore(self, change: LinkChange, previous: Link | None) -> None:
        if previous is None:
            self.call(self.store.delete_link, change.source, change.golden)
        else:
            self.call(self.store.upsert_link, previous)

    def commit(self, changes: list[LinkChange]) -> list[LinkChange]:
        """Apply ``changes`` in order as one logical unit.

        Callers must hold the section covering every source and golden
        record in ``changes``.

        Raises:
            LinkUpdateError: a change failed after retries; every change
                already applied has been reverted
        """
        applied: list[tuple[LinkChange, Link | None]] = []
        try:
            for change in changes:
                previous = self.call(self.store.get_link, change.source, change.golden)
                self._apply(change)
                applied.append((change, previous))
        except GoldenLinkError as e:
            sources = ", ".join(sorted({str(c.source) for c in changes}))
            log.warning(
                "link_commit_failed",
                sources=sources,
                applied=len(applied),
                planned=len(changes),
                error=str(e),
            )
            self._revert(applied)
            raise LinkUpdateError(source=sources, reason=str(e)) from e
        return changes

    def _revert(self, applied: list[tuple[LinkChange, Link | None]]) -> None:
        for change, previous in reversed(applied):
            try:
                self._restore(change, previous)
            except GoldenLinkError as e:
                log.error(
                    "link_revert_failed",
                    source=str(change.source),
                    golden=str(change.golden),
                    error=str(e),
                )
                raise

    # ------------------------------------------------------------------
    # Manual review and maintenance
    # ------------------------------------------------------------------

    def resolve(
        self,
        source: RecordReference,
        golden: RecordReference,
        outcome: MatchResult,
    ) -> Link | None:
        """Record a reviewer's decision on a POSSIBLE_MATCH link.

        MATCH turns the link into a MANUAL MATCH (other MATCH links of the
        source are downgraded). NO_MATCH deletes it and remembers the pair
        so automatic runs skip it.

        Returns:
            The resulting link, or None after NO_MATCH

        Raises:
            InvalidResolutionError: outcome is POSSIBLE_MATCH, or the pair
                has no POSSIBLE_MATCH link
            LinkUpdateError: the store could not apply the decision
        """
        if outcome not in (MatchResult.MATCH, MatchResult.NO_MATCH):
            raise InvalidResolutionError(f"Cannot resolve a link to {outcome.value}")

        with self.section(source, [golden]) as links:
            link = next((existing for existing in links if existing.golden == golden), None)
            if link is None or not link.is_possible_match:
                raise InvalidResolutionError(
                    f"No POSSIBLE_MATCH link between {source} and {golden}"
                )
            changes = plan_resolution(links, link, outcome, self.now())

            if outcome == MatchResult.NO_MATCH:
                self._call_for(source, self.store.add_exclusion, source, golden)
                try:
                    self.commit(changes)
                except LinkUpdateError:
                    try:
                        self.call(self.store.remove_exclusion, source, golden)
                    except GoldenLinkError as e:
                        log.error(
                            "link_exclusion_revert_failed",
                            source=str(source),
                            golden=str(golden),
                            error=str(e),
                        )
                    raise
                log.info("link_resolved", source=str(source), golden=str(golden), outcome="NO_MATCH")
                return None

            self.commit(changes)
            log.info("link_resolved", source=str(source), golden=str(golden), outcome="MATCH")
            return self._call_for(source, self.store.get_link, source, golden)

    def _call_for(self, source: RecordReference, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return self.call(fn, *args)
        except GoldenLinkError as e:
            log.warning("link_store_call_failed", source=str(source), error=str(e))
            raise LinkUpdateError(source=str(source), reason=str(e)) from e

    def unlink(self, source: RecordReference, golden: RecordReference) -> bool:
        """Delete the link between a pair, whatever its classification."""
        with self.section(source, [golden]) as links:
            if not any(link.golden == golden for link in links):
                return False
            self.commit([LinkChange.delete(source, golden)])
        log.info("link_removed", source=str(source), golden=str(golden))
        return True

    def record_deleted(self, ref: RecordReference) -> int:
        """Drop every link and exclusion touching a deleted record.

        Any writer of a link holds the locks of both its ends, so holding
        ``ref`` alone is enough.
        """
        with self.exclusive([ref]):
            removed = self.call(self.store.delete_links_involving, ref)
        log.info("record_links_removed", record=str(ref), removed=removed)
        return removed
