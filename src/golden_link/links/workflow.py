"""Link maintenance workflow.

Keeps a source record's links to golden records current:

1. Read the source record and ask the candidate finder for golden records
2. Skip candidates the reviewer excluded or that no longer exist
3. Score and classify each remaining candidate
4. Plan the new link set from the source's current links
5. Create a golden record when nothing matched
6. Commit the changes as one unit

Steps 1-6 run inside one exclusive section covering the source, every
candidate and every golden record the source already links to, so runs
sharing a golden record serialize and unrelated runs proceed in parallel.
A golden record created in step 5 is only try-locked. If another run
already holds it, the section is left and retried with the new record as
a candidate, so all waiting happens in one sorted acquisition.
"""
from __future__ import annotations

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from golden_link.config import CONFIG, LinkConfig
from golden_link.exceptions import (
    ComparatorTypeError,
    ConfigurationError,
    GoldenLinkError,
    LinkUpdateError,
    RecordNotFoundError,
)
from golden_link.links.graph import LinkGraph
from golden_link.links.models import CandidateEvaluation, LinkUpdateResult, RecordReference
from golden_link.links.planner import add_new_golden, diff_links, plan_links
from golden_link.links.repository import CandidateFinder, RecordRepository
from golden_link.logging import get_logger
from golden_link.rules.engine import ResourceMatcher

log = get_logger(__name__)


class LinkMaintenanceWorkflow:
    """Updates the links of source records as they are created or changed."""

    def __init__(
        self,
        graph: LinkGraph,
        matcher: ResourceMatcher,
        repository: RecordRepository,
        candidates: CandidateFinder | None = None,
        config: LinkConfig | None = None,
    ) -> None:
        if candidates is None:
            if not isinstance(repository, CandidateFinder):
                raise ConfigurationError(
                    "No candidate finder given and the repository cannot find candidates"
                )
            candidates = repository
        self.graph = graph
        self.matcher = matcher
        self.repository = repository
        self.candidates = candidates
        self.config = config or graph.config

    def _find_candidates(self, source: RecordReference, record: Any) -> list[RecordReference]:
        found = []
        for ref in self.candidates.find_candidate_golden_records(record):
            if ref != source and ref not in found:
                found.append(ref)
        limit = self.config.max_candidates
        if limit > 0 and len(found) > limit:
            log.info("candidates_truncated", source=str(source), found=len(found), limit=limit)
            found = found[:limit]
        return found

    def _evaluate(
        self,
        source: RecordReference,
        record: Any,
        candidates: list[RecordReference],
    ) -> tuple[list[CandidateEvaluation], list[RecordReference]]:
        evaluations: list[CandidateEvaluation] = []
        skipped: list[RecordReference] = []
        for golden in candidates:
            if self.graph.call(self.graph.store.is_excluded, source, golden):
                log.debug("candidate_excluded", source=str(source), golden=str(golden))
                skipped.append(golden)
                continue
            try:
                golden_record = self.repository.read_record(golden)
            except RecordNotFoundError:
                log.warning("candidate_not_found", source=str(source), golden=str(golden))
                skipped.append(golden)
                continue
            outcome = self.matcher.match(record, golden_record, label=str(golden))
            evaluations.append(CandidateEvaluation(golden=golden, outcome=outcome))
        return evaluations, skipped

    def update_links(self, source: RecordReference) -> LinkUpdateResult:
        """Bring the links of ``source`` up to date.

        Raises:
            LinkUpdateError: the run failed; the source's links are as they
                were before the run
        """
        try:
            record = self.repository.read_record(source)
            candidates = self._find_candidates(source, record)
            done = False
            while not done:
                with self.graph.section(source, candidates) as existing:
                    evaluations, skipped = self._evaluate(source, record, candidates)
                    now = self.graph.now()
                    plan = plan_links(source, existing, evaluations, now)
                    if not plan.needs_new_golden:
                        changes = self.graph.commit(diff_links(existing, plan.desired, now))
                        done = True
                    else:
                        golden = self.repository.create_golden_record(record)
                        log.info("golden_record_created", source=str(source), golden=str(golden))
                        # another run may already have found the new record as a candidate
                        with self.graph.exclusive_if_free([golden]) as done:
                            if done:
                                outcome = self.matcher.match(
                                    record, self.repository.read_record(golden), label=str(golden)
                                )
                                plan = add_new_golden(plan, golden, outcome)
                                changes = self.graph.commit(diff_links(existing, plan.desired, now))
                if not done:
                    log.info("golden_record_busy", source=str(source), golden=str(golden))
                    candidates = [*candidates, golden]
        except LinkUpdateError:
            raise
        except ComparatorTypeError as e:
            log.error("comparator_type_error", source=str(source), error=str(e))
            raise LinkUpdateError(source=str(source), reason=str(e)) from e
        except GoldenLinkError as e:
            log.error("link_update_failed", source=str(source), error=str(e))
            raise LinkUpdateError(source=str(source), reason=str(e)) from e

        log.info(
            "links_updated",
            source=str(source),
            action=plan.action.value,
            golden=str(plan.golden) if plan.golden else None,
            candidates=len(candidates),
            changes=len(changes),
        )
        return LinkUpdateResult.success_result(
            source=source,
            action=plan.action,
            golden=plan.golden,
            evaluations=evaluations,
            changes=changes,
            skipped_candidates=skipped,
        )

    def _safe_update(self, source: RecordReference) -> LinkUpdateResult:
        try:
            return self.update_links(source)
        except LinkUpdateError as e:
            return LinkUpdateResult.failure_result(source, e.reason)

    def update_links_batch(
        self,
        sources: Iterable[RecordReference],
        max_workers: int = 1,
    ) -> list[LinkUpdateResult]:
        """Update many sources; one result per source, in input order."""
        sources = list(sources)
        if max_workers <= 1:
            results = [self._safe_update(s) for s in sources]
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                results = list(pool.map(self._safe_update, sources))
        failed = sum(1 for r in results if not r.success)
        log.info("link_batch_completed", sources=len(sources), failed=failed)
        return results
