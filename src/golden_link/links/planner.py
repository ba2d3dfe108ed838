"""Link planning: snapshot of a source's links + candidate outcomes -> changes.

Pure functions, no I/O. The caller loads the current links of one source
record, plans the new link set, and commits the resulting changes as one
unit while holding the exclusive section for every identity involved.

Decision rules for an automatic run:
1. A MANUAL MATCH link is final: nothing changes.
2. Links to golden records that were not evaluated this run are carried
   over unchanged (except a MATCH among them loses to a new MATCH).
3. Evaluated candidates get links per classification; NO_MATCH drops any
   automatic link to that candidate.
4. Several MATCH candidates: highest score wins, then lowest golden id;
   the others become POSSIBLE_MATCH so a reviewer sees the ambiguity.
5. One MATCH: every other MATCH link of the source is downgraded.
6. No MATCH and no POSSIBLE_MATCH left: a new golden record is needed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from golden_link.links.models import (
    CandidateEvaluation,
    ChangeKind,
    Link,
    LinkAction,
    LinkChange,
    LinkSource,
    RecordReference,
)
from golden_link.rules.models import MatchOutcome, MatchResult


@dataclass
class LinkPlan:
    """Desired link set for one source record."""

    source: RecordReference
    action: LinkAction
    golden: RecordReference | None
    desired: dict[RecordReference, Link] = field(default_factory=dict)
    needs_new_golden: bool = False


def pick_winner(matches: list[CandidateEvaluation]) -> CandidateEvaluation:
    """Highest score first; ties go to the lowest golden-record identity."""
    return min(matches, key=lambda e: (-e.outcome.score, e.golden.sort_key()))


def downgrade(link: Link, now: datetime) -> Link:
    return link.model_copy(
        update={"classification": MatchResult.POSSIBLE_MATCH, "updated_at": now}
    )


def _dedupe(evaluations: list[CandidateEvaluation]) -> list[CandidateEvaluation]:
    seen: set[RecordReference] = set()
    unique = []
    for evaluation in evaluations:
        if evaluation.golden not in seen:
            seen.add(evaluation.golden)
            unique.append(evaluation)
    return unique


def plan_links(
    source: RecordReference,
    existing: list[Link],
    evaluations: list[CandidateEvaluation],
    now: datetime,
) -> LinkPlan:
    """Plan the link set of ``source`` after evaluating its candidates."""
    current = {link.golden: link for link in existing}

    manual = next(
        (link for link in existing if link.is_match and link.link_source == LinkSource.MANUAL), None
    )
    if manual is not None:
        return LinkPlan(source, LinkAction.MANUAL_LINK_KEPT, manual.golden, dict(current))

    evaluations = _dedupe(evaluations)
    evaluated = {e.golden for e in evaluations}
    desired = {golden: link for golden, link in current.items() if golden not in evaluated}

    matches = [e for e in evaluations if e.outcome.is_match]
    for evaluation in evaluations:
        if evaluation.outcome.is_match or evaluation.outcome.is_possible_match:
            desired[evaluation.golden] = Link.from_outcome(
                source, evaluation.golden, evaluation.outcome, MatchResult.POSSIBLE_MATCH
            )

    if matches:
        winner = pick_winner(matches)
        for golden, link in list(desired.items()):
            if link.is_match:
                desired[golden] = downgrade(link, now)
        desired[winner.golden] = Link.from_outcome(
            source, winner.golden, winner.outcome, MatchResult.MATCH
        )
        return LinkPlan(source, LinkAction.MATCHED, winner.golden, desired)

    kept = next((link for link in desired.values() if link.is_match), None)
    if kept is not None:
        return LinkPlan(source, LinkAction.KEPT_EXISTING, kept.golden, desired)
    if any(link.is_possible_match for link in desired.values()):
        return LinkPlan(source, LinkAction.POSSIBLE_MATCH, None, desired)
    return LinkPlan(source, LinkAction.NEW_GOLDEN, None, desired, needs_new_golden=True)


def add_new_golden(plan: LinkPlan, golden: RecordReference, outcome: MatchOutcome) -> LinkPlan:
    """Complete a NEW_GOLDEN plan with the MATCH link to the created record."""
    desired = dict(plan.desired)
    desired[golden] = Link.from_outcome(
        plan.source, golden, outcome, MatchResult.MATCH, created_new_golden=True
    )
    return LinkPlan(plan.source, LinkAction.NEW_GOLDEN, golden, desired)


def order_changes(changes: list[LinkChange]) -> list[LinkChange]:
    """Deletes, then non-MATCH upserts, then MATCH upserts.

    At every step a source holds at most one MATCH link.
    """
    def rank(change: LinkChange) -> int:
        if change.kind == ChangeKind.DELETE:
            return 0
        if change.link is not None and change.link.is_match:
            return 2
        return 1

    return sorted(changes, key=rank)


def diff_links(
    existing: list[Link],
    desired: dict[RecordReference, Link],
    now: datetime,
) -> list[LinkChange]:
    """Store calls turning ``existing`` into ``desired``; unchanged links are skipped."""
    current = {link.golden: link for link in existing}
    changes: list[LinkChange] = []
    for golden, link in current.items():
        if golden not in desired:
            changes.append(LinkChange.delete(link.source, golden))
    for golden, link in desired.items():
        previous = current.get(golden)
        candidate = link.replacing(previous)
        if previous is not None and candidate.same_decision(previous):
            continue
        if previous is None:
            candidate = candidate.model_copy(update={"created_at": now, "updated_at": now})
        else:
            candidate = candidate.model_copy(update={"updated_at": now})
        changes.append(LinkChange.upsert(candidate))
    return order_changes(changes)


def plan_resolution(
    existing: list[Link],
    link: Link,
    outcome: MatchResult,
    now: datetime,
) -> list[LinkChange]:
    """Changes for a manual decision on a POSSIBLE_MATCH link.

    MATCH makes the link a MANUAL MATCH and downgrades any other MATCH link
    of the source; NO_MATCH deletes the link. Other links are untouched.
    """
    if outcome == MatchResult.NO_MATCH:
        return [LinkChange.delete(link.source, link.golden)]

    changes = [
        LinkChange.upsert(downgrade(other, now))
        for other in existing
        if other.is_match and other.golden != link.golden
    ]
    changes.append(
        LinkChange.upsert(
            link.model_copy(
                update={
                    "classification": MatchResult.MATCH,
                    "link_source": LinkSource.MANUAL,
                    "updated_at": now,
                }
            )
        )
    )
    return order_changes(changes)
