"""Link graph models.

- RecordReference: (resource type, numeric id) of a source or golden record
- Link: persisted source -> golden edge with its match decision
- LinkChange: one atomic store mutation planned by the workflow
- LinkUpdateResult: outcome of one workflow run for a source record
"""
from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from golden_link.rules.models import MatchOutcome, MatchResult

# =============================================================================
# Enums
# =============================================================================


class LinkSource(str, Enum):
    """Who decided a link."""

    AUTOMATIC = "AUTOMATIC"
    MANUAL = "MANUAL"


class AssuranceLevel(str, Enum):
    """Confidence that a source record really is the golden record's identity."""

    LEVEL1 = "level1"  # possible match, awaiting review
    LEVEL2 = "level2"  # automatic match
    LEVEL3 = "level3"  # match confirmed by a person
    LEVEL4 = "level4"  # identity asserted by an external authority


class LinkAction(str, Enum):
    """What a workflow run did for its source record."""

    MATCHED = "matched"  # linked to an existing golden record
    POSSIBLE_MATCH = "possible_match"  # left awaiting manual review
    NEW_GOLDEN = "new_golden"  # linked to a freshly created golden record
    MANUAL_LINK_KEPT = "manual_link_kept"  # a manual MATCH link wins over automation
    KEPT_EXISTING = "kept_existing"  # existing MATCH to an unevaluated golden kept


# =============================================================================
# References
# =============================================================================


class RecordReference(BaseModel):
    """Identity of a stored record, e.g. Patient/12 or Person/3."""

    model_config = ConfigDict(frozen=True)

    resource_type: str = Field(min_length=1)
    id: Annotated[int, Field(ge=0)]

    def __str__(self) -> str:
        return f"{self.resource_type}/{self.id}"

    @classmethod
    def parse(cls, text: str) -> RecordReference:
        """Parse ``Type/123``."""
        resource_type, sep, ident = text.strip().partition("/")
        if not sep or not resource_type or not ident.isdigit():
            raise ValueError(f"Not a record reference: {text!r}")
        return cls(resource_type=resource_type, id=int(ident))

    def sort_key(self) -> tuple[int, str]:
        """Order by numeric identity first; ties broken by type."""
        return (self.id, self.resource_type)


# =============================================================================
# Link
# =============================================================================


def _now() -> datetime:
    return datetime.now(UTC)


class Link(BaseModel):
    """A source record's classified relationship to one golden record.

    Only MATCH and POSSIBLE_MATCH are ever stored; NO_MATCH is transient.
    """

    model_config = ConfigDict(frozen=True)

    source: RecordReference
    golden: RecordReference
    classification: MatchResult
    vector: Annotated[int, Field(ge=0)] = 0
    score: float = 0.0
    rule_count: int = 0
    link_source: LinkSource = LinkSource.AUTOMATIC
    created_new_golden: bool = Field(
        default=False,
        description="Whether the golden record was created for this source",
    )
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("classification")
    @classmethod
    def _persistable(cls, value: MatchResult) -> MatchResult:
        if value == MatchResult.NO_MATCH:
            raise ValueError("NO_MATCH links are never stored")
        return value

    @computed_field
    @property
    def assurance_level(self) -> AssuranceLevel:
        if self.classification == MatchResult.POSSIBLE_MATCH:
            return AssuranceLevel.LEVEL1
        if self.link_source == LinkSource.MANUAL:
            return AssuranceLevel.LEVEL3
        return AssuranceLevel.LEVEL2

    @property
    def is_match(self) -> bool:
        return self.classification == MatchResult.MATCH

    @property
    def is_possible_match(self) -> bool:
        return self.classification == MatchResult.POSSIBLE_MATCH

    @property
    def key(self) -> tuple[RecordReference, RecordReference]:
        return (self.source, self.golden)

    @classmethod
    def from_outcome(
        cls,
        source: RecordReference,
        golden: RecordReference,
        outcome: MatchOutcome,
        classification: MatchResult | None = None,
        created_new_golden: bool = False,
    ) -> Link:
        """Automatic link carrying an outcome's vector and score."""
        return cls(
            source=source,
            golden=golden,
            classification=classification or outcome.classification or MatchResult.NO_MATCH,
            vector=outcome.vector,
            score=outcome.score,
            rule_count=outcome.rule_count,
            created_new_golden=created_new_golden,
        )

    def same_decision(self, other: Link) -> bool:
        """Equal apart from timestamps."""
        skip = {"created_at", "updated_at"}
        return self.model_dump(exclude=skip) == other.model_dump(exclude=skip)

    def replacing(self, previous: Link | None) -> Link:
        """This link as an update of ``previous``: keep its creation time."""
        if previous is None:
            return self
        return self.model_copy(
            update={
                "created_at": previous.created_at,
                "created_new_golden": self.created_new_golden or previous.created_new_golden,
            }
        )


# =============================================================================
# Planned changes and run results
# =============================================================================


class ChangeKind(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class LinkChange(BaseModel):
    """One atomic link-store call."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    source: RecordReference
    golden: RecordReference
    link: Link | None = None

    @classmethod
    def upsert(cls, link: Link) -> LinkChange:
        return cls(kind=ChangeKind.UPSERT, source=link.source, golden=link.golden, link=link)

    @classmethod
    def delete(cls, source: RecordReference, golden: RecordReference) -> LinkChange:
        return cls(kind=ChangeKind.DELETE, source=source, golden=golden)


class CandidateEvaluation(BaseModel):
    """A golden-record candidate and how it scored against the source."""

    model_config = ConfigDict(frozen=True)

    golden: RecordReference
    outcome: MatchOutcome


class LinkUpdateResult(BaseModel):
    """Result of one link-maintenance run for a source record."""

    source: RecordReference
    success: bool
    error: str | None = None

    action: LinkAction | None = None
    golden: RecordReference | None = Field(
        default=None,
        description="Golden record holding the source's MATCH link, if any",
    )
    evaluations: list[CandidateEvaluation] = Field(default_factory=list)
    changes: list[LinkChange] = Field(default_factory=list)
    skipped_candidates: list[RecordReference] = Field(default_factory=list)

    @computed_field
    @property
    def changed(self) -> bool:
        return bool(self.changes)

    @classmethod
    def success_result(
        cls,
        source: RecordReference,
        action: LinkAction,
        golden: RecordReference | None,
        evaluations: list[CandidateEvaluation] | None = None,
        changes: list[LinkChange] | None = None,
        skipped_candidates: list[RecordReference] | None = None,
    ) -> LinkUpdateResult:
        return cls(
            source=source,
            success=True,
            action=action,
            golden=golden,
            evaluations=evaluations or [],
            changes=changes or [],
            skipped_candidates=skipped_candidates or [],
        )

    @classmethod
    def failure_result(cls, source: RecordReference, error: str) -> LinkUpdateResult:
        return cls(source=source, success=False, error=error)
