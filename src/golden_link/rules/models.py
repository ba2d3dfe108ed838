"""Matching models for field comparison and rule classification.

Pydantic schemas for:
- Field match definitions (which field, which comparator, what weight)
- Vector rules mapping a match vector to a MATCH / POSSIBLE_MATCH decision
- The validated, immutable RuleSet handed to matchers and classifiers
- Per-field evaluations and per-pair outcomes
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from golden_link.exceptions import ConfigurationError

# Vectors must fit a signed 64-bit integer column.
MAX_MATCH_FIELDS = 63


# =============================================================================
# Enums
# =============================================================================


class ComparatorKind(str, Enum):
    """Kind of comparison applied to one field."""

    EXACT = "exact"  # Plain equality of the raw values
    STRING = "string"  # Case-insensitive, trimmed string equality
    JARO_WINKLER = "jaro_winkler"  # Fuzzy similarity above a threshold
    SOUNDEX = "soundex"  # Phonetic code equality
    DATE = "date"  # Calendar date equality at day precision
    IDENTIFIER = "identifier"  # system + value pair equality


class MatchResult(str, Enum):
    """Classification of a record pair."""

    NO_MATCH = "NO_MATCH"
    POSSIBLE_MATCH = "POSSIBLE_MATCH"
    MATCH = "MATCH"


class RuleMode(str, Enum):
    """How a rule's bit mask is tested against a vector."""

    ALL = "all"  # every bit of the mask is set in the vector
    EXACT = "exact"  # the vector equals the mask


# =============================================================================
# Field match definitions
# =============================================================================


class FieldMatchDefinition(BaseModel):
    """Configuration for comparing a single field between two records."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Unique name of this comparison")
    field_path: str = Field(min_length=1, description="Dotted path, e.g. name.given")
    comparator: ComparatorKind
    weight: Annotated[float, Field(ge=0.0)] = 1.0

    fuzzy_threshold: float | None = Field(
        default=None,
        description="Minimum similarity for a fuzzy match (jaro_winkler only)",
    )
    identifier_system: str | None = Field(
        default=None,
        description="Only compare identifiers of this system (identifier only)",
    )
    score_only_when_matched: bool = Field(
        default=False,
        description="Score unmatched evaluations as 0.0",
    )

    @model_validator(mode="after")
    def _check_comparator_options(self) -> FieldMatchDefinition:
        if self.comparator == ComparatorKind.JARO_WINKLER:
            threshold = self.fuzzy_threshold
            if threshold is None or not 0.0 < threshold <= 1.0:
                raise ConfigurationError(
                    f"Field '{self.name}': jaro_winkler needs fuzzy_threshold in (0, 1], "
                    f"got {threshold!r}"
                )
        elif self.fuzzy_threshold is not None:
            raise ConfigurationError(
                f"Field '{self.name}': fuzzy_threshold is only valid for jaro_winkler"
            )
        if self.identifier_system is not None and self.comparator != ComparatorKind.IDENTIFIER:
            raise ConfigurationError(
                f"Field '{self.name}': identifier_system is only valid for identifier"
            )
        return self


# =============================================================================
# Vector rules
# =============================================================================


class MatchRule(BaseModel):
    """Maps a vector predicate to a classification.

    The predicate is given either by field names (converted to a bit mask
    when the RuleSet is validated) or by a raw bit mask.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str | None = None
    field_names: tuple[str, ...] | None = Field(default=None, alias="fields")
    vector: Annotated[int, Field(ge=0)] | None = None
    result: MatchResult
    mode: RuleMode = RuleMode.ALL

    def label(self) -> str:
        if self.name:
            return self.name
        if self.field_names:
            return ",".join(self.field_names)
        return bin(self.vector or 0)


class CompiledRule(BaseModel):
    """A rule with its predicate resolved to a bit mask."""

    model_config = ConfigDict(frozen=True)

    label: str
    mask: int
    result: MatchResult
    mode: RuleMode

    def accepts(self, vector: int) -> bool:
        if self.mode == RuleMode.EXACT:
            return vector == self.mask
        return vector & self.mask == self.mask


class RuleSet(BaseModel):
    """Ordered field definitions plus ordered vector rules.

    Loaded once and shared by reference; validated on construction.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "default"
    version: str = "1.0.0"
    match_fields: tuple[FieldMatchDefinition, ...]
    rules: tuple[MatchRule, ...] = ()

    @model_validator(mode="after")
    def _check_rules(self) -> RuleSet:
        n = len(self.match_fields)
        if n == 0:
            raise ConfigurationError(f"Rule set '{self.name}' declares no match fields")
        if n > MAX_MATCH_FIELDS:
            raise ConfigurationError(
                f"Rule set '{self.name}' declares {n} match fields; at most {MAX_MATCH_FIELDS} fit a vector"
            )
        names = [f.name for f in self.match_fields]
        duplicates = sorted({x for x in names if names.count(x) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate match field names: {', '.join(duplicates)}")
        # Resolving every rule raises on bad references.
        self.compiled_rules()
        return self

    @computed_field
    @property
    def rule_count(self) -> int:
        """Number of field comparisons, i.e. the vector width."""
        return len(self.match_fields)

    def field_index(self, name: str) -> int:
        for i, definition in enumerate(self.match_fields):
            if definition.name == name:
                return i
        raise ConfigurationError(f"Rule references unknown match field '{name}'")

    def compiled_rules(self) -> list[CompiledRule]:
        """Resolve every rule to a bit mask, in configured order."""
        compiled = []
        for rule in self.rules:
            if rule.result == MatchResult.NO_MATCH:
                raise ConfigurationError(
                    f"Rule '{rule.label()}' maps to NO_MATCH; NO_MATCH is the default outcome"
                )
            if (rule.field_names is None) == (rule.vector is None):
                raise ConfigurationError(
                    f"Rule '{rule.label()}' must give exactly one of 'fields' or 'vector'"
                )
            if rule.field_names is not None:
                mask = 0
                for field_name in rule.field_names:
                    mask |= 1 << self.field_index(field_name)
            else:
                mask = rule.vector or 0
                if mask >> self.rule_count:
                    raise ConfigurationError(
                        f"Rule '{rule.label()}' sets bit {mask.bit_length() - 1} but only "
                        f"{self.rule_count} match fields exist"
                    )
            if mask == 0:
                raise ConfigurationError(f"Rule '{rule.label()}' matches on no fields")
            compiled.append(
                CompiledRule(label=rule.label(), mask=mask, result=rule.result, mode=rule.mode)
            )
        return compiled


# =============================================================================
# Evaluations and outcomes
# =============================================================================


class MatchEvaluation(BaseModel):
    """Result of one field comparator on one record pair."""

    model_config = ConfigDict(frozen=True)

    matched: bool
    score: Annotated[float, Field(ge=0.0)] = 0.0


NO_EVALUATION = MatchEvaluation(matched=False, score=0.0)


class FieldMatchDetail(BaseModel):
    """One row of a vector explanation."""

    model_config = ConfigDict(frozen=True)

    field_name: str
    matched: bool


class MatchOutcome(BaseModel):
    """Aggregate result of every field comparison on one record pair."""

    model_config = ConfigDict(frozen=True)

    vector: Annotated[int, Field(ge=0)]
    score: float
    rule_count: int
    classification: MatchResult | None = None

    @computed_field
    @property
    def is_match(self) -> bool:
        return self.classification == MatchResult.MATCH

    @computed_field
    @property
    def is_possible_match(self) -> bool:
        return self.classification == MatchResult.POSSIBLE_MATCH

    @computed_field
    @property
    def normalized_score(self) -> float:
        """Score divided by the number of comparisons."""
        if self.rule_count == 0:
            return 0.0
        return self.score / self.rule_count

    def with_classification(self, classification: MatchResult) -> MatchOutcome:
        return self.model_copy(update={"classification": classification})
