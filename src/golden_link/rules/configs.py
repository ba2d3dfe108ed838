"""Rule set loading and stock configurations.

Rule sets arrive as already-parsed data (a mapping) or as a JSON document
and are validated once into an immutable RuleSet. Any problem, structural
or semantic, surfaces as ConfigurationError so the caller refuses to start.

The stock patient configuration is designed for person records shaped like
FHIR Patient / Practitioner JSON:
- name.given / name.family (repeating, flattened by the accessor)
- birthDate (YYYY-MM-DD)
- gender
- identifier (system + value)
"""
from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from golden_link.exceptions import ConfigurationError
from golden_link.rules.models import (
    ComparatorKind,
    FieldMatchDefinition,
    MatchResult,
    MatchRule,
    RuleSet,
)


def load_rule_set(source: RuleSet | Mapping[str, Any] | str | Path | None) -> RuleSet:
    """Validate rule configuration into a RuleSet.

    Args:
        source: A RuleSet (returned as is), a mapping, a JSON string, or
            a path to a JSON file

    Raises:
        ConfigurationError: if the configuration is missing or invalid
    """
    if source is None:
        raise ConfigurationError("Failed to load match rules: no rule configuration given")
    if isinstance(source, RuleSet):
        return source
    try:
        if isinstance(source, Mapping):
            return RuleSet.model_validate(source)
        if isinstance(source, Path):
            return RuleSet.model_validate_json(source.read_text(encoding="utf-8"))
        return RuleSet.model_validate_json(source)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid rule configuration: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read rule configuration {source}: {e}") from e


def patient_rule_set() -> RuleSet:
    """Default rule set for patient / practitioner records."""
    return RuleSet(
        name="patient_linkage",
        version="1.0.0",
        match_fields=(
            FieldMatchDefinition(
                name="given",
                field_path="name.given",
                comparator=ComparatorKind.JARO_WINKLER,
                fuzzy_threshold=0.90,
            ),
            FieldMatchDefinition(
                name="family",
                field_path="name.family",
                comparator=ComparatorKind.STRING,
            ),
            FieldMatchDefinition(
                name="family_phonetic",
                field_path="name.family",
                comparator=ComparatorKind.SOUNDEX,
                weight=0.5,
                score_only_when_matched=True,
            ),
            FieldMatchDefinition(
                name="birth_date",
                field_path="birthDate",
                comparator=ComparatorKind.DATE,
            ),
            FieldMatchDefinition(
                name="gender",
                field_path="gender",
                comparator=ComparatorKind.STRING,
                weight=0.25,
            ),
            FieldMatchDefinition(
                name="identifier",
                field_path="identifier",
                comparator=ComparatorKind.IDENTIFIER,
                weight=2.0,
            ),
        ),
        rules=(
            MatchRule(name="name+dob", field_names=("given", "family", "birth_date"), result=MatchResult.MATCH),
            MatchRule(name="identifier+family", field_names=("identifier", "family"), result=MatchResult.MATCH),
            MatchRule(name="phonetic+dob", field_names=("given", "family_phonetic", "birth_date"), result=MatchResult.POSSIBLE_MATCH),
            MatchRule(name="family+dob", field_names=("family", "birth_date"), result=MatchResult.POSSIBLE_MATCH),
            MatchRule(name="identifier", field_names=("identifier",), result=MatchResult.POSSIBLE_MATCH),
        ),
    )
