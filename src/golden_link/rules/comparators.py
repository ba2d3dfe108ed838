"""Field comparators.

Each comparator kind turns a pair of field values into a similarity in
[0, 1] plus a matched flag. FieldMatcher binds one FieldMatchDefinition to
a FieldAccessor and evaluates a pair of whole records:

- every left value is compared with every right value, the best wins
  (matched before unmatched, then higher score)
- an absent field on either side is a non-match scoring 0.0
- a value the comparator cannot interpret raises ComparatorTypeError
"""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import Any, NamedTuple

import jellyfish
from rapidfuzz.distance import JaroWinkler

from golden_link.exceptions import ComparatorTypeError
from golden_link.rules.accessors import FieldAccessor
from golden_link.rules.models import (
    NO_EVALUATION,
    ComparatorKind,
    FieldMatchDefinition,
    MatchEvaluation,
)

_WS_RE = re.compile(r"\s+")
_DATE_RE = re.compile(r"^(\d{4})(?:-(\d{2})(?:-(\d{2}))?)?(?:T.*)?$")


class Similarity(NamedTuple):
    matched: bool
    similarity: float


class CanonicalIdentifier(NamedTuple):
    system: str | None
    value: str | None


# ------------------------------ value coercion ------------------------------


def _require_str(definition: FieldMatchDefinition, value: Any) -> str:
    if not isinstance(value, str):
        raise ComparatorTypeError(definition.name, definition.comparator.value, value)
    return value


def _normalize_text(s: str) -> str:
    return _WS_RE.sub(" ", s).strip().casefold()


def to_day(definition: FieldMatchDefinition, value: Any) -> date | None:
    """Coerce a date-like value to a calendar day.

    Returns None for partial dates (year or year-month only), which can
    never match at day precision.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _require_str(definition, value).strip()
    m = _DATE_RE.match(text)
    if not m:
        raise ComparatorTypeError(definition.name, definition.comparator.value, value)
    year, month, day = m.groups()
    if month is None or day is None:
        return None
    try:
        return date(int(year), int(month), int(day))
    except ValueError as e:
        raise ComparatorTypeError(definition.name, definition.comparator.value, value) from e


def to_identifier(definition: FieldMatchDefinition, value: Any) -> CanonicalIdentifier:
    if isinstance(value, Mapping):
        system, ident = value.get("system"), value.get("value")
    elif hasattr(value, "value"):
        system, ident = getattr(value, "system", None), getattr(value, "value")
    else:
        raise ComparatorTypeError(definition.name, definition.comparator.value, value)
    if system is not None and not isinstance(system, str):
        raise ComparatorTypeError(definition.name, definition.comparator.value, value)
    if ident is not None and not isinstance(ident, str):
        raise ComparatorTypeError(definition.name, definition.comparator.value, value)
    return CanonicalIdentifier(system, ident)


# ------------------------------ comparator kinds ----------------------------


def _equal(matched: bool) -> Similarity:
    return Similarity(matched, 1.0 if matched else 0.0)


def compare_exact(definition: FieldMatchDefinition, left: Any, right: Any) -> Similarity:
    return _equal(left == right)


def compare_string(definition: FieldMatchDefinition, left: Any, right: Any) -> Similarity:
    a = _normalize_text(_require_str(definition, left))
    b = _normalize_text(_require_str(definition, right))
    if not a or not b:
        return _equal(False)
    return _equal(a == b)


def compare_jaro_winkler(definition: FieldMatchDefinition, left: Any, right: Any) -> Similarity:
    a = _normalize_text(_require_str(definition, left))
    b = _normalize_text(_require_str(definition, right))
    if not a or not b:
        return _equal(False)
    similarity = JaroWinkler.similarity(a, b)
    # fuzzy_threshold is guaranteed by FieldMatchDefinition validation
    return Similarity(similarity >= (definition.fuzzy_threshold or 1.0), similarity)


def compare_soundex(definition: FieldMatchDefinition, left: Any, right: Any) -> Similarity:
    a = _normalize_text(_require_str(definition, left))
    b = _normalize_text(_require_str(definition, right))
    if not a or not b:
        return _equal(False)
    return _equal(jellyfish.soundex(a) == jellyfish.soundex(b))


def compare_date(definition: FieldMatchDefinition, left: Any, right: Any) -> Similarity:
    a = to_day(definition, left)
    b = to_day(definition, right)
    return _equal(a is not None and a == b)


def compare_identifier(definition: FieldMatchDefinition, left: Any, right: Any) -> Similarity:
    a = to_identifier(definition, left)
    b = to_identifier(definition, right)
    return _equal(bool(a.value) and a == b)


Comparator = Callable[[FieldMatchDefinition, Any, Any], Similarity]

COMPARATORS: dict[ComparatorKind, Comparator] = {
    ComparatorKind.EXACT: compare_exact,
    ComparatorKind.STRING: compare_string,
    ComparatorKind.JARO_WINKLER: compare_jaro_winkler,
    ComparatorKind.SOUNDEX: compare_soundex,
    ComparatorKind.DATE: compare_date,
    ComparatorKind.IDENTIFIER: compare_identifier,
}


# ------------------------------ field matcher -------------------------------


class FieldMatcher:
    """Evaluates one FieldMatchDefinition over a pair of records."""

    def __init__(self, definition: FieldMatchDefinition, accessor: FieldAccessor) -> None:
        self.definition = definition
        self.accessor = accessor
        self._compare = COMPARATORS[definition.comparator]

    @property
    def name(self) -> str:
        return self.definition.name

    def _values(self, record: Any) -> list[Any]:
        values = self.accessor.get_field_values(record, self.definition.field_path)
        system = self.definition.identifier_system
        if system is not None:
            values = [v for v in values if to_identifier(self.definition, v).system == system]
        return values

    def evaluate(self, left_record: Any, right_record: Any) -> MatchEvaluation:
        left_values = self._values(left_record)
        right_values = self._values(right_record)
        if not left_values or not right_values:
            return NO_EVALUATION

        best = NO_EVALUATION
        for left in left_values:
            for right in right_values:
                evaluation = self._score(self._compare(self.definition, left, right))
                if (evaluation.matched, evaluation.score) > (best.matched, best.score):
                    best = evaluation
        return best

    def _score(self, result: Similarity) -> MatchEvaluation:
        if not result.matched and self.definition.score_only_when_matched:
            return NO_EVALUATION
        return MatchEvaluation(
            matched=result.matched,
            score=self.definition.weight * result.similarity,
        )
