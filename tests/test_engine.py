"""Tests for the match vector engine and ResourceMatcher."""
from __future__ import annotations

import pytest

from golden_link.exceptions import ConfigurationError
from golden_link.rules import (
    ComparatorKind,
    FieldMatchDefinition,
    MatchResult,
    MatchRule,
    MatchVectorEngine,
    ResourceMatcher,
    RuleSet,
    patient_rule_set,
)


@pytest.fixture
def example_rules() -> RuleSet:
    """first_name, last_name, dob compared exactly, in that order."""
    return RuleSet(
        name="example",
        match_fields=(
            FieldMatchDefinition(name="first_name", field_path="first_name", comparator=ComparatorKind.EXACT),
            FieldMatchDefinition(name="last_name", field_path="last_name", comparator=ComparatorKind.EXACT),
            FieldMatchDefinition(name="dob", field_path="dob", comparator=ComparatorKind.EXACT),
        ),
        rules=(
            MatchRule(vector=0b111, result=MatchResult.MATCH),
            MatchRule(field_names=("last_name", "dob"), result=MatchResult.POSSIBLE_MATCH),
        ),
    )


@pytest.fixture
def alice() -> dict:
    return {"first_name": "Alice", "last_name": "Smith", "dob": "1980-01-02"}


class TestMatchVectorEngine:
    """Tests for vector packing and scoring."""

    def test_identical_records(self, example_rules, alice):
        outcome = MatchVectorEngine(example_rules).score(alice, dict(alice))
        assert outcome.vector == 0b111
        assert outcome.score == 3.0
        assert outcome.rule_count == 3
        assert outcome.classification is None

    def test_bit_follows_configured_order(self, example_rules, alice):
        other = {**alice, "first_name": "Alicia"}
        outcome = MatchVectorEngine(example_rules).score(alice, other)
        # first_name is comparator 0, so only bits 1 and 2 are set
        assert outcome.vector == 0b110
        assert outcome.score == 2.0

    def test_bit_set_iff_comparator_matched(self, example_rules, alice):
        engine = MatchVectorEngine(example_rules)
        other = {"first_name": "Alice", "last_name": "Jones"}
        outcome = engine.score(alice, other)
        for i, matcher in enumerate(engine.field_matchers):
            assert bool(outcome.vector >> i & 1) == matcher.evaluate(alice, other).matched

    def test_score_sums_unmatched_evaluations(self):
        rules = RuleSet(
            match_fields=(
                FieldMatchDefinition(
                    name="given", field_path="given",
                    comparator=ComparatorKind.JARO_WINKLER, fuzzy_threshold=0.99,
                ),
            ),
        )
        outcome = MatchVectorEngine(rules).score({"given": "Jon"}, {"given": "John"})
        assert outcome.vector == 0
        assert outcome.score > 0.9

    def test_deterministic(self, alice):
        engine = MatchVectorEngine(patient_rule_set())
        other = {**alice, "first_name": "Alicia"}
        assert engine.score(alice, other) == engine.score(alice, other)

    def test_normalized_score(self, example_rules, alice):
        outcome = MatchVectorEngine(example_rules).score(alice, {**alice, "dob": "1999-09-09"})
        assert outcome.normalized_score == pytest.approx(2 / 3)

    def test_missing_rule_set(self):
        with pytest.raises(ConfigurationError):
            MatchVectorEngine(None)


class TestResourceMatcher:
    """Tests for score + classify."""

    def test_identical_records_match(self, example_rules, alice):
        outcome = ResourceMatcher(example_rules).match(alice, dict(alice))
        assert outcome.vector == 0b111
        assert outcome.classification == MatchResult.MATCH
        assert outcome.is_match

    def test_different_first_name_possible_match(self, example_rules, alice):
        outcome = ResourceMatcher(example_rules).match(alice, {**alice, "first_name": "Bob"})
        assert outcome.vector == 0b110
        assert outcome.classification == MatchResult.POSSIBLE_MATCH

    def test_no_rule_no_match(self, example_rules, alice):
        outcome = ResourceMatcher(example_rules).match(alice, {"first_name": "Alice"})
        assert outcome.classification == MatchResult.NO_MATCH

    def test_classification_ignores_score(self, alice):
        heavy = RuleSet(
            match_fields=(
                FieldMatchDefinition(name="first_name", field_path="first_name", comparator=ComparatorKind.EXACT, weight=100.0),
                FieldMatchDefinition(name="dob", field_path="dob", comparator=ComparatorKind.EXACT),
            ),
            rules=(MatchRule(field_names=("dob",), result=MatchResult.MATCH),),
        )
        outcome = ResourceMatcher(heavy).match(alice, {**alice, "dob": "2000-01-01"})
        assert outcome.score == 100.0
        assert outcome.classification == MatchResult.NO_MATCH

    def test_patient_rule_set(self):
        left = {
            "name": [{"given": ["Jon"], "family": "Smith"}],
            "birthDate": "1980-01-02",
            "gender": "male",
        }
        right = {
            "name": [{"given": ["John"], "family": "Smith"}],
            "birthDate": "1980-01-02",
            "gender": "male",
        }
        matcher = ResourceMatcher(patient_rule_set())
        outcome = matcher.match(left, right)
        assert outcome.classification == MatchResult.MATCH
        assert matcher.classifier.matching_rule(outcome.vector) == "name+dob"
