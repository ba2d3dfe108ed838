"""Tests for rule set validation, loading and the rule classifier."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from golden_link.exceptions import ConfigurationError
from golden_link.rules import (
    MAX_MATCH_FIELDS,
    ComparatorKind,
    FieldMatchDefinition,
    MatchResult,
    MatchRule,
    RuleClassifier,
    RuleMode,
    RuleSet,
    load_rule_set,
    patient_rule_set,
)


def _fields(*names: str) -> tuple[FieldMatchDefinition, ...]:
    return tuple(
        FieldMatchDefinition(name=n, field_path=n, comparator=ComparatorKind.EXACT) for n in names
    )


@pytest.fixture
def rule_set() -> RuleSet:
    return RuleSet(
        match_fields=_fields("given", "family", "birth_date"),
        rules=(
            MatchRule(name="all", field_names=("given", "family", "birth_date"), result=MatchResult.MATCH),
            MatchRule(field_names=("family", "birth_date"), result=MatchResult.POSSIBLE_MATCH),
            MatchRule(vector=0b001, result=MatchResult.POSSIBLE_MATCH, mode=RuleMode.EXACT),
        ),
    )


class TestRuleSetValidation:
    """Configuration errors surface when the rule set is built."""

    def test_no_fields(self):
        with pytest.raises(ConfigurationError):
            RuleSet(match_fields=())

    def test_too_many_fields(self):
        names = [f"f{i}" for i in range(MAX_MATCH_FIELDS + 1)]
        with pytest.raises(ConfigurationError):
            RuleSet(match_fields=_fields(*names))

    def test_duplicate_field_names(self):
        with pytest.raises(ConfigurationError, match="given"):
            RuleSet(match_fields=_fields("given", "given"))

    def test_unknown_field_in_rule(self):
        with pytest.raises(ConfigurationError, match="middle"):
            RuleSet(
                match_fields=_fields("given"),
                rules=(MatchRule(field_names=("middle",), result=MatchResult.MATCH),),
            )

    def test_bit_out_of_range(self):
        with pytest.raises(ConfigurationError):
            RuleSet(
                match_fields=_fields("given", "family"),
                rules=(MatchRule(vector=0b100, result=MatchResult.MATCH),),
            )

    def test_empty_mask(self):
        with pytest.raises(ConfigurationError):
            RuleSet(match_fields=_fields("given"), rules=(MatchRule(vector=0, result=MatchResult.MATCH),))

    def test_fields_and_vector_are_exclusive(self):
        with pytest.raises(ConfigurationError):
            RuleSet(
                match_fields=_fields("given"),
                rules=(MatchRule(field_names=("given",), vector=1, result=MatchResult.MATCH),),
            )

    def test_no_match_rule_rejected(self):
        with pytest.raises(ConfigurationError):
            RuleSet(match_fields=_fields("given"), rules=(MatchRule(vector=1, result=MatchResult.NO_MATCH),))

    def test_stock_rule_set_is_valid(self):
        rules = patient_rule_set()
        assert rules.rule_count == 6
        assert rules.field_index("birth_date") == 3


class TestLoadRuleSet:
    """Tests for load_rule_set."""

    @pytest.fixture
    def raw(self) -> dict:
        return {
            "name": "raw",
            "match_fields": [
                {"name": "family", "field_path": "name.family", "comparator": "string"},
                {"name": "birth_date", "field_path": "birthDate", "comparator": "date"},
            ],
            "rules": [{"fields": ["family", "birth_date"], "result": "MATCH"}],
        }

    def test_from_mapping(self, raw):
        rules = load_rule_set(raw)
        assert rules.name == "raw"
        assert rules.compiled_rules()[0].mask == 0b11

    def test_from_json_file(self, raw, tmp_path: Path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps(raw))
        assert load_rule_set(path) == load_rule_set(raw)

    def test_missing_configuration(self):
        with pytest.raises(ConfigurationError):
            load_rule_set(None)

    def test_unknown_comparator(self, raw):
        raw["match_fields"][0]["comparator"] = "telepathy"
        with pytest.raises(ConfigurationError):
            load_rule_set(raw)

    def test_malformed_json(self):
        with pytest.raises(ConfigurationError):
            load_rule_set("{not json")

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError):
            load_rule_set(tmp_path / "absent.json")


class TestRuleClassifier:
    """Tests for first-match-wins classification."""

    def test_requires_rules(self):
        with pytest.raises(ConfigurationError):
            RuleClassifier(None)

    @pytest.mark.parametrize(
        "vector, expected",
        [
            (0b111, MatchResult.MATCH),
            (0b110, MatchResult.POSSIBLE_MATCH),
            (0b001, MatchResult.POSSIBLE_MATCH),
            (0b011, MatchResult.NO_MATCH),
            (0b000, MatchResult.NO_MATCH),
        ],
    )
    def test_classify(self, rule_set, vector, expected):
        assert RuleClassifier(rule_set).classify(vector) == expected

    def test_first_match_wins(self):
        rules = RuleSet(
            match_fields=_fields("given", "family"),
            rules=(
                MatchRule(field_names=("given",), result=MatchResult.POSSIBLE_MATCH),
                MatchRule(field_names=("given", "family"), result=MatchResult.MATCH),
            ),
        )
        # The broader rule comes first and shadows the MATCH rule.
        assert RuleClassifier(rules).classify(0b11) == MatchResult.POSSIBLE_MATCH

    def test_matching_rule(self, rule_set):
        classifier = RuleClassifier(rule_set)
        assert classifier.matching_rule(0b111) == "all"
        assert classifier.matching_rule(0b110) == "family,birth_date"
        assert classifier.matching_rule(0b010) is None

    def test_explain(self, rule_set):
        details = RuleClassifier(rule_set).explain(0b101)
        assert [(d.field_name, d.matched) for d in details] == [
            ("given", True),
            ("family", False),
            ("birth_date", True),
        ]

    def test_field_match_names(self, rule_set):
        classifier = RuleClassifier(rule_set)
        assert classifier.field_match_names(0b101) == "given,birth_date"
        assert classifier.detailed_field_match_result(0b010) == "given: NO\nfamily: YES\nbirth_date: NO"
