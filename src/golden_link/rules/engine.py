"""Match vector engine.

Runs every configured field comparison over a record pair and packs the
results into a bit vector plus an aggregate score. For example, with
comparisons [given, family, birth_date]:

    given matches       -> vector |= 1 << 0  -> 0b001
    family matches      -> vector |= 1 << 1  -> 0b011
    birth_date differs  -> unchanged         -> 0b011 (== 3)

The score is the sum of every comparison's score, matched or not; a
comparison that should only score on a match says so in its definition.
"""
from __future__ import annotations

from typing import Any

from golden_link.exceptions import ConfigurationError
from golden_link.logging import get_troubleshooting_logger
from golden_link.rules.accessors import FieldAccessor, MappingFieldAccessor
from golden_link.rules.classifier import RuleClassifier
from golden_link.rules.comparators import FieldMatcher
from golden_link.rules.models import MatchOutcome, RuleSet

log = get_troubleshooting_logger()


class MatchVectorEngine:
    """Scores record pairs against an ordered, immutable RuleSet."""

    def __init__(self, rule_set: RuleSet | None, accessor: FieldAccessor | None = None) -> None:
        """Build one FieldMatcher per definition, in configured order.

        Args:
            rule_set: Validated rule set; None is a configuration error
            accessor: Field accessor for the record shape being matched
                (defaults to JSON-shaped mappings)
        """
        if rule_set is None:
            raise ConfigurationError(
                "Failed to load match rules. Matching requires a rule set."
            )
        self.rule_set = rule_set
        self.accessor = accessor or MappingFieldAccessor()
        self.field_matchers = [
            FieldMatcher(definition, self.accessor) for definition in rule_set.match_fields
        ]

    def score(self, left_record: Any, right_record: Any) -> MatchOutcome:
        vector = 0
        score = 0.0
        for i, matcher in enumerate(self.field_matchers):
            evaluation = matcher.evaluate(left_record, right_record)
            if evaluation.matched:
                vector |= 1 << i
            score += evaluation.score
        return MatchOutcome(vector=vector, score=score, rule_count=len(self.field_matchers))


class ResourceMatcher:
    """Vector engine + rule classifier: the full pairwise decision."""

    def __init__(self, rule_set: RuleSet | None, accessor: FieldAccessor | None = None) -> None:
        self.engine = MatchVectorEngine(rule_set, accessor)
        self.classifier = RuleClassifier(rule_set)

    @property
    def rule_set(self) -> RuleSet:
        return self.engine.rule_set

    def match(self, left_record: Any, right_record: Any, label: str | None = None) -> MatchOutcome:
        """Score and classify a pair.

        Args:
            left_record: The incoming record
            right_record: The record it is compared with
            label: Identifier of the right record, used only in log lines

        Returns:
            MatchOutcome with classification set
        """
        outcome = self.engine.score(left_record, right_record)
        outcome = outcome.with_classification(self.classifier.classify(outcome.vector))
        if outcome.is_match or outcome.is_possible_match:
            log.debug(
                "pair_classified",
                classification=outcome.classification.value,
                candidate=label,
                vector=outcome.vector,
                score=outcome.score,
                fields=self.classifier.field_match_names(outcome.vector),
            )
        else:
            log.debug(
                "pair_unmatched",
                candidate=label,
                vector=outcome.vector,
                score=outcome.score,
                detail=self.classifier.detailed_field_match_result(outcome.vector),
            )
        return outcome
