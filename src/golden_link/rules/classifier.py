"""Rule classifier: match vector -> MatchResult.

The decision depends on the vector alone; scores never enter it.
"""
from __future__ import annotations

from golden_link.exceptions import ConfigurationError
from golden_link.rules.models import FieldMatchDetail, MatchResult, RuleSet


class RuleClassifier:
    """First-match-wins evaluation of a RuleSet's vector rules.

    Example:
        >>> classifier = RuleClassifier(rule_set)
        >>> classifier.classify(0b111)
        <MatchResult.MATCH: 'MATCH'>
        >>> [d.field_name for d in classifier.explain(0b101) if d.matched]
        ['given', 'birth_date']
    """

    def __init__(self, rule_set: RuleSet | None) -> None:
        if rule_set is None:
            raise ConfigurationError("No match rules loaded; refusing to classify without rules")
        self.rule_set = rule_set
        self._rules = rule_set.compiled_rules()
        self._names = [f.name for f in rule_set.match_fields]

    def classify(self, vector: int) -> MatchResult:
        for rule in self._rules:
            if rule.accepts(vector):
                return rule.result
        return MatchResult.NO_MATCH

    def matching_rule(self, vector: int) -> str | None:
        """Label of the rule that decides ``vector``, None when defaulted."""
        for rule in self._rules:
            if rule.accepts(vector):
                return rule.label
        return None

    def explain(self, vector: int) -> list[FieldMatchDetail]:
        return [
            FieldMatchDetail(field_name=name, matched=bool(vector >> i & 1))
            for i, name in enumerate(self._names)
        ]

    def field_match_names(self, vector: int) -> str:
        """Comma-joined names of the fields set in ``vector``."""
        return ",".join(d.field_name for d in self.explain(vector) if d.matched)

    def detailed_field_match_result(self, vector: int) -> str:
        """One ``name: YES/NO`` line per field, for unmatched-pair tracing."""
        return "\n".join(
            f"{d.field_name}: {'YES' if d.matched else 'NO'}" for d in self.explain(vector)
        )
