"""Record matching: field comparators, match vectors, rule classification.

Key Components:
- FieldMatcher: compares one configured field between two records
- MatchVectorEngine: bit vector + aggregate score for a record pair
- RuleClassifier: vector -> NO_MATCH / POSSIBLE_MATCH / MATCH
- ResourceMatcher: engine and classifier together

Example:
    >>> from golden_link.rules import ResourceMatcher, patient_rule_set
    >>>
    >>> matcher = ResourceMatcher(patient_rule_set())
    >>> outcome = matcher.match(incoming_patient, golden_person)
    >>> outcome.classification, bin(outcome.vector), outcome.score
"""
from .models import (
    MAX_MATCH_FIELDS,
    ComparatorKind,
    FieldMatchDefinition,
    FieldMatchDetail,
    MatchEvaluation,
    MatchOutcome,
    MatchResult,
    MatchRule,
    RuleMode,
    RuleSet,
)
from .accessors import AttributeFieldAccessor, FieldAccessor, MappingFieldAccessor
from .comparators import FieldMatcher
from .classifier import RuleClassifier
from .engine import MatchVectorEngine, ResourceMatcher
from .configs import load_rule_set, patient_rule_set

__all__ = [
    # Models - Enums
    "ComparatorKind",
    "MatchResult",
    "RuleMode",
    # Models - Data
    "MAX_MATCH_FIELDS",
    "FieldMatchDefinition",
    "FieldMatchDetail",
    "MatchEvaluation",
    "MatchOutcome",
    "MatchRule",
    "RuleSet",
    # Accessors
    "FieldAccessor",
    "MappingFieldAccessor",
    "AttributeFieldAccessor",
    # Matching
    "FieldMatcher",
    "MatchVectorEngine",
    "RuleClassifier",
    "ResourceMatcher",
    # Configs
    "load_rule_set",
    "patient_rule_set",
]
