"""Golden-record link graph and its maintenance workflow.

Key Components:
- LinkStore: persisted source -> golden edges (in-memory or SQLite)
- LinkGraph: locked, retried, all-or-nothing changes; manual review
- LinkMaintenanceWorkflow: re-links a source record after it changes
- queries: "which golden record", "same identity" questions

Example:
    >>> from golden_link.links import InMemoryLinkStore, LinkGraph, LinkMaintenanceWorkflow
    >>> from golden_link.rules import ResourceMatcher, patient_rule_set
    >>>
    >>> workflow = LinkMaintenanceWorkflow(
    ...     LinkGraph(InMemoryLinkStore()), ResourceMatcher(patient_rule_set()), repository
    ... )
    >>> result = workflow.update_links(RecordReference.parse("Patient/12"))
    >>> result.action, result.golden
"""
from .models import (
    AssuranceLevel,
    CandidateEvaluation,
    ChangeKind,
    Link,
    LinkAction,
    LinkChange,
    LinkSource,
    LinkUpdateResult,
    RecordReference,
)
from .store import InMemoryLinkStore, LinkStore, SQLiteLinkStore
from .locks import KeyedLocks
from .planner import LinkPlan, plan_links
from .graph import LinkGraph
from .repository import CandidateFinder, InMemoryRecordRepository, RecordRepository
from .workflow import LinkMaintenanceWorkflow
from .queries import golden_record_for, linked_sources, pending_review, same_golden_record

__all__ = [
    # Models - Enums
    "AssuranceLevel",
    "ChangeKind",
    "LinkAction",
    "LinkSource",
    # Models - Data
    "CandidateEvaluation",
    "Link",
    "LinkChange",
    "LinkUpdateResult",
    "RecordReference",
    # Storage
    "LinkStore",
    "InMemoryLinkStore",
    "SQLiteLinkStore",
    # Graph maintenance
    "KeyedLocks",
    "LinkPlan",
    "plan_links",
    "LinkGraph",
    "LinkMaintenanceWorkflow",
    # Collaborators
    "RecordRepository",
    "CandidateFinder",
    "InMemoryRecordRepository",
    # Queries
    "golden_record_for",
    "same_golden_record",
    "linked_sources",
    "pending_review",
]
