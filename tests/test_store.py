"""Tests for link models and link stores."""
from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from golden_link.exceptions import LinkIntegrityError
from golden_link.links import (
    AssuranceLevel,
    InMemoryLinkStore,
    Link,
    LinkSource,
    RecordReference,
    SQLiteLinkStore,
)
from golden_link.links.queries import golden_record_for, linked_sources, pending_review, same_golden_record
from golden_link.rules import MatchResult

P1 = RecordReference(resource_type="Patient", id=1)
P2 = RecordReference(resource_type="Patient", id=2)
G1 = RecordReference(resource_type="Person", id=1)
G2 = RecordReference(resource_type="Person", id=2)


def _link(source, golden, classification=MatchResult.MATCH, **kwargs) -> Link:
    return Link(source=source, golden=golden, classification=classification, vector=0b11, score=2.0, rule_count=2, **kwargs)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        s = InMemoryLinkStore()
    else:
        s = SQLiteLinkStore(tmp_path / "links.sqlite")
    yield s
    s.close()


class TestRecordReference:
    """Tests for RecordReference."""

    def test_parse_and_str(self):
        ref = RecordReference.parse("Patient/12")
        assert ref == RecordReference(resource_type="Patient", id=12)
        assert str(ref) == "Patient/12"

    @pytest.mark.parametrize("text", ["Patient", "Patient/", "/12", "Patient/abc"])
    def test_parse_rejects(self, text):
        with pytest.raises(ValueError):
            RecordReference.parse(text)

    def test_hashable(self):
        assert len({P1, RecordReference(resource_type="Patient", id=1), P2}) == 2


class TestLink:
    """Tests for the Link model."""

    def test_no_match_is_never_stored(self):
        with pytest.raises(ValidationError):
            _link(P1, G1, MatchResult.NO_MATCH)

    def test_assurance_levels(self):
        assert _link(P1, G1, MatchResult.POSSIBLE_MATCH).assurance_level == AssuranceLevel.LEVEL1
        assert _link(P1, G1).assurance_level == AssuranceLevel.LEVEL2
        assert _link(P1, G1, link_source=LinkSource.MANUAL).assurance_level == AssuranceLevel.LEVEL3

    def test_same_decision_ignores_timestamps(self):
        earlier = _link(P1, G1, created_at=datetime(2020, 1, 1, tzinfo=UTC))
        assert _link(P1, G1).same_decision(earlier)
        assert not _link(P1, G1, MatchResult.POSSIBLE_MATCH).same_decision(earlier)

    def test_replacing_keeps_history(self):
        created = datetime(2020, 1, 1, tzinfo=UTC)
        previous = _link(P1, G1, created_new_golden=True, created_at=created)
        updated = _link(P1, G1).replacing(previous)
        assert updated.created_at == created
        assert updated.created_new_golden


class TestLinkStore:
    """Behaviour shared by every LinkStore."""

    def test_upsert_and_find(self, store):
        store.upsert_link(_link(P1, G1))
        store.upsert_link(_link(P1, G2, MatchResult.POSSIBLE_MATCH))

        assert store.find_link(P1).golden == G1
        assert [link.golden for link in store.find_possible_matches(P1)] == [G2]
        assert [link.golden for link in store.find_links_for(P1)] == [G1, G2]
        assert store.count_links() == 2

    def test_upsert_replaces_pair(self, store):
        store.upsert_link(_link(P1, G1, MatchResult.POSSIBLE_MATCH))
        store.upsert_link(_link(P1, G1, link_source=LinkSource.MANUAL))

        assert store.count_links() == 1
        link = store.get_link(P1, G1)
        assert link.is_match
        assert link.link_source == LinkSource.MANUAL

    def test_round_trip(self, store):
        link = _link(P1, G1, created_new_golden=True)
        store.upsert_link(link)
        assert store.get_link(P1, G1) == link

    def test_one_match_per_source(self, store):
        store.upsert_link(_link(P1, G1))
        with pytest.raises(LinkIntegrityError):
            store.upsert_link(_link(P1, G2))
        assert store.find_link(P1).golden == G1

    def test_many_sources_may_match_one_golden(self, store):
        store.upsert_link(_link(P1, G1))
        store.upsert_link(_link(P2, G1))
        assert [link.source for link in store.find_links_to(G1)] == [P1, P2]

    def test_delete(self, store):
        store.upsert_link(_link(P1, G1))
        assert store.delete_link(P1, G1)
        assert not store.delete_link(P1, G1)
        assert store.find_link(P1) is None

    def test_exclusions(self, store):
        assert not store.is_excluded(P1, G1)
        store.add_exclusion(P1, G1)
        store.add_exclusion(P1, G1)
        assert store.is_excluded(P1, G1)
        assert not store.is_excluded(P1, G2)
        assert store.remove_exclusion(P1, G1)
        assert not store.remove_exclusion(P1, G1)

    def test_delete_links_involving(self, store):
        store.upsert_link(_link(P1, G1))
        store.upsert_link(_link(P2, G1, MatchResult.POSSIBLE_MATCH))
        store.upsert_link(_link(P2, G2))
        store.add_exclusion(P1, G2)

        assert store.delete_links_involving(G1) == 2
        assert [link.key for link in store.all_links()] == [(P2, G2)]
        assert store.delete_links_involving(P1) == 0
        assert not store.is_excluded(P1, G2)

    def test_sqlite_persists(self, tmp_path: Path):
        path = tmp_path / "links.sqlite"
        SQLiteLinkStore(path).upsert_link(_link(P1, G1))
        assert SQLiteLinkStore(path).find_link(P1).golden == G1


class TestQueries:
    """Tests for read-only graph queries."""

    def test_golden_record_for(self, store):
        store.upsert_link(_link(P1, G1))
        store.upsert_link(_link(P2, G2, MatchResult.POSSIBLE_MATCH))
        assert golden_record_for(store, P1) == G1
        assert golden_record_for(store, P2) is None

    def test_same_golden_record(self, store):
        store.upsert_link(_link(P1, G1))
        store.upsert_link(_link(P2, G1))
        assert same_golden_record(store, P1, P2)
        assert same_golden_record(store, P1, G1)
        assert not same_golden_record(store, P1, G2)

    def test_linked_sources_and_pending_review(self, store):
        store.upsert_link(_link(P1, G1))
        store.upsert_link(_link(P2, G1, MatchResult.POSSIBLE_MATCH))
        assert linked_sources(store, G1) == [P1]
        assert linked_sources(store, G1, include_possible=True) == [P1, P2]
        assert [link.source for link in pending_review(store)] == [P2]
        assert pending_review(store, P1) == []
