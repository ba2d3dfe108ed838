"""Read-only questions over the link graph."""
from __future__ import annotations

from golden_link.links.models import Link, RecordReference
from golden_link.links.store import LinkStore


def golden_record_for(store: LinkStore, source: RecordReference) -> RecordReference | None:
    """The golden record a source is MATCH-linked to, if any."""
    link = store.find_link(source)
    return link.golden if link else None


def _identity(store: LinkStore, ref: RecordReference) -> RecordReference:
    # A reference with a MATCH link is a source; anything else stands for itself.
    golden = golden_record_for(store, ref)
    return golden if golden is not None else ref


def same_golden_record(store: LinkStore, a: RecordReference, b: RecordReference) -> bool:
    """Whether two references resolve to the same identity.

    Either reference may be a source record or a golden record.
    """
    if a == b:
        return True
    return _identity(store, a) == _identity(store, b)


def linked_sources(
    store: LinkStore,
    golden: RecordReference,
    include_possible: bool = False,
) -> list[RecordReference]:
    links = store.find_links_to(golden)
    return [
        link.source
        for link in links
        if link.is_match or (include_possible and link.is_possible_match)
    ]


def pending_review(store: LinkStore, source: RecordReference | None = None) -> list[Link]:
    """POSSIBLE_MATCH links awaiting a reviewer, for one source or all."""
    if source is not None:
        return store.find_possible_matches(source)
    return [link for link in store.all_links() if link.is_possible_match]
