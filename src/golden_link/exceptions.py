from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class GoldenLinkError(Exception):
    """Base class for golden-link errors."""


class ConfigurationError(GoldenLinkError):
    """Rule set or comparator configuration is unusable.

    Raised while building a RuleSet, a matcher or a classifier; the caller
    must not start with partial rules.
    """


@dataclass
class ComparatorTypeError(GoldenLinkError):
    """A field value is not the type its comparator can interpret.

    Fatal for the workflow run that hit it; never scored as a non-match.
    """

    field_name: str
    comparator: str
    value: Any

    def __str__(self) -> str:
        return (
            f"Field '{self.field_name}' ({self.comparator}) cannot compare "
            f"value of type {type(self.value).__name__}: {self.value!r}"
        )


class LinkStoreError(GoldenLinkError):
    """Recoverable link-store I/O failure; the call may be retried."""


class LinkIntegrityError(GoldenLinkError):
    """A store write would break the one-MATCH-per-source invariant."""


class RecordNotFoundError(GoldenLinkError):
    """A record reference does not resolve to a stored record."""


class InvalidResolutionError(GoldenLinkError):
    """Manual resolution requested for a link that is not pending review."""


@dataclass
class LinkUpdateError(GoldenLinkError):
    """A workflow run failed; no link mutation for the source was kept."""

    source: str
    reason: str

    def __str__(self) -> str:
        return f"Link update for {self.source} failed: {self.reason}"
