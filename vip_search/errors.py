"""Error types shared by the naming, request and health-check layers."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class SearchError(Exception):
    """Base class for everything raised by this package."""


class InvalidArgument(SearchError, ValueError):
    """Bad input to a pure helper (index naming, CLI parsing)."""


class ConfigurationMissing(SearchError):
    """A required endpoint or credential is absent."""


class ProbeFailed(SearchError):
    """The cluster answered (or failed to answer) in a way we treat as unhealthy."""

    def __init__(
        self,
        problems: List[str],
        health: Optional[Dict[str, Any]] = None,
        reachable: bool = True,
    ):
        self.problems = list(problems)
        self.health = health or {}
        self.reachable = reachable
        super().__init__("; ".join(self.problems) or "health probe failed")


@dataclass(frozen=True)
class UpstreamUnavailable:
    """Fallback error value handed back instead of a transport exception.

    Returned, never raised: callers check ``outcome.error`` whatever the
    transport failure was.
    """

    code: str
    message: str


UPSTREAM_REQUEST_FAILED = UpstreamUnavailable(
    code="vip-elasticsearch-upstream-request-failed",
    message="There was an error connecting to the upstream Elasticsearch server",
)
