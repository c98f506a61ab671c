"""Outbound request handling for calls to the search cluster.

Every request the sync library (or the health monitor) makes goes through
``RequestPolicy`` so retries, timeouts, TLS handling and the failure shape
are decided in one place.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import backoff
import requests

from .errors import UPSTREAM_REQUEST_FAILED, UpstreamUnavailable

logger = logging.getLogger(__name__)

# Bulk sync page size, fixed regardless of the sync library default.
BULK_ITEMS_PER_PAGE = 500


def bulk_items_per_page(default: Optional[int] = None) -> int:
    """Page size for bulk indexing, whatever the library asked for."""
    return BULK_ITEMS_PER_PAGE


class UpstreamServerError(requests.HTTPError):
    """Raised internally for 5xx answers so they are retried like network errors."""


_RETRYABLE = (requests.ConnectionError, requests.Timeout, UpstreamServerError)


@dataclass(frozen=True)
class RequestOutcome:
    """Either the upstream response or the fallback error, never both."""

    response: Optional[requests.Response] = None
    error: Optional[UpstreamUnavailable] = None

    def __post_init__(self):
        if (self.response is None) == (self.error is None):
            raise ValueError("RequestOutcome needs exactly one of response or error")

    @property
    def ok(self) -> bool:
        return self.error is None


class RequestPolicy:
    """Wrap HTTP calls to the cluster with retries and a fallback error.

    Parameters
    ----------
    retries : int
        Total attempts per request (sequential, fixed delay between them).
    timeout : float
        Per-attempt timeout in seconds.
    retry_delay : float
        Seconds to wait between attempts.
    verify_tls : bool
        Verify the cluster certificate. Turning this off is an explicit
        operational opt-in and is logged.
    auth : tuple | None
        Basic auth ``(username, password)``.
    session : requests.Session | None
        Injected session (tests / connection reuse).
    """

    def __init__(
        self,
        retries: int = 3,
        timeout: float = 20.0,
        retry_delay: float = 1.0,
        verify_tls: bool = True,
        auth: Optional[Tuple[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        if int(retries) < 1:
            raise ValueError("retries must be >= 1")
        self.retries = int(retries)
        self.timeout = float(timeout)
        self.retry_delay = float(retry_delay)
        self.verify_tls = bool(verify_tls)
        self.auth = auth
        self.session = session or requests.Session()

        if not self.verify_tls:
            logger.warning(
                "TLS certificate verification is DISABLED for search cluster requests "
                "(VIP_SEARCH_INSECURE_SKIP_TLS_VERIFY opt-in)"
            )

    @classmethod
    def from_config(cls, config, session: Optional[requests.Session] = None) -> "RequestPolicy":
        return cls(
            retries=config.request_retries,
            timeout=config.request_timeout,
            retry_delay=config.request_retry_delay,
            verify_tls=config.verify_tls,
            auth=config.credentials,
            session=session,
        )

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        response = self.session.request(
            method,
            url,
            timeout=self.timeout,
            verify=self.verify_tls,
            auth=self.auth,
            **kwargs,
        )
        if response.status_code >= 500:
            raise UpstreamServerError(
                f"{response.status_code} from {url}", response=response
            )
        return response

    def _log_backoff(self, details: Dict[str, Any]) -> None:
        logger.warning(
            "Search request %s failed (attempt %d/%d): %s; retrying in %.1fs",
            details["args"][1],
            details["tries"],
            self.retries,
            details.get("exception"),
            details.get("wait") or 0.0,
        )

    def request(
        self,
        url: str,
        fallback_error: UpstreamUnavailable = UPSTREAM_REQUEST_FAILED,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
    ) -> RequestOutcome:
        """Issue ``method url`` and return the response or ``fallback_error``."""
        kwargs: Dict[str, Any] = {}
        if headers:
            kwargs["headers"] = dict(headers)
        if isinstance(body, (dict, list)):
            kwargs["data"] = json.dumps(body)
            kwargs.setdefault("headers", {}).setdefault("Content-Type", "application/json")
        elif body is not None:
            kwargs["data"] = body

        send = backoff.on_exception(
            backoff.constant,
            _RETRYABLE,
            max_tries=self.retries,
            interval=self.retry_delay,
            jitter=None,
            on_backoff=self._log_backoff,
        )(self._send)

        try:
            response = send(method.upper(), url, **kwargs)
        except requests.RequestException as exc:
            logger.warning(
                "Search request %s %s failed after %d attempt(s): %s (%s)",
                method.upper(),
                url,
                self.retries,
                exc,
                exc.__class__.__name__,
            )
            return RequestOutcome(error=fallback_error)
        return RequestOutcome(response=response)

    def intercept(self, query: Mapping[str, Any], args: Optional[Mapping[str, Any]] = None) -> RequestOutcome:
        """Request-interception hook: ``query['url']`` plus the library's request args."""
        args = dict(args or {})
        if "sslverify" in args:
            # TLS is owned by the policy, not by the caller
            args.pop("sslverify")
        return self.request(
            query["url"],
            UPSTREAM_REQUEST_FAILED,
            method=args.get("method", "GET"),
            headers=args.get("headers"),
            body=args.get("body"),
        )
