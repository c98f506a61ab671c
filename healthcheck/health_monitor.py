"""
Health Monitor for the VIP search cluster.

A recurring job probes ``_cluster/health`` through the request policy, checks
optional index document counts, and emits a report to every reporter. Probe
failures are reported and then the monitor goes back to idle; they never stop
later runs.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Tuple

from vip_search.errors import UPSTREAM_REQUEST_FAILED, ConfigurationMissing, ProbeFailed
from vip_search.naming_policy import BlogId

logger = logging.getLogger(__name__)

JOB_NAME = "vip_search_healthcheck"
KNOWN_STATUSES = ("green", "yellow", "red")


class MonitorState(Enum):
    DISABLED = "disabled"
    IDLE = "idle"
    PROBING = "probing"
    FAILED = "failed"


@dataclass(frozen=True)
class HealthCheckPolicy:
    enabled: bool
    explicitly_disabled: bool = False

    @classmethod
    def evaluate(
        cls,
        config,
        enable_filter: Optional[Callable[[bool], bool]] = None,
    ) -> "HealthCheckPolicy":
        """Decide whether scheduled health checks run in this process.

        Explicit disable wins over everything. Otherwise checks default to on
        in production only; the explicit enable override and then
        ``enable_filter`` may change that.
        """
        if config.healthchecks_disabled:
            return cls(enabled=False, explicitly_disabled=True)
        enabled = config.is_production
        if config.healthchecks_enabled is not None:
            enabled = config.healthchecks_enabled
        if enable_filter is not None:
            enabled = bool(enable_filter(enabled))
        return cls(enabled=enabled)


@dataclass(frozen=True)
class IndexConsistencyCheck:
    """Compare a source-of-truth count with the document count of one index."""

    slug: str
    expected_count: Callable[[], int]
    blog_id: BlogId = None


@dataclass(frozen=True)
class HealthReport:
    OK = "ok"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"

    status: str
    cluster_status: Optional[str] = None
    unassigned_shards: Optional[int] = None
    problems: Tuple[str, ...] = ()
    inconsistencies: Tuple[Dict[str, Any], ...] = ()
    checked_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def ok(self) -> bool:
        return self.status == self.OK

    def summary(self) -> str:
        if self.ok:
            return f"VIP search healthy (cluster status: {self.cluster_status})"
        return f"VIP search health check {self.status}: " + "; ".join(self.problems)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "cluster_status": self.cluster_status,
            "unassigned_shards": self.unassigned_shards,
            "problems": list(self.problems),
            "inconsistencies": [dict(i) for i in self.inconsistencies],
            "checked_at": self.checked_at,
        }


class HealthMonitor:
    """Scheduled cluster health probe.

    Parameters
    ----------
    config : SearchConfig
    request_policy : RequestPolicy
        Every probe goes through it (retries, timeout, fallback error).
    policy : HealthCheckPolicy | None
        Evaluated from ``config`` when omitted.
    reporters : iterable of callables
        Each receives every HealthReport.
    es_client : VIPElasticsearchClient | None
        Needed only for index consistency checks.
    consistency_checks : sequence of IndexConsistencyCheck
    es_client_factory : callable | None
        Builds the client the first time a consistency check needs it.
    """

    def __init__(
        self,
        config,
        request_policy,
        policy: Optional[HealthCheckPolicy] = None,
        reporters: Optional[Iterable[Callable[[HealthReport], None]]] = None,
        es_client=None,
        consistency_checks: Sequence[IndexConsistencyCheck] = (),
        es_client_factory: Optional[Callable[[], Any]] = None,
    ):
        self.config = config
        self.request_policy = request_policy
        self.policy = policy or HealthCheckPolicy.evaluate(config)
        self.reporters: List[Callable[[HealthReport], None]] = list(reporters or [])
        self._es_client = es_client
        self._es_client_factory = es_client_factory
        self.consistency_checks = list(consistency_checks)
        self.last_report: Optional[HealthReport] = None
        self.transitions: Deque[Tuple[MonitorState, MonitorState]] = deque(maxlen=50)

        self._state = MonitorState.IDLE if self.policy.enabled else MonitorState.DISABLED
        self._probe_lock = threading.Lock()

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def es_client(self):
        if self._es_client is None and self._es_client_factory is not None:
            self._es_client = self._es_client_factory()
        return self._es_client

    @es_client.setter
    def es_client(self, client) -> None:
        self._es_client = client

    @property
    def health_url(self) -> str:
        return f"{self.config.primary_endpoint}/_cluster/health"

    def _transition(self, new_state: MonitorState) -> None:
        old = self._state
        self._state = new_state
        self.transitions.append((old, new_state))
        logger.debug("Health monitor %s -> %s", old.value, new_state.value)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def register(self, startup, scheduler) -> bool:
        """Arrange for init(scheduler) to run once the host is ready.

        Returns True when the job will be scheduled.
        """
        if self._state is MonitorState.DISABLED:
            if self.policy.explicitly_disabled:
                self.disable_job(scheduler)
            logger.info("VIP search health checks disabled; not scheduling")
            return False
        try:
            self.config.primary_endpoint
        except ConfigurationMissing as exc:
            logger.error("Not scheduling VIP search health checks: %s", exc)
            return False
        startup.on_ready(lambda: self.init(scheduler))
        return True

    def init(self, scheduler) -> None:
        if self._state is MonitorState.DISABLED:
            return
        if scheduler.is_scheduled(JOB_NAME):
            return
        scheduler.schedule(JOB_NAME, self.config.healthcheck_interval, self.run_probe)

    @staticmethod
    def disable_job(scheduler) -> None:
        """Remove a job left scheduled by an earlier configuration."""
        if scheduler.is_scheduled(JOB_NAME):
            scheduler.unschedule(JOB_NAME)

    def reconfigure(
        self,
        config,
        enable_filter: Optional[Callable[[bool], bool]] = None,
        scheduler=None,
    ) -> MonitorState:
        """Re-evaluate enablement after a configuration change.

        An explicit disable is final for the lifetime of the process.
        """
        if self.policy.explicitly_disabled:
            logger.info("Health checks were explicitly disabled; ignoring reconfigure")
            return self._state
        self.config = config
        self.policy = HealthCheckPolicy.evaluate(config, enable_filter)
        if not self.policy.enabled:
            if self._state is not MonitorState.DISABLED:
                self._transition(MonitorState.DISABLED)
            if scheduler is not None:
                self.disable_job(scheduler)
        elif self._state is MonitorState.DISABLED:
            self._transition(MonitorState.IDLE)
            if scheduler is not None:
                self.init(scheduler)
        return self._state

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------
    def evaluate(self, health: Dict[str, Any]) -> List[str]:
        """Return the problems found in a ``_cluster/health`` payload."""
        problems = []
        status = health.get("status")
        if status == "red":
            problems.append("cluster status is red")
        elif status not in KNOWN_STATUSES:
            problems.append(f"unknown cluster status {status!r}")
        elif status == "yellow":
            logger.warning("VIP search cluster status is yellow")
        if health.get("timed_out"):
            problems.append("cluster health request timed out")
        unassigned = health.get("unassigned_shards")
        limit = self.config.max_unassigned_shards
        if unassigned is not None:
            try:
                unassigned = int(unassigned)
            except (TypeError, ValueError):
                problems.append(f"unassigned_shards is not a number: {unassigned!r}")
                unassigned = None
        if limit is not None and unassigned is not None and unassigned > limit:
            problems.append(f"{unassigned} unassigned shards (limit {limit})")
        return problems

    def probe_cluster(self) -> Dict[str, Any]:
        """Query cluster health; raise ProbeFailed when it is not healthy."""
        outcome = self.request_policy.request(self.health_url, UPSTREAM_REQUEST_FAILED, method="GET")
        if not outcome.ok:
            raise ProbeFailed([outcome.error.message], reachable=False)
        response = outcome.response
        if response.status_code >= 400:
            raise ProbeFailed([f"cluster health returned HTTP {response.status_code}"])
        try:
            health = response.json()
        except ValueError:
            raise ProbeFailed(["cluster health response is not JSON"])
        if not isinstance(health, dict):
            raise ProbeFailed(["cluster health response is not a JSON object"])
        problems = self.evaluate(health)
        if problems:
            raise ProbeFailed(problems, health)
        return health

    def validate_counts(self, checks: Optional[Sequence[IndexConsistencyCheck]] = None) -> List[Dict[str, Any]]:
        """Compare expected counts with the cluster; returns one entry per mismatch."""
        checks = self.consistency_checks if checks is None else list(checks)
        if not checks:
            return []
        if self.es_client is None:
            raise ConfigurationMissing("index consistency checks need an Elasticsearch client")

        inconsistencies = []
        for check in checks:
            index = self.es_client.index_name_for(check.slug, check.blog_id)
            expected = int(check.expected_count())
            actual = self.es_client.count(check.slug, check.blog_id)
            if actual is None:
                inconsistencies.append(
                    {"index": index, "expected": expected, "actual": None, "diff": None}
                )
            elif actual != expected:
                inconsistencies.append(
                    {"index": index, "expected": expected, "actual": actual, "diff": actual - expected}
                )
        return inconsistencies

    def check(self) -> HealthReport:
        """One full health check. Never raises for cluster problems."""
        try:
            health = self.probe_cluster()
        except ProbeFailed as exc:
            return HealthReport(
                status=HealthReport.FAILED if exc.reachable else HealthReport.UNAVAILABLE,
                cluster_status=exc.health.get("status"),
                unassigned_shards=exc.health.get("unassigned_shards"),
                problems=tuple(exc.problems),
            )

        inconsistencies = self.validate_counts()
        problems = tuple(
            f"index {i['index']} count mismatch (expected {i['expected']}, actual {i['actual']})"
            for i in inconsistencies
        )
        return HealthReport(
            status=HealthReport.FAILED if inconsistencies else HealthReport.OK,
            cluster_status=health.get("status"),
            unassigned_shards=health.get("unassigned_shards"),
            problems=problems,
            inconsistencies=tuple(inconsistencies),
        )

    def _emit(self, report: HealthReport) -> None:
        for reporter in self.reporters:
            try:
                reporter(report)
            except Exception as exc:
                logger.error("Health reporter %r failed: %s", reporter, exc)

    def run_probe(self) -> Optional[HealthReport]:
        """Scheduled entry point: IDLE -> PROBING -> IDLE | FAILED -> IDLE."""
        if self._state is MonitorState.DISABLED:
            logger.debug("Health checks disabled; skipping probe")
            return None
        if not self._probe_lock.acquire(blocking=False):
            logger.warning("Previous health probe still running; skipping")
            return None
        try:
            self._transition(MonitorState.PROBING)
            try:
                report = self.check()
            except Exception as exc:
                logger.error("Unexpected error during health probe: %s", exc, exc_info=True)
                report = HealthReport(status=HealthReport.FAILED, problems=(f"unexpected error: {exc}",))

            self.last_report = report
            if not report.ok:
                self._transition(MonitorState.FAILED)
            self._emit(report)
            # reconfigure() may have disabled checks while this probe ran
            self._transition(MonitorState.IDLE if self.policy.enabled else MonitorState.DISABLED)
            return report
        finally:
            self._probe_lock.release()
