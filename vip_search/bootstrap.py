"""Composition root: build the policies, the monitor and (on request) the CLI.

Extension points are plain callables handed to the sync library once at
startup; nothing here goes through a global hook registry.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from healthcheck.health_command import HealthCommand
from healthcheck.health_monitor import HealthCheckPolicy, HealthMonitor, IndexConsistencyCheck
from healthcheck.reporters import LogReporter, WebhookReporter
from healthcheck.scheduler import IntervalScheduler

from .elasticsearch_client import VIPElasticsearchClient
from .errors import ConfigurationMissing
from .naming_policy import IndexNamingPolicy
from .request_policy import RequestOutcome, RequestPolicy, bulk_items_per_page

logger = logging.getLogger(__name__)


class StartupEvents:
    """The host's "ready" point. Callbacks added after readiness run at once."""

    def __init__(self):
        self.ready = False
        self._callbacks: List[Callable[[], Any]] = []

    def on_ready(self, callback: Callable[[], Any]) -> None:
        if self.ready:
            callback()
        else:
            self._callbacks.append(callback)

    def mark_ready(self) -> None:
        if self.ready:
            return
        self.ready = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()


@dataclass(frozen=True)
class ExtensionPoints:
    index_name: Callable[[Optional[str], Any, Any], str]
    bulk_items_per_page: Callable[..., int]
    intercept_request: Callable[[Any, Any], RequestOutcome]


class VIPSearch:
    """Wire the VIP search policies for one process.

    Usage::

        search = VIPSearch(load_config())
        search.init()
        ...
        search.startup.mark_ready()   # host finished booting
    """

    def __init__(
        self,
        config,
        startup: Optional[StartupEvents] = None,
        scheduler=None,
        enable_healthchecks: Optional[Callable[[bool], bool]] = None,
        consistency_checks: Sequence[IndexConsistencyCheck] = (),
        with_cli: bool = False,
        session=None,
        es_client=None,
    ):
        if not config.tenant_id:
            raise ConfigurationMissing("FILES_CLIENT_SITE_ID is not set")
        self.config = config
        self.startup = startup or StartupEvents()
        self.scheduler = scheduler or IntervalScheduler()

        self.naming_policy = IndexNamingPolicy(config.tenant_id)
        self.request_policy = RequestPolicy.from_config(config, session=session)
        self.extensions = ExtensionPoints(
            index_name=self.naming_policy,
            bulk_items_per_page=bulk_items_per_page,
            intercept_request=self.request_policy.intercept,
        )

        self._es_client = es_client
        reporters = [LogReporter()]
        if config.alert_webhook_url:
            reporters.append(WebhookReporter(config.alert_webhook_url))

        self.monitor = HealthMonitor(
            config,
            self.request_policy,
            policy=HealthCheckPolicy.evaluate(config, enable_healthchecks),
            reporters=reporters,
            consistency_checks=consistency_checks,
            es_client_factory=lambda: self.es_client,
        )

        self.health_command: Optional[HealthCommand] = None
        if with_cli:
            self.health_command = HealthCommand(self.monitor)

    @property
    def es_client(self) -> VIPElasticsearchClient:
        if self._es_client is None:
            self._es_client = VIPElasticsearchClient(self.config, self.naming_policy)
        return self._es_client

    def init(self) -> bool:
        """Register the health job; returns True when it will be scheduled."""
        scheduled = self.monitor.register(self.startup, self.scheduler)
        logger.info(
            "VIP search initialised (tenant=%s, env=%s, healthchecks=%s)",
            self.config.tenant_id,
            self.config.environment or "unset",
            "on" if scheduled else "off",
        )
        return scheduled
