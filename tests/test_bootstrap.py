from types import SimpleNamespace

import pytest
import requests

from config.config_loader import SearchConfig
from healthcheck.health_monitor import JOB_NAME, IndexConsistencyCheck, MonitorState
from healthcheck.reporters import WebhookReporter
from vip_search.bootstrap import StartupEvents, VIPSearch
from vip_search.errors import UPSTREAM_REQUEST_FAILED, ConfigurationMissing


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def make_config(**overrides):
    values = dict(
        endpoints=("https://es.example:9200",),
        environment="production",
        tenant_id="42",
        request_retry_delay=0.0,
        healthcheck_interval=60,
    )
    values.update(overrides)
    return SearchConfig(**values)


def test_extension_points():
    search = VIPSearch(make_config(), session=FakeSession(requests.ConnectionError("down")))
    post = SimpleNamespace(slug="post")

    assert search.extensions.index_name(None, 7, post) == "vip-42-post-7"
    assert search.extensions.index_name(None, None, post) == "vip-42-post"
    assert search.extensions.bulk_items_per_page() == 500

    outcome = search.extensions.intercept_request({"url": "https://es.example:9200/_search"}, {"sslverify": False})
    assert outcome.error is UPSTREAM_REQUEST_FAILED


def test_tenant_is_required():
    with pytest.raises(ConfigurationMissing):
        VIPSearch(make_config(tenant_id=None))


def test_staging_leaves_health_job_unscheduled():
    search = VIPSearch(make_config(environment="staging"), session=FakeSession(FakeResponse()))
    assert search.init() is False
    search.startup.mark_ready()
    assert search.monitor.policy.enabled is False
    assert not search.scheduler.is_scheduled(JOB_NAME)


def test_enable_filter_turns_checks_on_outside_production():
    search = VIPSearch(
        make_config(environment="staging"),
        enable_healthchecks=lambda default: True,
        session=FakeSession(FakeResponse()),
    )
    assert search.init() is True


def test_production_probe_cycle_end_to_end():
    session = FakeSession(
        FakeResponse(200, {"status": "red", "unassigned_shards": 4, "timed_out": False}),
        FakeResponse(200, {"status": "green", "unassigned_shards": 0, "timed_out": False}),
    )
    startup = StartupEvents()
    search = VIPSearch(make_config(), startup=startup, session=session)

    assert search.init() is True
    assert not search.scheduler.is_scheduled(JOB_NAME)
    startup.mark_ready()
    assert search.scheduler.is_scheduled(JOB_NAME)

    search.scheduler.run_job(JOB_NAME)
    assert search.monitor.last_report.status == "failed"
    assert search.monitor.state is MonitorState.IDLE

    search.scheduler.run_job(JOB_NAME)
    assert search.monitor.last_report.ok
    assert session.calls == [("GET", "https://es.example:9200/_cluster/health")] * 2


def test_cli_only_built_on_request():
    fake_client = SimpleNamespace(index_name_for=lambda slug, blog_id=None: slug, count=lambda slug, blog_id=None: 0)
    assert VIPSearch(make_config(), session=FakeSession(FakeResponse())).health_command is None

    search = VIPSearch(make_config(), with_cli=True, es_client=fake_client, session=FakeSession(FakeResponse()))
    assert search.health_command is not None
    assert search.monitor.es_client is fake_client


def test_webhook_reporter_added_when_configured():
    search = VIPSearch(make_config(alert_webhook_url="https://hooks.example/x"), session=FakeSession(FakeResponse()))
    assert any(isinstance(r, WebhookReporter) for r in search.monitor.reporters)


def test_startup_callbacks_after_ready_run_immediately():
    startup = StartupEvents()
    calls = []
    startup.on_ready(lambda: calls.append("early"))
    startup.mark_ready()
    startup.on_ready(lambda: calls.append("late"))
    startup.mark_ready()
    assert calls == ["early", "late"]


def test_elasticsearch_client_built_only_when_counts_are_needed(monkeypatch):
    built = []

    class CountingClient:
        def __init__(self, config, naming_policy):
            built.append(config)
            self.naming_policy = naming_policy

        def index_name_for(self, slug, blog_id=None):
            return self.naming_policy.for_kind(slug, blog_id)

        def count(self, slug, blog_id=None):
            return 40

    monkeypatch.setattr("vip_search.bootstrap.VIPElasticsearchClient", CountingClient)
    ok = FakeResponse(200, {"status": "green", "unassigned_shards": 0, "timed_out": False})

    search = VIPSearch(make_config(), with_cli=True, session=FakeSession(ok))
    assert search.health_command.run(["check"]) == 0
    assert built == []

    checks = [IndexConsistencyCheck("user", lambda: 40)]
    search = VIPSearch(make_config(), with_cli=True, consistency_checks=checks, session=FakeSession(ok))
    assert built == []
    assert search.monitor.validate_counts() == []
    assert len(built) == 1
    assert search.monitor.check().ok
    assert len(built) == 1
