import json
import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class LogReporter:
    """Emit every health report as one JSON log line (picked up by log shipping)."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logging.getLogger("vip_search.health")

    def __call__(self, report) -> None:
        payload = json.dumps(report.to_dict(), sort_keys=True)
        if report.ok:
            self.log.info(payload)
        else:
            self.log.error(payload)


class WebhookReporter:
    """Post failed reports to an alerting webhook (Slack-style ``{"text": ...}``)."""

    def __init__(self, url: str, timeout: float = 3.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, report) -> None:
        if report.ok:
            return
        try:
            self.session.post(self.url, json={"text": report.summary(), "report": report.to_dict()}, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Health alert webhook post failed: %s", exc)
