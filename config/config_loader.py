import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from vip_search.errors import ConfigurationMissing

# Central config loader. Operational knobs come from search_config.yaml, the
# deployment-specific values (endpoints, credentials, environment tag) from
# the environment. Built once at process start and handed to each component:
#   from config.config_loader import load_config
#   config = load_config()

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / 'search_config.yaml'

_TRUE = {'1', 'true', 'yes', 'on'}
_FALSE = {'0', 'false', 'no', 'off'}


def _env_bool(raw: Optional[str]) -> Optional[bool]:
    """Parse a boolean env value. Unset / empty / unrecognised -> None."""
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return None


def _parse_endpoints(raw: Optional[str]) -> Tuple[str, ...]:
    # Accept either a JSON list or a comma separated string
    if not raw or not raw.strip():
        return ()
    raw = raw.strip()
    if raw.startswith('['):
        values = json.loads(raw)
    else:
        values = raw.split(',')
    return tuple(str(v).strip() for v in values if str(v).strip())


def _load_yaml(path: Path) -> Dict[str, Any]:
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


@dataclass(frozen=True)
class SearchConfig:
    endpoints: Tuple[str, ...] = ()
    username: Optional[str] = None
    password: Optional[str] = None
    environment: str = ''
    tenant_id: Optional[str] = None
    healthchecks_disabled: bool = False
    healthchecks_enabled: Optional[bool] = None
    verify_tls: bool = True
    request_retries: int = 3
    request_timeout: float = 20.0
    request_retry_delay: float = 1.0
    healthcheck_interval: int = 1800
    max_unassigned_shards: Optional[int] = None
    alert_webhook_url: Optional[str] = None
    log_level: str = 'INFO'

    def __post_init__(self):
        # Credentials are both-or-neither
        if bool(self.username) != bool(self.password):
            raise ConfigurationMissing(
                'VIP_ELASTICSEARCH_USERNAME and VIP_ELASTICSEARCH_PASSWORD must be set together'
            )

    @property
    def primary_endpoint(self) -> str:
        if not self.endpoints:
            raise ConfigurationMissing('VIP_ELASTICSEARCH_ENDPOINTS is not set')
        return self.endpoints[0].rstrip('/')

    @property
    def credentials(self) -> Optional[Tuple[str, str]]:
        if self.username and self.password:
            return (self.username, self.password)
        return None

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
) -> SearchConfig:
    """Build the process-wide SearchConfig from YAML defaults + environment."""
    env = os.environ if environ is None else environ
    path = Path(config_path or env.get('VIP_SEARCH_CONFIG') or DEFAULT_CONFIG_PATH)
    settings = _load_yaml(path)

    request = settings.get('request', {}) or {}
    healthcheck = settings.get('healthcheck', {}) or {}
    logging_section = settings.get('logging', {}) or {}

    max_unassigned = healthcheck.get('max_unassigned_shards')
    tenant = env.get('FILES_CLIENT_SITE_ID', '').strip()

    return SearchConfig(
        endpoints=_parse_endpoints(env.get('VIP_ELASTICSEARCH_ENDPOINTS')),
        username=env.get('VIP_ELASTICSEARCH_USERNAME') or None,
        password=env.get('VIP_ELASTICSEARCH_PASSWORD') or None,
        environment=env.get('VIP_GO_ENV', '').strip(),
        tenant_id=tenant or None,
        healthchecks_disabled=_env_bool(env.get('DISABLE_VIP_SEARCH_HEALTHCHECKS')) is True,
        healthchecks_enabled=_env_bool(env.get('ENABLE_VIP_SEARCH_HEALTHCHECKS')),
        verify_tls=_env_bool(env.get('VIP_SEARCH_INSECURE_SKIP_TLS_VERIFY')) is not True,
        request_retries=int(request.get('retries', 3)),
        request_timeout=float(request.get('timeout', 20)),
        request_retry_delay=float(request.get('retry_delay', 1)),
        healthcheck_interval=int(healthcheck.get('interval', 1800)),
        max_unassigned_shards=int(max_unassigned) if max_unassigned is not None else None,
        alert_webhook_url=(healthcheck.get('alert_webhook_url') or '').strip() or None,
        log_level=env.get('LOG_LEVEL') or logging_section.get('level', 'INFO'),
    )
