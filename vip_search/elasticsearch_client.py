import logging
from typing import Any, Dict, Iterable, List, Optional

# Import the symbols directly so tests can monkeypatch them
from elasticsearch import Elasticsearch  # type: ignore
from elasticsearch.helpers import bulk  # type: ignore

from .naming_policy import BlogId, IndexNamingPolicy
from .request_policy import bulk_items_per_page

logger = logging.getLogger(__name__)


class VIPElasticsearchClient:
    """Elasticsearch client wrapper bound to the VIP naming policy.

    Goals:
    - Resolve every index through IndexNamingPolicy (callers pass a kind slug)
    - Keep bulk requests bounded by the fixed page size
    - Be resilient when the cluster is down (caller can check .connected)

    Parameters
    ----------
    config : SearchConfig
        Endpoints, credentials, TLS flag and timeout are read from it.
    naming_policy : IndexNamingPolicy
        Resolves ``(slug, blog_id)`` to a concrete index name.
    es_client : Elasticsearch | None
        Pre-instantiated low-level client (mainly for tests / dependency injection).
    """

    def __init__(
        self,
        config,
        naming_policy: IndexNamingPolicy,
        es_client: Optional[Elasticsearch] = None,
    ):
        self.hosts = list(config.endpoints)
        self.timeout = config.request_timeout
        self.naming_policy = naming_policy

        self._extra_conn_args: Dict[str, Any] = {}
        if config.credentials:
            self._extra_conn_args["basic_auth"] = config.credentials
        if not config.verify_tls:
            self._extra_conn_args["verify_certs"] = False
            self._extra_conn_args["ssl_show_warn"] = False

        self.es: Optional[Elasticsearch] = es_client
        self.connected: bool = False

        if self.es is None:
            self._connect()
        else:  # Assume injected client already configured
            self.ping()

    # Internal helpers
    def _connect(self) -> None:
        """Attempt a single connection to Elasticsearch using current config."""
        if not self.hosts:
            logger.error("No Elasticsearch endpoints configured; client stays disconnected")
            return
        try:
            self.es = Elasticsearch(self.hosts, request_timeout=self.timeout, **self._extra_conn_args)
            if self.es.ping():
                self.connected = True
                logger.info("Elasticsearch connected (hosts=%s)", self.hosts)
            else:
                raise ConnectionError("Ping to Elasticsearch failed")
        except Exception as exc:  # pragma: no cover (network/ES specific branches)
            self.es = None
            self.connected = False
            logger.error("Failed to connect to Elasticsearch: %s (%s)", exc, exc.__class__.__name__)

    # ------------------------------------------------------------------
    # Public connection management helpers
    # ------------------------------------------------------------------
    def reconnect(self) -> bool:
        """Force a reconnect attempt. Returns True if connected afterwards."""
        self._connect()
        return self.connected

    def close(self) -> None:
        """Close underlying transport (best-effort)."""
        if self.es is not None:
            try:  # pragma: no cover (network specifics)
                self.es.close()
            except Exception as exc:
                logger.debug("Error closing Elasticsearch client: %s", exc)
        self.connected = False

    def ping(self) -> bool:
        """Return True if cluster responds; updates connected flag."""
        if not self.es:
            return False
        try:
            self.connected = bool(self.es.ping())
        except Exception:
            self.connected = False
        return self.connected

    def ensure_connected(self) -> bool:
        """Reconnect if the cluster was unreachable earlier. Returns the connected flag."""
        if self.connected:
            return True
        if self.es is None:
            return self.reconnect()
        return self.ping()

    def index_name_for(self, slug: str, blog_id: BlogId = None) -> str:
        return self.naming_policy.for_kind(slug, blog_id)

    def count(self, slug: str, blog_id: BlogId = None) -> Optional[int]:
        """Document count of the index for ``slug``; None when it can't be read."""
        if not self.ensure_connected() or not self.es:
            logger.error("Cannot count documents: Not connected to Elasticsearch.")
            return None
        index = self.index_name_for(slug, blog_id)
        try:
            return int(self.es.count(index=index)["count"])
        except Exception as exc:
            self.connected = False
            logger.error("Failed to count documents in '%s': %s", index, exc)
            return None

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------
    def bulk_index(
        self,
        slug: str,
        docs: Iterable[Dict[str, Any]],
        blog_id: BlogId = None,
        id_field: str = "ID",
    ) -> Dict[str, int]:
        """Bulk index documents of one kind, ``bulk_items_per_page()`` per request.

        Returns
        -------
        dict
            { 'success': int, 'errors': int }
        """
        docs_list: List[Dict[str, Any]] = list(docs)
        if not docs_list:
            return {"success": 0, "errors": 0}

        if not self.ensure_connected() or not self.es:
            logger.error("bulk_index: not connected; skipping (%d docs)", len(docs_list))
            return {"success": 0, "errors": len(docs_list)}

        index = self.index_name_for(slug, blog_id)
        actions = [
            {
                "_op_type": "index",
                "_index": index,
                "_id": doc.get(id_field),
                "_source": doc,
            }
            for doc in docs_list
        ]
        try:
            # stats_only -> returns (successes, errors)
            successes, errors = bulk(
                self.es,
                actions,
                chunk_size=bulk_items_per_page(),
                stats_only=True,
                raise_on_error=False,
            )
        except Exception as exc:
            logger.error("Bulk indexing into '%s' failed: %s", index, exc)
            return {"success": 0, "errors": len(docs_list)}

        if errors:
            logger.warning(
                "Bulk indexing into '%s' completed with %d errors (success=%d)",
                index,
                errors,
                successes,
            )
        else:
            logger.debug("Bulk indexing into '%s' successful (count=%d)", index, successes)
        return {"success": int(successes), "errors": int(errors)}

    # Convenience maintenance operations
    def refresh_index(self, slug: str, blog_id: BlogId = None) -> bool:
        """Best-effort refresh so newly indexed docs become searchable (and countable)."""
        if not self.ensure_connected() or not self.es:
            logger.debug("refresh_index: not connected; skipping")
            return False
        index = self.index_name_for(slug, blog_id)
        try:
            self.es.indices.refresh(index=index)
            logger.debug("Refreshed index '%s'", index)
            return True
        except Exception as exc:  # pragma: no cover (network errors)
            logger.error("Failed to refresh index '%s': %s", index, exc)
            return False
