"""Index naming used for every index on the VIP search infrastructure.

Names are always ``vip-<tenant>-<slug>`` with a ``-<blog id>`` suffix for
per-site indexes. Global indexes (users, for instance) have no blog id.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from .errors import InvalidArgument

logger = logging.getLogger(__name__)

INDEX_PREFIX = "vip"

BlogId = Union[int, str, None]


def _require_text(value: Any, field: str) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise InvalidArgument(f"{field} must be a non-empty string")
    return text


def _coerce_blog_id(blog_id: BlogId) -> Optional[int]:
    if blog_id is None:
        return None
    # bool is an int subclass; True would silently render as "1"
    if isinstance(blog_id, bool):
        raise InvalidArgument(f"blog_id must be a positive integer, got {blog_id!r}")
    if isinstance(blog_id, str):
        if not blog_id.strip().isdigit():
            raise InvalidArgument(f"blog_id must be a positive integer, got {blog_id!r}")
        blog_id = int(blog_id.strip())
    if not isinstance(blog_id, int) or blog_id <= 0:
        raise InvalidArgument(f"blog_id must be a positive integer, got {blog_id!r}")
    return blog_id


def _global_if_falsy(blog_id: BlogId) -> BlogId:
    # "0" arrives from string-typed hosts and means the same as 0
    if not blog_id or (isinstance(blog_id, str) and blog_id.strip() in ("", "0")):
        return None
    return blog_id


@dataclass(frozen=True)
class IndexIdentifier:
    tenant: str
    slug: str
    blog_id: Optional[int] = None

    @classmethod
    def build(cls, tenant: Any, slug: Any, blog_id: BlogId = None) -> "IndexIdentifier":
        return cls(
            tenant=_require_text(tenant, "tenant"),
            slug=_require_text(slug, "slug"),
            blog_id=_coerce_blog_id(blog_id),
        )

    def render(self) -> str:
        name = f"{INDEX_PREFIX}-{self.tenant}-{self.slug}"
        if self.blog_id is not None:
            name += f"-{self.blog_id}"
        return name


def index_name(tenant: Any, slug: Any, blog_id: BlogId = None) -> str:
    """Return the index name for ``tenant``/``slug`` (and optional blog id).

    Raises
    ------
    InvalidArgument
        When tenant or slug is empty, or blog_id is not a positive integer.
    """
    return IndexIdentifier.build(tenant, slug, blog_id).render()


class IndexNamingPolicy:
    """Naming callback bound to the tenant of this process.

    Called as ``policy(default_name, blog_id, indexable)``, the same shape the
    sync library uses for its index-name hook. The library's own default name
    is ignored so the VIP naming always wins.
    """

    def __init__(self, tenant_id: Any):
        self.tenant_id = _require_text(tenant_id, "tenant_id")

    def __call__(self, default_name: Optional[str], blog_id: BlogId, indexable: Any) -> str:
        slug = indexable if isinstance(indexable, str) else getattr(indexable, "slug", None)
        # blog_id won't be present on global indexes
        name = index_name(self.tenant_id, slug, _global_if_falsy(blog_id))
        if default_name and default_name != name:
            logger.debug("Overriding index name %s -> %s", default_name, name)
        return name

    def for_kind(self, slug: Any, blog_id: BlogId = None) -> str:
        return index_name(self.tenant_id, slug, _global_if_falsy(blog_id))
