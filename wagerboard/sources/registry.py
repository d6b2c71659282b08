# sources/registry.py

from typing import Dict, Mapping, Optional, Type

from wagerboard.config import SiteConfig
from wagerboard.errors import ConfigError
from wagerboard.sources.base import SourceAdapter
from wagerboard.sources.roulobets import RoulobetsAdapter
from wagerboard.sources.rostake import RostakeAdapter

ADAPTERS: Dict[str, Type[SourceAdapter]] = {
    RostakeAdapter.source_id: RostakeAdapter,
    RoulobetsAdapter.source_id: RoulobetsAdapter,
}


def build_adapters(
    sites: Mapping[str, SiteConfig],
    timeout: float = 15,
    quota_per_min: Optional[int] = None,
) -> Dict[str, SourceAdapter]:
    """One adapter (and one HTTP session) per configured site."""
    adapters: Dict[str, SourceAdapter] = {}
    for source_id, site in sites.items():
        adapter_cls = ADAPTERS.get(source_id)
        if adapter_cls is None:
            raise ConfigError(f"No adapter for site {source_id!r}")
        adapters[source_id] = adapter_cls.build(site.api_key, timeout=timeout, quota_per_min=quota_per_min)
    return adapters
