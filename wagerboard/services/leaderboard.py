# wagerboard/services/leaderboard.py
# ============================================================================
# Orchestration d'une requête : fenêtre -> cache -> classement -> enveloppe
# ============================================================================

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from wagerboard.config import SITE_ALIASES, Settings, SiteConfig, build_site_configs
from wagerboard.db.cache_store import CacheStore, build_store
from wagerboard.errors import UpstreamError, ValidationError
from wagerboard.models.entries import LeaderboardResponse
from wagerboard.services.cache import CacheLayer
from wagerboard.services.period import PERIOD_OFFSETS, compute_window, iso_no_ms, now_ms
from wagerboard.services.ranking import top_n
from wagerboard.sources.base import SourceAdapter
from wagerboard.sources.registry import build_adapters

log = logging.getLogger(__name__)


def _days(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


class LeaderboardService:
    """Builds the ``/api/leaderboard`` envelope for one site and period."""

    def __init__(
        self,
        sites: Mapping[str, SiteConfig],
        cache: CacheLayer,
        size: int = 10,
        clock: Callable[[], int] = now_ms,
    ):
        self.sites = dict(sites)
        self.cache = cache
        self.size = size
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        cfg: Settings,
        adapters: Optional[Mapping[str, SourceAdapter]] = None,
        store: Optional[CacheStore] = None,
        clock: Callable[[], int] = now_ms,
    ) -> "LeaderboardService":
        """Validate configuration and wire adapters, cache and store. Raises ConfigError."""
        sites = build_site_configs(cfg)
        if adapters is None:
            adapters = build_adapters(
                sites,
                timeout=cfg.UPSTREAM_TIMEOUT_S,
                quota_per_min=cfg.UPSTREAM_QUOTA_PER_MIN,
            )
        if store is None:
            store = build_store(cfg.REDIS_URL, cfg.CACHE_MAX_KEYS)
        cache = CacheLayer(
            adapters,
            {sid: site.cache_ttl_ms for sid, site in sites.items()},
            store=store,
            clock=clock,
        )
        return cls(sites, cache, size=cfg.LEADERBOARD_SIZE, clock=clock)

    def resolve_site(self, source_id: Optional[str]) -> SiteConfig:
        name = (source_id or "").strip().lower()
        name = SITE_ALIASES.get(name, name)
        site = self.sites.get(name)
        if site is None:
            raise ValidationError("Unknown site")
        return site

    @staticmethod
    def resolve_offset(period: Optional[str]) -> int:
        try:
            return PERIOD_OFFSETS[(period or "").strip().lower()]
        except KeyError:
            raise ValidationError("Unknown period") from None

    async def get_leaderboard(self, source_id: str, period: str = "current") -> LeaderboardResponse:
        """
        Top-N for ``source_id`` over the current or previous window.

        Raises:
            ValidationError: Unknown site or period
            UpstreamError: Upstream failed and nothing was cached for the window
        """
        site = self.resolve_site(source_id)
        offset = self.resolve_offset(period)
        period = "previous" if offset else "current"

        window = compute_window(site.anchor_ms, site.duration_ms, offset, self._clock())
        try:
            result = await self.cache.get_or_fetch(site.source_id, window)
        except UpstreamError as e:
            log.error(
                f"Leaderboard error [{site.source_id}] {period} "
                f"after={iso_no_ms(window.after_ms)} before={iso_no_ms(window.before_ms)}: "
                f"{e} | details={e.details!r}"
            )
            raise

        ranked = top_n(result.entries, self.size, site.prize_table)

        meta: Dict[str, Any] = {
            "source": site.source_id,
            "period": period,
            "after": window.after_ms,
            "before": window.before_ms,
            "durationDays": _days(site.duration_days),
            "periodIndex": window.period_index,
            "nextResetAt": window.before_ms if period == "current" else None,
            "cache": {
                "hit": result.served_from_cache,
                "fetchedAt": result.fetched_at_ms,
                "nextRefreshAt": result.next_refresh_at_ms,
            },
        }
        if result.warning:
            meta["warning"] = result.warning

        log.debug(
            f"[{site.source_id}] {period} after={iso_no_ms(window.after_ms)} "
            f"before={iso_no_ms(window.before_ms)} returned={len(ranked)}"
        )
        return LeaderboardResponse(data=ranked, meta=meta)

    async def close(self) -> None:
        await self.cache.close()
