# config.py – Chargement des paramètres via pydantic-settings

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from wagerboard.errors import ConfigError
from wagerboard.services.period import MS_PER_DAY, parse_anchor_ms

DEFAULT_PRIZES: Dict[int, float] = {1: 100, 2: 30, 3: 20}


class Settings(BaseSettings):
    # — Rostake —
    ROSTAKE_API_KEY: str = ""
    ROSTAKE_START_ISO: Optional[str] = None  # ex. 2026-01-09T00:00:00Z
    ROSTAKE_DAYS: float = 7
    ROSTAKE_CACHE_TTL_S: int = 60
    ROSTAKE_PRIZES: Dict[int, float] = dict(DEFAULT_PRIZES)

    # — Roulobets —
    ROULO_API_KEY: str = ""
    ROULO_START_ISO: Optional[str] = None  # ex. 2026-01-12T00:00:00Z
    ROULO_DAYS: float = 14
    ROULO_CACHE_TTL_S: int = 15 * 60  # "Too many affiliate streamer checks"
    ROULO_PRIZES: Dict[int, float] = dict(DEFAULT_PRIZES)

    # — Leaderboard —
    ENABLED_SITES: List[str] = ["rostake", "roulobets"]
    DEFAULT_SITE: str = "rostake"
    LEADERBOARD_SIZE: int = 10
    UPSTREAM_TIMEOUT_S: float = 15
    UPSTREAM_QUOTA_PER_MIN: Optional[int] = None  # quota local par source, aucun si absent

    # — Cache —
    REDIS_URL: Optional[str] = None  # store mémoire si absent
    CACHE_MAX_KEYS: Optional[int] = None

    # — Serveur —
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

settings = Settings()


@dataclass(frozen=True)
class SiteConfig:
    """Static schedule and credentials for one upstream."""
    source_id: str
    anchor_ms: int
    duration_ms: int
    duration_days: float
    prize_table: Dict[int, float]
    cache_ttl_ms: int
    api_key: str


# site -> (préfixe des variables d'environnement, attributs Settings)
_SITE_FIELDS = {
    "rostake": ("ROSTAKE", "ROSTAKE_API_KEY", "ROSTAKE_START_ISO", "ROSTAKE_DAYS",
                "ROSTAKE_CACHE_TTL_S", "ROSTAKE_PRIZES"),
    "roulobets": ("ROULO", "ROULO_API_KEY", "ROULO_START_ISO", "ROULO_DAYS",
                  "ROULO_CACHE_TTL_S", "ROULO_PRIZES"),
}

SITE_ALIASES = {"roulo": "roulobets"}


def build_site_configs(cfg: Settings) -> Dict[str, SiteConfig]:
    """
    Validate the per-site schedule and credentials once, at startup.

    Returns:
        Mapping of source id to its SiteConfig, for every enabled site.

    Raises:
        ConfigError: On an unknown site name, a missing or unparseable anchor,
            a non-positive duration, a missing API key or a bad TTL.
    """
    sites: Dict[str, SiteConfig] = {}
    for raw_name in cfg.ENABLED_SITES:
        name = SITE_ALIASES.get(raw_name.strip().lower(), raw_name.strip().lower())
        if name not in _SITE_FIELDS:
            raise ConfigError(f"Unknown site in ENABLED_SITES: {raw_name!r}")
        prefix, key_attr, start_attr, days_attr, ttl_attr, prizes_attr = _SITE_FIELDS[name]

        anchor_ms = parse_anchor_ms(getattr(cfg, start_attr), f"{prefix}_START_ISO")

        days = getattr(cfg, days_attr)
        if not math.isfinite(days) or days <= 0:
            raise ConfigError(f"Invalid {prefix}_DAYS: {days!r}")

        api_key = (getattr(cfg, key_attr) or "").strip()
        if not api_key:
            raise ConfigError(f"Missing {key_attr}")

        ttl_s = getattr(cfg, ttl_attr)
        if ttl_s <= 0:
            raise ConfigError(f"Invalid {ttl_attr}: {ttl_s!r}")

        sites[name] = SiteConfig(
            source_id=name,
            anchor_ms=anchor_ms,
            duration_ms=int(round(days * MS_PER_DAY)),
            duration_days=days,
            prize_table=dict(getattr(cfg, prizes_attr)),
            cache_ttl_ms=int(ttl_s * 1000),
            api_key=api_key,
        )

    if not sites:
        raise ConfigError("ENABLED_SITES is empty")
    if cfg.LEADERBOARD_SIZE <= 0:
        raise ConfigError(f"Invalid LEADERBOARD_SIZE: {cfg.LEADERBOARD_SIZE!r}")
    return sites
