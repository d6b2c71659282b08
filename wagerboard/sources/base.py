# sources/base.py
# ============================================================================
# Interface commune des sources + décodage typé des lignes
# ============================================================================

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Optional, Type

import pydantic
from pydantic import BaseModel, ConfigDict, field_validator

from wagerboard.models.entries import LeaderboardEntry
from wagerboard.services.period import PeriodWindow
from wagerboard.sources.client import SourceClient

log = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"

_TRUTHY = {"true", "1", "yes", "y", "on"}


def coerce_amount(value: Any) -> float:
    """Number or numeric string -> float; anything else (or < 0, NaN, inf) -> 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip()
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def coerce_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return False


class WagerRow(BaseModel):
    """One upstream row, after coercion. Subclasses declare the field aliases."""
    model_config = ConfigDict(extra="ignore")

    username: str = UNKNOWN_NAME
    wagered: float = 0.0
    avatar: Optional[str] = None
    is_anon: bool = False

    @field_validator("username", mode="before")
    @classmethod
    def clean_username(cls, v: Any) -> str:
        if v is None:
            return UNKNOWN_NAME
        return str(v).strip() or UNKNOWN_NAME

    @field_validator("wagered", mode="before")
    @classmethod
    def clean_wagered(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("avatar", mode="before")
    @classmethod
    def clean_avatar(cls, v: Any) -> Optional[str]:
        if not isinstance(v, str) or not v.strip():
            return None
        return v.strip()

    @field_validator("is_anon", mode="before")
    @classmethod
    def clean_is_anon(cls, v: Any) -> bool:
        return coerce_flag(v)

    def to_entry(self) -> LeaderboardEntry:
        return LeaderboardEntry(
            display_name=self.username,
            wagered_amount=self.wagered,
            avatar=self.avatar,
            is_anonymous=self.is_anon,
        )


class SourceAdapter(ABC):
    """
    One upstream wager API.

    ``fetch_raw`` knows the source's wire encoding, ``decode_rows`` knows its
    response envelope. Row coercion and the bare-list fallback live here.
    """

    source_id: ClassVar[str] = ""
    row_model: ClassVar[Type[WagerRow]] = WagerRow
    headers: ClassVar[Dict[str, str]] = {}

    def __init__(self, api_key: str, client: SourceClient):
        self.api_key = api_key
        self.client = client

    @classmethod
    def build(cls, api_key: str, timeout: float = 15, quota_per_min: Optional[int] = None) -> "SourceAdapter":
        client = SourceClient(
            cls.source_id,
            headers=cls.headers,
            timeout=timeout,
            quota_max=quota_per_min,
            quota_window=60,
        )
        return cls(api_key, client)

    @abstractmethod
    async def fetch_raw(self, window: PeriodWindow) -> Any:
        """Issue the upstream request for ``window``. Raises UpstreamError."""

    @abstractmethod
    def decode_rows(self, payload: Any) -> Optional[List[Any]]:
        """Rows from the source's own envelope, or None if it does not match."""

    def normalize(self, payload: Any) -> List[LeaderboardEntry]:
        rows = self.decode_rows(payload)
        if rows is None:
            # Seul repli : une liste nue au premier niveau
            if isinstance(payload, list):
                rows = payload
            else:
                log.warning(f"[{self.source_id}] unrecognized payload shape, normalizing to empty list")
                rows = []

        entries: List[LeaderboardEntry] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                entries.append(self.row_model.model_validate(row).to_entry())
            except pydantic.ValidationError as e:
                log.debug(f"[{self.source_id}] skipping row {row!r}: {e}")
        return entries

    async def fetch(self, window: PeriodWindow) -> List[LeaderboardEntry]:
        return self.normalize(await self.fetch_raw(window))

    async def close(self) -> None:
        await self.client.close()
