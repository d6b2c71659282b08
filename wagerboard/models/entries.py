# wagerboard/models/entries.py
# ============================================================================
# Entrées normalisées, enregistrements de cache et réponse assemblée
# ============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class LeaderboardEntry:
    """One player row, identical in shape whatever upstream produced it."""
    __slots__ = ("display_name", "wagered_amount", "avatar", "is_anonymous")

    display_name: str
    wagered_amount: float
    avatar: Optional[str]
    is_anonymous: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayName": self.display_name,
            "wageredAmount": self.wagered_amount,
            "avatar": self.avatar,
            "isAnonymous": self.is_anonymous,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeaderboardEntry":
        return cls(
            display_name=data["displayName"],
            wagered_amount=float(data["wageredAmount"]),
            avatar=data.get("avatar"),
            is_anonymous=bool(data.get("isAnonymous", False)),
        )


@dataclass(frozen=True)
class RankedEntry:
    """LeaderboardEntry with its position and prize, built per response."""
    __slots__ = ("entry", "rank", "prize_amount")

    entry: LeaderboardEntry
    rank: int
    prize_amount: float

    @property
    def display_name(self) -> str:
        return self.entry.display_name

    @property
    def wagered_amount(self) -> float:
        return self.entry.wagered_amount

    def to_dict(self) -> Dict[str, Any]:
        data = {"rank": self.rank}
        data.update(self.entry.to_dict())
        data["prize"] = self.prize_amount
        return data


@dataclass(frozen=True)
class CacheRecord:
    """Dernier fetch réussi pour une clé (source, début, fin)."""
    __slots__ = ("key", "fetched_at_ms", "ttl_ms", "entries")

    key: str
    fetched_at_ms: int
    ttl_ms: int
    entries: tuple

    def is_fresh(self, now_ms: int) -> bool:
        return now_ms - self.fetched_at_ms < self.ttl_ms

    @property
    def expires_at_ms(self) -> int:
        return self.fetched_at_ms + self.ttl_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "fetchedAt": self.fetched_at_ms,
            "ttl": self.ttl_ms,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheRecord":
        return cls(
            key=data["key"],
            fetched_at_ms=int(data["fetchedAt"]),
            ttl_ms=int(data["ttl"]),
            entries=tuple(LeaderboardEntry.from_dict(e) for e in data.get("entries", [])),
        )


@dataclass
class CacheResult:
    entries: List[LeaderboardEntry]
    served_from_cache: bool
    fetched_at_ms: int
    next_refresh_at_ms: int
    warning: Optional[str] = None


@dataclass
class LeaderboardResponse:
    """Enveloppe JSON renvoyée par /api/leaderboard."""
    data: List[RankedEntry]
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "data": [row.to_dict() for row in self.data],
            "meta": dict(self.meta),
        }
