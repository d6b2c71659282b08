# sources/roulobets.py
#
# API affiliée Roulobets : jours calendaires UTC, fin incluse.
# Limite très basse côté serveur ("Too many affiliate streamer checks"),
# d'où le TTL de 15 min par défaut dans la config.

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pydantic
from pydantic import BaseModel, ConfigDict, model_validator

from wagerboard.services.period import PeriodWindow, ymd_utc
from wagerboard.sources.base import SourceAdapter, WagerRow, coerce_flag

ROULO_ENDPOINT = "https://api.roulobets.com/v1/external/affiliates"


# Champs possibles par ordre de priorité ; on prend le premier renseigné
_FIELD_CHAINS = {
    "username": ("username", "name", "user"),
    "wagered": ("wagered", "wager", "totalWagered", "total_wagered", "amount", "total"),
    "avatar": ("avatar",),
}
_ANON_FIELDS = ("isAnon", "is_anon")


def _first_set(row: Dict[str, Any], names: Tuple[str, ...]) -> Any:
    for name in names:
        value = row.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        return value
    return None


class RoulobetsRow(WagerRow):
    @model_validator(mode="before")
    @classmethod
    def pick_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        picked = {field: _first_set(data, names) for field, names in _FIELD_CHAINS.items()}
        picked["is_anon"] = any(coerce_flag(data.get(name)) for name in _ANON_FIELDS)
        return picked


class RoulobetsPayload(BaseModel):
    """``{"affiliates": [...]}`` (v1) or ``{"data": [...]}``."""
    model_config = ConfigDict(extra="ignore")

    affiliates: Optional[List[Any]] = None
    data: Optional[List[Any]] = None

    def rows(self) -> Optional[List[Any]]:
        if self.affiliates is not None:
            return self.affiliates
        return self.data


class RoulobetsAdapter(SourceAdapter):
    """Roulobets affiliates endpoint: ``start_at``/``end_at`` calendar days."""

    source_id = "roulobets"
    row_model = RoulobetsRow

    @staticmethod
    def day_range(window: PeriodWindow) -> tuple[str, str]:
        # before_ms est le début de la période suivante -> jour inclusif = veille
        return ymd_utc(window.after_ms), ymd_utc(window.before_ms - 1)

    async def fetch_raw(self, window: PeriodWindow) -> Any:
        start_at, end_at = self.day_range(window)
        params = {"start_at": start_at, "end_at": end_at, "key": self.api_key}
        return await self.client.get_json(ROULO_ENDPOINT, params=params)

    def decode_rows(self, payload: Any) -> Optional[List[Any]]:
        try:
            return RoulobetsPayload.model_validate(payload).rows()
        except pydantic.ValidationError:
            return None
