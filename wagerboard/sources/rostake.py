# sources/rostake.py
#
# Forme confirmée :
#   { "success": true, "data": { "users": [ { id, username, avatarVersion, wagered } ] } }

from __future__ import annotations

from typing import Any, List, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, model_validator

from wagerboard.services.period import PeriodWindow, iso_no_ms
from wagerboard.sources.base import SourceAdapter, WagerRow

ROSTAKE_ENDPOINT = "https://rostake.com/api/v1/affiliate/leaderboard"
ROSTAKE_HEADERS = {"Referer": "https://rostake.com/"}


class RostakeRow(WagerRow):
    # Rostake ne donne qu'un avatarVersion, pas d'URL exploitable
    @model_validator(mode="before")
    @classmethod
    def pick_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {"username": data.get("username"), "wagered": data.get("wagered")}


class _RostakeData(BaseModel):
    model_config = ConfigDict(extra="ignore")
    users: List[Any]


class RostakePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")
    data: _RostakeData


class RostakeAdapter(SourceAdapter):
    """Rostake affiliate leaderboard: ISO start instant in the query string."""

    source_id = "rostake"
    row_model = RostakeRow
    headers = ROSTAKE_HEADERS

    async def fetch_raw(self, window: PeriodWindow) -> Any:
        params = {"api": self.api_key, "start": iso_no_ms(window.after_ms)}
        return await self.client.get_json(ROSTAKE_ENDPOINT, params=params)

    def decode_rows(self, payload: Any) -> Optional[List[Any]]:
        try:
            return RostakePayload.model_validate(payload).data.users
        except pydantic.ValidationError:
            return None
