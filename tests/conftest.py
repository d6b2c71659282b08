"""Shared fakes: a scripted adapter and a controllable clock."""

import asyncio
from typing import Any, List, Optional
from unittest.mock import MagicMock

import pytest

from wagerboard.sources.base import SourceAdapter


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeAdapter(SourceAdapter):
    """Rows come from ``payloads`` in order; an Exception item is raised instead."""

    source_id = "fake"

    def __init__(self, payloads: Optional[List[Any]] = None, delay: float = 0):
        client = MagicMock()
        client.close = self._close
        super().__init__("key", client)
        self.payloads = list(payloads or [])
        self.delay = delay
        self.calls = 0
        self.windows = []
        self.closed = False

    async def _close(self):
        self.closed = True

    async def fetch_raw(self, window):
        self.calls += 1
        self.windows.append(window)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.payloads.pop(0) if len(self.payloads) > 1 else self.payloads[0]
        if isinstance(item, Exception):
            raise item
        return item

    def decode_rows(self, payload):
        return payload.get("rows") if isinstance(payload, dict) else None


def rows(*pairs):
    return {"rows": [{"username": name, "wagered": amount} for name, amount in pairs]}


@pytest.fixture
def clock():
    return FakeClock()
