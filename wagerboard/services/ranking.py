# wagerboard/services/ranking.py
# ============================================================================
# Classement top-N et attribution des prix
# ============================================================================

from __future__ import annotations

import math
from typing import Mapping, Sequence

from wagerboard.models.entries import LeaderboardEntry, RankedEntry


def _amount(entry: LeaderboardEntry) -> float:
    value = getattr(entry, "wagered_amount", None)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0.0
    return float(value)


def top_n(
    entries: Sequence[LeaderboardEntry],
    n: int,
    prize_table: Mapping[int, float],
) -> list[RankedEntry]:
    """
    Classe les entrées par montant misé décroissant.

    ``sorted`` est stable : à montant égal, l'ordre renvoyé par l'API est
    conservé. Un rang sans prix configuré vaut 0.

    Args:
        entries: Entrées normalisées, dans l'ordre de l'API
        n: Taille du classement
        prize_table: rang (1-based) -> montant

    Returns:
        list[RankedEntry]: au plus ``n`` entrées, rang 1 en tête
    """
    if n <= 0:
        return []
    ordered = sorted(entries, key=_amount, reverse=True)
    return [
        RankedEntry(entry=entry, rank=pos + 1, prize_amount=prize_table.get(pos + 1, 0))
        for pos, entry in enumerate(ordered[:n])
    ]
