"""
Итог раунда и ограниченная история раундов (новые сверху).
"""

from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from games.constants import GameKind


def _now() -> int:
    return int(datetime.now().timestamp())


class RoundResult(BaseModel):
    """Итог одного раунда. Создаётся один раз, дальше не меняется."""

    model_config = ConfigDict(frozen=True)

    round_id: str
    game: GameKind
    outcome: str
    selection: Optional[str] = None
    stake: int
    payout: int
    scores: Dict[str, int] = Field(default_factory=dict)
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=_now)

    @property
    def net_profit(self) -> int:
        return self.payout - self.stake

    @property
    def won(self) -> bool:
        return self.payout > self.stake


class RoundHistory:
    """История раундов одной игры: не больше limit записей, самые свежие первыми."""

    def __init__(self, limit: int = 20, items: Iterable[RoundResult] = ()):
        self.limit = limit
        self._items: Deque[RoundResult] = deque(list(items)[:limit], maxlen=limit)

    def add(self, result: RoundResult) -> None:
        self._items.appendleft(result)

    def recent(self, limit: Optional[int] = None) -> List[RoundResult]:
        items = list(self._items)
        return items[:limit] if limit is not None else items

    def total_net(self) -> int:
        return sum(r.net_profit for r in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)
