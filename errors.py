"""
Ошибки игрового ядра Duna Casino
Ставки, касса (хранилище баланса), колода, параллельные раунды
"""

from enum import Enum
from typing import Optional


class RejectReason(str, Enum):
    """Причина отклонения ставки валидатором"""

    BELOW_MINIMUM = "below_minimum"
    EXCEEDS_BALANCE = "exceeds_balance"
    INVALID_MULTIPLIER = "invalid_multiplier"
    INVALID_SELECTION = "invalid_selection"
    NO_BETS = "no_bets"


class CasinoError(Exception):
    """Базовая ошибка казино"""


class ValidationError(CasinoError):
    """Ставка не прошла проверку. Баланс не изменялся."""

    def __init__(self, reason: RejectReason, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


class LedgerUnavailable(CasinoError):
    """Хранилище баланса недоступно (сеть, БД не подключена, ошибка SQLite)"""


class DeckExhausted(CasinoError):
    """В колоде не осталось карт. При фиксированных размерах рук это дефект."""


class ConcurrentRoundConflict(CasinoError):
    """У пользователя уже идёт раунд"""

    def __init__(self, user_id: int, game: str):
        self.user_id = user_id
        self.game = game
        super().__init__(f"У пользователя {user_id} уже идёт раунд: {game}")


class InvalidAction(CasinoError):
    """Действие недопустимо в текущей фазе раунда"""


__all__ = [
    "RejectReason",
    "CasinoError",
    "ValidationError",
    "LedgerUnavailable",
    "DeckExhausted",
    "ConcurrentRoundConflict",
    "InvalidAction",
]
