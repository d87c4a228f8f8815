"""
Проверка ставки до любых изменений баланса.
Без побочных эффектов: только ответ «можно» или причина отказа.
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from errors import RejectReason, ValidationError


@dataclass(frozen=True)
class Wager:
    """Ставка: номинал * количество + выбор игрока (сторона, тип ставки и т.п.)"""

    unit: int
    multiplier: int = 1
    selection: Any = None

    @property
    def total(self) -> int:
        return self.unit * self.multiplier


def validate_wager(
    wager: Wager,
    balance: int,
    min_stake: int,
    max_multiplier: int,
) -> Tuple[bool, Optional[RejectReason]]:
    """
    Проверка ставки против баланса и лимитов стола

    Args:
        wager: ставка
        balance: текущий баланс пользователя
        min_stake: минимальный номинал
        max_multiplier: максимальное количество (множитель ставки)

    Returns:
        Кортеж (ок, причина_отказа)
    """
    if wager.unit < min_stake or wager.unit <= 0:
        return False, RejectReason.BELOW_MINIMUM
    if wager.multiplier < 1 or wager.multiplier > max_multiplier:
        return False, RejectReason.INVALID_MULTIPLIER
    if wager.total > balance:
        return False, RejectReason.EXCEEDS_BALANCE
    return True, None


def ensure_valid(wager: Wager, balance: int, min_stake: int, max_multiplier: int) -> None:
    """То же, что validate_wager, но с исключением ValidationError."""
    ok, reason = validate_wager(wager, balance, min_stake, max_multiplier)
    if not ok:
        raise ValidationError(reason, f"ставка {wager.unit}x{wager.multiplier}, баланс {balance}")
