"""
Правила столов (house rules): лимиты ставок, выплаты, размеры истории.
Передаются в движки явно, а не читаются из глобального config.
"""

from decimal import Decimal, ROUND_FLOOR
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from config import Config


def floor_multiply(amount: int, multiplier) -> int:
    """amount * multiplier с округлением вниз до целого коина."""
    value = Decimal(amount) * Decimal(str(multiplier))
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


class TableLimits(BaseModel):
    """Общие лимиты стола"""

    model_config = ConfigDict(frozen=True)

    min_stake: int = Field(default=1, ge=1)
    max_multiplier: int = Field(default=100, ge=1)
    history_limit: int = Field(default=20, ge=1)


class BlackjackRules(TableLimits):
    dealer_stands_on: int = 17
    blackjack_payout: Decimal = Decimal("2.5")
    win_payout: Decimal = Decimal("2")
    push_payout: Decimal = Decimal("1")


class BaccaratRules(TableLimits):
    history_display: int = 15
    natural_threshold: int = 8  # 8 или 9 на двух картах: без третьей
    draw_threshold: int = 5  # третья карта при счёте <= 5
    tie_payout: Decimal = Decimal("9")
    player_payout: Decimal = Decimal("2")
    banker_payout: Decimal = Decimal("1.95")  # 5% комиссии с прибыли
    push_payout: Decimal = Decimal("1")


class RouletteRules(TableLimits):
    """
    Выплата по прямому числу — amount * 35 как полный возврат ставки
    (проигравшие ставки просто не возвращаются).
    """

    straight_payout: int = 35
    even_money_payout: int = 2
    dozen_payout: int = 3
    numbers_history: int = 10


class ThreeDiceRules(TableLimits):
    dice_count: int = 3
    faces: int = 6
    over_threshold: int = 10  # over10: сумма > 10, under10: сумма <= 10
    win_payout: int = 2


class HouseRules(BaseModel):
    """Все правила казино вместе"""

    model_config = ConfigDict(frozen=True)

    blackjack: BlackjackRules = Field(default_factory=BlackjackRules)
    baccarat: BaccaratRules = Field(default_factory=BaccaratRules)
    roulette: RouletteRules = Field(default_factory=RouletteRules)
    three_dice: ThreeDiceRules = Field(default_factory=ThreeDiceRules)

    @classmethod
    def from_config(cls, cfg: "Config") -> "HouseRules":
        """Собрать правила из настроек бота."""
        limits = {
            "min_stake": cfg.MIN_STAKE,
            "max_multiplier": cfg.MAX_STAKE_MULTIPLIER,
            "history_limit": cfg.HISTORY_LIMIT,
        }
        return cls(
            blackjack=BlackjackRules(**limits),
            baccarat=BaccaratRules(history_display=cfg.BACCARAT_HISTORY_DISPLAY, **limits),
            roulette=RouletteRules(numbers_history=cfg.ROULETTE_NUMBERS_HISTORY, **limits),
            three_dice=ThreeDiceRules(**limits),
        )
