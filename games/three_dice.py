"""
Три кости: одна ставка на бросок — нечёт, чёт, больше 10 или не больше 10. Всё x2.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from games.rng import GameRandom, game_random
from games.rules import ThreeDiceRules


class DiceBet(str, Enum):
    ODD = "odd"
    EVEN = "even"
    OVER10 = "over10"
    UNDER10 = "under10"  # сумма <= 10, чтобы over10/under10 покрывали все исходы


DICE_BET_LABELS = {
    DiceBet.ODD: "нечёт",
    DiceBet.EVEN: "чёт",
    DiceBet.OVER10: ">10",
    DiceBet.UNDER10: "≤10",
}


@dataclass(frozen=True)
class DiceRoll:
    dice: Tuple[int, ...]
    over_threshold: int = 10

    @property
    def total(self) -> int:
        return sum(self.dice)

    @property
    def is_odd(self) -> bool:
        return self.total % 2 == 1

    @property
    def is_over(self) -> bool:
        return self.total > self.over_threshold


def roll_dice(rng: Optional[GameRandom] = None, rules: Optional[ThreeDiceRules] = None) -> DiceRoll:
    rules = rules or ThreeDiceRules()
    rng = rng or game_random
    dice = tuple(rng.randint(1, rules.faces) for _ in range(rules.dice_count))
    return DiceRoll(dice=dice, over_threshold=rules.over_threshold)


def dice_bet_wins(bet: DiceBet, roll: DiceRoll) -> bool:
    if bet == DiceBet.ODD:
        return roll.is_odd
    if bet == DiceBet.EVEN:
        return not roll.is_odd
    if bet == DiceBet.OVER10:
        return roll.is_over
    return not roll.is_over


def dice_payout(bet: DiceBet, roll: DiceRoll, unit: int, count: int = 1,
                rules: Optional[ThreeDiceRules] = None) -> int:
    """Выплата: unit * 2 * count при выигрыше, иначе 0."""
    rules = rules or ThreeDiceRules()
    if not dice_bet_wins(bet, roll):
        return 0
    return unit * rules.win_payout * count
