"""
Рулетка «Счастливое число»: 37 ячеек (0–36), несколько ставок за один спин.

Повторная ставка на тот же тип+значение добавляется к существующей.
Возврат по выигравшей ставке: число — amount * 35, цвет/чёт/нечет/малые/большие — x2,
дюжина — x3. Проигравшие ставки не возвращаются.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from errors import RejectReason, ValidationError
from games.rng import GameRandom, game_random
from games.rules import RouletteRules


class RouletteColor(str, Enum):
    RED = "red"
    BLACK = "black"
    GREEN = "green"


_RED_NUMBERS = frozenset({1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36})

NUMBER_COLORS: Dict[int, RouletteColor] = {
    n: (RouletteColor.GREEN if n == 0 else RouletteColor.RED if n in _RED_NUMBERS else RouletteColor.BLACK)
    for n in range(37)
}


class BetKind(str, Enum):
    NUMBER = "number"
    COLOR = "color"
    ODD = "odd"
    EVEN = "even"
    LOW = "low"  # 1–18
    HIGH = "high"  # 19–36
    DOZEN = "dozen"  # 1: 1–12, 2: 13–24, 3: 25–36


BetValue = Union[int, RouletteColor, None]


def is_odd(number: int) -> bool:
    return number != 0 and number % 2 == 1


def is_even(number: int) -> bool:
    return number != 0 and number % 2 == 0


def is_low(number: int) -> bool:
    return 1 <= number <= 18


def is_high(number: int) -> bool:
    return 19 <= number <= 36


def dozen_of(number: int) -> Optional[int]:
    if number == 0:
        return None
    return (number - 1) // 12 + 1


def normalize_bet(kind: BetKind, value=None) -> BetValue:
    """Проверить и привести значение ставки к каноническому виду."""
    if kind == BetKind.NUMBER:
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError(RejectReason.INVALID_SELECTION, f"число: {value!r}")
        if not 0 <= number <= 36:
            raise ValidationError(RejectReason.INVALID_SELECTION, f"число вне 0–36: {number}")
        return number
    if kind == BetKind.COLOR:
        try:
            color = RouletteColor(str(value).lower())
        except ValueError:
            raise ValidationError(RejectReason.INVALID_SELECTION, f"цвет: {value!r}")
        if color == RouletteColor.GREEN:
            raise ValidationError(RejectReason.INVALID_SELECTION, "на зелёный ставят числом 0")
        return color
    if kind == BetKind.DOZEN:
        try:
            dozen = int(value)
        except (TypeError, ValueError):
            raise ValidationError(RejectReason.INVALID_SELECTION, f"дюжина: {value!r}")
        if dozen not in (1, 2, 3):
            raise ValidationError(RejectReason.INVALID_SELECTION, f"дюжина вне 1–3: {dozen}")
        return dozen
    return None


def bet_wins(kind: BetKind, value: BetValue, number: int) -> bool:
    if kind == BetKind.NUMBER:
        return number == value
    if kind == BetKind.COLOR:
        return NUMBER_COLORS[number] == value
    if kind == BetKind.ODD:
        return is_odd(number)
    if kind == BetKind.EVEN:
        return is_even(number)
    if kind == BetKind.LOW:
        return is_low(number)
    if kind == BetKind.HIGH:
        return is_high(number)
    if kind == BetKind.DOZEN:
        return dozen_of(number) == value
    return False


@dataclass
class RouletteBet:
    kind: BetKind
    value: BetValue
    amount: int

    @property
    def key(self) -> Tuple[BetKind, BetValue]:
        return self.kind, self.value

    def payout_multiplier(self, rules: RouletteRules) -> int:
        if self.kind == BetKind.NUMBER:
            return rules.straight_payout
        if self.kind == BetKind.DOZEN:
            return rules.dozen_payout
        return rules.even_money_payout

    def win_amount(self, number: int, rules: RouletteRules) -> int:
        if not bet_wins(self.kind, self.value, number):
            return 0
        return self.amount * self.payout_multiplier(rules)

    def label(self) -> str:
        if self.kind == BetKind.NUMBER:
            return f"число {self.value}"
        if self.kind == BetKind.COLOR:
            return "красное" if self.value == RouletteColor.RED else "чёрное"
        if self.kind == BetKind.DOZEN:
            return f"дюжина {self.value}"
        return {
            BetKind.ODD: "нечёт",
            BetKind.EVEN: "чёт",
            BetKind.LOW: "1–18",
            BetKind.HIGH: "19–36",
        }[self.kind]


@dataclass(frozen=True)
class SpinResult:
    number: int
    color: RouletteColor
    bets: Tuple[RouletteBet, ...]
    wins: Dict[Tuple[BetKind, BetValue], int] = field(default_factory=dict)

    @property
    def total_staked(self) -> int:
        return sum(b.amount for b in self.bets)

    @property
    def total_return(self) -> int:
        return sum(self.wins.values())

    @property
    def net(self) -> int:
        return self.total_return - self.total_staked


class RouletteTable:
    """Ставки одного игрока до спина."""

    def __init__(self, rules: Optional[RouletteRules] = None):
        self.rules = rules or RouletteRules()
        self._bets: Dict[Tuple[BetKind, BetValue], RouletteBet] = {}

    @property
    def bets(self) -> List[RouletteBet]:
        return list(self._bets.values())

    @property
    def total_staked(self) -> int:
        return sum(b.amount for b in self._bets.values())

    def place_bet(self, kind: BetKind, value, amount: int, balance: int) -> RouletteBet:
        """
        Поставить фишку. Сумма всех ставок не может превысить баланс.

        Returns:
            Ставка после добавления (накопленная, если такая уже была)
        """
        if amount < self.rules.min_stake:
            raise ValidationError(RejectReason.BELOW_MINIMUM, f"фишка {amount}")
        value = normalize_bet(kind, value)
        if self.total_staked + amount > balance:
            raise ValidationError(
                RejectReason.EXCEEDS_BALANCE,
                f"ставки {self.total_staked} + {amount} > баланс {balance}",
            )
        key = (kind, value)
        bet = self._bets.get(key)
        if bet:
            bet.amount += amount
        else:
            bet = RouletteBet(kind=kind, value=value, amount=amount)
            self._bets[key] = bet
        return bet

    def clear(self):
        self._bets.clear()

    def take(self) -> "RouletteTable":
        """Снять все ставки в отдельный стол (для спина). Этот стол остаётся пустым."""
        taken = RouletteTable(self.rules)
        taken._bets = self._bets
        self._bets = {}
        return taken

    def restore(self, other: "RouletteTable"):
        """Вернуть на стол ставки, снятые через take()."""
        for key, bet in other._bets.items():
            current = self._bets.get(key)
            if current:
                current.amount += bet.amount
            else:
                self._bets[key] = RouletteBet(bet.kind, bet.value, bet.amount)
        other._bets = {}

    def spin(self, rng: Optional[GameRandom] = None) -> SpinResult:
        """Крутить колесо и посчитать все ставки. Ставки со стола снимаются."""
        if not self._bets:
            raise ValidationError(RejectReason.NO_BETS)
        number = (rng or game_random).randint(0, 36)
        return self.resolve(number)

    def resolve(self, number: int) -> SpinResult:
        bets = tuple(RouletteBet(b.kind, b.value, b.amount) for b in self._bets.values())
        wins = {}
        for bet in bets:
            amount = bet.win_amount(number, self.rules)
            if amount:
                wins[bet.key] = amount
        self._bets.clear()
        return SpinResult(number=number, color=NUMBER_COLORS[number], bets=bets, wins=wins)
