"""
Карты и колода: сборка 52 карт, тасовка, раздача, подсчёт очков
для блэкджека (мягкий/жёсткий счёт) и баккары (сумма по модулю 10).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from errors import DeckExhausted
from games.rng import GameRandom, game_random


class Suit(str, Enum):
    SPADES = "♠"
    HEARTS = "♥"
    DIAMONDS = "♦"
    CLUBS = "♣"


RANKS = ("A", "K", "Q", "J", "10", "9", "8", "7", "6", "5", "4", "3", "2")
TEN_VALUE_RANKS = ("K", "Q", "J", "10")


@dataclass(frozen=True)
class Card:
    rank: str
    suit: Suit

    @property
    def is_ace(self) -> bool:
        return self.rank == "A"

    @property
    def blackjack_value(self) -> int:
        """Туз — 11 (понижается до 1 при подсчёте руки), картинки и десятка — 10."""
        if self.is_ace:
            return 11
        if self.rank in TEN_VALUE_RANKS:
            return 10
        return int(self.rank)

    @property
    def baccarat_value(self) -> int:
        """Сырое значение 1–10 (туз 1, картинки и десятка 10); mod 10 считается по руке."""
        if self.is_ace:
            return 1
        if self.rank in TEN_VALUE_RANKS:
            return 10
        return int(self.rank)

    @property
    def is_red(self) -> bool:
        return self.suit in (Suit.HEARTS, Suit.DIAMONDS)

    def __str__(self) -> str:
        return f"{self.rank}{self.suit.value}"

    @classmethod
    def parse(cls, text: str) -> "Card":
        """Card.parse('A♠'), Card.parse('10♥')"""
        return cls(rank=text[:-1], suit=Suit(text[-1]))


def build_deck() -> List[Card]:
    """Упорядоченная колода из 52 карт."""
    return [Card(rank, suit) for suit in Suit for rank in RANKS]


class Deck:
    """
    Колода одного раунда: создаётся заново, раздаётся по порядку, выбрасывается после раунда.
    """

    def __init__(self, cards: Optional[Iterable[Card]] = None, rng: Optional[GameRandom] = None):
        """
        Args:
            cards: готовая последовательность (без тасовки); по умолчанию — свежая перемешанная колода
            rng: источник случайности для тасовки
        """
        if cards is None:
            cards = (rng or game_random).shuffled(build_deck())
        self._cards: List[Card] = list(cards)
        self._position = 0

    @classmethod
    def stacked(cls, cards: Sequence) -> "Deck":
        """Колода с заданным порядком: Deck.stacked(['A♠', 'K♥', ...])"""
        return cls([c if isinstance(c, Card) else Card.parse(c) for c in cards])

    def draw(self) -> Card:
        """Следующая карта; DeckExhausted если карт нет."""
        if self._position >= len(self._cards):
            raise DeckExhausted(f"Колода пуста после {self._position} карт")
        card = self._cards[self._position]
        self._position += 1
        return card

    @property
    def remaining(self) -> int:
        return len(self._cards) - self._position

    def __len__(self) -> int:
        return self.remaining


@dataclass(frozen=True)
class HandValue:
    total: int
    is_soft: bool  # туз сейчас считается за 11


def blackjack_hand_value(cards: Iterable[Card]) -> HandValue:
    """
    Сумма руки: тузы по 11, пока сумма > 21 — по одному тузу понижаем до 1.
    [A, K] = 21, [A, A, 9] = 21 (11 + 1 + 9).
    """
    total = 0
    high_aces = 0
    for card in cards:
        total += card.blackjack_value
        if card.is_ace:
            high_aces += 1
    while total > 21 and high_aces > 0:
        total -= 10
        high_aces -= 1
    return HandValue(total=total, is_soft=high_aces > 0)


def baccarat_score(cards: Iterable[Card]) -> int:
    """Счёт баккары: сумма сырых значений по модулю 10. [9, 9] = 8."""
    return sum(card.baccarat_value for card in cards) % 10


def format_hand(cards: Iterable[Card]) -> str:
    return " ".join(str(c) for c in cards)
