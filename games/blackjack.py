"""
Blackjack 21: машина состояний одного раунда.

Betting -> PlayerTurn -> DealerTurn -> Result
Блэкджек на двух картах сразу переводит раунд в Result.
"""

import logging
from enum import Enum
from typing import List, Optional

from errors import InvalidAction
from games.cards import Card, Deck, HandValue, blackjack_hand_value
from games.rules import BlackjackRules, floor_multiply

logger = logging.getLogger(__name__)


class BlackjackPhase(str, Enum):
    BETTING = "betting"
    PLAYER_TURN = "player"
    DEALER_TURN = "dealer"
    RESULT = "result"


class BlackjackOutcome(str, Enum):
    PLAYER_BLACKJACK = "playerBlackjack"
    PLAYER_WIN = "playerWin"
    DEALER_WIN = "dealerWin"
    PUSH = "push"


def blackjack_payout(outcome: BlackjackOutcome, stake: int, rules: Optional[BlackjackRules] = None) -> int:
    """
    Сколько вернуть игроку (ставка уже списана).
    Блэкджек — x2.5 (вниз), победа — x2, ничья — x1, проигрыш — 0.
    """
    rules = rules or BlackjackRules()
    if outcome == BlackjackOutcome.PLAYER_BLACKJACK:
        return floor_multiply(stake, rules.blackjack_payout)
    if outcome == BlackjackOutcome.PLAYER_WIN:
        return floor_multiply(stake, rules.win_payout)
    if outcome == BlackjackOutcome.PUSH:
        return floor_multiply(stake, rules.push_payout)
    return 0


def compare_hands(player_total: int, dealer_total: int) -> BlackjackOutcome:
    """Итог после хода дилера (игрок не перебрал)."""
    if dealer_total > 21 or player_total > dealer_total:
        return BlackjackOutcome.PLAYER_WIN
    if player_total < dealer_total:
        return BlackjackOutcome.DEALER_WIN
    return BlackjackOutcome.PUSH


class BlackjackRound:
    """Один раунд блэкджека. Деньги не трогает: только карты, фазы и расчёт выплаты."""

    def __init__(self, stake: int, rules: Optional[BlackjackRules] = None, deck: Optional[Deck] = None):
        self.stake = stake
        self.rules = rules or BlackjackRules()
        self.deck = deck or Deck()
        self.phase = BlackjackPhase.BETTING
        self.player: List[Card] = []
        self.dealer: List[Card] = []
        self.outcome: Optional[BlackjackOutcome] = None

    @property
    def player_value(self) -> HandValue:
        return blackjack_hand_value(self.player)

    @property
    def dealer_value(self) -> HandValue:
        return blackjack_hand_value(self.dealer)

    @property
    def is_finished(self) -> bool:
        return self.phase == BlackjackPhase.RESULT

    @property
    def payout(self) -> int:
        if self.outcome is None:
            return 0
        return blackjack_payout(self.outcome, self.stake, self.rules)

    @property
    def net_profit(self) -> int:
        return self.payout - self.stake

    def _require(self, phase: BlackjackPhase, action: str):
        if self.phase != phase:
            raise InvalidAction(f"{action} недоступно в фазе {self.phase.value}")

    def deal(self) -> BlackjackPhase:
        """Раздача: игрок, дилер, игрок, дилер. 21 на двух картах — сразу результат."""
        self._require(BlackjackPhase.BETTING, "Раздача")
        self.player.append(self.deck.draw())
        self.dealer.append(self.deck.draw())
        self.player.append(self.deck.draw())
        self.dealer.append(self.deck.draw())

        if self.player_value.total == 21:
            self._finish(BlackjackOutcome.PLAYER_BLACKJACK)
        else:
            self.phase = BlackjackPhase.PLAYER_TURN
        return self.phase

    def hit(self) -> Card:
        """Взять карту. Перебор (> 21) — проигрыш."""
        self._require(BlackjackPhase.PLAYER_TURN, "Взять карту")
        card = self.deck.draw()
        self.player.append(card)
        if self.player_value.total > 21:
            self._finish(BlackjackOutcome.DEALER_WIN)
        return card

    def stand(self) -> BlackjackOutcome:
        """Хватит: дилер добирает до 17 и сравниваем руки."""
        self._require(BlackjackPhase.PLAYER_TURN, "Остановиться")
        self.phase = BlackjackPhase.DEALER_TURN
        while self.dealer_value.total < self.rules.dealer_stands_on:
            self.dealer.append(self.deck.draw())
        self._finish(compare_hands(self.player_value.total, self.dealer_value.total))
        return self.outcome

    def _finish(self, outcome: BlackjackOutcome):
        self.outcome = outcome
        self.phase = BlackjackPhase.RESULT
        logger.debug(
            "Blackjack: итог %s, игрок %s, дилер %s",
            outcome.value, self.player_value.total, self.dealer_value.total,
        )
