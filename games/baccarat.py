"""
Баккара: раздача игрок/банкир/игрок/банкир, упрощённое правило третьей карты.

Если у кого-то натуральные 8–9 — третьих карт нет.
Иначе игрок берёт третью при счёте <= 5, банкир — при своём счёте <= 5
(третья карта игрока на решение банкира не влияет).
"""

from enum import Enum
from typing import List, Optional, Tuple

from games.cards import Card, Deck, baccarat_score
from games.rules import BaccaratRules, floor_multiply


class BaccaratSide(str, Enum):
    PLAYER = "player"
    BANKER = "banker"
    TIE = "tie"


class BaccaratPhase(str, Enum):
    BETTING = "betting"
    DEALING = "dealing"
    THIRD_CARD = "third_card"
    RESULT = "result"


def decide_winner(player_score: int, banker_score: int) -> BaccaratSide:
    if player_score == banker_score:
        return BaccaratSide.TIE
    if player_score > banker_score:
        return BaccaratSide.PLAYER
    return BaccaratSide.BANKER


def baccarat_payout(
    bet: BaccaratSide,
    winner: BaccaratSide,
    stake: int,
    rules: Optional[BaccaratRules] = None,
) -> int:
    """
    Возврат по ставке (ставка уже списана):
    ничья угадана — x9, игрок — x2, банкир — x1.95 вниз,
    ничья при ставке на игрока/банкира — ставка возвращается, иначе 0.
    """
    rules = rules or BaccaratRules()
    if bet == winner:
        if winner == BaccaratSide.TIE:
            return floor_multiply(stake, rules.tie_payout)
        if winner == BaccaratSide.PLAYER:
            return floor_multiply(stake, rules.player_payout)
        return floor_multiply(stake, rules.banker_payout)
    if winner == BaccaratSide.TIE:
        return floor_multiply(stake, rules.push_payout)
    return 0


class BaccaratRound:
    """Один раунд баккары, разыгрывается мгновенно. Шаги раздачи сохраняются для анимации."""

    def __init__(
        self,
        stake: int,
        bet: BaccaratSide,
        rules: Optional[BaccaratRules] = None,
        deck: Optional[Deck] = None,
    ):
        self.stake = stake
        self.bet = bet
        self.rules = rules or BaccaratRules()
        self.deck = deck or Deck()
        self.phase = BaccaratPhase.BETTING
        self.player: List[Card] = []
        self.banker: List[Card] = []
        self.steps: List[Tuple[BaccaratSide, Card]] = []
        self.winner: Optional[BaccaratSide] = None

    @property
    def player_score(self) -> int:
        return baccarat_score(self.player)

    @property
    def banker_score(self) -> int:
        return baccarat_score(self.banker)

    @property
    def payout(self) -> int:
        if self.winner is None:
            return 0
        return baccarat_payout(self.bet, self.winner, self.stake, self.rules)

    @property
    def net_profit(self) -> int:
        return self.payout - self.stake

    @property
    def is_push(self) -> bool:
        return self.winner == BaccaratSide.TIE and self.bet != BaccaratSide.TIE

    def _deal_to(self, side: BaccaratSide):
        card = self.deck.draw()
        (self.player if side == BaccaratSide.PLAYER else self.banker).append(card)
        self.steps.append((side, card))

    def play(self) -> BaccaratSide:
        self.phase = BaccaratPhase.DEALING
        for side in (BaccaratSide.PLAYER, BaccaratSide.BANKER, BaccaratSide.PLAYER, BaccaratSide.BANKER):
            self._deal_to(side)

        player_score, banker_score = self.player_score, self.banker_score
        natural = max(player_score, banker_score) >= self.rules.natural_threshold
        if not natural:
            player_draws = player_score <= self.rules.draw_threshold
            banker_draws = banker_score <= self.rules.draw_threshold
            if player_draws or banker_draws:
                self.phase = BaccaratPhase.THIRD_CARD
            if player_draws:
                self._deal_to(BaccaratSide.PLAYER)
            if banker_draws:
                self._deal_to(BaccaratSide.BANKER)

        self.winner = decide_winner(self.player_score, self.banker_score)
        self.phase = BaccaratPhase.RESULT
        return self.winner
