import pytest

from games.baccarat import (
    BaccaratRound,
    BaccaratSide,
    baccarat_payout,
    decide_winner,
)
from games.cards import Deck
from games.rules import BaccaratRules


def play(cards, bet=BaccaratSide.BANKER, stake=10):
    bac = BaccaratRound(stake, bet, BaccaratRules(), Deck.stacked(cards))
    bac.play()
    return bac


def test_player_natural_stops_drawing():
    # игрок 5+4=9, банкир 2+3=5
    bac = play(["5♠", "2♥", "4♦", "3♣", "K♠", "K♥"])
    assert bac.player_score == 9
    assert bac.banker_score == 5
    assert len(bac.player) == 2
    assert len(bac.banker) == 2
    assert bac.winner == BaccaratSide.PLAYER
    assert bac.payout == 0
    assert bac.net_profit == -10


def test_deal_order_is_player_banker_player_banker():
    bac = play(["5♠", "2♥", "4♦", "3♣"])
    assert [side for side, _ in bac.steps] == [
        BaccaratSide.PLAYER, BaccaratSide.BANKER, BaccaratSide.PLAYER, BaccaratSide.BANKER,
    ]


def test_both_sides_draw_on_five_or_less_independently():
    # игрок 2+3=5 -> берёт 4 -> 9; банкир 10+4=4 -> берёт 2 -> 6
    bac = play(["2♠", "10♥", "3♦", "4♣", "4♠", "2♥"])
    assert len(bac.player) == 3
    assert len(bac.banker) == 3
    assert bac.player_score == 9
    assert bac.banker_score == 6
    assert bac.winner == BaccaratSide.PLAYER


def test_only_player_draws_when_banker_has_six_or_seven():
    # игрок 10+3=3 -> берёт 5 -> 8; банкир 6+A=7 стоит
    bac = play(["10♠", "6♥", "3♦", "A♣", "5♠"])
    assert len(bac.player) == 3
    assert len(bac.banker) == 2
    assert bac.winner == BaccaratSide.PLAYER


def test_banker_draws_even_after_player_stands():
    # игрок 4+3=7 стоит; банкир 2+2=4 -> берёт 3 -> 7
    bac = play(["4♠", "2♥", "3♦", "2♣", "3♠"], bet=BaccaratSide.TIE)
    assert len(bac.player) == 2
    assert len(bac.banker) == 3
    assert bac.winner == BaccaratSide.TIE
    assert bac.payout == 90
    assert bac.net_profit == 80


def test_tie_returns_stake_for_side_bets():
    bac = play(["4♠", "2♥", "3♦", "2♣", "3♠"], bet=BaccaratSide.PLAYER)
    assert bac.is_push
    assert bac.payout == 10
    assert bac.net_profit == 0


@pytest.mark.parametrize(
    "bet, winner, stake, payout",
    [
        (BaccaratSide.TIE, BaccaratSide.TIE, 10, 90),
        (BaccaratSide.PLAYER, BaccaratSide.PLAYER, 10, 20),
        (BaccaratSide.BANKER, BaccaratSide.BANKER, 10, 19),
        (BaccaratSide.BANKER, BaccaratSide.BANKER, 100, 195),
        (BaccaratSide.BANKER, BaccaratSide.TIE, 10, 10),
        (BaccaratSide.TIE, BaccaratSide.PLAYER, 10, 0),
        (BaccaratSide.PLAYER, BaccaratSide.BANKER, 10, 0),
    ],
)
def test_payouts(bet, winner, stake, payout):
    assert baccarat_payout(bet, winner, stake) == payout


def test_decide_winner():
    assert decide_winner(7, 7) == BaccaratSide.TIE
    assert decide_winner(8, 2) == BaccaratSide.PLAYER
    assert decide_winner(0, 1) == BaccaratSide.BANKER
