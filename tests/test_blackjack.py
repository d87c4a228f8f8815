import pytest

from errors import DeckExhausted, InvalidAction
from games.blackjack import (
    BlackjackOutcome,
    BlackjackPhase,
    BlackjackRound,
    blackjack_payout,
    compare_hands,
)
from games.cards import Deck
from games.rules import BlackjackRules


def round_with(cards, stake=10):
    return BlackjackRound(stake, BlackjackRules(), Deck.stacked(cards))


def test_natural_blackjack_skips_to_result():
    # игрок, дилер, игрок, дилер
    bj = round_with(["A♠", "5♥", "K♦", "6♣"])
    assert bj.deal() == BlackjackPhase.RESULT
    assert bj.outcome == BlackjackOutcome.PLAYER_BLACKJACK
    assert bj.payout == 25
    assert bj.net_profit == 15


def test_blackjack_payout_is_floored():
    assert blackjack_payout(BlackjackOutcome.PLAYER_BLACKJACK, 3) == 7
    assert blackjack_payout(BlackjackOutcome.PLAYER_WIN, 3) == 6
    assert blackjack_payout(BlackjackOutcome.PUSH, 3) == 3
    assert blackjack_payout(BlackjackOutcome.DEALER_WIN, 3) == 0


def test_hit_bust_ends_round_as_dealer_win():
    bj = round_with(["K♠", "9♥", "6♦", "8♣", "Q♥"])
    bj.deal()
    assert bj.phase == BlackjackPhase.PLAYER_TURN
    card = bj.hit()
    assert str(card) == "Q♥"
    assert bj.is_finished
    assert bj.outcome == BlackjackOutcome.DEALER_WIN
    assert bj.payout == 0


def test_dealer_draws_to_17_and_busts():
    # игрок 10+8=18, дилер 10+6=16 -> берёт K -> 26
    bj = round_with(["10♠", "10♥", "8♦", "6♣", "K♣"])
    bj.deal()
    assert bj.stand() == BlackjackOutcome.PLAYER_WIN
    assert len(bj.dealer) == 3
    assert bj.payout == 20


def test_dealer_stands_on_hard_17():
    bj = round_with(["10♠", "10♥", "7♦", "7♣"])
    bj.deal()
    assert bj.stand() == BlackjackOutcome.PUSH
    assert len(bj.dealer) == 2
    assert bj.payout == 10
    assert bj.net_profit == 0


def test_dealer_wins_with_higher_total():
    bj = round_with(["10♠", "10♥", "6♦", "9♣"])
    bj.deal()
    assert bj.stand() == BlackjackOutcome.DEALER_WIN


def test_actions_outside_player_turn_are_rejected():
    bj = round_with(["A♠", "5♥", "K♦", "6♣"])
    with pytest.raises(InvalidAction):
        bj.hit()
    bj.deal()
    with pytest.raises(InvalidAction):
        bj.stand()


def test_short_deck_raises_deck_exhausted():
    bj = round_with(["10♠", "10♥", "6♦"])
    with pytest.raises(DeckExhausted):
        bj.deal()


@pytest.mark.parametrize(
    "player, dealer, outcome",
    [
        (20, 22, BlackjackOutcome.PLAYER_WIN),
        (20, 19, BlackjackOutcome.PLAYER_WIN),
        (18, 19, BlackjackOutcome.DEALER_WIN),
        (19, 19, BlackjackOutcome.PUSH),
    ],
)
def test_compare_hands(player, dealer, outcome):
    assert compare_hands(player, dealer) == outcome
