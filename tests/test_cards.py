import random

import pytest

from errors import DeckExhausted
from games.cards import (
    Card,
    Deck,
    Suit,
    baccarat_score,
    blackjack_hand_value,
    build_deck,
)
from games.rng import GameRandom


def hand(*cards):
    return [Card.parse(c) for c in cards]


def test_build_deck_has_52_unique_cards():
    deck = build_deck()
    assert len(deck) == 52
    assert len(set(deck)) == 52


def test_shuffle_is_a_permutation_of_the_ordered_deck():
    rng = GameRandom(random.Random(7))
    deck = Deck(rng=rng)
    drawn = [deck.draw() for _ in range(52)]
    assert sorted(drawn, key=str) == sorted(build_deck(), key=str)
    assert drawn != build_deck()


def test_each_round_gets_independent_shuffle():
    rng = GameRandom(random.Random(11))
    first = [Deck(rng=rng).draw() for _ in range(5)]
    second = [Deck(rng=rng).draw() for _ in range(5)]
    assert first != second


def test_stacked_deck_draws_in_order_then_exhausts():
    deck = Deck.stacked(["A♠", "10♥"])
    assert deck.draw() == Card("A", Suit.SPADES)
    assert deck.draw() == Card("10", Suit.HEARTS)
    assert deck.remaining == 0
    with pytest.raises(DeckExhausted):
        deck.draw()


@pytest.mark.parametrize(
    "cards, total, soft",
    [
        (("A♠", "K♥"), 21, True),
        (("A♠", "A♥", "9♦"), 21, True),
        (("A♠", "A♥", "9♦", "K♣"), 21, False),
        (("K♠", "Q♥", "5♦"), 25, False),
        (("A♠", "6♥"), 17, True),
    ],
)
def test_blackjack_hand_value(cards, total, soft):
    value = blackjack_hand_value(hand(*cards))
    assert value.total == total
    assert value.is_soft is soft


@pytest.mark.parametrize(
    "cards, score",
    [
        (("9♠", "9♥"), 8),
        (("K♠", "Q♥"), 0),
        (("A♠", "8♥"), 9),
        (("5♠", "4♥"), 9),
        (("10♠", "7♥", "5♦"), 2),
    ],
)
def test_baccarat_score(cards, score):
    assert baccarat_score(hand(*cards)) == score


def test_card_parse_and_str():
    card = Card.parse("10♦")
    assert card.rank == "10"
    assert card.is_red
    assert str(card) == "10♦"
