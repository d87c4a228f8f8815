import pytest

from errors import RejectReason, ValidationError
from games.rng import GameRandom
from games.roulette import (
    NUMBER_COLORS,
    BetKind,
    RouletteColor,
    RouletteTable,
    bet_wins,
    dozen_of,
    is_even,
    is_high,
    is_low,
    is_odd,
    normalize_bet,
)
from games.rules import RouletteRules

from tests.conftest import ScriptedSource

CANONICAL_RED = {1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36}


@pytest.mark.parametrize("number", range(37))
def test_every_number_has_exactly_one_color(number):
    color = NUMBER_COLORS[number]
    flags = [color == RouletteColor.RED, color == RouletteColor.BLACK, color == RouletteColor.GREEN]
    assert sum(flags) == 1
    if number == 0:
        assert color == RouletteColor.GREEN
    elif number in CANONICAL_RED:
        assert color == RouletteColor.RED
    else:
        assert color == RouletteColor.BLACK


@pytest.mark.parametrize("number", range(37))
def test_classifications_match_table(number):
    if number == 0:
        assert not (is_odd(0) or is_even(0) or is_low(0) or is_high(0))
        assert dozen_of(0) is None
        return
    assert is_odd(number) == (number % 2 == 1)
    assert is_even(number) == (number % 2 == 0)
    assert is_low(number) == (number <= 18)
    assert is_high(number) == (number >= 19)
    assert dozen_of(number) == (number - 1) // 12 + 1


def test_single_number_pays_35_times_amount():
    table = RouletteTable(RouletteRules())
    table.place_bet(BetKind.NUMBER, 17, 5, balance=100)
    spin = table.resolve(17)
    assert spin.total_return == 175
    assert spin.net == 170


def test_multi_bet_net_result():
    table = RouletteTable(RouletteRules())
    table.place_bet(BetKind.COLOR, "red", 10, balance=100)
    table.place_bet(BetKind.DOZEN, 3, 10, balance=100)
    table.place_bet(BetKind.EVEN, None, 10, balance=100)
    # 25: красное, третья дюжина, нечётное
    spin = table.resolve(25)
    assert spin.total_staked == 30
    assert spin.total_return == 20 + 30
    assert spin.net == 20
    assert table.bets == []


def test_zero_loses_everything_but_straight_zero():
    table = RouletteTable(RouletteRules())
    for kind, value in [(BetKind.ODD, None), (BetKind.EVEN, None), (BetKind.LOW, None), (BetKind.HIGH, None)]:
        table.place_bet(kind, value, 1, balance=100)
    table.place_bet(BetKind.NUMBER, 0, 2, balance=100)
    spin = table.resolve(0)
    assert spin.total_return == 70
    assert spin.color == RouletteColor.GREEN


def test_same_bet_accumulates():
    table = RouletteTable(RouletteRules())
    table.place_bet(BetKind.NUMBER, 7, 5, balance=100)
    bet = table.place_bet(BetKind.NUMBER, "7", 10, balance=100)
    assert bet.amount == 15
    assert len(table.bets) == 1


def test_total_bets_cannot_exceed_balance():
    table = RouletteTable(RouletteRules())
    table.place_bet(BetKind.ODD, None, 30, balance=50)
    with pytest.raises(ValidationError) as exc:
        table.place_bet(BetKind.HIGH, None, 25, balance=50)
    assert exc.value.reason == RejectReason.EXCEEDS_BALANCE
    assert table.total_staked == 30


@pytest.mark.parametrize(
    "kind, value",
    [
        (BetKind.NUMBER, 37),
        (BetKind.NUMBER, "x"),
        (BetKind.COLOR, "green"),
        (BetKind.COLOR, "blue"),
        (BetKind.DOZEN, 4),
    ],
)
def test_invalid_selection(kind, value):
    with pytest.raises(ValidationError) as exc:
        normalize_bet(kind, value)
    assert exc.value.reason == RejectReason.INVALID_SELECTION


def test_spin_without_bets_is_rejected():
    with pytest.raises(ValidationError) as exc:
        RouletteTable().spin()
    assert exc.value.reason == RejectReason.NO_BETS


def test_spin_uses_random_position():
    table = RouletteTable()
    table.place_bet(BetKind.COLOR, "black", 10, balance=10)
    spin = table.spin(GameRandom(ScriptedSource(ints=[2])))
    assert spin.number == 2
    assert spin.total_return == 20


def test_bet_wins_color():
    assert bet_wins(BetKind.COLOR, RouletteColor.RED, 1)
    assert not bet_wins(BetKind.COLOR, RouletteColor.RED, 2)


def test_take_empties_table_and_restore_merges_back():
    table = RouletteTable(RouletteRules())
    table.place_bet(BetKind.NUMBER, 17, 5, balance=100)
    taken = table.take()
    assert table.bets == []
    assert taken.total_staked == 5

    table.place_bet(BetKind.NUMBER, 17, 10, balance=100)
    table.restore(taken)
    assert [(b.value, b.amount) for b in table.bets] == [(17, 15)]
    assert taken.bets == []
