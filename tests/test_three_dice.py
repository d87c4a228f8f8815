import pytest

from games.rng import GameRandom
from games.three_dice import DiceBet, DiceRoll, dice_bet_wins, dice_payout, roll_dice

from tests.conftest import ScriptedSource


@pytest.mark.parametrize("total", range(3, 19))
def test_over_and_under_are_exhaustive_and_exclusive(total):
    roll = DiceRoll(dice=(total,))
    assert dice_bet_wins(DiceBet.OVER10, roll) != dice_bet_wins(DiceBet.UNDER10, roll)
    assert dice_bet_wins(DiceBet.ODD, roll) != dice_bet_wins(DiceBet.EVEN, roll)


def test_ten_counts_as_under10():
    roll = DiceRoll(dice=(3, 3, 4))
    assert dice_bet_wins(DiceBet.UNDER10, roll)
    assert not dice_bet_wins(DiceBet.OVER10, roll)


def test_payout_is_double_times_count():
    roll = DiceRoll(dice=(6, 5, 1))
    assert dice_payout(DiceBet.OVER10, roll, unit=10, count=3) == 60
    assert dice_payout(DiceBet.UNDER10, roll, unit=10, count=3) == 0


def test_roll_uses_three_independent_draws():
    roll = roll_dice(GameRandom(ScriptedSource(ints=[1, 6, 2])))
    assert roll.dice == (1, 6, 2)
    assert roll.total == 9
    assert roll.is_odd
