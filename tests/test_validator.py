import pytest

from errors import RejectReason, ValidationError
from games.validator import Wager, ensure_valid, validate_wager


def test_valid_wager():
    assert validate_wager(Wager(10, 2), balance=20, min_stake=1, max_multiplier=100) == (True, None)


@pytest.mark.parametrize(
    "wager, balance, reason",
    [
        (Wager(0), 100, RejectReason.BELOW_MINIMUM),
        (Wager(4), 100, RejectReason.BELOW_MINIMUM),
        (Wager(10, 0), 100, RejectReason.INVALID_MULTIPLIER),
        (Wager(10, 101), 10_000, RejectReason.INVALID_MULTIPLIER),
        (Wager(10, 3), 29, RejectReason.EXCEEDS_BALANCE),
    ],
)
def test_rejections(wager, balance, reason):
    ok, got = validate_wager(wager, balance, min_stake=5, max_multiplier=100)
    assert not ok
    assert got == reason


def test_minimum_checked_before_balance():
    ok, reason = validate_wager(Wager(1, 1), balance=0, min_stake=5, max_multiplier=100)
    assert reason == RejectReason.BELOW_MINIMUM


def test_ensure_valid_raises_with_reason():
    with pytest.raises(ValidationError) as exc:
        ensure_valid(Wager(50), balance=40, min_stake=1, max_multiplier=100)
    assert exc.value.reason == RejectReason.EXCEEDS_BALANCE


def test_exact_balance_is_allowed():
    ensure_valid(Wager(25, 4), balance=100, min_stake=1, max_multiplier=100)
