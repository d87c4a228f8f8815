from games.constants import GameKind
from games.history import RoundHistory, RoundResult


def make(i, stake=10, payout=0):
    return RoundResult(round_id=f"r{i}", game=GameKind.THREE_DICE, outcome="x", stake=stake, payout=payout)


def test_newest_first_and_capped():
    history = RoundHistory(limit=3)
    for i in range(5):
        history.add(make(i))
    assert [r.round_id for r in history.recent()] == ["r4", "r3", "r2"]
    assert [r.round_id for r in history.recent(2)] == ["r4", "r3"]


def test_restore_respects_limit():
    history = RoundHistory(limit=2, items=[make(9), make(8), make(7)])
    assert len(history) == 2
    history.add(make(10))
    assert [r.round_id for r in history] == ["r10", "r9"]


def test_net_profit_and_total():
    history = RoundHistory()
    history.add(make(1, stake=10, payout=25))
    history.add(make(2, stake=10, payout=10))
    history.add(make(3, stake=5, payout=0))
    assert [r.won for r in history] == [False, False, True]
    assert history.total_net() == 10
