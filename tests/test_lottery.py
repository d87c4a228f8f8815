from datetime import datetime

import pytest

from errors import InvalidAction, RejectReason, ValidationError
from games.lottery import format_ticket_code, lottery_period, pick_winner
from games.rng import GameRandom
from services.lottery import LotteryService

from tests.conftest import ScriptedSource

OCTOBER = datetime(2026, 10, 18, 12, 0)
NOVEMBER = datetime(2026, 11, 1, 9, 0)


def test_period_and_code_format():
    assert lottery_period(OCTOBER) == "2026-10"
    assert format_ticket_code("ABCD1234") == "ABCD-1234"
    assert format_ticket_code("ABC") == "ABC"


def test_pick_winner_from_empty_pool():
    assert pick_winner([]) is None


async def test_free_ticket_once_per_month(lottery_service, fund):
    await fund(1, 0)
    ticket = await lottery_service.claim_monthly_ticket(1, when=OCTOBER)
    assert ticket["is_free"]
    assert len(ticket["ticket_code"]) == 8

    with pytest.raises(InvalidAction):
        await lottery_service.claim_monthly_ticket(1, when=OCTOBER)

    await lottery_service.claim_monthly_ticket(1, when=NOVEMBER)
    assert len(await lottery_service.tickets(1, when=OCTOBER)) == 1


async def test_extra_ticket_is_paid(lottery_service, store, fund):
    await fund(1, 120)
    await lottery_service.buy_extra_ticket(1, when=OCTOBER)
    await lottery_service.buy_extra_ticket(1, when=OCTOBER)
    assert await store.get_balance(1) == 20

    with pytest.raises(ValidationError) as exc:
        await lottery_service.buy_extra_ticket(1, when=OCTOBER)
    assert exc.value.reason == RejectReason.EXCEEDS_BALANCE
    assert await store.get_balance(1) == 20
    assert len(await lottery_service.tickets(1, when=OCTOBER)) == 2


async def test_taken_code_is_regenerated(gateway, fund):
    rng = GameRandom(ScriptedSource(randoms=[0.0] * 16 + [0.5] * 8))
    service = LotteryService(gateway, rng=rng, ticket_price=50)
    await fund(1, 0)
    await fund(2, 0)

    first = await service.claim_monthly_ticket(1, when=OCTOBER)
    second = await service.claim_monthly_ticket(2, when=OCTOBER)
    assert first["ticket_code"] == "AAAAAAAA"
    assert second["ticket_code"] == "SSSSSSSS"


async def test_monthly_draw(lottery_service, store, fund):
    await fund(1, 100)
    await fund(2, 0)
    await lottery_service.claim_monthly_ticket(1, when=OCTOBER)
    await lottery_service.buy_extra_ticket(1, when=OCTOBER)
    await lottery_service.claim_monthly_ticket(2, when=OCTOBER)

    winner = await lottery_service.draw_monthly_winner("Скин", when=OCTOBER)
    assert winner["period"] == "2026-10"
    assert winner["prize"] == "Скин"
    owned = [t["ticket_code"] for t in await lottery_service.tickets(winner["user_id"], when=OCTOBER)]
    assert winner["ticket_code"] in owned

    with pytest.raises(InvalidAction):
        await lottery_service.draw_monthly_winner(when=OCTOBER)
    assert [w["ticket_code"] for w in await lottery_service.winners()] == [winner["ticket_code"]]


async def test_draw_without_tickets(lottery_service):
    assert await lottery_service.draw_monthly_winner(when=NOVEMBER) is None
