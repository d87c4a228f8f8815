import pytest

from errors import InvalidAction
from games.rng import GameRandom
from services.referral import ReferralService

from tests.conftest import ScriptedSource


async def test_code_is_issued_once(referral_service, fund):
    await fund(1, 0)
    code = await referral_service.ensure_code(1)
    assert len(code) == 6
    assert code.isupper() or code.isdigit()
    assert await referral_service.ensure_code(1) == code


async def test_busy_code_is_regenerated(gateway, fund):
    service = ReferralService(gateway, rng=GameRandom(ScriptedSource(randoms=[0.0] * 12 + [0.5] * 6)))
    await fund(1, 0)
    await fund(2, 0)
    assert await service.ensure_code(1) == "AAAAAA"
    assert await service.ensure_code(2) == "SSSSSS"


async def test_redeem_pays_both_friends(referral_service, store, fund):
    await fund(1, 100)
    await fund(2, 0)
    code = await referral_service.ensure_code(1)

    receipt = await referral_service.redeem(2, f"  {code.lower()} ")
    assert not receipt.queued
    assert await store.get_balance(2) == 50
    assert await store.get_balance(1) == 150
    assert await referral_service.referrer(2) == 1
    assert [f["user_id"] for f in await referral_service.invited(1)] == [2]
    assert (await store.get_transaction("referral:2"))["kind"] == "bonus"


async def test_code_is_redeemed_only_once(referral_service, store, fund):
    for uid in (1, 2, 3):
        await fund(uid, 0)
    first = await referral_service.ensure_code(1)
    second = await referral_service.ensure_code(3)
    await referral_service.redeem(2, first)

    with pytest.raises(InvalidAction):
        await referral_service.redeem(2, first)
    with pytest.raises(InvalidAction):
        await referral_service.redeem(2, second)
    assert await store.get_balance(2) == 50
    assert await store.get_balance(3) == 0


async def test_own_and_unknown_codes_are_rejected(referral_service, store, fund):
    await fund(1, 0)
    code = await referral_service.ensure_code(1)
    with pytest.raises(InvalidAction):
        await referral_service.redeem(1, code)
    with pytest.raises(InvalidAction):
        await referral_service.redeem(1, "NOPE00")
    assert await store.get_balance(1) == 0
    assert await referral_service.referrer(1) is None


async def test_leaderboard_counts_invites(referral_service, fund):
    for uid in range(1, 6):
        await fund(uid, 0)
    top = await referral_service.ensure_code(1)
    other = await referral_service.ensure_code(4)
    await referral_service.redeem(2, top)
    await referral_service.redeem(3, top)
    await referral_service.redeem(5, other)

    leaders = await referral_service.leaders()
    assert [(row["user_id"], row["total"]) for row in leaders] == [(1, 2), (4, 1)]
    assert leaders[0]["username"] == "user1"


async def test_bonus_is_queued_when_ledger_is_down(referral_service, store, outbox_store, gateway, fund):
    await fund(1, 0)
    await fund(2, 0)
    code = await referral_service.ensure_code(1)

    store.down = True
    receipt = await referral_service.redeem(2, code)
    assert receipt.queued
    assert await outbox_store.pending_total(2) == 50
    assert await outbox_store.pending_total(1) == 50

    store.down = False
    assert await gateway.replay_outbox() == 2
    assert await store.get_balance(2) == 50
    assert await store.get_balance(1) == 50
