import asyncio
import random
from collections import OrderedDict

import pytest

from errors import LedgerUnavailable, RejectReason, ValidationError
from games.constants import TransactionKind
from services.ledger import LedgerGateway, evict_idle


async def test_debit_and_credit_record_transactions(gateway, store, fund):
    await fund(1, 100)
    tx = await gateway.debit(1, 30, "Ставка", "t:1:stake")
    assert (tx.balance_before, tx.balance_after, tx.amount) == (100, 70, -30)
    assert tx.kind == TransactionKind.STAKE

    receipt = await gateway.credit(1, 45, "Выигрыш", "t:1:payout")
    assert not receipt.queued
    assert receipt.transaction.balance_after == 115
    assert await store.get_balance(1) == 115

    kinds = [t.kind for t in await gateway.transactions(1)]
    assert kinds == [TransactionKind.EARN, TransactionKind.STAKE, TransactionKind.BONUS]


async def test_overdraft_is_rejected_before_mutation(gateway, store, fund):
    await fund(1, 20)
    with pytest.raises(ValidationError) as exc:
        await gateway.debit(1, 21, "Ставка", "t:2:stake")
    assert exc.value.reason == RejectReason.EXCEEDS_BALANCE
    assert await store.get_balance(1) == 20
    assert await store.get_transaction("t:2:stake") is None


async def test_same_reference_applies_once(gateway, store, fund):
    await fund(1, 10)
    await gateway.credit(1, 5, "Выигрыш", "t:3:payout")
    await gateway.credit(1, 5, "Выигрыш", "t:3:payout")
    assert await store.get_balance(1) == 15
    assert len(await gateway.transactions(1)) == 2


async def test_debit_fails_when_store_is_down(gateway, store, fund):
    await fund(1, 100)
    store.down = True
    store.calls = 0
    with pytest.raises(LedgerUnavailable):
        await gateway.debit(1, 10, "Ставка", "t:4:stake")
    assert store.calls == gateway.max_retries
    store.down = False
    assert await store.get_balance(1) == 100


async def test_credit_is_queued_then_replayed(gateway, store, outbox_store, fund):
    await fund(1, 100)
    store.down = True

    receipt = await gateway.credit(1, 40, "Выигрыш", "t:5:payout")
    assert receipt.queued
    assert receipt.transaction is None

    reading = await gateway.get_balance(1)
    assert reading.stale
    assert reading.amount == 100
    assert reading.pending_credit == 40

    assert await gateway.replay_outbox() == 0
    assert await outbox_store.count() == 1

    store.down = False
    assert await gateway.replay_outbox() == 1
    assert await outbox_store.count() == 0
    reading = await gateway.get_balance(1)
    assert not reading.stale
    assert reading.amount == 140
    assert reading.pending_credit == 0

    assert await gateway.replay_outbox() == 0
    assert await store.get_balance(1) == 140


async def test_replay_does_not_double_credit_landed_transaction(gateway, store, outbox_store, fund):
    await fund(1, 0)
    await store.apply_transaction(1, 25, "earn", "Выигрыш", "t:6:payout")
    await outbox_store.enqueue(1, 25, "earn", "Выигрыш", "t:6:payout")

    assert await gateway.replay_outbox() == 1
    assert await store.get_balance(1) == 25
    assert await outbox_store.count() == 0


async def test_stale_read_without_cache_is_zero(gateway, store):
    store.down = True
    reading = await gateway.get_balance(42)
    assert reading.stale
    assert reading.amount == 0


async def test_ensure_user_grants_welcome_bonus_once(gateway, store):
    assert await gateway.ensure_user(7, "seven") is True
    assert await gateway.ensure_user(7, "seven") is False
    assert await store.get_balance(7) == 50
    tx = await store.get_transaction("welcome:7")
    assert tx["kind"] == "bonus"


async def test_concurrent_debits_are_serialized(gateway, store, fund):
    await fund(1, 100)
    results = await asyncio.gather(
        *(gateway.debit(1, 40, "Ставка", f"t:7:{i}") for i in range(3)),
        return_exceptions=True,
    )
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], ValidationError)
    assert await store.get_balance(1) == 20


async def test_balance_never_negative_over_random_operations(gateway, store, fund):
    await fund(1, 50)
    rng = random.Random(2024)
    for i in range(200):
        amount = rng.randint(1, 60)
        if rng.random() < 0.6:
            try:
                await gateway.debit(1, amount, "Ставка", f"p1:{i}")
            except ValidationError:
                pass
        else:
            await gateway.credit(1, amount, "Выигрыш", f"p1:{i}")
        assert await store.get_balance(1) >= 0

    transactions = await store.get_transactions(1, limit=1000)
    assert sum(t["amount"] for t in transactions) == await store.get_balance(1)
    assert all(t["balance_after"] >= 0 for t in transactions)


def test_evict_idle_skips_busy_keys():
    seen = OrderedDict((k, None) for k in (1, 2, 3, 4))
    assert evict_idle(seen, 2, lambda k: k == 1) == [2, 3]
    assert list(seen) == [1, 4]
    assert evict_idle(seen, 2, lambda k: False) == []


async def test_per_user_state_is_bounded(store, outbox_store):
    small = LedgerGateway(store, outbox_store, max_retries=1, retry_delay=0, max_users=2)
    for uid in (1, 2, 3):
        await store.create_user(uid, f"user{uid}")
        await small.credit(uid, 10, "Пополнение", f"t:{uid}:deposit")

    assert list(small._locks) == [2, 3]
    assert list(small._cache) == [2, 3]

    assert (await small.get_balance(1)).amount == 10


async def test_held_lock_is_not_evicted(store, outbox_store):
    small = LedgerGateway(store, outbox_store, max_retries=1, retry_delay=0, max_users=2)
    lock = small._lock_for(1)
    async with lock:
        small._lock_for(2)
        small._lock_for(3)
        assert small._lock_for(1) is lock
    assert 2 not in small._locks
