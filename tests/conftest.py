"""
Общие фикстуры: временная БД, outbox, касса, казино и управляемая случайность
"""

import random
from collections import deque

import pytest

from db import Database
from errors import LedgerUnavailable
from games.constants import TransactionKind
from games.rng import GameRandom
from games.rules import HouseRules
from services.casino import CasinoService
from services.ledger import LedgerGateway
from services.lottery import LotteryService
from services.outbox import OutboxStore
from services.referral import ReferralService


class ScriptedSource:
    """Источник случайности с заранее заданными значениями"""

    def __init__(self, randoms=(), ints=()):
        self._randoms = deque(randoms)
        self._ints = deque(ints)

    def random(self) -> float:
        return self._randoms.popleft() if self._randoms else 0.0

    def randint(self, a: int, b: int) -> int:
        value = self._ints.popleft()
        assert a <= value <= b
        return value


class FlakyDatabase(Database):
    """Настоящая БД, которую можно «уронить»: down=True — все обращения кассы падают"""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.down = False
        self.calls = 0

    def _check(self):
        self.calls += 1
        if self.down:
            raise LedgerUnavailable("хранилище недоступно (тест)")

    async def get_balance(self, user_id):
        self._check()
        return await super().get_balance(user_id)

    async def apply_transaction(self, *args, **kwargs):
        self._check()
        return await super().apply_transaction(*args, **kwargs)

    async def get_transactions(self, *args, **kwargs):
        self._check()
        return await super().get_transactions(*args, **kwargs)

    async def create_user(self, *args, **kwargs):
        self._check()
        return await super().create_user(*args, **kwargs)


@pytest.fixture
async def store(tmp_path):
    database = FlakyDatabase(tmp_path / "duna_test.db")
    await database.connect()
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
async def outbox_store(tmp_path):
    box = OutboxStore(tmp_path / "outbox_test.db")
    await box.connect()
    yield box
    await box.close()


@pytest.fixture
def gateway(store, outbox_store):
    return LedgerGateway(store, outbox_store, max_retries=2, retry_delay=0)


@pytest.fixture
def rules():
    return HouseRules()


@pytest.fixture
def casino(gateway, rules):
    return CasinoService(gateway, rules, rng=GameRandom(ScriptedSource()))


@pytest.fixture
def lottery_service(gateway):
    return LotteryService(gateway, rng=GameRandom(random.Random(7)), ticket_price=50)


@pytest.fixture
def referral_service(gateway):
    return ReferralService(gateway, rng=GameRandom(random.Random(11)), bonus=50)


@pytest.fixture
def fund(store, gateway):
    """fund(user_id, balance) — пользователь с заданным балансом (внешнее пополнение)"""

    async def _fund(user_id: int = 1, balance: int = 100) -> int:
        await store.create_user(user_id, f"user{user_id}")
        if balance:
            await gateway.credit(
                user_id, balance, "Пополнение (тест)", f"deposit:{user_id}:{balance}",
                kind=TransactionKind.BONUS,
            )
        return balance

    return _fund
