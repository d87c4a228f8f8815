"""
Касса Duna Casino: единственная точка изменения баланса
Списания и начисления по одному писателю на пользователя, повторы при сбоях хранилища,
отложенные начисления через outbox, устаревший (кэшированный) баланс при недоступности БД
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Callable, List, Optional

import aiosqlite
from pydantic import BaseModel, ConfigDict

from config import config
from db import Database, db
from errors import LedgerUnavailable
from games.constants import TransactionKind
from services.outbox import OutboxStore, outbox

logger = logging.getLogger(__name__)

# Сбои хранилища, после которых имеет смысл повторить запрос
TRANSIENT_ERRORS = (LedgerUnavailable, aiosqlite.Error, OSError, asyncio.TimeoutError)


def evict_idle(seen: OrderedDict, limit: int, busy: Callable[[Any], bool]) -> List[Any]:
    """
    Убрать из seen самые давние ключи сверх limit

    Ключи, для которых busy(key) истинно, остаются, даже если лимит превышен.

    Returns:
        Удалённые ключи
    """
    excess = len(seen) - limit
    if limit <= 0 or excess <= 0:
        return []
    victims = []
    for key in seen:
        if len(victims) >= excess:
            break
        if not busy(key):
            victims.append(key)
    for key in victims:
        del seen[key]
    return victims


class Transaction(BaseModel):
    """Запись журнала транзакций"""

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    amount: int
    kind: TransactionKind
    description: Optional[str] = None
    reference: str
    balance_before: int
    balance_after: int
    created_at: int


class BalanceReading(BaseModel):
    """Баланс для показа: stale=True значит хранилище не ответило и это последнее известное значение"""

    model_config = ConfigDict(frozen=True)

    amount: int
    stale: bool = False
    pending_credit: int = 0


class CreditReceipt(BaseModel):
    """Итог начисления: проведено сразу или ждёт в outbox"""

    model_config = ConfigDict(frozen=True)

    transaction: Optional[Transaction] = None
    queued: bool = False


class LedgerGateway:
    """
    Адаптер над хранилищем баланса

    Списание при недоступном хранилище — ошибка LedgerUnavailable (раунд не начинается).
    Начисление при недоступном хранилище уходит в outbox и проводится позже
    с тем же reference, поэтому дважды не начислится.
    """

    def __init__(
        self,
        store: Database = None,
        outbox_store: OutboxStore = None,
        max_retries: int = None,
        retry_delay: float = None,
        max_users: int = None,
    ):
        self.store = store or db
        self.outbox = outbox_store or outbox
        self.max_retries = max_retries if max_retries is not None else config.MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else config.RETRY_DELAY
        self.max_users = max_users if max_users is not None else config.MAX_CACHED_USERS
        self._locks: "OrderedDict[int, asyncio.Lock]" = OrderedDict()
        self._cache: "OrderedDict[int, int]" = OrderedDict()
        self._retry_task: Optional[asyncio.Task] = None

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
            # Захваченный замок не выселяется: один писатель на пользователя
            evict_idle(
                self._locks,
                self.max_users,
                lambda uid: uid == user_id or self._locks[uid].locked(),
            )
        else:
            self._locks.move_to_end(user_id)
        return lock

    def _remember(self, user_id: int, amount: int):
        """Последний известный баланс (для показа при недоступном хранилище)"""
        self._cache[user_id] = amount
        self._cache.move_to_end(user_id)
        evict_idle(self._cache, self.max_users, lambda uid: uid == user_id)

    async def _call(self, operation: str, func, *args, attempts: int = None):
        """Вызов хранилища с повторами. После последней неудачи — LedgerUnavailable."""
        attempts = attempts or max(1, self.max_retries)
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                return await func(*args)
            except TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(f"Касса: {operation} не удалось (попытка {attempt}/{attempts}): {e}")
                if attempt < attempts and self.retry_delay:
                    await asyncio.sleep(self.retry_delay * attempt)
        raise LedgerUnavailable(f"{operation}: хранилище недоступно ({last_error})") from last_error

    # ==================== ЧТЕНИЕ ====================

    async def get_balance(self, user_id: int) -> BalanceReading:
        """
        Текущий баланс пользователя

        Не бросает исключений при недоступном хранилище: возвращает
        последнее известное значение с пометкой stale.
        """
        pending = await self.pending_credit(user_id)
        try:
            amount = await self._call("get_balance", self.store.get_balance, user_id, attempts=1)
        except LedgerUnavailable:
            cached = self._cache.get(user_id, 0)
            logger.info(f"Баланс {user_id} из кэша: {cached} (хранилище недоступно)")
            return BalanceReading(amount=cached, stale=True, pending_credit=pending)
        self._remember(user_id, amount)
        return BalanceReading(amount=amount, stale=False, pending_credit=pending)

    async def pending_credit(self, user_id: int) -> int:
        """Сумма начислений в outbox (0 если outbox не подключён)"""
        try:
            return await self.outbox.pending_total(user_id)
        except (RuntimeError, aiosqlite.Error) as e:
            logger.warning(f"Outbox недоступен при чтении для {user_id}: {e}")
            return 0

    async def transactions(self, user_id: int, limit: int = 10) -> List[Transaction]:
        rows = await self._call("get_transactions", self.store.get_transactions, user_id, limit)
        return [Transaction(**row) for row in rows]

    # ==================== ИЗМЕНЕНИЕ БАЛАНСА ====================

    async def debit(
        self,
        user_id: int,
        amount: int,
        description: str,
        reference: str,
        kind: TransactionKind = TransactionKind.STAKE,
    ) -> Transaction:
        """
        Списание. Уводящее в минус отклоняется (ValidationError) до изменения баланса.

        Raises:
            ValidationError: недостаточно средств
            LedgerUnavailable: хранилище не ответило после всех повторов
        """
        if amount <= 0:
            raise ValueError(f"Сумма списания должна быть положительной: {amount}")
        async with self._lock_for(user_id):
            row = await self._call(
                "debit", self.store.apply_transaction,
                user_id, -amount, kind.value, description, reference,
            )
            tx = Transaction(**row)
            self._remember(user_id, tx.balance_after)
        logger.info(
            f"Списание {amount} у {user_id} ({description}): {tx.balance_before} -> {tx.balance_after}"
        )
        return tx

    async def credit(
        self,
        user_id: int,
        amount: int,
        description: str,
        reference: str,
        kind: TransactionKind = TransactionKind.EARN,
    ) -> CreditReceipt:
        """
        Начисление. При недоступном хранилище не падает, а ставит начисление в outbox.
        Если не удалось записать и в outbox — исключение, начисление терять нельзя.
        """
        if amount <= 0:
            raise ValueError(f"Сумма начисления должна быть положительной: {amount}")
        async with self._lock_for(user_id):
            try:
                row = await self._call(
                    "credit", self.store.apply_transaction,
                    user_id, amount, kind.value, description, reference,
                )
            except LedgerUnavailable as e:
                logger.error(f"Начисление {amount} для {user_id} не проведено, в outbox: {e}")
                await self.outbox.enqueue(user_id, amount, kind.value, description, reference)
                return CreditReceipt(queued=True)
            tx = Transaction(**row)
            self._remember(user_id, tx.balance_after)
        logger.info(
            f"Начисление {amount} для {user_id} ({description}): {tx.balance_before} -> {tx.balance_after}"
        )
        return CreditReceipt(transaction=tx)

    async def ensure_user(self, user_id: int, username: str = None, first_name: str = None) -> bool:
        """
        Регистрация пользователя с приветственным бонусом

        Returns:
            True если пользователь новый
        """
        created = await self._call("create_user", self.store.create_user, user_id, username, first_name)
        if created and config.STARTING_BALANCE > 0:
            await self.credit(
                user_id,
                config.STARTING_BALANCE,
                "Приветственный бонус",
                f"welcome:{user_id}",
                kind=TransactionKind.BONUS,
            )
            logger.info(f"Новый пользователь {user_id}, бонус {config.STARTING_BALANCE}")
        return created

    # ==================== OUTBOX ====================

    async def replay_outbox(self, limit: int = None) -> int:
        """
        Провести отложенные начисления

        Returns:
            Сколько записей проведено
        """
        items = await self.outbox.due(limit or config.OUTBOX_BATCH_SIZE)
        applied = 0
        for item in items:
            user_id = item["user_id"]
            async with self._lock_for(user_id):
                try:
                    row = await self.store.apply_transaction(
                        user_id, item["amount"], item["kind"], item["description"], item["reference"],
                    )
                except TRANSIENT_ERRORS as e:
                    await self.outbox.mark_failed(item["reference"], str(e))
                    logger.warning(f"Outbox: хранилище всё ещё недоступно ({e}), повтор позже")
                    break
                except LookupError as e:
                    await self.outbox.mark_failed(item["reference"], str(e))
                    logger.error(f"Outbox: {item['reference']} не проведено: {e}")
                    continue
                self._remember(user_id, row["balance_after"])
                await self.outbox.mark_done(item["reference"])
            applied += 1
            logger.info(f"Outbox: проведено {item['amount']} для {user_id} ({item['reference']})")
        return applied

    async def start_retry_task(self):
        """Запуск фоновых повторов outbox (при старте бота)"""
        if self._retry_task is None or self._retry_task.done():
            self._retry_task = asyncio.create_task(self._retry_loop())
            logger.info("Задача повторов outbox запущена")

    async def stop_retry_task(self):
        if self._retry_task and not self._retry_task.done():
            self._retry_task.cancel()
            try:
                await self._retry_task
            except asyncio.CancelledError:
                pass
            logger.info("Задача повторов outbox остановлена")

    async def _retry_loop(self):
        while True:
            try:
                await asyncio.sleep(config.OUTBOX_RETRY_INTERVAL)
                applied = await self.replay_outbox()
                if applied:
                    logger.info(f"Outbox: проведено начислений: {applied}")
            except asyncio.CancelledError:
                logger.info("Задача повторов outbox отменена")
                break
            except Exception as e:
                logger.error(f"Ошибка повторов outbox: {e}", exc_info=True)


# Глобальный экземпляр кассы
ledger = LedgerGateway()
