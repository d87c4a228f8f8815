"""
Модуль работы с базой данных SQLite
Асинхронное хранилище баланса, журнала транзакций, истории раундов, рефералов и лотереи
Устойчивость к перезапускам, идемпотентные транзакции по reference
"""

import aiosqlite
import asyncio
import json
from datetime import datetime
from typing import Optional, List, Dict, Tuple, Any
from pathlib import Path
import logging

from config import config
from errors import LedgerUnavailable, RejectReason, ValidationError

# Настройка логирования для модуля БД
logger = logging.getLogger(__name__)


_TX_COLUMNS = (
    "id, user_id, amount, kind, description, reference, balance_before, balance_after, created_at"
)


def _tx_row_to_dict(row: Tuple) -> Dict[str, Any]:
    return {
        "id": row[0],
        "user_id": row[1],
        "amount": row[2],
        "kind": row[3],
        "description": row[4],
        "reference": row[5],
        "balance_before": row[6],
        "balance_after": row[7],
        "created_at": row[8],
    }


class Database:
    """
    Класс для работы с асинхронной SQLite базой данных
    Обеспечивает подключение, создание таблиц и методы для работы с данными
    """

    def __init__(self, db_path: Path = None):
        """
        Инициализация подключения к БД

        Args:
            db_path: Путь к файлу БД (по умолчанию из config)
        """
        self.db_path = db_path or config.DB_PATH
        self.connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()  # Блокировка: один запрос/транзакция за раз

    async def connect(self):
        """
        Установка соединения с БД
        Вызывается при старте бота
        """
        try:
            self.connection = await aiosqlite.connect(
                str(self.db_path),
                timeout=config.DB_TIMEOUT
            )
            # WAL режим для устойчивости к падениям
            await self.connection.execute("PRAGMA journal_mode=WAL")
            await self.connection.execute("PRAGMA foreign_keys=ON")
            await self.connection.commit()
            logger.info(f"Подключение к БД установлено: {self.db_path}")
        except Exception as e:
            logger.error(f"Ошибка подключения к БД: {e}")
            raise

    async def close(self):
        """
        Закрытие соединения с БД
        Вызывается при остановке бота
        """
        if self.connection:
            await self.connection.close()
            self.connection = None
            logger.info("Соединение с БД закрыто")

    def _require_connection(self) -> aiosqlite.Connection:
        if self.connection is None:
            raise LedgerUnavailable(f"БД не подключена: {self.db_path}")
        return self.connection

    async def execute(self, query: str, params: tuple = ()) -> aiosqlite.Cursor:
        """
        Выполнение SQL запроса с параметрами

        Args:
            query: SQL запрос
            params: Параметры запроса

        Returns:
            Курсор с результатами
        """
        async with self._lock:
            connection = self._require_connection()
            try:
                cursor = await connection.execute(query, params)
                await connection.commit()
                return cursor
            except Exception as e:
                logger.error(f"Ошибка выполнения запроса: {query[:100]}... | {e}")
                await connection.rollback()
                raise

    async def fetchone(self, query: str, params: tuple = ()) -> Optional[Tuple]:
        """Получение одной записи из БД"""
        cursor = await self.execute(query, params)
        return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()) -> List[Tuple]:
        """Получение всех записей из БД"""
        cursor = await self.execute(query, params)
        return await cursor.fetchall()

    async def create_tables(self):
        """
        Создание всех необходимых таблиц в БД
        Вызывается при первом запуске
        """
        try:
            # Таблица пользователей (баланс в коинах Duna)
            await self.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id INTEGER PRIMARY KEY,
                    username TEXT,
                    first_name TEXT,
                    balance INTEGER DEFAULT 0 NOT NULL CHECK (balance >= 0),
                    created_at INTEGER NOT NULL,
                    last_active INTEGER NOT NULL
                )
            """)

            # Журнал транзакций: только добавление; по reference повтор не проводится дважды
            await self.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    amount INTEGER NOT NULL,
                    kind TEXT NOT NULL,
                    description TEXT,
                    reference TEXT NOT NULL UNIQUE,
                    balance_before INTEGER NOT NULL,
                    balance_after INTEGER NOT NULL,
                    created_at INTEGER NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
                )
            """)
            await self.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id, created_at)"
            )

            # История раундов (для восстановления после перезапуска)
            await self.execute("""
                CREATE TABLE IF NOT EXISTS game_rounds (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    round_id TEXT NOT NULL UNIQUE,
                    user_id INTEGER NOT NULL,
                    game TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    selection TEXT,
                    stake INTEGER NOT NULL,
                    payout INTEGER NOT NULL,
                    scores TEXT,
                    details TEXT,
                    created_at INTEGER NOT NULL
                )
            """)
            await self.execute(
                "CREATE INDEX IF NOT EXISTS idx_game_rounds_user ON game_rounds(user_id, game, created_at)"
            )

            # Раунды со списанной ставкой, ещё не рассчитанные (возврат при старте после падения)
            await self.execute("""
                CREATE TABLE IF NOT EXISTS open_rounds (
                    round_id TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL,
                    game TEXT NOT NULL,
                    stake INTEGER NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)

            # Реферальная программа: код пользователя и кто кого пригласил
            await self.execute("""
                CREATE TABLE IF NOT EXISTS referral_codes (
                    user_id INTEGER PRIMARY KEY,
                    code TEXT NOT NULL UNIQUE,
                    created_at INTEGER NOT NULL
                )
            """)
            await self.execute("""
                CREATE TABLE IF NOT EXISTS referrals (
                    invitee_id INTEGER PRIMARY KEY,
                    referrer_id INTEGER NOT NULL,
                    code TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)
            await self.execute(
                "CREATE INDEX IF NOT EXISTS idx_referrals_referrer ON referrals(referrer_id, created_at)"
            )

            # Лотерейные билеты и победители
            await self.execute("""
                CREATE TABLE IF NOT EXISTS lottery_tickets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    ticket_code TEXT NOT NULL UNIQUE,
                    period TEXT NOT NULL,
                    is_free INTEGER DEFAULT 0 NOT NULL,
                    is_winner INTEGER DEFAULT 0 NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)
            await self.execute("""
                CREATE TABLE IF NOT EXISTS lottery_winners (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ticket_code TEXT NOT NULL,
                    prize TEXT NOT NULL,
                    period TEXT NOT NULL UNIQUE,
                    user_id INTEGER,
                    created_at INTEGER NOT NULL
                )
            """)
            logger.info("Таблицы БД созданы/проверены")
        except Exception as e:
            logger.error(f"Ошибка создания таблиц: {e}", exc_info=True)
            raise

    # ==================== ПОЛЬЗОВАТЕЛИ ====================

    async def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Получение пользователя по ID (None если нет)"""
        row = await self.fetchone(
            "SELECT user_id, username, first_name, balance, created_at, last_active FROM users WHERE user_id = ?",
            (user_id,)
        )
        if not row:
            return None
        return {
            "user_id": row[0],
            "username": row[1],
            "first_name": row[2],
            "balance": row[3],
            "created_at": row[4],
            "last_active": row[5],
        }

    async def create_user(self, user_id: int, username: str = None, first_name: str = None) -> bool:
        """
        Создание пользователя с нулевым балансом
        Приветственный бонус начисляется отдельной транзакцией

        Returns:
            True если пользователь создан, False если уже был
        """
        now = int(datetime.now().timestamp())
        cursor = await self.execute(
            """INSERT OR IGNORE INTO users (user_id, username, first_name, balance, created_at, last_active)
               VALUES (?, ?, ?, 0, ?, ?)""",
            (user_id, username, first_name, now, now)
        )
        return cursor.rowcount > 0

    async def update_user_username(self, user_id: int, username: str):
        await self.execute("UPDATE users SET username = ? WHERE user_id = ?", (username, user_id))

    async def update_user_last_active(self, user_id: int):
        now = int(datetime.now().timestamp())
        await self.execute("UPDATE users SET last_active = ? WHERE user_id = ?", (now, user_id))

    # ==================== МЕТОДЫ ДЛЯ РАБОТЫ С БАЛАНСОМ ====================

    async def get_balance(self, user_id: int) -> int:
        """
        Получение текущего баланса пользователя

        Returns:
            Баланс пользователя (0 если пользователь не найден)
        """
        row = await self.fetchone("SELECT balance FROM users WHERE user_id = ?", (user_id,))
        return row[0] if row else 0

    async def apply_transaction(self, user_id: int, amount: int, kind: str,
                                description: str, reference: str) -> Dict[str, Any]:
        """
        Изменение баланса с записью транзакции в одной SQL-транзакции

        Повтор с тем же reference ничего не меняет и возвращает уже записанную транзакцию.
        Списание, уводящее баланс в минус, отклоняется до изменения.

        Args:
            user_id: ID пользователя
            amount: Изменение (положительное — начисление, отрицательное — списание)
            kind: earn | spend | bonus | stake
            description: Описание для журнала
            reference: Ключ идемпотентности

        Returns:
            Словарь транзакции (с balance_before / balance_after)
        """
        async with self._lock:
            connection = self._require_connection()
            try:
                cursor = await connection.execute(
                    f"SELECT {_TX_COLUMNS} FROM transactions WHERE reference = ?", (reference,)
                )
                existing = await cursor.fetchone()
                if existing:
                    logger.info(f"Транзакция {reference} уже проведена, повтор пропущен")
                    return _tx_row_to_dict(existing)

                cursor = await connection.execute(
                    "SELECT balance FROM users WHERE user_id = ?", (user_id,)
                )
                row = await cursor.fetchone()
                if row is None:
                    raise LookupError(f"Пользователь {user_id} не найден")

                balance_before = row[0]
                balance_after = balance_before + amount
                if balance_after < 0:
                    logger.warning(
                        f"Отклонено списание в минус: user_id={user_id}, "
                        f"balance={balance_before}, amount={amount}, reference={reference}"
                    )
                    raise ValidationError(
                        RejectReason.EXCEEDS_BALANCE,
                        f"баланс {balance_before}, списание {-amount}",
                    )

                now = int(datetime.now().timestamp())
                await connection.execute(
                    "UPDATE users SET balance = ? WHERE user_id = ?", (balance_after, user_id)
                )
                cursor = await connection.execute(
                    """INSERT INTO transactions
                       (user_id, amount, kind, description, reference, balance_before, balance_after, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (user_id, amount, kind, description, reference, balance_before, balance_after, now)
                )
                tx_id = cursor.lastrowid
                await connection.commit()
            except Exception:
                await connection.rollback()
                raise

        return {
            "id": tx_id,
            "user_id": user_id,
            "amount": amount,
            "kind": kind,
            "description": description,
            "reference": reference,
            "balance_before": balance_before,
            "balance_after": balance_after,
            "created_at": now,
        }

    async def get_transaction(self, reference: str) -> Optional[Dict[str, Any]]:
        row = await self.fetchone(f"SELECT {_TX_COLUMNS} FROM transactions WHERE reference = ?", (reference,))
        return _tx_row_to_dict(row) if row else None

    async def get_transactions(self, user_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        """Последние транзакции пользователя, новые первыми"""
        rows = await self.fetchall(
            f"SELECT {_TX_COLUMNS} FROM transactions WHERE user_id = ? ORDER BY id DESC LIMIT ?",
            (user_id, limit)
        )
        return [_tx_row_to_dict(r) for r in rows]

    # ==================== ИСТОРИЯ РАУНДОВ ====================

    async def log_game_round(self, user_id: int, result: Dict[str, Any]):
        """Сохранение итога раунда (повтор с тем же round_id игнорируется)"""
        await self.execute(
            """INSERT OR IGNORE INTO game_rounds
               (round_id, user_id, game, outcome, selection, stake, payout, scores, details, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                result["round_id"], user_id, result["game"], result["outcome"], result.get("selection"),
                result["stake"], result["payout"],
                json.dumps(result.get("scores") or {}), json.dumps(result.get("details") or {}, default=str),
                result["timestamp"],
            )
        )

    async def get_recent_rounds(self, user_id: int, game: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Последние раунды пользователя в игре, новые первыми"""
        rows = await self.fetchall(
            """SELECT round_id, game, outcome, selection, stake, payout, scores, details, created_at
               FROM game_rounds WHERE user_id = ? AND game = ?
               ORDER BY created_at DESC, id DESC LIMIT ?""",
            (user_id, game, limit)
        )
        return [
            {
                "round_id": r[0],
                "game": r[1],
                "outcome": r[2],
                "selection": r[3],
                "stake": r[4],
                "payout": r[5],
                "scores": json.loads(r[6]) if r[6] else {},
                "details": json.loads(r[7]) if r[7] else {},
                "timestamp": r[8],
            }
            for r in rows
        ]

    async def has_game_round(self, round_id: str) -> bool:
        row = await self.fetchone("SELECT 1 FROM game_rounds WHERE round_id = ?", (round_id,))
        return row is not None

    # ==================== НЕЗАВЕРШЁННЫЕ РАУНДЫ ====================

    async def open_round(self, round_id: str, user_id: int, game: str, stake: int):
        """Отметить раунд, ставка которого сейчас списывается"""
        now = int(datetime.now().timestamp())
        await self.execute(
            """INSERT OR IGNORE INTO open_rounds (round_id, user_id, game, stake, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (round_id, user_id, game, stake, now)
        )

    async def close_round(self, round_id: str):
        await self.execute("DELETE FROM open_rounds WHERE round_id = ?", (round_id,))

    async def get_open_rounds(self) -> List[Dict[str, Any]]:
        rows = await self.fetchall(
            "SELECT round_id, user_id, game, stake, created_at FROM open_rounds ORDER BY created_at"
        )
        return [
            {"round_id": r[0], "user_id": r[1], "game": r[2], "stake": r[3], "created_at": r[4]}
            for r in rows
        ]

    # ==================== РЕФЕРАЛЫ ====================

    async def get_referral_code(self, user_id: int) -> Optional[str]:
        row = await self.fetchone("SELECT code FROM referral_codes WHERE user_id = ?", (user_id,))
        return row[0] if row else None

    async def create_referral_code(self, user_id: int, code: str):
        """Закрепить код за пользователем (IntegrityError, если код уже занят)"""
        now = int(datetime.now().timestamp())
        await self.execute(
            "INSERT INTO referral_codes (user_id, code, created_at) VALUES (?, ?, ?)",
            (user_id, code, now)
        )

    async def get_user_by_referral_code(self, code: str) -> Optional[int]:
        row = await self.fetchone("SELECT user_id FROM referral_codes WHERE code = ?", (code,))
        return row[0] if row else None

    async def add_referral(self, invitee_id: int, referrer_id: int, code: str) -> bool:
        """
        Записать приглашение

        Returns:
            True если записано, False если приглашённый уже активировал код
        """
        now = int(datetime.now().timestamp())
        cursor = await self.execute(
            """INSERT OR IGNORE INTO referrals (invitee_id, referrer_id, code, created_at)
               VALUES (?, ?, ?, ?)""",
            (invitee_id, referrer_id, code, now)
        )
        return cursor.rowcount > 0

    async def get_referrer(self, invitee_id: int) -> Optional[int]:
        row = await self.fetchone("SELECT referrer_id FROM referrals WHERE invitee_id = ?", (invitee_id,))
        return row[0] if row else None

    async def get_invitees(self, referrer_id: int) -> List[Dict[str, Any]]:
        """Приглашённые пользователем, новые первыми"""
        rows = await self.fetchall(
            """SELECT r.invitee_id, u.username, u.first_name, r.created_at
               FROM referrals r LEFT JOIN users u ON u.user_id = r.invitee_id
               WHERE r.referrer_id = ? ORDER BY r.created_at DESC, r.invitee_id DESC""",
            (referrer_id,)
        )
        return [
            {"user_id": r[0], "username": r[1], "first_name": r[2], "created_at": r[3]}
            for r in rows
        ]

    async def get_top_referrers(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Таблица лидеров по числу приглашённых"""
        rows = await self.fetchall(
            """SELECT r.referrer_id, u.username, u.first_name, COUNT(*) AS total
               FROM referrals r LEFT JOIN users u ON u.user_id = r.referrer_id
               GROUP BY r.referrer_id
               ORDER BY total DESC, MIN(r.created_at) ASC
               LIMIT ?""",
            (limit,)
        )
        return [
            {"user_id": r[0], "username": r[1], "first_name": r[2], "total": r[3]}
            for r in rows
        ]

    # ==================== ЛОТЕРЕЯ ====================

    async def create_lottery_ticket(self, user_id: int, ticket_code: str, period: str,
                                    is_free: bool = False) -> Dict[str, Any]:
        now = int(datetime.now().timestamp())
        cursor = await self.execute(
            """INSERT INTO lottery_tickets (user_id, ticket_code, period, is_free, is_winner, created_at)
               VALUES (?, ?, ?, ?, 0, ?)""",
            (user_id, ticket_code, period, int(is_free), now)
        )
        return {
            "id": cursor.lastrowid,
            "user_id": user_id,
            "ticket_code": ticket_code,
            "period": period,
            "is_free": is_free,
            "is_winner": False,
            "created_at": now,
        }

    async def get_user_tickets(self, user_id: int, period: str) -> List[Dict[str, Any]]:
        rows = await self.fetchall(
            """SELECT id, ticket_code, is_free, is_winner, created_at FROM lottery_tickets
               WHERE user_id = ? AND period = ? ORDER BY id""",
            (user_id, period)
        )
        return [
            {"id": r[0], "ticket_code": r[1], "is_free": bool(r[2]), "is_winner": bool(r[3]), "created_at": r[4]}
            for r in rows
        ]

    async def get_period_tickets(self, period: str) -> List[Dict[str, Any]]:
        rows = await self.fetchall(
            "SELECT ticket_code, user_id FROM lottery_tickets WHERE period = ? ORDER BY id",
            (period,)
        )
        return [{"ticket_code": r[0], "user_id": r[1]} for r in rows]

    async def add_lottery_winner(self, ticket_code: str, prize: str, period: str, user_id: int) -> Dict[str, Any]:
        now = int(datetime.now().timestamp())
        await self.execute(
            """INSERT INTO lottery_winners (ticket_code, prize, period, user_id, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (ticket_code, prize, period, user_id, now)
        )
        await self.execute("UPDATE lottery_tickets SET is_winner = 1 WHERE ticket_code = ?", (ticket_code,))
        return {"ticket_code": ticket_code, "prize": prize, "period": period, "user_id": user_id, "created_at": now}

    async def get_lottery_winner(self, period: str) -> Optional[Dict[str, Any]]:
        row = await self.fetchone(
            "SELECT ticket_code, prize, period, user_id, created_at FROM lottery_winners WHERE period = ?",
            (period,)
        )
        if not row:
            return None
        return {"ticket_code": row[0], "prize": row[1], "period": row[2], "user_id": row[3], "created_at": row[4]}

    async def get_lottery_winners(self, limit: int = 20) -> List[Dict[str, Any]]:
        rows = await self.fetchall(
            """SELECT ticket_code, prize, period, user_id, created_at FROM lottery_winners
               ORDER BY created_at DESC, id DESC LIMIT ?""",
            (limit,)
        )
        return [
            {"ticket_code": r[0], "prize": r[1], "period": r[2], "user_id": r[3], "created_at": r[4]}
            for r in rows
        ]


# Глобальный экземпляр базы данных
db = Database()


# Функция инициализации БД (вызывается при старте бота)
async def init_db():
    """
    Инициализация базы данных
    Создает подключение и все необходимые таблицы
    """
    await db.connect()
    await db.create_tables()
    logger.info("База данных инициализирована")


# Функция закрытия БД (вызывается при остановке бота)
async def close_db():
    """Закрытие соединения с БД"""
    await db.close()
