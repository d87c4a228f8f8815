"""
Локальный outbox начислений
Если хранилище баланса недоступно, выигрыш не теряется: он пишется сюда
и проводится фоновой задачей, когда хранилище снова отвечает.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from config import config

logger = logging.getLogger(__name__)


class OutboxStore:
    """Отдельный SQLite-файл с очередью непроведённых начислений"""

    def __init__(self, path: Path = None):
        self.path = path or config.OUTBOX_PATH
        self.connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self):
        self.connection = await aiosqlite.connect(str(self.path), timeout=config.DB_TIMEOUT)
        await self.connection.execute("PRAGMA journal_mode=WAL")
        await self.connection.execute("""
            CREATE TABLE IF NOT EXISTS ledger_outbox (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                amount INTEGER NOT NULL,
                kind TEXT NOT NULL,
                description TEXT,
                reference TEXT NOT NULL UNIQUE,
                attempts INTEGER DEFAULT 0 NOT NULL,
                last_error TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)
        await self.connection.commit()
        logger.info(f"Outbox подключён: {self.path}")

    async def close(self):
        if self.connection:
            await self.connection.close()
            self.connection = None
            logger.info("Outbox закрыт")

    async def _execute(self, query: str, params: tuple = ()) -> aiosqlite.Cursor:
        if self.connection is None:
            raise RuntimeError("Outbox не подключён")
        async with self._lock:
            try:
                cursor = await self.connection.execute(query, params)
                await self.connection.commit()
                return cursor
            except Exception as e:
                logger.error(f"Ошибка outbox: {query[:80]}... | {e}")
                await self.connection.rollback()
                raise

    async def enqueue(self, user_id: int, amount: int, kind: str, description: str, reference: str) -> bool:
        """
        Поставить начисление в очередь

        Returns:
            True если добавлено, False если такой reference уже в очереди
        """
        now = int(datetime.now().timestamp())
        cursor = await self._execute(
            """INSERT OR IGNORE INTO ledger_outbox
               (user_id, amount, kind, description, reference, attempts, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, 0, ?, ?)""",
            (user_id, amount, kind, description, reference, now, now)
        )
        added = cursor.rowcount > 0
        if added:
            logger.warning(f"Начисление {amount} для {user_id} отложено в outbox ({reference})")
        return added

    async def due(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Записи в порядке постановки в очередь"""
        cursor = await self._execute(
            """SELECT id, user_id, amount, kind, description, reference, attempts, last_error, created_at
               FROM ledger_outbox ORDER BY id LIMIT ?""",
            (limit,)
        )
        rows = await cursor.fetchall()
        return [
            {
                "id": r[0],
                "user_id": r[1],
                "amount": r[2],
                "kind": r[3],
                "description": r[4],
                "reference": r[5],
                "attempts": r[6],
                "last_error": r[7],
                "created_at": r[8],
            }
            for r in rows
        ]

    async def mark_done(self, reference: str):
        await self._execute("DELETE FROM ledger_outbox WHERE reference = ?", (reference,))

    async def mark_failed(self, reference: str, error: str):
        now = int(datetime.now().timestamp())
        await self._execute(
            "UPDATE ledger_outbox SET attempts = attempts + 1, last_error = ?, updated_at = ? WHERE reference = ?",
            (error[:500], now, reference)
        )

    async def pending_total(self, user_id: int) -> int:
        """Сумма ещё не проведённых начислений пользователя"""
        cursor = await self._execute(
            "SELECT COALESCE(SUM(amount), 0) FROM ledger_outbox WHERE user_id = ?", (user_id,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def has_reference(self, reference: str) -> bool:
        cursor = await self._execute("SELECT 1 FROM ledger_outbox WHERE reference = ?", (reference,))
        return await cursor.fetchone() is not None

    async def count(self) -> int:
        cursor = await self._execute("SELECT COUNT(*) FROM ledger_outbox")
        row = await cursor.fetchone()
        return row[0] if row else 0


# Глобальный экземпляр outbox
outbox = OutboxStore()
