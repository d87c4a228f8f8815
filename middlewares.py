"""
Middleware для бота Duna Casino
Логирование действий, регистрация пользователей с приветственным бонусом
"""

import logging
from typing import Callable, Dict, Any, Awaitable

import aiosqlite
from aiogram import BaseMiddleware
from aiogram.types import Message, CallbackQuery, TelegramObject

from errors import CasinoError, LedgerUnavailable
from services.ledger import ledger
from utils import get_current_user

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseMiddleware):
    """
    Журнал действий игроков: каждая команда и нажатие кнопки.
    Отказы казино (ставка не прошла, раунд уже идёт) пишутся как warning без трейсбека.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        user = get_current_user(event)
        who = f"[{user.id}] {user.display_name}" if user else "[system]"

        if isinstance(event, Message):
            action = f"команда {event.text}" if event.text else "сообщение"
        elif isinstance(event, CallbackQuery):
            action = f"кнопка {event.data}"
        else:
            action = type(event).__name__

        logger.info(f"{who} - {action}")
        try:
            return await handler(event, data)
        except CasinoError as e:
            logger.warning(f"{who} - {action}: отказ ({type(e).__name__}: {e})")
            raise
        except Exception as e:
            logger.error(f"{who} - {action}: ошибка {e}", exc_info=True)
            raise


class UpdateUserDataMiddleware(BaseMiddleware):
    """
    Middleware для обновления данных пользователя в БД
    Создает пользователя (с приветственным бонусом) если его нет, обновляет username и активность.
    Недоступная БД не блокирует событие: обработчик сам покажет, что касса недоступна.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        user = get_current_user(event)

        if user:
            try:
                created = await ledger.ensure_user(user.id, user.username, user.first_name)
                if created:
                    logger.info(f"Создан новый пользователь: {user.id} ({user.display_name})")
                else:
                    if user.username:
                        await ledger.store.update_user_username(user.id, user.username)
                    await ledger.store.update_user_last_active(user.id)
            except (LedgerUnavailable, aiosqlite.Error) as e:
                logger.warning(f"Данные пользователя {user.id} не обновлены: {e}")
            data["user"] = user

        return await handler(event, data)


__all__ = [
    "LoggingMiddleware",
    "UpdateUserDataMiddleware",
]
