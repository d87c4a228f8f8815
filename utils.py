"""
Утилиты для бота Duna Casino
Пользователь из события, форматирование сообщений и ошибок, автоудаление
"""

import asyncio
import logging
from typing import List, NamedTuple, Optional, Union

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery, Message, TelegramObject

from config import config
from errors import (
    CasinoError,
    ConcurrentRoundConflict,
    InvalidAction,
    LedgerUnavailable,
    RejectReason,
    ValidationError,
)

logger = logging.getLogger(__name__)


class UserIdentity(NamedTuple):
    """Текущий пользователь: id и имя для показа"""

    id: int
    display_name: str
    username: Optional[str] = None
    first_name: Optional[str] = None


# Сообщения об отклонённой ставке
REJECT_MESSAGES = {
    RejectReason.BELOW_MINIMUM: f"ставка меньше минимальной ({config.MIN_STAKE} 🪙)",
    RejectReason.EXCEEDS_BALANCE: "недостаточно коинов на балансе",
    RejectReason.INVALID_MULTIPLIER: f"количество ставок должно быть от 1 до {config.MAX_STAKE_MULTIPLIER}",
    RejectReason.INVALID_SELECTION: "такой ставки нет",
    RejectReason.NO_BETS: "сначала сделай ставку",
}

# Сообщение при недоступном хранилище баланса
LEDGER_UNAVAILABLE_PHRASE = "касса сейчас недоступна, ставка не списана. Попробуй чуть позже 🔌"

# Сообщение при сбое в игре
GAME_ERROR_PHRASE = "произошёл сбой, раунд отменён, ставка вернётся на баланс ⚙️"

# Сообщение при попытке начать второй раунд
ROUND_IN_PROGRESS_PHRASE = "сначала доиграй текущий раунд 🎲"


def get_current_user(event: Union[Message, CallbackQuery, TelegramObject]) -> Optional[UserIdentity]:
    """
    Пользователь, от которого пришло событие

    Returns:
        UserIdentity или None (системное событие, канал)
    """
    user = getattr(event, "from_user", None)
    if user is None:
        return None
    display_name = f"@{user.username}" if user.username else (user.first_name or str(user.id))
    return UserIdentity(id=user.id, display_name=display_name, username=user.username, first_name=user.first_name)


def format_username(username: Optional[str], first_name: Optional[str] = None) -> str:
    """
    Форматирование username для сообщений
    Всегда возвращает строку начинающуюся с @

    Args:
        username: Username пользователя
        first_name: Имя пользователя (fallback)

    Returns:
        Отформатированный username
    """
    if username:
        return f"@{username}"
    elif first_name:
        return f"@{first_name}"
    else:
        return "@Пользователь"


def format_message_with_username(text: str, username: Optional[str],
                                 first_name: Optional[str] = None) -> str:
    """Форматирование сообщения: «@user, текст»."""
    user_tag = format_username(username, first_name)
    return f"{user_tag}, {text}"


def format_for(user: Optional[UserIdentity], text: str) -> str:
    if user is None:
        return text
    return format_message_with_username(text, user.username, user.first_name)


def format_coins(amount: int) -> str:
    return f"{amount} 🪙"


def format_signed(amount: int) -> str:
    """+15 / -10 / 0"""
    return f"+{amount}" if amount > 0 else str(amount)


def format_reject(error: ValidationError) -> str:
    return REJECT_MESSAGES.get(error.reason, "ставка отклонена")


def format_balance_line(amount: int, stale: bool = False, pending_credit: int = 0) -> str:
    """
    Строка баланса. Устаревшее значение помечается, ожидающие начисления показываются отдельно.
    """
    line = f"💰 Баланс: <b>{format_coins(amount)}</b>"
    if stale:
        line += " <i>(последнее известное, касса недоступна)</i>"
    if pending_credit:
        line += f"\n⏳ Ожидает зачисления: {format_coins(pending_credit)}"
    return line


def parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def command_args(message: Message) -> List[str]:
    """Аргументы команды: '/dice even 10 2' -> ['even', '10', '2']"""
    parts = (message.text or "").split()
    return parts[1:]


async def pulse(callback: CallbackQuery, text: str = None):
    """Короткий отклик на нажатие кнопки (всплывашка). Результат не важен."""
    try:
        await callback.answer(text)
    except TelegramAPIError as e:
        logger.debug(f"Не удалось ответить на callback: {e}")


async def delete_message_after(message: Message, seconds: int = None):
    """
    Автоматическое удаление сообщения через указанное время.
    """
    if seconds is None:
        seconds = config.MESSAGE_DELETE_TIMEOUT
    if seconds <= 0:
        return
    await asyncio.sleep(seconds)
    try:
        await message.delete()
    except TelegramAPIError as e:
        logger.debug(f"Сообщение {message.message_id} не удалено: {e}")


async def notify_admins(bot: Bot, text: str) -> None:
    """Сообщение всем админам из ADMIN_IDS"""
    for admin_id in config.admin_ids:
        try:
            await bot.send_message(admin_id, text)
        except TelegramAPIError as e:
            logger.warning(f"Не удалось уведомить админа {admin_id}: {e}")


def format_casino_error(error: CasinoError) -> str:
    """Короткое сообщение пользователю по ошибке раунда"""
    if isinstance(error, ValidationError):
        return format_reject(error)
    if isinstance(error, LedgerUnavailable):
        return LEDGER_UNAVAILABLE_PHRASE
    if isinstance(error, ConcurrentRoundConflict):
        return ROUND_IN_PROGRESS_PHRASE
    if isinstance(error, InvalidAction):
        return str(error)
    return GAME_ERROR_PHRASE


async def answer_temp(message: Message, text: str, **kwargs) -> Message:
    """Ответ, который удалится через MESSAGE_DELETE_TIMEOUT"""
    sent = await message.answer(text, **kwargs)
    asyncio.create_task(delete_message_after(sent, config.MESSAGE_DELETE_TIMEOUT))
    return sent
