"""
Рефералы: /ref — свой код или активация чужого, /friends — приглашённые и лидеры
"""

import logging

import aiosqlite
from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from config import config
from errors import CasinoError, InvalidAction
from services.referral import referrals
from utils import (
    answer_temp,
    command_args,
    format_casino_error,
    format_coins,
    format_for,
    format_username,
    get_current_user,
    LEDGER_UNAVAILABLE_PHRASE,
)

router = Router()
logger = logging.getLogger(__name__)

LEADERS_LIMIT = 10


async def redeem_code(user_id: int, code: str) -> str:
    """Активация кода; текст ответа пользователю"""
    try:
        receipt = await referrals.redeem(user_id, code)
    except InvalidAction as e:
        return str(e)
    except CasinoError as e:
        return format_casino_error(e)
    except aiosqlite.Error as e:
        logger.warning(f"Код {code} от {user_id} не активирован: {e}")
        return LEDGER_UNAVAILABLE_PHRASE
    bonus = format_coins(config.REFERRAL_BONUS)
    if receipt.queued:
        return f"код принят 🤝 Бонус {bonus} скоро поступит на баланс"
    return f"код принят 🤝 Тебе и другу начислено по {bonus}"


@router.message(Command("ref"))
async def cmd_ref(message: Message):
    """/ref — свой код; /ref КОД — активировать код друга"""
    user = get_current_user(message)
    args = command_args(message)

    if args:
        text = await redeem_code(user.id, args[0])
        await answer_temp(message, format_for(user, text))
        return

    try:
        code = await referrals.ensure_code(user.id)
    except (CasinoError, aiosqlite.Error, RuntimeError) as e:
        logger.warning(f"Реферальный код для {user.id} недоступен: {e}")
        await answer_temp(message, format_for(user, LEDGER_UNAVAILABLE_PHRASE))
        return

    bonus = format_coins(config.REFERRAL_BONUS)
    lines = [
        "🤝 <b>Приглашай друзей</b>",
        "",
        f"Твой код: <b>{code}</b>",
        f"Друг вводит /ref {code} или открывает бота по ссылке со start=ref_{code}.",
        f"Вы оба получаете по {bonus}. Активировать можно только один код.",
        "",
        "/friends — кого ты пригласил и лидеры",
    ]
    await answer_temp(message, format_for(user, "\n".join(lines)))


@router.message(Command("friends"))
async def cmd_friends(message: Message):
    """Приглашённые друзья и таблица лидеров"""
    user = get_current_user(message)
    try:
        invited = await referrals.invited(user.id)
        leaders = await referrals.leaders(LEADERS_LIMIT)
    except (CasinoError, aiosqlite.Error) as e:
        logger.warning(f"Список друзей недоступен для {user.id}: {e}")
        await answer_temp(message, format_for(user, LEDGER_UNAVAILABLE_PHRASE))
        return

    lines = [f"👥 <b>Твои друзья ({len(invited)})</b>"]
    if invited:
        lines.extend(f"• {format_username(f['username'], f['first_name'])}" for f in invited)
    else:
        lines.append("пока никого, код — /ref")

    lines.append("")
    lines.append("🏆 <b>Лучшие пригласившие</b>")
    if not leaders:
        lines.append("пока пусто")
    for place, row in enumerate(leaders, 1):
        name = format_username(row["username"], row["first_name"])
        lines.append(f"{place}. {name} — {row['total']}")
    await answer_temp(message, format_for(user, "\n".join(lines)))
