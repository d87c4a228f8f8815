"""
Админка Duna Casino (только ADMIN_IDS)
/admin — меню, /grant user_id сумма — начисление коинов, /outbox — очередь отложенных начислений,
/drawlottery [приз] — розыгрыш лотереи текущего месяца
"""

import logging
import uuid

import aiosqlite
from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from config import config
from errors import CasinoError, InvalidAction
from games.constants import TransactionKind
from games.lottery import format_ticket_code, lottery_period
from services.ledger import ledger
from services.lottery import lottery
from utils import (
    answer_temp,
    command_args,
    format_casino_error,
    format_coins,
    format_for,
    get_current_user,
    notify_admins,
    parse_int,
)

router = Router()
logger = logging.getLogger(__name__)


def _admin_only(handler):
    """Декоратор: только админы из ADMIN_IDS. Остальным — тишина."""
    async def wrapped(message: Message):
        if not config.is_admin(message.from_user.id):
            logger.info(f"Попытка админ-команды от {message.from_user.id}: {message.text}")
            return
        return await handler(message)
    return wrapped


@router.message(Command("admin"))
@_admin_only
async def cmd_admin(message: Message):
    user = get_current_user(message)
    text = format_for(
        user,
        "👑 <b>АДМИН-ПАНЕЛЬ</b>\n\n"
        "/grant user_id сумма — начислить коины (бонус)\n"
        "/outbox — отложенные начисления, провести сейчас\n"
        "/drawlottery [приз] — разыграть лотерею текущего месяца",
    )
    await answer_temp(message, text)


@router.message(Command("grant"))
@_admin_only
async def cmd_grant(message: Message):
    """Внешнее пополнение: /grant user_id сумма"""
    user = get_current_user(message)
    args = command_args(message)
    target_id = parse_int(args[0]) if args else None
    amount = parse_int(args[1]) if len(args) > 1 else None
    if target_id is None or amount is None or amount <= 0:
        await answer_temp(message, "Использование: /grant user_id сумма")
        return

    try:
        if await ledger.store.get_user(target_id) is None:
            await answer_temp(message, "Пользователь не найден.")
            return
        receipt = await ledger.credit(
            target_id,
            amount,
            f"Начисление от админа {user.id}",
            f"grant:{uuid.uuid4().hex[:12]}",
            kind=TransactionKind.BONUS,
        )
    except (CasinoError, aiosqlite.Error) as e:
        logger.error(f"grant: {target_id} {amount}: {e}")
        await answer_temp(message, format_casino_error(e) if isinstance(e, CasinoError) else "Ошибка БД.")
        return

    if receipt.queued:
        text = f"⏳ Касса недоступна, {format_coins(amount)} для {target_id} в очереди."
    else:
        text = f"✅ {target_id}: +{format_coins(amount)}, баланс {receipt.transaction.balance_after}"
    await answer_temp(message, text)
    logger.info(f"grant: admin={user.id} target={target_id} amount={amount} queued={receipt.queued}")


@router.message(Command("outbox"))
@_admin_only
async def cmd_outbox(message: Message):
    """Показать очередь и попробовать провести"""
    try:
        pending_before = await ledger.outbox.count()
        applied = await ledger.replay_outbox()
        pending_after = await ledger.outbox.count()
    except (RuntimeError, aiosqlite.Error) as e:
        logger.error(f"outbox: {e}")
        await answer_temp(message, f"Outbox недоступен: {e}")
        return
    await answer_temp(
        message,
        f"📬 Outbox: было {pending_before}, проведено {applied}, осталось {pending_after}",
    )


@router.message(Command("drawlottery"))
@_admin_only
async def cmd_drawlottery(message: Message):
    """/drawlottery [приз] — розыгрыш месяца"""
    parts = (message.text or "").split(maxsplit=1)
    prize = parts[1].strip() if len(parts) > 1 else "Главный приз месяца"
    try:
        winner = await lottery.draw_monthly_winner(prize)
    except InvalidAction as e:
        await answer_temp(message, str(e))
        return
    except aiosqlite.Error as e:
        logger.error(f"drawlottery: {e}")
        await answer_temp(message, "Ошибка БД.")
        return

    if winner is None:
        await answer_temp(message, f"За {lottery_period()} нет ни одного билета.")
        return
    text = (
        f"🏆 Лотерея {winner['period']}: билет <b>{format_ticket_code(winner['ticket_code'])}</b> "
        f"(user {winner['user_id']}) — {winner['prize']}"
    )
    await answer_temp(message, text)
    await notify_admins(message.bot, text)
