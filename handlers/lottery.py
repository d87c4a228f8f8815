"""
Лотерея: /lottery — бесплатный билет месяца и свои билеты, /buyticket — билет за коины, /winners
"""

import logging

import aiosqlite
from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from config import config
from errors import CasinoError, InvalidAction
from games.lottery import format_ticket_code, lottery_period
from services.lottery import lottery
from utils import (
    answer_temp,
    format_casino_error,
    format_coins,
    format_for,
    get_current_user,
    LEDGER_UNAVAILABLE_PHRASE,
)

router = Router()
logger = logging.getLogger(__name__)


@router.message(Command("lottery"))
async def cmd_lottery(message: Message):
    """Бесплатный билет (раз в месяц) и список билетов"""
    user = get_current_user(message)
    lines = [f"🎟 <b>Лотерея {lottery_period()}</b>", ""]
    try:
        try:
            ticket = await lottery.claim_monthly_ticket(user.id)
            lines.append(f"Бесплатный билет: <b>{format_ticket_code(ticket['ticket_code'])}</b>")
        except InvalidAction:
            lines.append("Бесплатный билет этого месяца уже у тебя.")
        tickets = await lottery.tickets(user.id)
    except (CasinoError, aiosqlite.Error) as e:
        logger.warning(f"Лотерея недоступна для {user.id}: {e}")
        await answer_temp(message, format_for(user, LEDGER_UNAVAILABLE_PHRASE))
        return

    lines.append("")
    lines.append(f"Твои билеты ({len(tickets)}):")
    lines.extend(
        f"• {format_ticket_code(t['ticket_code'])}{' (бесплатный)' if t['is_free'] else ''}" for t in tickets
    )
    lines.append("")
    lines.append(f"Ещё билет — /buyticket за {format_coins(config.LOTTERY_EXTRA_TICKET_PRICE)}. Больше билетов — выше шанс.")
    await answer_temp(message, format_for(user, "\n".join(lines)))


@router.message(Command("buyticket"))
async def cmd_buyticket(message: Message):
    user = get_current_user(message)
    try:
        ticket = await lottery.buy_extra_ticket(user.id)
    except CasinoError as e:
        await answer_temp(message, format_for(user, format_casino_error(e)))
        return
    await answer_temp(
        message,
        format_for(user, f"билет куплен: <b>{format_ticket_code(ticket['ticket_code'])}</b> 🎟"),
    )


@router.message(Command("winners"))
async def cmd_winners(message: Message):
    user = get_current_user(message)
    try:
        winners = await lottery.winners()
    except (CasinoError, aiosqlite.Error) as e:
        logger.warning(f"Список победителей недоступен: {e}")
        await answer_temp(message, format_for(user, LEDGER_UNAVAILABLE_PHRASE))
        return
    if not winners:
        await answer_temp(message, format_for(user, "розыгрышей ещё не было"))
        return
    lines = ["🏆 <b>Победители лотереи</b>", ""]
    lines.extend(f"{w['period']}: {format_ticket_code(w['ticket_code'])} — {w['prize']}" for w in winners)
    await answer_temp(message, format_for(user, "\n".join(lines)))
