"""
Три кости: /dice odd|even|over10|under10 сумма [кол-во]
"""

import asyncio
import logging

from aiogram import Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import Message

from config import config
from errors import CasinoError
from games.three_dice import DICE_BET_LABELS, DiceBet
from services.casino import casino
from utils import (
    answer_temp,
    command_args,
    delete_message_after,
    format_balance_line,
    format_casino_error,
    format_for,
    format_signed,
    get_current_user,
    parse_int,
)

router = Router()
logger = logging.getLogger(__name__)

DICE_FACES = {1: "⚀", 2: "⚁", 3: "⚂", 4: "⚃", 5: "⚄", 6: "⚅"}

BET_ALIASES = {
    "odd": DiceBet.ODD,
    "нечет": DiceBet.ODD,
    "even": DiceBet.EVEN,
    "чет": DiceBet.EVEN,
    "over10": DiceBet.OVER10,
    "over": DiceBet.OVER10,
    "under10": DiceBet.UNDER10,
    "under": DiceBet.UNDER10,
}


@router.message(Command("dice"))
async def cmd_dice(message: Message):
    """/dice odd|even|over10|under10 сумма [кол-во]"""
    user = get_current_user(message)
    args = command_args(message)
    bet = BET_ALIASES.get(args[0].lower()) if args else None
    unit = parse_int(args[1]) if len(args) > 1 else None
    count = parse_int(args[2]) if len(args) > 2 else 1
    if bet is None or unit is None or count is None:
        await answer_temp(
            message,
            format_for(user, "формат: /dice odd|even|over10|under10 сумма [кол-во], например /dice even 10"),
        )
        return

    try:
        roll, settled = await casino.roll_dice(user.id, bet, unit, count)
    except CasinoError as e:
        await answer_temp(message, format_for(user, format_casino_error(e)))
        return

    sent = await message.answer(format_for(user, "🎲 Кости летят..."))
    await asyncio.sleep(config.DICE_DELAY)

    result = settled.result
    faces = " ".join(DICE_FACES[d] for d in roll.dice)
    text = f"🎲 <b>ТРИ КОСТИ</b> — ставка {result.stake} на «{DICE_BET_LABELS[bet]}»\n\n"
    text += f"{faces}  сумма <b>{roll.total}</b>\n\n"
    if result.payout:
        text += f"✅ Выигрыш {result.payout} ({format_signed(result.net_profit)})\n"
    else:
        text += f"❌ Не угадал ({format_signed(result.net_profit)})\n"
    text += format_balance_line(settled.balance)
    if settled.payout_queued:
        text += "\n⏳ Выигрыш будет зачислен, как только касса станет доступна"

    try:
        await sent.edit_text(format_for(user, text))
    except TelegramBadRequest as e:
        logger.debug(f"Кости: итог не показан: {e}")
    asyncio.create_task(delete_message_after(sent, config.MESSAGE_DELETE_TIMEOUT))
