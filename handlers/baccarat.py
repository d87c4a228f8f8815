"""
Баккара: /baccarat player|banker|tie сумма [кол-во]
Раунд рассчитывается сразу, раздача показывается по шагам.
"""

import asyncio
import logging

from aiogram import Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import Message

from config import config
from errors import CasinoError
from games.baccarat import BaccaratRound, BaccaratSide
from games.cards import baccarat_score, format_hand
from games.constants import GameKind
from services.casino import SettledRound, casino
from utils import (
    answer_temp,
    delete_message_after,
    command_args,
    format_balance_line,
    format_casino_error,
    format_for,
    format_signed,
    get_current_user,
    parse_int,
)

router = Router()
logger = logging.getLogger(__name__)

SIDE_ALIASES = {
    "player": BaccaratSide.PLAYER,
    "p": BaccaratSide.PLAYER,
    "игрок": BaccaratSide.PLAYER,
    "banker": BaccaratSide.BANKER,
    "b": BaccaratSide.BANKER,
    "банкир": BaccaratSide.BANKER,
    "tie": BaccaratSide.TIE,
    "t": BaccaratSide.TIE,
    "ничья": BaccaratSide.TIE,
}

SIDE_TITLES = {
    BaccaratSide.PLAYER: "Игрок",
    BaccaratSide.BANKER: "Банкир",
    BaccaratSide.TIE: "Ничья",
}

# Для полоски истории: P / B / T
SIDE_MARKS = {
    "player": "🔵",
    "banker": "🔴",
    "tie": "🟢",
}


def _table(bac: BaccaratRound, player, banker) -> str:
    return (
        f"🎴 <b>БАККАРА</b> — ставка {bac.stake} на «{SIDE_TITLES[bac.bet]}»\n\n"
        f"Игрок: {format_hand(player) or '—'}  ({baccarat_score(player)})\n"
        f"Банкир: {format_hand(banker) or '—'}  ({baccarat_score(banker)})"
    )


def render_result(bac: BaccaratRound, settled: SettledRound) -> str:
    text = _table(bac, bac.player, bac.banker)
    text += f"\n\nПобедил: <b>{SIDE_TITLES[bac.winner]}</b>\n"
    if bac.is_push:
        text += "➖ Ничья — ставка возвращена\n"
    elif bac.payout > 0:
        text += f"✅ Выплата {bac.payout} ({format_signed(bac.net_profit)})\n"
    else:
        text += f"❌ Ставка проиграна ({format_signed(bac.net_profit)})\n"
    text += format_balance_line(settled.balance)
    if settled.payout_queued:
        text += "\n⏳ Выигрыш будет зачислен, как только касса станет доступна"
    return text


async def _replay(sent: Message, bac: BaccaratRound):
    """Показ раздачи по шагам (итог уже известен)."""
    player, banker = [], []
    for side, card in bac.steps:
        (player if side == BaccaratSide.PLAYER else banker).append(card)
        await asyncio.sleep(config.DEAL_DELAY)
        try:
            await sent.edit_text(_table(bac, player, banker))
        except TelegramBadRequest as e:
            logger.debug(f"Баккара: сообщение не обновлено: {e}")


@router.message(Command("baccarat"))
async def cmd_baccarat(message: Message):
    """/baccarat player|banker|tie сумма [кол-во]"""
    user = get_current_user(message)
    args = command_args(message)
    side = SIDE_ALIASES.get(args[0].lower()) if args else None
    unit = parse_int(args[1]) if len(args) > 1 else None
    count = parse_int(args[2]) if len(args) > 2 else 1
    if side is None or unit is None or count is None:
        await answer_temp(
            message,
            format_for(user, "формат: /baccarat player|banker|tie сумма [кол-во], например /baccarat banker 10"),
        )
        return

    try:
        bac, settled = await casino.play_baccarat(user.id, side, unit, count)
    except CasinoError as e:
        await answer_temp(message, format_for(user, format_casino_error(e)))
        return

    sent = await message.answer(format_for(user, _table(bac, [], [])))
    await _replay(sent, bac)

    history = await casino.history(user.id, GameKind.BACCARAT)
    text = render_result(bac, settled)
    if history:
        text += "\n\n" + "".join(SIDE_MARKS.get(r.outcome, "·") for r in reversed(history))
    try:
        await sent.edit_text(format_for(user, text))
    except TelegramBadRequest as e:
        logger.debug(f"Баккара: итог не показан: {e}")
    asyncio.create_task(delete_message_after(sent, config.MESSAGE_DELETE_TIMEOUT))
