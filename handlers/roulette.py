"""
Счастливое число (рулетка 0–36)
/bet тип [значение] фишка [кол-во], /bets, /clearbets, /spin
"""

import asyncio
import logging

from aiogram import Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import Message

from config import config
from errors import CasinoError
from games.roulette import BetKind, RouletteColor, SpinResult
from services.casino import SettledRound, casino
from utils import (
    answer_temp,
    command_args,
    delete_message_after,
    format_balance_line,
    format_casino_error,
    format_coins,
    format_for,
    format_signed,
    get_current_user,
    parse_int,
)

router = Router()
logger = logging.getLogger(__name__)

# Ставки, которым нужно значение: число, цвет, дюжина
_VALUE_KINDS = {BetKind.NUMBER, BetKind.COLOR, BetKind.DOZEN}

KIND_ALIASES = {
    "number": BetKind.NUMBER,
    "n": BetKind.NUMBER,
    "число": BetKind.NUMBER,
    "color": BetKind.COLOR,
    "цвет": BetKind.COLOR,
    "odd": BetKind.ODD,
    "нечет": BetKind.ODD,
    "even": BetKind.EVEN,
    "чет": BetKind.EVEN,
    "low": BetKind.LOW,
    "high": BetKind.HIGH,
    "dozen": BetKind.DOZEN,
    "дюжина": BetKind.DOZEN,
}

COLOR_ALIASES = {
    "red": "red",
    "красное": "red",
    "black": "black",
    "чёрное": "black",
    "черное": "black",
}

COLOR_EMOJI = {
    RouletteColor.RED: "🔴",
    RouletteColor.BLACK: "⚫",
    RouletteColor.GREEN: "🟢",
}

USAGE = (
    "формат: /bet тип [значение] фишка [кол-во]\n"
    "Примеры: /bet number 17 10 | /bet color red 25 | /bet odd 5 | /bet dozen 2 10\n"
    f"Фишки: {', '.join(str(c) for c in config.ROULETTE_CHIPS)}"
)


def _bets_text(user_id: int) -> str:
    bets = casino.roulette_bets(user_id)
    if not bets:
        return "на столе пусто. Ставка: /bet"
    lines = ["🎡 <b>Ставки на столе</b>"]
    lines.extend(f"• {b.label()}: {format_coins(b.amount)}" for b in bets)
    lines.append(f"Всего: {format_coins(sum(b.amount for b in bets))}. Крутить: /spin")
    return "\n".join(lines)


def render_spin(spin: SpinResult, settled: SettledRound) -> str:
    lines = [f"🎡 Выпало: <b>{spin.number}</b> {COLOR_EMOJI[spin.color]}", ""]
    for bet in spin.bets:
        win = spin.wins.get(bet.key, 0)
        mark = f"✅ +{win}" if win else "❌"
        lines.append(f"{bet.label()} ({bet.amount}): {mark}")
    lines.append("")
    lines.append(f"Итог: {format_signed(spin.net)}")
    lines.append(format_balance_line(settled.balance))
    if settled.payout_queued:
        lines.append("⏳ Выигрыш будет зачислен, как только касса станет доступна")
    return "\n".join(lines)


@router.message(Command("bet"))
async def cmd_bet(message: Message):
    """/bet тип [значение] фишка [кол-во]"""
    user = get_current_user(message)
    args = command_args(message)
    kind = KIND_ALIASES.get(args[0].lower()) if args else None
    if kind is None:
        await answer_temp(message, format_for(user, USAGE))
        return

    rest = args[1:]
    value = None
    if kind in _VALUE_KINDS:
        if not rest:
            await answer_temp(message, format_for(user, USAGE))
            return
        value = rest[0].lower()
        if kind == BetKind.COLOR:
            value = COLOR_ALIASES.get(value, value)
        rest = rest[1:]

    chip = parse_int(rest[0]) if rest else None
    count = parse_int(rest[1]) if len(rest) > 1 else 1
    if chip is None or count is None:
        await answer_temp(message, format_for(user, USAGE))
        return

    try:
        bet = await casino.place_roulette_bet(user.id, kind, value, chip, count)
    except CasinoError as e:
        await answer_temp(message, format_for(user, format_casino_error(e)))
        return

    logger.info(f"Рулетка: {user.id} ставка {bet.label()} = {bet.amount}")
    await answer_temp(message, format_for(user, f"ставка принята: {bet.label()} — {format_coins(bet.amount)}\n\n" + _bets_text(user.id)))


@router.message(Command("bets"))
async def cmd_bets(message: Message):
    user = get_current_user(message)
    text = _bets_text(user.id)
    numbers = await casino.recent_numbers(user.id)
    if numbers:
        text += "\n\nПоследние числа: " + " ".join(str(n) for n in numbers)
    await answer_temp(message, format_for(user, text))


@router.message(Command("clearbets"))
async def cmd_clearbets(message: Message):
    user = get_current_user(message)
    try:
        total = casino.clear_roulette_bets(user.id)
    except CasinoError as e:
        await answer_temp(message, format_for(user, format_casino_error(e)))
        return
    await answer_temp(message, format_for(user, f"ставки сняты ({format_coins(total)})" if total else "на столе и так пусто"))


@router.message(Command("spin"))
async def cmd_spin(message: Message):
    """/spin — списываются все ставки, колесо крутится, выигрыши зачисляются"""
    user = get_current_user(message)
    try:
        spin, settled = await casino.spin_roulette(user.id)
    except CasinoError as e:
        await answer_temp(message, format_for(user, format_casino_error(e)))
        return

    sent = await message.answer(format_for(user, "🎡 Колесо крутится..."))
    await asyncio.sleep(config.SPIN_DELAY)
    try:
        await sent.edit_text(format_for(user, render_spin(spin, settled)))
    except TelegramBadRequest as e:
        logger.debug(f"Рулетка: итог не показан: {e}")
    asyncio.create_task(delete_message_after(sent, config.MESSAGE_DELETE_TIMEOUT))
