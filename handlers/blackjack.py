"""
Blackjack 21: /blackjack сумма [кол-во], затем кнопки «Ещё» и «Хватит».
Ставка списывается до раздачи; раздача показывается по карте с паузой DEAL_DELAY.
"""

import asyncio
import logging
from typing import Optional

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from config import config
from errors import CasinoError
from games.blackjack import BlackjackOutcome, BlackjackRound
from games.cards import blackjack_hand_value, format_hand
from services.casino import SettledRound, casino
from utils import (
    answer_temp,
    command_args,
    format_balance_line,
    format_casino_error,
    format_for,
    format_signed,
    get_current_user,
    parse_int,
    pulse,
    UserIdentity,
)

router = Router()
logger = logging.getLogger(__name__)

HIDDEN_CARD = "🂠"

OUTCOME_TEXT = {
    BlackjackOutcome.PLAYER_BLACKJACK: "🎉 <b>Блэкджек!</b>",
    BlackjackOutcome.PLAYER_WIN: "✅ <b>Ты выиграл!</b>",
    BlackjackOutcome.DEALER_WIN: "❌ <b>Дилер выиграл</b>",
    BlackjackOutcome.PUSH: "➖ <b>Ничья</b>, ставка возвращена",
}


def _keyboard(user_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="🃏 Ещё", callback_data=f"bj_hit_{user_id}"),
        InlineKeyboardButton(text="✋ Хватит", callback_data=f"bj_stand_{user_id}"),
    ]])


def _hand_line(title: str, cards, hide_second: bool = False) -> str:
    if not cards:
        return f"{title}: —"
    if hide_second and len(cards) >= 2:
        shown = [cards[0]]
        return f"{title}: {format_hand(shown)} {HIDDEN_CARD}  ({blackjack_hand_value(shown).total})"
    return f"{title}: {format_hand(cards)}  ({blackjack_hand_value(cards).total})"


def render_table(bj: BlackjackRound, player=None, dealer=None, hide_dealer: bool = True) -> str:
    player = bj.player if player is None else player
    dealer = bj.dealer if dealer is None else dealer
    return (
        f"🃏 <b>BLACKJACK 21</b> — ставка {bj.stake}\n\n"
        f"{_hand_line('Дилер', dealer, hide_second=hide_dealer)}\n"
        f"{_hand_line('Ты', player)}"
    )


def render_result(bj: BlackjackRound, settled: SettledRound) -> str:
    text = render_table(bj, hide_dealer=False)
    text += f"\n\n{OUTCOME_TEXT[bj.outcome]}\n"
    text += f"Выплата: {bj.payout} ({format_signed(bj.net_profit)})\n"
    text += format_balance_line(settled.balance)
    if settled.payout_queued:
        text += "\n⏳ Выигрыш будет зачислен, как только касса станет доступна"
    return text


async def _edit(message: Message, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None):
    try:
        await message.edit_text(text, reply_markup=reply_markup)
    except TelegramBadRequest as e:
        logger.debug(f"Blackjack: сообщение не обновлено: {e}")


async def _replay_deal(sent: Message, bj: BlackjackRound):
    """Показ раздачи по карте: игрок, дилер, игрок, дилер. Итог уже известен."""
    for step in range(1, 5):
        player = bj.player[: (step + 1) // 2]
        dealer = bj.dealer[: step // 2]
        await asyncio.sleep(config.DEAL_DELAY)
        await _edit(sent, render_table(bj, player, dealer, hide_dealer=step == 4))


async def _replay_dealer(message: Message, bj: BlackjackRound):
    """Добор дилера по карте."""
    for count in range(2, len(bj.dealer) + 1):
        await asyncio.sleep(config.DEAL_DELAY)
        await _edit(message, render_table(bj, dealer=bj.dealer[:count], hide_dealer=False))


@router.message(Command("blackjack", "bj"))
async def cmd_blackjack(message: Message):
    """/blackjack сумма [кол-во]"""
    user = get_current_user(message)
    args = command_args(message)
    unit = parse_int(args[0]) if args else None
    count = parse_int(args[1]) if len(args) > 1 else 1
    if unit is None or count is None:
        await answer_temp(message, format_for(user, "формат: /blackjack сумма [кол-во], например /blackjack 10"))
        return

    try:
        bj, settled = await casino.start_blackjack(user.id, unit, count)
    except CasinoError as e:
        await answer_temp(message, format_for(user, format_casino_error(e)))
        return

    sent = await message.answer(format_for(user, render_table(bj, [], [])))
    await _replay_deal(sent, bj)
    if settled is not None:
        await _edit(sent, format_for(user, render_result(bj, settled)))
    else:
        await _edit(sent, format_for(user, render_table(bj)), reply_markup=_keyboard(user.id))
    logger.info(f"Blackjack: {user.id} ставка {bj.stake}")


def _owner(callback: CallbackQuery) -> Optional[int]:
    try:
        return int(callback.data.split("_")[-1])
    except (ValueError, IndexError):
        return None


async def _check_owner(callback: CallbackQuery) -> Optional[UserIdentity]:
    user = get_current_user(callback)
    owner = _owner(callback)
    if owner is None:
        await callback.answer("Ошибка", show_alert=True)
        return None
    if user.id != owner:
        await callback.answer("Не жми на чужое!", show_alert=True)
        return None
    return user


@router.callback_query(F.data.startswith("bj_hit_"))
async def cb_blackjack_hit(callback: CallbackQuery):
    """Ещё: взять карту"""
    user = await _check_owner(callback)
    if user is None:
        return
    try:
        bj, card, settled = await casino.blackjack_hit(user.id)
    except CasinoError as e:
        await callback.answer(format_casino_error(e), show_alert=True)
        return

    await pulse(callback, f"{card}")
    if settled is not None:
        await _edit(callback.message, format_for(user, render_result(bj, settled)))
    else:
        await _edit(callback.message, format_for(user, render_table(bj)), reply_markup=_keyboard(user.id))


@router.callback_query(F.data.startswith("bj_stand_"))
async def cb_blackjack_stand(callback: CallbackQuery):
    """Хватит: ход дилера и расчёт"""
    user = await _check_owner(callback)
    if user is None:
        return
    try:
        bj, settled = await casino.blackjack_stand(user.id)
    except CasinoError as e:
        await callback.answer(format_casino_error(e), show_alert=True)
        return

    await pulse(callback)
    await _replay_dealer(callback.message, bj)
    await _edit(callback.message, format_for(user, render_result(bj, settled)))


