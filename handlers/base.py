"""
Duna Casino — базовые команды: /start (в т.ч. ref_КОД), /help, /balance, /history, /transactions
"""

import logging
from datetime import datetime

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from config import config
from errors import LedgerUnavailable
from games.constants import GAME_ALIASES, GAME_TITLES, GameKind
from handlers.referral import redeem_code
from services.casino import HISTORY_GAMES, casino
from services.ledger import ledger
from utils import (
    answer_temp,
    command_args,
    format_balance_line,
    format_coins,
    format_for,
    format_signed,
    get_current_user,
    LEDGER_UNAVAILABLE_PHRASE,
)

# Создаем роутер для базовых команд
router = Router()

logger = logging.getLogger(__name__)

TRANSACTIONS_LIMIT = 10

_KIND_LABELS = {
    "earn": "выигрыш",
    "spend": "покупка",
    "bonus": "бонус",
    "stake": "ставка",
}


@router.message(Command("start"))
async def cmd_start(message: Message):
    """
    /start — приветствие и краткая навигация к /help
    /start ref_КОД — то же плюс активация кода пригласившего друга
    """
    user = get_current_user(message)
    text = (
        "👋 Добро пожаловать в <b>Duna Casino</b>!\n\n"
        f"На старте у тебя {format_coins(config.STARTING_BALANCE)} — приветственный бонус.\n"
        "• <b>/help</b> — все игры и команды\n"
        "• <b>/balance</b> — твой баланс\n"
        "• <b>/ref</b> — пригласи друга, получите бонус оба\n\n"
        "Удачи за столами 🎰"
    )
    args = command_args(message)
    if args and args[0].startswith("ref_"):
        text += "\n\n" + await redeem_code(user.id, args[0][len("ref_"):])
    await answer_temp(message, format_for(user, text))
    logger.info(f"Пользователь {user.id} использовал /start")


@router.message(Command("help"))
async def cmd_help(message: Message):
    """/help — игры, ставки и команды"""
    user = get_current_user(message)
    bets = ", ".join(str(x) for x in config.BET_AMOUNT_OPTIONS)
    counts = ", ".join(str(x) for x in config.BET_COUNT_OPTIONS)
    chips = ", ".join(str(x) for x in config.ROULETTE_CHIPS)

    help_text = format_for(user, "🎰 <b>Duna Casino</b>\n\n")
    help_text += "📋 <b>БАЗОВЫЕ КОМАНДЫ</b>\n"
    help_text += "/balance — баланс | /history [игра] — последние раунды | /transactions — журнал\n\n"
    help_text += "🃏 <b>BLACKJACK 21</b>\n"
    help_text += "/blackjack сумма [кол-во] — раздача, дальше кнопки «Ещё» и «Хватит».\n"
    help_text += "Блэкджек x2.5, победа x2, ничья — возврат ставки. Дилер добирает до 17.\n\n"
    help_text += "🎴 <b>БАККАРА</b>\n"
    help_text += "/baccarat player|banker|tie сумма [кол-во]\n"
    help_text += "Игрок x2, банкир x1.95, ничья x9. При ничьей ставка на игрока/банкира возвращается.\n\n"
    help_text += "🎡 <b>СЧАСТЛИВОЕ ЧИСЛО</b> (рулетка 0–36)\n"
    help_text += "/bet number 17 фишка | /bet color red фишка | /bet odd|even|low|high фишка | /bet dozen 2 фишка\n"
    help_text += "/bets — ставки на столе | /clearbets — снять | /spin — крутить\n"
    help_text += f"Число x35, дюжина x3, остальное x2. Фишки: {chips}\n\n"
    help_text += "🎲 <b>ТРИ КОСТИ</b>\n"
    help_text += "/dice odd|even|over10|under10 сумма [кол-во] — всё x2 (under10 — сумма до 10 включительно)\n\n"
    help_text += "🎟 <b>ЛОТЕРЕЯ</b>\n"
    help_text += f"/lottery — бесплатный билет раз в месяц | /buyticket — ещё билет за {format_coins(config.LOTTERY_EXTRA_TICKET_PRICE)}\n"
    help_text += "/winners — победители розыгрышей\n\n"
    help_text += "🤝 <b>ДРУЗЬЯ</b>\n"
    help_text += f"/ref — твой код | /ref КОД — код друга, обоим по {format_coins(config.REFERRAL_BONUS)}\n"
    help_text += "/friends — приглашённые и лучшие пригласившие\n\n"
    help_text += f"📌 Ставки: {bets}; количество: {counts}. Минимальная ставка — {format_coins(config.MIN_STAKE)}."

    await answer_temp(message, help_text)
    logger.info(f"Пользователь {user.id} использовал /help")


@router.message(Command("balance"))
async def cmd_balance(message: Message):
    """
    /balance — баланс. Если касса недоступна — последнее известное значение с пометкой.
    """
    user = get_current_user(message)
    reading = await ledger.get_balance(user.id)
    text = format_for(user, format_balance_line(reading.amount, reading.stale, reading.pending_credit))
    await answer_temp(message, text)


def _format_round(result) -> str:
    when = datetime.fromtimestamp(result.timestamp).strftime("%d.%m %H:%M")
    mark = "✅" if result.net_profit > 0 else ("➖" if result.net_profit == 0 else "❌")
    selection = f" [{result.selection}]" if result.selection else ""
    return (
        f"{mark} {when} {result.outcome}{selection}: ставка {result.stake}, "
        f"выплата {result.payout} ({format_signed(result.net_profit)})"
    )


@router.message(Command("history"))
async def cmd_history(message: Message):
    """/history [игра] — последние раунды (по одной игре или по всем)"""
    user = get_current_user(message)
    args = command_args(message)

    if args:
        game = GAME_ALIASES.get(args[0].lower())
        if game is None:
            names = ", ".join(sorted(GAME_ALIASES))
            await answer_temp(message, format_for(user, f"не знаю такую игру. Доступно: {names}"))
            return
        games = (game,)
    else:
        games = HISTORY_GAMES

    lines = ["📜 <b>История раундов</b>"]
    for game in games:
        limit = None if args else 5
        rounds = await casino.history(user.id, game, limit)
        lines.append("")
        lines.append(f"<b>{GAME_TITLES[game]}</b>")
        if not rounds:
            lines.append("пока пусто")
            continue
        lines.extend(_format_round(r) for r in rounds)
        if game == GameKind.ROULETTE:
            numbers = await casino.recent_numbers(user.id)
            if numbers:
                lines.append("Последние числа: " + " ".join(str(n) for n in numbers))

    await answer_temp(message, format_for(user, "\n".join(lines)))


@router.message(Command("transactions"))
async def cmd_transactions(message: Message):
    """/transactions — последние записи журнала"""
    user = get_current_user(message)
    try:
        transactions = await ledger.transactions(user.id, TRANSACTIONS_LIMIT)
    except LedgerUnavailable:
        await answer_temp(message, format_for(user, LEDGER_UNAVAILABLE_PHRASE))
        return

    if not transactions:
        await answer_temp(message, format_for(user, "журнал пуст"))
        return

    lines = ["🧾 <b>Последние транзакции</b>", ""]
    for tx in transactions:
        when = datetime.fromtimestamp(tx.created_at).strftime("%d.%m %H:%M")
        label = _KIND_LABELS.get(tx.kind.value, tx.kind.value)
        lines.append(f"{when} {format_signed(tx.amount)} — {label}: {tx.description} → {tx.balance_after}")
    await answer_temp(message, format_for(user, "\n".join(lines)))
