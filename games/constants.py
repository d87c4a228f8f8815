"""Константы игр: виды игр и типы транзакций."""

from enum import Enum


class GameKind(str, Enum):
    BLACKJACK = "blackjack"
    BACCARAT = "baccarat"
    ROULETTE = "roulette"
    THREE_DICE = "three_dice"
    LOTTERY = "lottery"


class TransactionKind(str, Enum):
    EARN = "earn"
    SPEND = "spend"
    BONUS = "bonus"
    STAKE = "stake"


# Названия игр для сообщений
GAME_TITLES = {
    GameKind.BLACKJACK: "Blackjack 21",
    GameKind.BACCARAT: "Баккара",
    GameKind.ROULETTE: "Счастливое число",
    GameKind.THREE_DICE: "Три кости",
    GameKind.LOTTERY: "Лотерея",
}

# Алиасы для /history <игра>
GAME_ALIASES = {
    "bj": GameKind.BLACKJACK,
    "blackjack": GameKind.BLACKJACK,
    "baccarat": GameKind.BACCARAT,
    "bac": GameKind.BACCARAT,
    "roulette": GameKind.ROULETTE,
    "lucky": GameKind.ROULETTE,
    "dice": GameKind.THREE_DICE,
    "three_dice": GameKind.THREE_DICE,
}
