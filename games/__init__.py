"""
Модуль игр Duna Casino.
Централизованный RNG, правила столов, движки раундов.
"""

from games.rng import game_random, GameRandom
from games.constants import GameKind, TransactionKind
from games.rules import HouseRules

__all__ = ["game_random", "GameRandom", "GameKind", "TransactionKind", "HouseRules"]
