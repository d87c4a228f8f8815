"""
Ежемесячная лотерея: коды билетов и розыгрыш победителя.
"""

from datetime import datetime
from typing import Optional, Sequence

from games.rng import GameRandom, game_random

TICKET_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def generate_ticket_code(length: int = 8, rng: Optional[GameRandom] = None) -> str:
    rng = rng or game_random
    return "".join(rng.choice(TICKET_ALPHABET) for _ in range(length))


def format_ticket_code(code: str) -> str:
    """ABCD1234 -> ABCD-1234"""
    if len(code) == 8:
        return f"{code[:4]}-{code[4:]}"
    return code


def lottery_period(when: Optional[datetime] = None) -> str:
    """Розыгрыш идёт по календарным месяцам: '2026-10'."""
    when = when or datetime.now()
    return when.strftime("%Y-%m")


def pick_winner(ticket_codes: Sequence[str], rng: Optional[GameRandom] = None) -> Optional[str]:
    """Каждый билет — равный шанс. Больше билетов — выше шанс."""
    if not ticket_codes:
        return None
    return (rng or game_random).choice(ticket_codes)
