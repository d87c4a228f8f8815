"""
Сервис ежемесячной лотереи
Бесплатный билет раз в месяц, дополнительные билеты за коины, розыгрыш победителя админом
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite

from config import config
from errors import InvalidAction, LedgerUnavailable
from games.constants import GameKind, TransactionKind
from games.lottery import generate_ticket_code, lottery_period, pick_winner
from games.rng import GameRandom, game_random
from games.validator import Wager, ensure_valid
from services.ledger import LedgerGateway, ledger

logger = logging.getLogger(__name__)

# Сколько раз пробовать новый код, если сгенерированный уже занят
_CODE_ATTEMPTS = 5


class LotteryService:
    """Билеты и розыгрыши"""

    def __init__(
        self,
        ledger_gateway: LedgerGateway = None,
        rng: GameRandom = None,
        ticket_price: int = None,
        code_length: int = None,
    ):
        self.ledger = ledger_gateway or ledger
        self.rng = rng or game_random
        self.ticket_price = ticket_price if ticket_price is not None else config.LOTTERY_EXTRA_TICKET_PRICE
        self.code_length = code_length or config.LOTTERY_TICKET_CODE_LENGTH

    @property
    def store(self):
        return self.ledger.store

    async def tickets(self, user_id: int, when: Optional[datetime] = None) -> List[Dict[str, Any]]:
        return await self.store.get_user_tickets(user_id, lottery_period(when))

    async def _issue_ticket(self, user_id: int, period: str, is_free: bool) -> Dict[str, Any]:
        for attempt in range(1, _CODE_ATTEMPTS + 1):
            code = generate_ticket_code(self.code_length, self.rng)
            try:
                return await self.store.create_lottery_ticket(user_id, code, period, is_free=is_free)
            except aiosqlite.IntegrityError:
                logger.warning(f"Код билета {code} уже занят (попытка {attempt})")
        raise RuntimeError("Не удалось подобрать свободный код билета")

    async def claim_monthly_ticket(self, user_id: int, when: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Бесплатный билет текущего месяца

        Raises:
            InvalidAction: бесплатный билет в этом месяце уже получен
        """
        period = lottery_period(when)
        tickets = await self.store.get_user_tickets(user_id, period)
        if any(t["is_free"] for t in tickets):
            raise InvalidAction("Бесплатный билет в этом месяце уже получен")
        ticket = await self._issue_ticket(user_id, period, is_free=True)
        logger.info(f"Лотерея: {user_id} получил бесплатный билет {ticket['ticket_code']} ({period})")
        return ticket

    async def buy_extra_ticket(self, user_id: int, when: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Дополнительный билет за коины
        Сначала списание, потом билет. Если билет не записался — цена возвращается.
        """
        reading = await self.ledger.get_balance(user_id)
        if reading.stale:
            raise LedgerUnavailable("Баланс недоступен, покупка отменена")
        ensure_valid(Wager(unit=self.ticket_price), reading.amount, 1, 1)

        purchase_id = uuid.uuid4().hex[:12]
        await self.ledger.debit(
            user_id,
            self.ticket_price,
            "Покупка лотерейного билета",
            f"{GameKind.LOTTERY.value}:{purchase_id}:stake",
            kind=TransactionKind.SPEND,
        )
        period = lottery_period(when)
        try:
            ticket = await self._issue_ticket(user_id, period, is_free=False)
        except (aiosqlite.Error, LedgerUnavailable, RuntimeError) as e:
            logger.error(f"Лотерея: билет для {user_id} не записан ({e}), возврат {self.ticket_price}")
            await self.ledger.credit(
                user_id,
                self.ticket_price,
                "Возврат за лотерейный билет",
                f"{GameKind.LOTTERY.value}:{purchase_id}:refund",
                kind=TransactionKind.EARN,
            )
            raise
        logger.info(f"Лотерея: {user_id} купил билет {ticket['ticket_code']} ({period})")
        return ticket

    async def draw_monthly_winner(
        self,
        prize: str = "Главный приз месяца",
        when: Optional[datetime] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Розыгрыш месяца: каждый билет — равный шанс

        Returns:
            Победитель или None, если билетов нет

        Raises:
            InvalidAction: месяц уже разыгран
        """
        period = lottery_period(when)
        if await self.store.get_lottery_winner(period):
            raise InvalidAction(f"Розыгрыш {period} уже проведён")
        tickets = await self.store.get_period_tickets(period)
        code = pick_winner([t["ticket_code"] for t in tickets], self.rng)
        if code is None:
            logger.info(f"Лотерея: за {period} нет билетов")
            return None
        owner = next(t["user_id"] for t in tickets if t["ticket_code"] == code)
        winner = await self.store.add_lottery_winner(code, prize, period, owner)
        logger.info(f"Лотерея: победитель {period} — билет {code} (user {owner})")
        return winner

    async def winners(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self.store.get_lottery_winners(limit)


# Глобальный экземпляр лотереи
lottery = LotteryService()
