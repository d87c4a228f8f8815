"""
Реферальная программа Duna Casino
У каждого пользователя свой код. Приглашённый вводит чужой код один раз,
и оба получают бонус. Таблица лидеров по числу приглашённых.
"""

import logging
from typing import Any, Dict, List, Optional

import aiosqlite

from config import config
from errors import InvalidAction
from games.constants import TransactionKind
from games.lottery import generate_ticket_code
from games.rng import GameRandom, game_random
from services.ledger import CreditReceipt, LedgerGateway, ledger

logger = logging.getLogger(__name__)

_CODE_ATTEMPTS = 5


def referral_reference(invitee_id: int) -> str:
    return f"referral:{invitee_id}"


def inviter_reference(invitee_id: int) -> str:
    return f"referral:{invitee_id}:inviter"


class ReferralService:
    """Коды приглашений, активация и лидеры"""

    def __init__(
        self,
        ledger_gateway: LedgerGateway = None,
        rng: GameRandom = None,
        bonus: int = None,
        code_length: int = None,
    ):
        self.ledger = ledger_gateway or ledger
        self.rng = rng or game_random
        self.bonus = bonus if bonus is not None else config.REFERRAL_BONUS
        self.code_length = code_length or config.REFERRAL_CODE_LENGTH

    @property
    def store(self):
        return self.ledger.store

    async def ensure_code(self, user_id: int) -> str:
        """Код пользователя; при первом обращении выдаётся новый"""
        code = await self.store.get_referral_code(user_id)
        if code:
            return code
        for attempt in range(1, _CODE_ATTEMPTS + 1):
            code = generate_ticket_code(self.code_length, self.rng)
            try:
                await self.store.create_referral_code(user_id, code)
            except aiosqlite.IntegrityError:
                # Занят код или код уже выдан параллельным запросом
                existing = await self.store.get_referral_code(user_id)
                if existing:
                    return existing
                logger.warning(f"Реферальный код {code} уже занят (попытка {attempt})")
                continue
            logger.info(f"Рефералы: пользователю {user_id} выдан код {code}")
            return code
        raise RuntimeError("Не удалось подобрать свободный реферальный код")

    async def redeem(self, invitee_id: int, code: str) -> CreditReceipt:
        """
        Активировать чужой код

        Returns:
            Квитанция начисления бонуса приглашённому

        Raises:
            InvalidAction: код не найден, свой код или код уже активирован
        """
        code = code.strip().upper().replace("-", "")
        referrer_id = await self.store.get_user_by_referral_code(code)
        if referrer_id is None:
            raise InvalidAction("Такого кода нет")
        if referrer_id == invitee_id:
            raise InvalidAction("Свой код активировать нельзя")
        if not await self.store.add_referral(invitee_id, referrer_id, code):
            raise InvalidAction("Код приглашения уже активирован")

        logger.info(f"Рефералы: {invitee_id} приглашён пользователем {referrer_id} (код {code})")
        receipt = await self.ledger.credit(
            invitee_id,
            self.bonus,
            "Бонус за приглашение (приглашённый)",
            referral_reference(invitee_id),
            kind=TransactionKind.BONUS,
        )
        await self.ledger.credit(
            referrer_id,
            self.bonus,
            "Бонус за приглашение друга",
            inviter_reference(invitee_id),
            kind=TransactionKind.BONUS,
        )
        return receipt

    async def referrer(self, invitee_id: int) -> Optional[int]:
        return await self.store.get_referrer(invitee_id)

    async def invited(self, user_id: int) -> List[Dict[str, Any]]:
        return await self.store.get_invitees(user_id)

    async def leaders(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self.store.get_top_referrers(limit)


# Глобальный экземпляр реферальной программы
referrals = ReferralService()
