"""
Оркестратор раундов Duna Casino

Порядок для каждой игры одинаковый:
проверка ставки -> списание ставки -> розыгрыш -> итог раунда -> начисление выплаты -> история.
Раздача начинается только после проведённого списания.
У пользователя одновременно идёт не больше одного раунда.
"""

import logging
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Tuple

import aiosqlite

from config import config
from errors import (
    ConcurrentRoundConflict,
    DeckExhausted,
    InvalidAction,
    LedgerUnavailable,
    RejectReason,
    ValidationError,
)
from games.baccarat import BaccaratRound, BaccaratSide
from games.blackjack import BlackjackRound
from games.cards import Deck, format_hand
from games.constants import GAME_TITLES, GameKind, TransactionKind
from games.history import RoundHistory, RoundResult
from games.rng import GameRandom, game_random
from games.roulette import BetKind, RouletteBet, RouletteTable, SpinResult
from games.rules import HouseRules, TableLimits
from games.three_dice import DiceBet, DiceRoll, dice_bet_wins, dice_payout, roll_dice
from games.validator import Wager, ensure_valid
from services.ledger import LedgerGateway, Transaction, evict_idle, ledger

logger = logging.getLogger(__name__)

HISTORY_GAMES = (GameKind.BLACKJACK, GameKind.BACCARAT, GameKind.ROULETTE, GameKind.THREE_DICE)


@dataclass(frozen=True)
class SettledRound:
    """Раунд после расчёта: итог, баланс после выплаты и была ли выплата отложена"""

    result: RoundResult
    balance: int
    payout_queued: bool = False


@dataclass
class _BlackjackSession:
    round: BlackjackRound
    round_id: str
    stake_tx: Transaction


def _new_round_id() -> str:
    return uuid.uuid4().hex[:12]


def _reference(game: GameKind, round_id: str, step: str) -> str:
    return f"{game.value}:{round_id}:{step}"


class CasinoService:
    """Раунды всех игр поверх кассы"""

    def __init__(
        self,
        ledger_gateway: LedgerGateway = None,
        rules: HouseRules = None,
        rng: GameRandom = None,
        deck_factory: Callable[[], Deck] = None,
        max_users: int = None,
    ):
        self.ledger = ledger_gateway or ledger
        self.rules = rules or HouseRules.from_config(config)
        self.rng = rng or game_random
        self.deck_factory = deck_factory or (lambda: Deck(rng=self.rng))
        self.max_users = max_users if max_users is not None else config.MAX_CACHED_USERS
        self._active: Dict[int, GameKind] = {}
        self._blackjack: Dict[int, _BlackjackSession] = {}
        self._histories: Dict[Tuple[int, GameKind], RoundHistory] = {}
        self._tables: Dict[int, RouletteTable] = {}
        self._numbers: Dict[int, Deque[int]] = {}
        self._seen: "OrderedDict[int, None]" = OrderedDict()

    @property
    def store(self):
        return self.ledger.store

    # ==================== ПАМЯТЬ ПО ПОЛЬЗОВАТЕЛЯМ ====================

    def _touch(self, user_id: int):
        """Отметить обращение; самые давние простаивающие пользователи выселяются из памяти."""
        self._seen[user_id] = None
        self._seen.move_to_end(user_id)
        evicted = evict_idle(
            self._seen,
            self.max_users,
            lambda uid: uid == user_id or not self._is_idle(uid),
        )
        for uid in evicted:
            self._forget(uid)

    def _is_idle(self, user_id: int) -> bool:
        table = self._tables.get(user_id)
        return (
            user_id not in self._active
            and user_id not in self._blackjack
            and not (table and table.total_staked)
        )

    def _forget(self, user_id: int):
        self._tables.pop(user_id, None)
        self._numbers.pop(user_id, None)
        for game in HISTORY_GAMES:
            self._histories.pop((user_id, game), None)

    def cached_users(self) -> int:
        return len(self._seen)

    # ==================== АКТИВНЫЙ РАУНД ====================

    def active_game(self, user_id: int) -> Optional[GameKind]:
        return self._active.get(user_id)

    def _claim(self, user_id: int, game: GameKind):
        active = self._active.get(user_id)
        if active is not None:
            raise ConcurrentRoundConflict(user_id, active.value)
        self._active[user_id] = game

    def _release(self, user_id: int):
        self._active.pop(user_id, None)

    # ==================== ОБЩИЕ ШАГИ ====================

    async def _stake(
        self,
        user_id: int,
        game: GameKind,
        round_id: str,
        wager: Wager,
        limits: TableLimits,
    ) -> Transaction:
        """Проверить ставку по свежему балансу и списать её."""
        reading = await self.ledger.get_balance(user_id)
        if reading.stale:
            raise LedgerUnavailable("Баланс недоступен, ставка не принята")
        ensure_valid(wager, reading.amount, limits.min_stake, limits.max_multiplier)
        await self._open_round(user_id, game, round_id, wager.total)
        try:
            return await self.ledger.debit(
                user_id,
                wager.total,
                f"Ставка: {GAME_TITLES[game]}",
                _reference(game, round_id, "stake"),
                kind=TransactionKind.STAKE,
            )
        except ValidationError:
            # Списание отклонено до изменения баланса; при сбое кассы запись остаётся до проверки при старте
            await self._close_round(round_id)
            raise

    async def _open_round(self, user_id: int, game: GameKind, round_id: str, stake: int):
        """Запись о раунде до списания: по ней ставка вернётся, если бот упадёт до расчёта."""
        try:
            await self.store.open_round(round_id, user_id, game.value, stake)
        except (aiosqlite.Error, OSError) as e:
            raise LedgerUnavailable(f"Раунд {round_id} не зарегистрирован: {e}") from e

    async def _close_round(self, round_id: str):
        try:
            await self.store.close_round(round_id)
        except (LedgerUnavailable, aiosqlite.Error, OSError) as e:
            logger.warning(f"Раунд {round_id} не снят с учёта, проверится при следующем запуске: {e}")

    async def _refund(self, user_id: int, game: GameKind, round_id: str, amount: int, error: Exception):
        logger.error(
            f"{GAME_TITLES[game]}: раунд {round_id} пользователя {user_id} прерван ({error}), возврат {amount}",
            exc_info=error,
        )
        await self.ledger.credit(
            user_id,
            amount,
            f"Возврат ставки: {GAME_TITLES[game]}",
            _reference(game, round_id, "refund"),
            kind=TransactionKind.EARN,
        )
        await self._close_round(round_id)

    async def _already_settled(self, game: GameKind, round_id: str) -> bool:
        """Раунд рассчитан: есть выплата, возврат (проведённые или в outbox) или запись в истории."""
        for step in ("payout", "refund"):
            reference = _reference(game, round_id, step)
            if await self.store.get_transaction(reference) is not None:
                return True
            if await self.ledger.outbox.has_reference(reference):
                return True
        return await self.store.has_game_round(round_id)

    async def recover_open_rounds(self) -> int:
        """
        Вернуть ставки раундов, прерванных перезапуском (например, раздача блэкджека,
        ждавшая «Ещё»/«Хватит»). Вызывается при старте, после проведения outbox.

        Returns:
            Сколько ставок возвращено
        """
        refunded = 0
        for item in await self.store.get_open_rounds():
            round_id = item["round_id"]
            user_id = item["user_id"]
            if user_id in self._active:
                continue
            game = GameKind(item["game"])
            stake_tx = await self.store.get_transaction(_reference(game, round_id, "stake"))
            if stake_tx is not None and not await self._already_settled(game, round_id):
                amount = -stake_tx["amount"]
                await self.ledger.credit(
                    user_id,
                    amount,
                    f"Возврат ставки: {GAME_TITLES[game]} (раунд прерван перезапуском)",
                    _reference(game, round_id, "refund"),
                    kind=TransactionKind.EARN,
                )
                refunded += 1
                logger.warning(
                    f"{GAME_TITLES[game]}: раунд {round_id} пользователя {user_id} не завершён, возврат {amount}"
                )
            await self._close_round(round_id)
        return refunded

    async def _settle(self, user_id: int, result: RoundResult, stake_tx: Transaction) -> SettledRound:
        """Начислить выплату (если есть) и записать раунд в историю."""
        balance = stake_tx.balance_after
        queued = False
        if result.payout > 0:
            receipt = await self.ledger.credit(
                user_id,
                result.payout,
                f"Выигрыш: {GAME_TITLES[result.game]}",
                _reference(result.game, result.round_id, "payout"),
                kind=TransactionKind.EARN,
            )
            if receipt.queued:
                queued = True
            else:
                balance = receipt.transaction.balance_after

        history = await self._load_history(user_id, result.game)
        history.add(result)
        await self._persist_round(user_id, result)
        await self._close_round(result.round_id)
        logger.info(
            f"{GAME_TITLES[result.game]}: {user_id} {result.outcome}, "
            f"ставка {result.stake}, выплата {result.payout}, баланс {balance}"
        )
        return SettledRound(result=result, balance=balance, payout_queued=queued)

    async def _persist_round(self, user_id: int, result: RoundResult):
        try:
            await self.store.log_game_round(user_id, result.model_dump(mode="json"))
        except (LedgerUnavailable, aiosqlite.Error, OSError) as e:
            logger.warning(f"История раунда {result.round_id} не сохранена: {e}")

    def _new_deck(self, deck: Optional[Deck]) -> Deck:
        return deck if deck is not None else self.deck_factory()

    # ==================== ИСТОРИЯ ====================

    def _history_limit(self, game: GameKind) -> int:
        return {
            GameKind.BLACKJACK: self.rules.blackjack.history_limit,
            GameKind.BACCARAT: self.rules.baccarat.history_limit,
            GameKind.ROULETTE: self.rules.roulette.history_limit,
            GameKind.THREE_DICE: self.rules.three_dice.history_limit,
        }[game]

    async def _load_history(self, user_id: int, game: GameKind) -> RoundHistory:
        """История из памяти; при первом обращении — восстановление из БД."""
        key = (user_id, game)
        history = self._histories.get(key)
        if history is not None:
            self._touch(user_id)
            return history

        limit = self._history_limit(game)
        items: List[RoundResult] = []
        try:
            rows = await self.store.get_recent_rounds(user_id, game.value, limit)
            items = [RoundResult(**row) for row in rows]
        except (LedgerUnavailable, aiosqlite.Error, OSError) as e:
            logger.warning(f"История {game.value} для {user_id} не восстановлена: {e}")

        history = RoundHistory(limit=limit, items=items)
        self._histories[key] = history
        if game == GameKind.ROULETTE and user_id not in self._numbers:
            numbers = [r.details["number"] for r in items if "number" in r.details]
            self._numbers[user_id] = deque(
                numbers[: self.rules.roulette.numbers_history],
                maxlen=self.rules.roulette.numbers_history,
            )
        self._touch(user_id)
        return history

    async def history(self, user_id: int, game: GameKind, limit: Optional[int] = None) -> List[RoundResult]:
        """Последние раунды игры, новые первыми. Для баккары по умолчанию показывается 15."""
        if limit is None and game == GameKind.BACCARAT:
            limit = self.rules.baccarat.history_display
        return (await self._load_history(user_id, game)).recent(limit)

    async def restore_history(self, user_id: int):
        for game in HISTORY_GAMES:
            await self._load_history(user_id, game)

    # ==================== BLACKJACK ====================

    async def start_blackjack(
        self,
        user_id: int,
        unit: int,
        count: int = 1,
        deck: Optional[Deck] = None,
    ) -> Tuple[BlackjackRound, Optional[SettledRound]]:
        """
        Ставка и раздача. Если сразу блэкджек — раунд уже рассчитан.

        Returns:
            (раунд, итог или None если ход игрока)
        """
        game = GameKind.BLACKJACK
        self._claim(user_id, game)
        round_id = _new_round_id()
        try:
            wager = Wager(unit=unit, multiplier=count)
            stake_tx = await self._stake(user_id, game, round_id, wager, self.rules.blackjack)
        except Exception:
            self._release(user_id)
            raise

        bj = BlackjackRound(wager.total, self.rules.blackjack, self._new_deck(deck))
        try:
            bj.deal()
        except DeckExhausted as e:
            self._release(user_id)
            await self._refund(user_id, game, round_id, wager.total, e)
            raise

        session = _BlackjackSession(round=bj, round_id=round_id, stake_tx=stake_tx)
        if bj.is_finished:
            return bj, await self._finish_blackjack(user_id, session)
        self._blackjack[user_id] = session
        return bj, None

    def blackjack_round(self, user_id: int) -> Optional[BlackjackRound]:
        session = self._blackjack.get(user_id)
        return session.round if session else None

    def _blackjack_session(self, user_id: int) -> _BlackjackSession:
        session = self._blackjack.get(user_id)
        if session is None:
            raise InvalidAction("Нет активной раздачи")
        return session

    async def blackjack_hit(self, user_id: int):
        """
        Взять карту

        Returns:
            (раунд, карта, итог или None если раунд продолжается)
        """
        session = self._blackjack_session(user_id)
        try:
            card = session.round.hit()
        except DeckExhausted as e:
            await self._abort_blackjack(user_id, session, e)
            raise
        if session.round.is_finished:
            return session.round, card, await self._finish_blackjack(user_id, session)
        return session.round, card, None

    async def blackjack_stand(self, user_id: int) -> Tuple[BlackjackRound, SettledRound]:
        session = self._blackjack_session(user_id)
        try:
            session.round.stand()
        except DeckExhausted as e:
            await self._abort_blackjack(user_id, session, e)
            raise
        return session.round, await self._finish_blackjack(user_id, session)

    async def _abort_blackjack(self, user_id: int, session: _BlackjackSession, error: Exception):
        self._blackjack.pop(user_id, None)
        self._release(user_id)
        await self._refund(user_id, GameKind.BLACKJACK, session.round_id, session.round.stake, error)

    async def _finish_blackjack(self, user_id: int, session: _BlackjackSession) -> SettledRound:
        bj = session.round
        self._blackjack.pop(user_id, None)
        try:
            result = RoundResult(
                round_id=session.round_id,
                game=GameKind.BLACKJACK,
                outcome=bj.outcome.value,
                stake=bj.stake,
                payout=bj.payout,
                scores={"player": bj.player_value.total, "dealer": bj.dealer_value.total},
                details={"player": format_hand(bj.player), "dealer": format_hand(bj.dealer)},
            )
            return await self._settle(user_id, result, session.stake_tx)
        finally:
            self._release(user_id)

    # ==================== BACCARAT ====================

    async def play_baccarat(
        self,
        user_id: int,
        side,
        unit: int,
        count: int = 1,
        deck: Optional[Deck] = None,
    ) -> Tuple[BaccaratRound, SettledRound]:
        """Раунд баккары целиком: ставка, раздача, выплата."""
        try:
            side = BaccaratSide(side)
        except ValueError:
            raise ValidationError(RejectReason.INVALID_SELECTION, f"сторона: {side!r}")

        game = GameKind.BACCARAT
        self._claim(user_id, game)
        round_id = _new_round_id()
        try:
            wager = Wager(unit=unit, multiplier=count, selection=side)
            stake_tx = await self._stake(user_id, game, round_id, wager, self.rules.baccarat)

            bac = BaccaratRound(wager.total, side, self.rules.baccarat, self._new_deck(deck))
            try:
                bac.play()
            except DeckExhausted as e:
                await self._refund(user_id, game, round_id, wager.total, e)
                raise

            result = RoundResult(
                round_id=round_id,
                game=game,
                outcome=bac.winner.value,
                selection=side.value,
                stake=bac.stake,
                payout=bac.payout,
                scores={"player": bac.player_score, "banker": bac.banker_score},
                details={"player": format_hand(bac.player), "banker": format_hand(bac.banker)},
            )
            return bac, await self._settle(user_id, result, stake_tx)
        finally:
            self._release(user_id)

    # ==================== ROULETTE ====================

    def _table(self, user_id: int) -> RouletteTable:
        table = self._tables.get(user_id)
        if table is None:
            table = RouletteTable(self.rules.roulette)
            self._tables[user_id] = table
        self._touch(user_id)
        return table

    def roulette_bets(self, user_id: int) -> List[RouletteBet]:
        return self._table(user_id).bets

    async def place_roulette_bet(self, user_id: int, kind, value, chip: int, count: int = 1) -> RouletteBet:
        """Поставить фишку (chip * count) на стол. Деньги списываются при спине."""
        active = self._active.get(user_id)
        if active is not None:
            raise ConcurrentRoundConflict(user_id, active.value)
        try:
            kind = BetKind(kind)
        except ValueError:
            raise ValidationError(RejectReason.INVALID_SELECTION, f"тип ставки: {kind!r}")
        if count < 1 or count > self.rules.roulette.max_multiplier:
            raise ValidationError(RejectReason.INVALID_MULTIPLIER, f"количество {count}")

        reading = await self.ledger.get_balance(user_id)
        if reading.stale:
            raise LedgerUnavailable("Баланс недоступен, ставка не принята")
        # Пока читали баланс, мог начаться спин или другой раунд
        active = self._active.get(user_id)
        if active is not None:
            raise ConcurrentRoundConflict(user_id, active.value)
        return self._table(user_id).place_bet(kind, value, chip * count, reading.amount)

    def clear_roulette_bets(self, user_id: int) -> int:
        """Снять все ставки. Returns: сколько было на столе."""
        if self._active.get(user_id) == GameKind.ROULETTE:
            raise ConcurrentRoundConflict(user_id, GameKind.ROULETTE.value)
        table = self._table(user_id)
        total = table.total_staked
        table.clear()
        return total

    async def recent_numbers(self, user_id: int) -> List[int]:
        await self._load_history(user_id, GameKind.ROULETTE)
        return list(self._numbers.get(user_id, ()))

    async def spin_roulette(self, user_id: int, number: Optional[int] = None) -> Tuple[SpinResult, SettledRound]:
        """
        Спин: списывается сумма всех ставок, затем начисляется сумма выигрышей.

        Args:
            number: выпавшее число (только для тестов), иначе случайное 0–36
        """
        game = GameKind.ROULETTE
        table = self._table(user_id)
        if not table.bets:
            raise ValidationError(RejectReason.NO_BETS)

        self._claim(user_id, game)
        # Спин разыгрывает только снятые сейчас ставки; при неудачном списании они возвращаются на стол
        staked = table.take()
        round_id = _new_round_id()
        try:
            try:
                wager = Wager(unit=staked.total_staked, multiplier=1)
                stake_tx = await self._stake(user_id, game, round_id, wager, self.rules.roulette)
            except Exception:
                table.restore(staked)
                raise

            spin = staked.resolve(number) if number is not None else staked.spin(self.rng)
            await self._load_history(user_id, game)
            self._numbers.setdefault(
                user_id, deque(maxlen=self.rules.roulette.numbers_history)
            ).appendleft(spin.number)

            result = RoundResult(
                round_id=round_id,
                game=game,
                outcome="win" if spin.net > 0 else "lose",
                selection=", ".join(b.label() for b in spin.bets),
                stake=spin.total_staked,
                payout=spin.total_return,
                scores={"number": spin.number},
                details={
                    "number": spin.number,
                    "color": spin.color.value,
                    "bets": [
                        {
                            "kind": b.kind.value,
                            "value": getattr(b.value, "value", b.value),
                            "amount": b.amount,
                            "win": spin.wins.get(b.key, 0),
                        }
                        for b in spin.bets
                    ],
                },
            )
            return spin, await self._settle(user_id, result, stake_tx)
        finally:
            self._release(user_id)

    # ==================== THREE DICE ====================

    async def roll_dice(
        self,
        user_id: int,
        bet,
        unit: int,
        count: int = 1,
        dice: Optional[Tuple[int, int, int]] = None,
    ) -> Tuple[DiceRoll, SettledRound]:
        """
        Бросок трёх костей

        Args:
            dice: заранее известный бросок (только для тестов)
        """
        try:
            bet = DiceBet(bet)
        except ValueError:
            raise ValidationError(RejectReason.INVALID_SELECTION, f"ставка: {bet!r}")

        game = GameKind.THREE_DICE
        rules = self.rules.three_dice
        self._claim(user_id, game)
        round_id = _new_round_id()
        try:
            wager = Wager(unit=unit, multiplier=count, selection=bet)
            stake_tx = await self._stake(user_id, game, round_id, wager, rules)

            if dice is not None:
                roll = DiceRoll(dice=tuple(dice), over_threshold=rules.over_threshold)
            else:
                roll = roll_dice(self.rng, rules)

            result = RoundResult(
                round_id=round_id,
                game=game,
                outcome="win" if dice_bet_wins(bet, roll) else "lose",
                selection=bet.value,
                stake=wager.total,
                payout=dice_payout(bet, roll, unit, count, rules),
                scores={"total": roll.total},
                details={"dice": list(roll.dice)},
            )
            return roll, await self._settle(user_id, result, stake_tx)
        finally:
            self._release(user_id)


# Глобальный экземпляр казино
casino = CasinoService()
