"""
Главный файл запуска бота Duna Casino
Инициализация, регистрация роутеров и middleware, фоновые повторы outbox, polling или webhook
"""

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.types import ErrorEvent

from config import config
from db import init_db, close_db
from errors import CasinoError
from middlewares import LoggingMiddleware, UpdateUserDataMiddleware
from services.casino import casino
from services.ledger import ledger
from services.outbox import outbox
from utils import format_casino_error


def setup_logging():
    """
    Настройка системы логирования
    Логи пишутся в файл и в консоль. При read-only ФС не падаем.
    """
    try:
        config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logging.warning("Не удалось создать директорию логов (возможно read-only): %s", e)

    # Настройка формата логов
    log_format = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Настройка root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.LOG_LEVEL))

    # Очистка существующих handlers
    root_logger.handlers.clear()

    try:
        file_handler = RotatingFileHandler(
            filename=str(config.LOG_FILE),
            maxBytes=config.LOG_MAX_SIZE_MB * 1024 * 1024,
            backupCount=config.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setLevel(getattr(logging, config.LOG_LEVEL))
        file_handler.setFormatter(log_format)
        root_logger.addHandler(file_handler)
    except OSError as e:
        logging.warning("Не удалось открыть лог-файл (возможно read-only): %s", e)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(log_format)
    root_logger.addHandler(console_handler)

    # Настройка логирования для aiogram (уменьшаем шум)
    logging.getLogger("aiogram").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Логирование настроено успешно")
    logger.info(f"Уровень логирования: {config.LOG_LEVEL}")
    logger.info(f"Логи пишутся в: {config.LOG_FILE}")

    return logger


def register_routers(dp: Dispatcher):
    """
    Регистрация всех роутеров из handlers

    Args:
        dp: Экземпляр Dispatcher
    """
    from handlers import admin, baccarat, base, blackjack, dice, lottery, referral, roulette

    logger = logging.getLogger(__name__)
    for module in (base, blackjack, baccarat, roulette, dice, lottery, referral, admin):
        dp.include_router(module.router)
        logger.info(f"Роутер {module.__name__} зарегистрирован")
    logger.info("Регистрация роутеров завершена")


def register_middlewares(dp: Dispatcher):
    """
    Регистрация всех middleware

    Args:
        dp: Экземпляр Dispatcher
    """
    logger = logging.getLogger(__name__)

    # 1. UpdateUserDataMiddleware - первый, создает пользователей (с приветственным бонусом)
    dp.message.middleware(UpdateUserDataMiddleware())
    dp.callback_query.middleware(UpdateUserDataMiddleware())
    logger.info("UpdateUserDataMiddleware зарегистрирован")

    # 2. LoggingMiddleware - логирует все действия
    dp.message.middleware(LoggingMiddleware())
    dp.callback_query.middleware(LoggingMiddleware())
    logger.info("LoggingMiddleware зарегистрирован")


async def on_startup(bot: Bot):
    """
    Функция, вызываемая при старте бота

    Args:
        bot: Экземпляр бота
    """
    logger = logging.getLogger(__name__)

    if config.use_webhook:
        await bot.set_webhook(config.WEBHOOK_URL)
        logger.info("Webhook установлен: %s", config.WEBHOOK_URL)

    bot_info = await bot.get_me()
    logger.info("=" * 50)
    logger.info(f"Бот запущен: @{bot_info.username}")
    logger.info(f"ID бота: {bot_info.id}")
    logger.info("=" * 50)

    # Сначала проводим то, что накопилось в outbox до перезапуска
    pending = await outbox.count()
    if pending:
        logger.warning(f"В outbox {pending} непроведённых начислений, проводим")
        await ledger.replay_outbox()

    # Раунды, прерванные перезапуском: ставка возвращается
    refunded = await casino.recover_open_rounds()
    if refunded:
        logger.warning(f"Возвращены ставки незавершённых раундов: {refunded}")

    await ledger.start_retry_task()
    logger.info("Бот готов к работе!")


async def on_shutdown(bot: Bot):
    """
    Функция, вызываемая при остановке бота

    Args:
        bot: Экземпляр бота
    """
    logger = logging.getLogger(__name__)
    logger.info("Остановка бота...")

    if config.use_webhook:
        try:
            await bot.delete_webhook(drop_pending_updates=False)
            logger.info("Webhook снят")
        except TelegramAPIError as e:
            logger.warning("delete_webhook: %s", e)

    await ledger.stop_retry_task()
    pending = await outbox.count()
    if pending:
        logger.warning(f"В outbox остаются {pending} начислений, будут проведены при следующем запуске")
    logger.info("Бот остановлен")


async def on_error(event: ErrorEvent):
    """
    Последний рубеж: пользователь всегда получает ответ.
    Ошибки казино, не пойманные в хендлере, переводятся в понятное сообщение.
    """
    logger = logging.getLogger(__name__)
    exc = event.exception
    if isinstance(exc, CasinoError):
        logger.warning("Необработанная ошибка казино: %s (%s)", exc, type(exc).__name__)
        text = format_casino_error(exc)
    else:
        logger.error("Ошибка при обработке: %s | тип: %s", exc, type(exc).__name__, exc_info=exc)
        text = "Произошла ошибка. Попробуй позже или /help."

    update = event.update
    try:
        if update.message:
            await update.message.answer(text)
        elif update.callback_query:
            await update.callback_query.answer(text, show_alert=True)
    except TelegramAPIError as e:
        logger.warning("Не удалось сообщить об ошибке: %s", e)


async def run_webhook(dp: Dispatcher, bot: Bot):
    """Webhook-сервер на aiohttp (production)"""
    from aiohttp import web
    from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application

    logger = logging.getLogger(__name__)
    app = web.Application()

    async def health(_):
        return web.Response(text="ok")

    app.router.add_get("/", health)
    app.router.add_get("/health", health)
    SimpleRequestHandler(dispatcher=dp, bot=bot).register(app, path=config.WEBHOOK_PATH)
    setup_application(app, dp, bot=bot)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host="0.0.0.0", port=int(config.PORT))
    await site.start()
    logger.info("Webhook: URL=%s, слушаем 0.0.0.0:%s", config.WEBHOOK_URL, config.PORT)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


async def main():
    """
    Главная функция запуска бота
    """
    logger = setup_logging()
    logger.info("=" * 50)
    logger.info("Запуск бота Duna Casino")
    logger.info("=" * 50)

    if not config.BOT_TOKEN:
        logger.error("BOT_TOKEN не установлен! Проверьте .env файл или переменные окружения")
        sys.exit(1)

    try:
        logger.info("Инициализация базы данных... путь: %s", config.DB_PATH)
        await init_db()
        await outbox.connect()

        bot = Bot(
            token=config.BOT_TOKEN,
            default=DefaultBotProperties(
                parse_mode=ParseMode.HTML if config.PARSE_MODE == "HTML" else ParseMode.MARKDOWN_V2
            )
        )
        dp = Dispatcher(storage=MemoryStorage())

        register_middlewares(dp)
        register_routers(dp)

        dp.errors.register(on_error)
        dp.startup.register(on_startup)
        dp.shutdown.register(on_shutdown)

        if config.use_webhook:
            await run_webhook(dp, bot)
        else:
            logger.info("Запуск polling, режим: %s", config.ENVIRONMENT)
            await dp.start_polling(
                bot,
                allowed_updates=dp.resolve_used_update_types(),
                close_bot_session=True
            )
    except Exception as e:
        logger.critical(f"Критическая ошибка при запуске бота: {e}", exc_info=True)
        raise
    finally:
        logger.info("Завершение работы...")
        await outbox.close()
        await close_db()
        logger.info("Работа завершена")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nОстановка бота...")
