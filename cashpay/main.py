import asyncio
import logging

from aiogram import Bot, Dispatcher, Router
from aiogram.filters import CommandStart
from aiogram.types import KeyboardButton, Message, ReplyKeyboardMarkup
from dotenv import load_dotenv

# .env must be loaded before cashpay.config reads the environment
load_dotenv()

from cashpay.bot.handlers import admin_payments as admin_payments_handlers  # noqa: E402
from cashpay.bot.middlewares.correlation import CorrelationMiddleware  # noqa: E402
from cashpay.bot.middlewares.rate_limit import RateLimitMiddleware  # noqa: E402
from cashpay.config import settings  # noqa: E402
from cashpay.db.session import dispose_engine  # noqa: E402
from cashpay.logging_config import setup_logging  # noqa: E402
from cashpay.services.security import is_admin_uid  # noqa: E402


router = Router()


@router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    uid = message.from_user.id if message.from_user else None
    if await is_admin_uid(uid):
        kb = ReplyKeyboardMarkup(keyboard=[[KeyboardButton(text=admin_payments_handlers.MENU_TEXT)]], resize_keyboard=True)
        await message.answer("Admin panel ready. Review cash payment claims below.", reply_markup=kb)
        return
    await message.answer("Hello! This bot is used by administrators to review cash payments.")


async def main() -> None:
    setup_logging()

    token = settings.telegram_bot_token
    if not token:
        logging.error("TELEGRAM_BOT_TOKEN is not set. Put it in the .env file.")
        raise SystemExit(1)

    bot = Bot(token=token)
    dp = Dispatcher()

    # Correlation id middleware for observability
    corr = CorrelationMiddleware()
    dp.message.middleware(corr)
    dp.callback_query.middleware(corr)

    rate_limiter = RateLimitMiddleware(max_per_minute=settings.rate_limit_user_msg_per_min)
    dp.message.middleware(rate_limiter)
    dp.callback_query.middleware(rate_limiter)

    dp.include_router(router)
    dp.include_router(admin_payments_handlers.router)

    logging.info("Starting Telegram bot polling ...")
    await bot.delete_webhook(drop_pending_updates=True)
    try:
        await dp.start_polling(bot)
    finally:
        try:
            from cashpay.services.notifications import aclose_bot
            await aclose_bot()
        except Exception:
            logging.exception("closing notification bot failed")
        await dispose_engine()
        await bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
