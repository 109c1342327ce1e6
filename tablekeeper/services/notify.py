from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from typing import Optional
import logging
from tablekeeper.config import settings
from tablekeeper.models.schemas import Booking

logger = logging.getLogger(__name__)


def booking_confirmed_text(booking: Booking) -> str:
    return (
        f"✅ Your table is booked\n\n"
        f"📋 Booking: {booking.id}\n"
        f"📅 {booking.date} at {booking.start_time}\n"
        f"👥 Guests: {booking.party_size}"
    )


def booking_moved_text(booking: Booking) -> str:
    return (
        f"🔄 Your booking {booking.id} has been moved\n\n"
        f"📅 {booking.date} at {booking.start_time}"
    )


def booking_status_text(booking: Booking) -> str:
    if booking.status == "cancelled":
        return f"❌ Your booking {booking.id} on {booking.date} at {booking.start_time} was cancelled"
    return f"Booking {booking.id}: status changed to {booking.status}"


class TelegramNotifier:
    """Fire-and-forget customer messages. Failures are logged, never raised."""

    def __init__(self, bot: Optional[Bot] = None, enabled: Optional[bool] = None):
        self._bot = bot
        self.enabled = settings.NOTIFY_CUSTOMERS if enabled is None else enabled

    @property
    def bot(self) -> Bot:
        if self._bot is None:
            self._bot = Bot(
                token=settings.TG_TOKEN,
                default=DefaultBotProperties(parse_mode=ParseMode.HTML)
            )
        return self._bot

    async def notify_customer(self, booking: Booking, text: str) -> bool:
        if not self.enabled:
            return False
        if booking.customer_chat_id is None:
            logger.info("Booking %s has no chat id, skipping notification", booking.id)
            return False
        try:
            await self.bot.send_message(booking.customer_chat_id, text)
        except TelegramAPIError as e:
            logger.error("Notification for booking %s failed: %s", booking.id, e)
            return False
        return True

    async def close(self):
        if self._bot is not None:
            await self._bot.session.close()


notifier = TelegramNotifier()
