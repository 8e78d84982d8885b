# bot/notifier.py
from telegram import Bot


class TelegramNotifier:
    """Delivers engine messages to a subscriber's Telegram chat."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def notify(self, owner_id: int, message: str) -> None:
        await self.bot.send_message(chat_id=owner_id, text=message, disable_web_page_preview=True)
