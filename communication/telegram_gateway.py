"""
Pattern Relay - Telegram Gateway
Renders flow views through the Telegram Bot API.

Views become HTML messages with inline keyboards; exported results are
sent as documents. Sends run on the listener's event loop when it is
running, so one Bot and one connection pool serve both directions.
"""

import asyncio
import html
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, List

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import BadRequest, TelegramError

from core.logger import log_info, log_error, log_warning, log_success
from interface.menus import Menu

# Telegram limits
MAX_MESSAGE_LENGTH = 4096
MAX_CALLBACK_DATA = 64

ALIAS_PREFIX = "alias:"
MAX_ALIASES = 5000


@dataclass
class TelegramResult:
    """
    Result from a Telegram send operation.

    Attributes:
        success: Whether the send succeeded
        message: Status message (success info or error description)
        chat_id: The chat ID the message was sent to
        message_id: Telegram's message ID (for replies/edits)
        timestamp: When the operation occurred
    """
    success: bool
    message: str
    chat_id: str
    message_id: Optional[int] = None
    timestamp: datetime = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()

    def __str__(self) -> str:
        status = "Success" if self.success else "Failed"
        return f"{status}: {self.message}"


def strip_html(text: str) -> str:
    """Plain-text rendering of a view body."""
    return html.unescape(re.sub(r"</?[a-zA-Z][^>]*>", "", text))


def fit_message(text: str) -> str:
    """Trim text to Telegram's message limit."""
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text
    return text[:MAX_MESSAGE_LENGTH - 1] + "…"


class TelegramGateway:
    """
    Telegram gateway using the Bot API.

    Sends flow views to a chat: text with an inline keyboard, and an
    optional document. Action tokens longer than Telegram's callback
    data limit are replaced with short aliases resolved on the way back.
    """

    def __init__(self, bot_token: str):
        """
        Initialize the Telegram gateway.

        Args:
            bot_token: Telegram Bot API token from @BotFather
        """
        self.bot_token = bot_token
        self._bot: Optional[Bot] = None
        self._aliases: Dict[str, str] = {}
        self._alias_lock = threading.Lock()
        self._next_alias = 0

    def _get_bot(self) -> Bot:
        """Get or create the Bot instance."""
        if self._bot is None:
            self._bot = Bot(token=self.bot_token)
        return self._bot

    def is_available(self) -> bool:
        """Check if the gateway has a bot token."""
        return bool(self.bot_token)

    # =========================================================================
    # CALLBACK DATA
    # =========================================================================

    def callback_data_for(self, action: str) -> str:
        """Callback data for an action token, aliased if too long."""
        if len(action.encode("utf-8")) <= MAX_CALLBACK_DATA:
            return action

        with self._alias_lock:
            if len(self._aliases) >= MAX_ALIASES:
                self._aliases.clear()
            self._next_alias += 1
            alias = f"{ALIAS_PREFIX}{self._next_alias}"
            self._aliases[alias] = action
            return alias

    def resolve_callback_data(self, data: str) -> Optional[str]:
        """
        Turn callback data back into an action token.

        Returns:
            The token, or None for an alias that is no longer known
        """
        if not data.startswith(ALIAS_PREFIX):
            return data
        with self._alias_lock:
            return self._aliases.get(data)

    def build_keyboard(self, menu: Optional[Menu]) -> Optional[InlineKeyboardMarkup]:
        """Render a menu as an inline keyboard."""
        if menu is None or not menu.rows:
            return None
        rows: List[List[InlineKeyboardButton]] = [
            [InlineKeyboardButton(button.text, callback_data=self.callback_data_for(button.action)) for button in row]
            for row in menu.rows
        ]
        return InlineKeyboardMarkup(rows)

    # =========================================================================
    # SENDING
    # =========================================================================

    async def _send_text_async(
        self,
        bot: Bot,
        chat_id: str,
        text: str,
        keyboard: Optional[InlineKeyboardMarkup] = None
    ) -> TelegramResult:
        """Send HTML text, retrying as plain text if Telegram rejects the markup."""
        try:
            result = await bot.send_message(
                chat_id=chat_id,
                text=fit_message(text),
                parse_mode="HTML",
                reply_markup=keyboard
            )
        except BadRequest as e:
            log_warning(f"Telegram rejected HTML ({e}), sending as plain text")
            result = await bot.send_message(
                chat_id=chat_id,
                text=fit_message(strip_html(text)),
                reply_markup=keyboard
            )
        return TelegramResult(
            success=True,
            message="Message sent successfully",
            chat_id=chat_id,
            message_id=result.message_id
        )

    async def _send_view_async(self, chat_id: str, view, bot: Optional[Bot] = None) -> TelegramResult:
        """
        Send a flow view asynchronously.

        Args:
            chat_id: Target chat
            view: FlowView to render
            bot: Optional Bot instance to use (if None, uses self._get_bot())

        Returns:
            TelegramResult for the text message
        """
        if not self.bot_token:
            log_error("Telegram gateway unavailable - no bot token configured")
            return TelegramResult(success=False, message="Telegram bot token not configured.", chat_id=chat_id)

        send_bot = bot if bot is not None else self._get_bot()
        try:
            keyboard = None if view.terminal else self.build_keyboard(view.menu)
            result = await self._send_text_async(send_bot, chat_id, view.text, keyboard)

            if view.document is not None:
                with open(view.document.path, "rb") as handle:
                    await send_bot.send_document(
                        chat_id=chat_id,
                        document=handle,
                        filename=view.document.filename
                    )
                log_success(f"Telegram document {view.document.filename} sent to {chat_id}")

            return result

        except (TelegramError, OSError) as e:
            log_error(f"Telegram send failed for {chat_id}: {e}")
            return TelegramResult(success=False, message=f"Telegram API error: {e}", chat_id=chat_id)

    async def _send_plain_async(self, chat_id: str, text: str, bot: Optional[Bot] = None) -> TelegramResult:
        send_bot = bot if bot is not None else self._get_bot()
        try:
            return await self._send_text_async(send_bot, chat_id, text)
        except TelegramError as e:
            log_error(f"Telegram send failed for {chat_id}: {e}")
            return TelegramResult(success=False, message=f"Telegram API error: {e}", chat_id=chat_id)

    async def _answer_callback_async(self, callback_id: str, text: str = "", bot: Optional[Bot] = None) -> None:
        send_bot = bot if bot is not None else self._get_bot()
        try:
            await send_bot.answer_callback_query(callback_query_id=callback_id, text=text or None)
        except TelegramError as e:
            # Expired callback queries cannot be answered
            log_warning(f"Could not answer callback query: {e}")

    def _run(self, coroutine_factory) -> TelegramResult:
        """
        Run a send coroutine on the listener's loop, or a private loop.

        Args:
            coroutine_factory: Callable taking a Bot and returning a coroutine
        """
        from communication.telegram_listener import get_telegram_listener

        listener = get_telegram_listener()
        if listener.is_running():
            try:
                return listener.run_coroutine(coroutine_factory(listener.get_bot()))
            except RuntimeError as e:
                log_warning(f"Could not use shared Telegram listener: {e}")

        loop = asyncio.new_event_loop()
        local_bot = Bot(token=self.bot_token)
        try:
            result = loop.run_until_complete(asyncio.wait_for(coroutine_factory(local_bot), timeout=30.0))
            loop.run_until_complete(local_bot.shutdown())
            return result
        finally:
            loop.close()

    def send_view(self, chat_id: str, view) -> TelegramResult:
        """Send a flow view to a chat."""
        return self._run(lambda bot: self._send_view_async(chat_id, view, bot=bot))

    def send_text(self, chat_id: str, text: str) -> TelegramResult:
        """Send a plain status message to a chat."""
        return self._run(lambda bot: self._send_plain_async(chat_id, text, bot=bot))

    def answer_callback(self, callback_id: str, text: str = "") -> None:
        """Acknowledge a button press so the client stops its spinner."""
        self._run(lambda bot: self._answer_callback_async(callback_id, text, bot=bot))


# Singleton instance
_gateway: Optional[TelegramGateway] = None


def get_telegram_gateway() -> TelegramGateway:
    """
    Get the global Telegram gateway instance.

    Lazily initializes the gateway if not already initialized.

    Returns:
        The global TelegramGateway instance
    """
    global _gateway
    if _gateway is None:
        _gateway = init_telegram_gateway()
    return _gateway


def init_telegram_gateway(bot_token: Optional[str] = None) -> TelegramGateway:
    """
    Initialize the global Telegram gateway instance.

    Args:
        bot_token: Bot API token (defaults to config)

    Returns:
        The initialized TelegramGateway instance
    """
    global _gateway

    from config import TELEGRAM_BOT_TOKEN

    _gateway = TelegramGateway(bot_token=bot_token or TELEGRAM_BOT_TOKEN)

    if _gateway.is_available():
        log_info("Telegram gateway initialized")
    else:
        log_warning("Telegram gateway initialized but not configured (missing bot token)")

    return _gateway
