"""
Pattern Relay - Telegram Listener
Background polling for inbound Telegram messages and button presses.

Text messages and text documents (.txt, .md, transcripts) become
InboundMessage objects; inline keyboard presses become InboundAction
objects. Both are handed to callbacks on the polling thread.
"""

import asyncio
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Callable, List, Union

from telegram import Bot, Message
from telegram.error import TelegramError

from core.logger import log_info, log_error, log_warning

TEXT_DOCUMENT_SUFFIXES = (".txt", ".md", ".srt", ".vtt", ".csv", ".log")
MAX_DOCUMENT_BYTES = 5 * 1024 * 1024


@dataclass
class InboundMessage:
    """
    Represents an inbound message from Telegram.

    Attributes:
        text: The message text (or the decoded document)
        chat_id: The chat this message came from
        user_id: Telegram user ID of the sender
        message_id: Telegram's message ID
        timestamp: When the message was received
        from_user: Username or first name of sender
        from_document: True when the text came from an uploaded file
    """
    text: str
    chat_id: str
    user_id: str
    message_id: int
    timestamp: datetime
    from_user: str
    from_document: bool = False


@dataclass
class InboundAction:
    """
    A press on an inline keyboard button.

    Attributes:
        data: Callback data carried by the button
        callback_id: ID used to answer the callback query
        chat_id: Chat the button's message is in
        user_id: Telegram user ID of the presser
        from_user: Username or first name of the presser
    """
    data: str
    callback_id: str
    chat_id: str
    user_id: str
    from_user: str


Inbound = Union[InboundMessage, InboundAction]


def is_text_document(file_name: Optional[str], mime_type: Optional[str]) -> bool:
    """Check if an uploaded document can be read as text."""
    if mime_type and mime_type.startswith("text/"):
        return True
    return bool(file_name) and file_name.lower().endswith(TEXT_DOCUMENT_SUFFIXES)


class TelegramListener:
    """
    Background listener for inbound Telegram updates.

    Polls the Telegram Bot API on a dedicated thread with one persistent
    event loop. The loop keeps running between polls so other threads
    can schedule sends on it via run_coroutine().
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str = "",
        poll_interval: float = 2.0,
    ):
        """
        Initialize the Telegram listener.

        Args:
            bot_token: Telegram Bot API token
            chat_id: If set, only updates from this chat are accepted
            poll_interval: Seconds between polls
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.poll_interval = poll_interval

        self._bot: Optional[Bot] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._callback: Optional[Callable[[InboundMessage], None]] = None
        self._action_callback: Optional[Callable[[InboundAction], None]] = None
        self._last_update_id: int = 0
        self._lock = threading.Lock()

    def _get_bot(self) -> Bot:
        """Get or create the Bot instance."""
        if self._bot is None:
            self._bot = Bot(token=self.bot_token)
        return self._bot

    def get_bot(self) -> Bot:
        """
        Get the shared Bot instance.

        Returns:
            The Bot instance used by this listener
        """
        return self._get_bot()

    def run_coroutine(self, coro, timeout: float = 30.0):
        """
        Run a coroutine in the listener's event loop (thread-safe).

        Args:
            coro: The coroutine to run
            timeout: Maximum seconds to wait for result

        Returns:
            The coroutine's result

        Raises:
            RuntimeError: If the listener is not running
            TimeoutError: If the operation times out
        """
        with self._lock:
            if not self._loop or not self._running:
                coro.close()
                raise RuntimeError("Telegram listener is not running")
            loop = self._loop

        future = asyncio.run_coroutine_threadsafe(coro, loop)
        return future.result(timeout=timeout)

    def set_callback(self, callback: Callable[[InboundMessage], None]) -> None:
        """
        Set the callback for inbound messages.

        Args:
            callback: Function to call with InboundMessage when received
        """
        self._callback = callback

    def set_action_callback(self, callback: Callable[[InboundAction], None]) -> None:
        """
        Set the callback for button presses.

        Args:
            callback: Function to call with InboundAction when received
        """
        self._action_callback = callback

    def _accepts(self, chat_id: str) -> bool:
        if self.chat_id and chat_id != self.chat_id:
            log_warning(f"Ignoring update from unexpected chat: {chat_id}")
            return False
        return True

    async def _read_document(self, msg: Message) -> Optional[str]:
        """
        Download a text document and decode it.

        Returns:
            The document text, or None if it is not usable
        """
        document = msg.document
        if not is_text_document(document.file_name, document.mime_type):
            log_info(f"Ignoring non-text document {document.file_name}")
            return None
        if document.file_size and document.file_size > MAX_DOCUMENT_BYTES:
            log_warning(f"Ignoring document {document.file_name}: {document.file_size} bytes")
            return None

        file = await self._get_bot().get_file(document.file_id)
        data = await file.download_as_bytearray()
        text = bytes(data).decode("utf-8", errors="replace")
        log_info(f"Read document {document.file_name} ({len(text):,} chars)", prefix="📄")
        return text

    async def _poll_once(self) -> List[Inbound]:
        """
        Poll for new updates once.

        Returns:
            List of new InboundMessage / InboundAction objects
        """
        inbound: List[Inbound] = []

        try:
            bot = self._get_bot()

            updates = await bot.get_updates(
                offset=self._last_update_id + 1,
                timeout=1,
                allowed_updates=["message", "callback_query"]
            )

            for update in updates:
                # Acknowledge this update on the next poll
                self._last_update_id = update.update_id

                query = update.callback_query
                if query is not None:
                    if query.message is None or not query.data:
                        continue
                    chat_id = str(query.message.chat.id)
                    if not self._accepts(chat_id):
                        continue
                    inbound.append(InboundAction(
                        data=query.data,
                        callback_id=query.id,
                        chat_id=chat_id,
                        user_id=str(query.from_user.id),
                        from_user=query.from_user.username or query.from_user.first_name or ""
                    ))
                    continue

                msg = update.message
                if msg is None or msg.from_user is None:
                    continue

                chat_id = str(msg.chat.id)
                if not self._accepts(chat_id):
                    continue

                from_document = False
                if msg.text:
                    text_content = msg.text
                elif msg.document:
                    text_content = await self._read_document(msg)
                    from_document = True
                else:
                    text_content = None

                # Photos, voice and other media are not processed
                if not text_content:
                    continue

                inbound.append(InboundMessage(
                    text=text_content,
                    chat_id=chat_id,
                    user_id=str(msg.from_user.id),
                    message_id=msg.message_id,
                    timestamp=msg.date or datetime.now(),
                    from_user=msg.from_user.username or msg.from_user.first_name or "",
                    from_document=from_document
                ))

        except TelegramError as e:
            log_error(f"Telegram polling error: {e}")

        return inbound

    def _dispatch(self, item: Inbound) -> None:
        if isinstance(item, InboundAction):
            log_info(f"Received Telegram action from {item.from_user}: {item.data}")
            callback = self._action_callback
        else:
            log_info(f"Received Telegram message from {item.from_user}: {item.text[:50]}...")
            callback = self._callback

        if callback is None:
            return
        try:
            callback(item)
        except Exception as e:
            log_error(f"Error in Telegram callback: {e}")

    def _poll_loop(self) -> None:
        """Background polling loop with persistent event loop."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        log_info("Telegram listener started")

        try:
            while self._running:
                try:
                    for item in self._loop.run_until_complete(self._poll_once()):
                        self._dispatch(item)
                except Exception as e:
                    log_error(f"Error in poll loop: {e}")

                # Sleeping inside the loop lets other threads' sends run
                self._loop.run_until_complete(asyncio.sleep(self.poll_interval))
        finally:
            if self._bot:
                try:
                    self._loop.run_until_complete(self._bot.shutdown())
                except TelegramError as e:
                    log_warning(f"Error shutting down Telegram bot: {e}")

            with self._lock:
                self._loop.close()
                self._loop = None

        log_info("Telegram listener stopped")

    def start(self) -> None:
        """Start the background polling thread."""
        if self._running:
            return

        if not self.bot_token:
            log_warning("Cannot start Telegram listener - no bot token configured")
            return

        self._running = True
        self._thread = threading.Thread(target=self._poll_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background polling thread."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def is_running(self) -> bool:
        """Check if the listener is running and ready to handle requests."""
        return (
            self._running
            and self._thread is not None
            and self._thread.is_alive()
            and self._loop is not None
        )


# Singleton instance
_listener: Optional[TelegramListener] = None


def get_telegram_listener() -> TelegramListener:
    """
    Get the global Telegram listener instance.

    Returns:
        The global TelegramListener instance
    """
    global _listener
    if _listener is None:
        _listener = init_telegram_listener()
    return _listener


def init_telegram_listener(
    bot_token: Optional[str] = None,
    chat_id: Optional[str] = None,
    poll_interval: Optional[float] = None,
) -> TelegramListener:
    """
    Initialize the global Telegram listener instance.

    Args:
        bot_token: Bot API token (defaults to config)
        chat_id: Chat filter (defaults to config; empty accepts every chat)
        poll_interval: Seconds between polls (defaults to config)

    Returns:
        The initialized TelegramListener instance
    """
    global _listener

    from config import TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID, TELEGRAM_POLL_INTERVAL

    _listener = TelegramListener(
        bot_token=bot_token or TELEGRAM_BOT_TOKEN,
        chat_id=chat_id or TELEGRAM_CHAT_ID,
        poll_interval=poll_interval or TELEGRAM_POLL_INTERVAL,
    )
    return _listener
