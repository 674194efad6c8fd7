"""
Pattern Relay - Telegram Bridge
Connects the Telegram listener and gateway to the pattern flow.

Callbacks arrive on the polling thread and are handed straight to a
worker pool: pattern runs take tens of seconds, and sends scheduled on
the listener's loop would deadlock if issued from the polling thread.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from communication.telegram_gateway import TelegramGateway, get_telegram_gateway
from communication.telegram_listener import (
    TelegramListener, InboundMessage, InboundAction, get_telegram_listener
)
from core.logger import log_info, log_warning, log_error
from interface.pattern_flow import PatternFlowController, get_pattern_flow

PROCESSING_NOTICE = "⏳ Reading your text and picking a pattern..."
EXPIRED_BUTTON_NOTICE = "This button has expired. Please send your text again."


class TelegramBridge:
    """Dispatches Telegram updates to the pattern flow on worker threads."""

    def __init__(
        self,
        listener: Optional[TelegramListener] = None,
        gateway: Optional[TelegramGateway] = None,
        controller: Optional[PatternFlowController] = None,
        workers: Optional[int] = None
    ):
        if workers is None:
            import config
            workers = getattr(config, 'TELEGRAM_WORKERS', 4)
        self.listener = listener or get_telegram_listener()
        self.gateway = gateway or get_telegram_gateway()
        self.controller = controller or get_pattern_flow()
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="telegram-worker")

    def start(self) -> None:
        """Register callbacks and start polling."""
        self.listener.set_callback(self._on_message)
        self.listener.set_action_callback(self._on_action)
        self.listener.start()
        log_info("Telegram bridge active", prefix="📱")

    def stop(self) -> None:
        self.listener.stop()
        self._pool.shutdown(wait=False)

    def _on_message(self, message: InboundMessage) -> None:
        self._pool.submit(self._guarded, self.handle_message, message)

    def _on_action(self, action: InboundAction) -> None:
        self._pool.submit(self._guarded, self.handle_action, action)

    def _guarded(self, handler, item) -> None:
        try:
            handler(item)
        except Exception as e:
            log_error(f"Telegram worker failed: {e}")

    def handle_message(self, message: InboundMessage) -> None:
        """Start a pattern session for new text."""
        if message.text.startswith("/"):
            self.gateway.send_text(message.chat_id, "Send any text or a .txt file to process it with a pattern.")
            return

        self.gateway.send_text(message.chat_id, PROCESSING_NOTICE)
        view = self.controller.start(message.user_id, message.text)
        self.gateway.send_view(message.chat_id, view)

    def handle_action(self, action: InboundAction) -> None:
        """Apply a button press to the user's pattern session."""
        token = self.gateway.resolve_callback_data(action.data)
        if token is None:
            log_warning(f"Unknown callback alias from {action.from_user}: {action.data}")
            self.gateway.answer_callback(action.callback_id, EXPIRED_BUTTON_NOTICE)
            return

        self.gateway.answer_callback(action.callback_id)
        view = self.controller.handle(action.user_id, token)
        if view is not None:
            self.gateway.send_view(action.chat_id, view)


# Singleton instance
_bridge: Optional[TelegramBridge] = None


def get_telegram_bridge() -> TelegramBridge:
    """Get the global Telegram bridge instance."""
    global _bridge
    if _bridge is None:
        _bridge = TelegramBridge()
    return _bridge
