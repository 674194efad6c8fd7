"""
Pattern Relay - Communication Module
Telegram delivery for the pattern flow.
"""

from communication.telegram_gateway import TelegramGateway, get_telegram_gateway, init_telegram_gateway
from communication.telegram_listener import (
    TelegramListener, InboundMessage, InboundAction, get_telegram_listener, init_telegram_listener
)
from communication.telegram_bridge import TelegramBridge, get_telegram_bridge


__all__ = [
    # Sending
    'TelegramGateway',
    'get_telegram_gateway',
    'init_telegram_gateway',
    # Receiving
    'TelegramListener',
    'InboundMessage',
    'InboundAction',
    'get_telegram_listener',
    'init_telegram_listener',
    # Dispatch
    'TelegramBridge',
    'get_telegram_bridge',
]
