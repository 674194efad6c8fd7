"""
Tests for Telegram rendering and dispatch, with the Bot API mocked out.
"""

import unittest
from unittest.mock import MagicMock

from communication.telegram_bridge import TelegramBridge, PROCESSING_NOTICE, EXPIRED_BUTTON_NOTICE
from communication.telegram_gateway import TelegramGateway, fit_message, strip_html, MAX_MESSAGE_LENGTH
from communication.telegram_listener import InboundMessage, InboundAction, is_text_document
from interface.menus import Menu, Button, token
from interface.pattern_flow import FlowView, FlowState


class TestTelegramGateway(unittest.TestCase):

    def setUp(self):
        self.gateway = TelegramGateway(bot_token="123:abc")

    def test_short_callback_data_passes_through(self):
        action = token("use", "summarize")
        self.assertEqual(self.gateway.callback_data_for(action), action)
        self.assertEqual(self.gateway.resolve_callback_data(action), action)

    def test_long_callback_data_is_aliased(self):
        action = token("view_batch", "extract_recommendations_combined_1700000000000", 12)
        self.assertGreater(len(action), 64)

        alias = self.gateway.callback_data_for(action)

        self.assertLessEqual(len(alias), 64)
        self.assertEqual(self.gateway.resolve_callback_data(alias), action)
        self.assertIsNone(self.gateway.resolve_callback_data("alias:999"))

    def test_build_keyboard(self):
        menu = Menu().add_row(Button("Summarize", token("use", "summarize")), Button("More", token("more")))
        keyboard = self.gateway.build_keyboard(menu)
        self.assertEqual(keyboard.inline_keyboard[0][1].callback_data, "pattern_more")
        self.assertIsNone(self.gateway.build_keyboard(Menu()))

    def test_message_helpers(self):
        self.assertEqual(strip_html("<b>a &amp; b</b>"), "a & b")
        self.assertEqual(len(fit_message("x" * 5000)), MAX_MESSAGE_LENGTH)
        self.assertEqual(fit_message("short"), "short")

    def test_text_documents(self):
        self.assertTrue(is_text_document("notes.TXT", None))
        self.assertTrue(is_text_document(None, "text/markdown"))
        self.assertFalse(is_text_document("photo.jpg", "image/jpeg"))


class TestTelegramBridge(unittest.TestCase):

    def setUp(self):
        self.gateway = MagicMock()
        self.controller = MagicMock()
        self.bridge = TelegramBridge(
            listener=MagicMock(), gateway=self.gateway, controller=self.controller, workers=1
        )

    def tearDown(self):
        self.bridge.stop()

    def message(self, text):
        return InboundMessage(
            text=text, chat_id="7", user_id="42", message_id=1, timestamp=None, from_user="sam"
        )

    def test_text_starts_a_session(self):
        view = FlowView(state=FlowState.SHOWING_PATTERN_MENU, text="Choose")
        self.controller.start.return_value = view

        self.bridge.handle_message(self.message("Long article text"))

        self.gateway.send_text.assert_called_once_with("7", PROCESSING_NOTICE)
        self.controller.start.assert_called_once_with("42", "Long article text")
        self.gateway.send_view.assert_called_once_with("7", view)

    def test_commands_get_help(self):
        self.bridge.handle_message(self.message("/start"))
        self.controller.start.assert_not_called()
        self.gateway.send_text.assert_called_once()

    def test_action_dispatched(self):
        self.gateway.resolve_callback_data.return_value = "pattern_use:summarize"
        view = FlowView(state=FlowState.SHOWING_RESULT, text="Result")
        self.controller.handle.return_value = view

        self.bridge.handle_action(InboundAction(
            data="pattern_use:summarize", callback_id="cb1", chat_id="7", user_id="42", from_user="sam"
        ))

        self.gateway.answer_callback.assert_called_once_with("cb1")
        self.controller.handle.assert_called_once_with("42", "pattern_use:summarize")
        self.gateway.send_view.assert_called_once_with("7", view)

    def test_noop_action_sends_nothing(self):
        self.gateway.resolve_callback_data.return_value = "pattern_noop"
        self.controller.handle.return_value = None

        self.bridge.handle_action(InboundAction("pattern_noop", "cb1", "7", "42", "sam"))

        self.gateway.send_view.assert_not_called()

    def test_expired_alias(self):
        self.gateway.resolve_callback_data.return_value = None

        self.bridge.handle_action(InboundAction("alias:5", "cb1", "7", "42", "sam"))

        self.gateway.answer_callback.assert_called_once_with("cb1", EXPIRED_BUTTON_NOTICE)
        self.controller.handle.assert_not_called()


if __name__ == "__main__":
    unittest.main()
