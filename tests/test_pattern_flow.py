"""
Tests for the pattern flow controller: action tokens in, views out,
session state kept in the store.
"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from concurrency.locks import OperationGuard
from core.errors import FailureReason, FatalBackendError
from core.file_export import FileExporter
from engine.batch import BatchProcessor
from engine.executor import PatternExecutor
from engine.session import SessionStore, PatternSessions
from interface.pattern_flow import PatternFlowController, FlowState, parse_token
from llm.router import BackendReply, LLMProvider, ModelTier
from patterns.catalog import PatternCatalog, Pattern, PatternCategory
from patterns.suggester import Suggestion

USER = "42"


def make_catalog() -> PatternCatalog:
    return PatternCatalog.from_patterns([
        Pattern(name, PatternCategory.from_pattern_name(name), f"# {name}", name)
        for name in ("summarize", "extract_wisdom", "extract_main_idea", "improve_writing", "analyze_paper")
    ])


def reply(content: str) -> BackendReply:
    return BackendReply(content, LLMProvider.ANTHROPIC, "test-model", ModelTier.PRIMARY)


def prose(length: int) -> str:
    paragraph = "Tides rise and fall twice a day along most coasts. " * 8
    text = ""
    while len(text) < length:
        text += paragraph + "\n\n"
    return text[:length]


def action_tokens(view):
    return [button.action for button in view.menu.buttons()]


class FlowTestCase(unittest.TestCase):
    """Builds a controller over a mocked router and an in-memory store."""

    suggester = None

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.catalog = make_catalog()
        self.router = MagicMock()
        self.router.invoke.return_value = reply("Processed output.")
        self.executor = PatternExecutor(self.catalog, router=self.router, sleep=lambda s: None)
        self.sessions = PatternSessions(SessionStore(), ttl_seconds=600)
        self.guard = OperationGuard()
        self.controller = PatternFlowController(
            catalog=self.catalog,
            executor=self.executor,
            batch=BatchProcessor(self.executor, delay=0, sleep=lambda s: None),
            sessions=self.sessions,
            guard=self.guard,
            suggester=self.suggester,
            exporter=FileExporter(Path(self._tmp.name))
        )

    def tearDown(self):
        self._tmp.cleanup()

    def sent_texts(self):
        return [c.args[0][-1]["content"] for c in self.router.invoke.call_args_list]


class TestParseToken(unittest.TestCase):

    def test_parse(self):
        self.assertEqual(parse_token("pattern_chunk:summarize:next"), ("chunk", ["summarize", "next"]))
        self.assertEqual(parse_token("pattern_more"), ("more", []))

    def test_rejects_foreign_tokens(self):
        for token in ("other_use:x", "pattern_", ""):
            with self.assertRaises(ValueError):
                parse_token(token)


class TestSinglePatternRuns(FlowTestCase):

    def test_short_input_single_result(self):
        view = self.controller.start(USER, "x" * 500)
        self.assertEqual(view.state, FlowState.SHOWING_PATTERN_MENU)
        self.assertIn("pattern_use:summarize", action_tokens(view))

        view = self.controller.handle(USER, "pattern_use:summarize")

        self.assertEqual(view.state, FlowState.SHOWING_RESULT)
        self.assertEqual(view.text, "Processed output.")
        self.assertEqual(self.router.invoke.call_count, 1)

        state = self.sessions.load(USER)
        self.assertEqual(state.results["summarize"].output, "Processed output.")
        self.assertIsNone(state.results["summarize"].chunks)
        self.assertEqual(state.selection.last_processed_pattern, "summarize")

    def test_long_output_is_chunked_for_display(self):
        text = prose(12000)
        self.router.invoke.return_value = reply(prose(9000))
        self.controller.start(USER, text)

        view = self.controller.handle(USER, "pattern_use:summarize")

        self.assertEqual(self.sent_texts(), [text])
        self.assertEqual(view.state, FlowState.SHOWING_OUTPUT_CHUNK)
        self.assertEqual(view.cursor, 0)

        view = self.controller.handle(USER, "pattern_chunk:summarize:next")
        self.assertEqual(view.cursor, 1)
        self.assertEqual(self.sessions.load(USER).results["summarize"].cursor, 1)

    def test_chaining_uses_previous_output(self):
        self.controller.start(USER, "original text")
        self.router.invoke.return_value = reply("the summary")
        self.controller.handle(USER, "pattern_use:summarize")

        view = self.controller.handle(USER, "pattern_select_output:summarize")
        self.assertEqual(view.state, FlowState.SHOWING_PATTERN_MENU)

        self.router.invoke.return_value = reply("wisdom")
        self.controller.handle(USER, "pattern_use:extract_wisdom")

        self.assertEqual(self.sent_texts()[-1], "the summary")
        result = self.sessions.load(USER).results["extract_wisdom"]
        self.assertEqual(result.source_name, "summarize")

        self.controller.handle(USER, "pattern_use_full_input")
        self.controller.handle(USER, "pattern_use:improve_writing")
        self.assertEqual(self.sent_texts()[-1], "original text")

    def test_backend_failure_shows_error(self):
        self.router.invoke.side_effect = FatalBackendError(FailureReason.AUTH)
        self.controller.start(USER, "some text")

        view = self.controller.handle(USER, "pattern_use:summarize")

        self.assertEqual(view.state, FlowState.ERROR)
        self.assertIn("credentials", view.text)
        self.assertFalse(view.terminal)
        self.assertEqual(self.sessions.load(USER).results, {})

    def test_second_operation_rejected_while_running(self):
        self.controller.start(USER, "some text")

        with self.guard.hold(USER, "pattern:summarize"):
            view = self.controller.handle(USER, "pattern_use:extract_wisdom")

        self.assertEqual(view.state, FlowState.ERROR)
        self.assertIn("Still working", view.text)
        self.router.invoke.assert_not_called()

    def test_new_input_rejected_while_running(self):
        self.controller.start(USER, "OLD TEXT about apples")
        started = []

        def invoke(*args, **kwargs):
            started.append(self.controller.start(USER, "NEW TEXT about oranges"))
            return reply("summary of apples")

        self.router.invoke.side_effect = invoke
        self.controller.handle(USER, "pattern_use:summarize")

        self.assertIn("Still working", started[0].text)
        state = self.sessions.load(USER)
        self.assertEqual(state.original_input, "OLD TEXT about apples")
        self.assertEqual(state.results["summarize"].output, "summary of apples")

    def test_result_not_stored_in_replaced_session(self):
        self.controller.start(USER, "OLD TEXT about apples")

        def invoke(*args, **kwargs):
            self.sessions.start(USER, "NEW TEXT about oranges")
            return reply("summary of apples")

        self.router.invoke.side_effect = invoke
        view = self.controller.handle(USER, "pattern_use:summarize")

        self.assertEqual(view.text, "summary of apples")
        state = self.sessions.load(USER)
        self.assertEqual(state.original_input, "NEW TEXT about oranges")
        self.assertNotIn("summarize", state.results)

    def test_download_exports_result(self):
        self.controller.start(USER, "some text")
        self.controller.handle(USER, "pattern_use:summarize")

        view = self.controller.handle(USER, "pattern_download:summarize")

        self.assertTrue(view.terminal)
        self.assertTrue(view.document.path.exists())
        self.assertEqual(view.document.path.read_text(encoding="utf-8"), "Processed output.")


class TestChunkNavigation(FlowTestCase):

    def setUp(self):
        super().setUp()
        self.text = prose(9000)
        self.controller.start(USER, self.text)

    def test_browse_and_process_one_chunk(self):
        view = self.controller.handle(USER, "pattern_browse_input")
        self.assertEqual(view.state, FlowState.SHOWING_INPUT_CHUNK)
        self.assertEqual(view.cursor, 0)

        view = self.controller.handle(USER, "pattern_input_chunk:next")
        self.assertEqual(view.cursor, 1)

        self.controller.handle(USER, "pattern_select_chunk:1")
        self.controller.handle(USER, "pattern_use:summarize")

        state = self.sessions.load(USER)
        self.assertEqual(self.sent_texts(), [state.chunk_set.chunks[1]])
        self.assertEqual(state.results["summarize"].source_chunk_index, 1)

    def test_cursor_clamps_at_last_chunk(self):
        self.controller.handle(USER, "pattern_browse_input")
        view = self.controller.handle(USER, "pattern_input_chunk:last")
        last = view.cursor
        view = self.controller.handle(USER, "pattern_input_chunk:next")
        self.assertEqual(view.cursor, last)

    def test_batch_over_all_chunks(self):
        view = self.controller.handle(USER, "pattern_select_all_chunks")
        self.assertIn("pattern_process_all:summarize", action_tokens(view))

        view = self.controller.handle(USER, "pattern_process_all:summarize")

        total = len(self.sessions.load(USER).chunk_set)
        self.assertGreater(total, 1)
        self.assertIn(f"{total}/{total} processed", view.text)
        key = view.pattern
        self.assertTrue(key.startswith("summarize_combined_"))

        view = self.controller.handle(USER, f"pattern_view_batch:{key}:0")
        self.assertEqual(view.state, FlowState.SHOWING_OUTPUT_CHUNK)
        self.assertIn("Processed output.", view.text)

        view = self.controller.handle(USER, f"pattern_view_batch:{key}:7")
        self.assertIn("no longer available", view.text)

    def test_long_batch_output_can_be_read_and_downloaded(self):
        self.router.invoke.return_value = reply(prose(9000))

        view = self.controller.handle(USER, "pattern_process_all:summarize")
        key = view.pattern
        self.assertIn(f"pattern_download:{key}", action_tokens(view))
        self.assertIn(f"pattern_chunk:{key}:first", action_tokens(view))

        view = self.controller.handle(USER, f"pattern_view_batch:{key}:0")
        self.assertEqual(view.state, FlowState.SHOWING_OUTPUT_CHUNK)
        parts = [view]
        while f"pattern_chunk:{key}:next" in action_tokens(view):
            view = self.controller.handle(USER, f"pattern_chunk:{key}:next")
            parts.append(view)

        result = self.sessions.load(USER).results[key]
        self.assertGreater(len(parts), 2)
        self.assertEqual(len(parts), len(result.chunks))
        self.assertEqual(parts[-1].cursor, len(result.chunks) - 1)

        view = self.controller.handle(USER, f"pattern_download:{key}")
        self.assertEqual(view.document.path.read_text(encoding="utf-8"), result.output)


class TestMenusAndState(FlowTestCase):

    def test_categories(self):
        self.controller.start(USER, "text")

        view = self.controller.handle(USER, "pattern_more")
        self.assertEqual(view.state, FlowState.SHOWING_CATEGORY_MENU)
        self.assertIn("pattern_category:extraction", action_tokens(view))

        view = self.controller.handle(USER, "pattern_category:extraction")
        tokens = action_tokens(view)
        self.assertIn("pattern_use:extract_wisdom", tokens)
        self.assertIn("pattern_use:extract_main_idea", tokens)

        view = self.controller.handle(USER, "pattern_category:astrology")
        self.assertEqual(view.state, FlowState.ERROR)

    def test_expired_session(self):
        view = self.controller.handle("nobody", "pattern_use:summarize")
        self.assertEqual(view.state, FlowState.ERROR)
        self.assertTrue(view.terminal)
        self.assertIn("expired", view.text)

    def test_noop_skip_and_malformed(self):
        self.assertIsNone(self.controller.handle(USER, "pattern_noop"))

        view = self.controller.handle("nobody", "pattern_skip")
        self.assertEqual(view.state, FlowState.DONE)
        self.assertTrue(view.terminal)

        self.assertEqual(self.controller.handle(USER, "garbage").state, FlowState.ERROR)

    def test_stale_selection(self):
        self.controller.start(USER, "text")
        view = self.controller.handle(USER, "pattern_select_output:nope")
        self.assertIn("no longer available", view.text)

    def test_unloaded_catalog(self):
        self.controller.catalog = PatternCatalog()
        view = self.controller.start(USER, "text")
        self.assertEqual(view.state, FlowState.ERROR)
        self.assertTrue(view.terminal)


class TestSuggestedStart(FlowTestCase):

    def setUp(self):
        self.suggester = MagicMock()
        super().setUp()

    def test_executed_request_shows_result(self):
        self.suggester.suggest.return_value = Suggestion(
            pattern="summarize", description="summarize", confidence=0.98,
            reasoning="explicit", category=PatternCategory.SUMMARIZATION, result="Done already."
        )

        view = self.controller.start(USER, "summarize: text")

        self.assertEqual(view.state, FlowState.SHOWING_RESULT)
        self.assertEqual(view.text, "Done already.")
        self.assertEqual(self.sessions.load(USER).results["summarize"].output, "Done already.")

    def test_suggestion_leads_the_menu(self):
        self.suggester.suggest.return_value = Suggestion(
            pattern="analyze_paper", description="analyze_paper", confidence=0.7,
            reasoning="Looks <academic>", category=PatternCategory.ANALYSIS,
            alternative_patterns=["summarize"]
        )

        view = self.controller.start(USER, "A study of tides")

        self.assertEqual(view.menu.rows[0][0].action, "pattern_use:analyze_paper")
        self.assertIn("70%", view.text)
        self.assertIn("&lt;academic&gt;", view.text)
        state = self.sessions.load(USER)
        self.assertEqual(state.suggested_pattern, "analyze_paper")
        self.assertEqual(state.alternative_patterns, ["summarize"])


if __name__ == "__main__":
    unittest.main()
