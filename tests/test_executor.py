"""
Tests for single-pattern execution, large-input splitting and
orchestration retry.
"""

import unittest
from unittest.mock import MagicMock

from core.errors import (
    FailureReason,
    TransientBackendError,
    FatalBackendError,
    ContentTooLargeError,
    PatternNotFoundError,
)
from engine import chunker
from engine.executor import PatternExecutor, build_messages, SECTION_ERROR_PLACEHOLDER
from llm.router import BackendReply, LLMProvider, ModelTier
from patterns.catalog import PatternCatalog, Pattern, PatternCategory


def make_catalog() -> PatternCatalog:
    return PatternCatalog.from_patterns([
        Pattern("summarize", PatternCategory.SUMMARIZATION, "You summarize.", "Summarize"),
        Pattern("extract_wisdom", PatternCategory.EXTRACTION, "You extract.", "Extract wisdom"),
        Pattern("write_essay", PatternCategory.GENERAL, "You write essays.", "Essay", "Write about:"),
    ])


def reply(content: str) -> BackendReply:
    return BackendReply(content, LLMProvider.ANTHROPIC, "test-model", ModelTier.PRIMARY)


def prose(length: int) -> str:
    sentence = "Rivers carve valleys slowly over thousands of years. "
    text = ""
    while len(text) < length:
        text += sentence * 8 + "\n\n"
    return text[:length]


class TestBuildMessages(unittest.TestCase):

    def test_system_then_text(self):
        pattern = make_catalog().require("summarize")
        self.assertEqual(build_messages(pattern, "hello"), [
            {"role": "system", "content": "You summarize."},
            {"role": "user", "content": "hello"},
        ])

    def test_seed_prompt_precedes_text(self):
        pattern = make_catalog().require("write_essay")
        messages = build_messages(pattern, "dogs")
        self.assertEqual([m["content"] for m in messages], ["You write essays.", "Write about:", "dogs"])


class TestPatternExecutor(unittest.TestCase):

    def setUp(self):
        self.router = MagicMock()
        self.sleeps = []
        self.executor = PatternExecutor(make_catalog(), router=self.router, sleep=self.sleeps.append)

    def sent_texts(self):
        return [c.args[0][-1]["content"] for c in self.router.invoke.call_args_list]

    def test_small_input_single_call(self):
        self.router.invoke.return_value = reply("A short summary.")
        output = self.executor.apply_large("summarize", "x" * 500)

        self.assertEqual(output, "A short summary.")
        self.assertEqual(self.router.invoke.call_count, 1)

    def test_output_is_cleaned(self):
        self.router.invoke.return_value = reply("<think>planning</think><p>Result</p>")
        self.assertEqual(self.executor.apply("summarize", "text"), "Result")

    def test_mid_size_input_is_not_split(self):
        text = prose(12000)
        self.router.invoke.return_value = reply("summary")

        self.executor.apply_large("summarize", text)

        self.assertEqual(self.router.invoke.call_count, 1)
        self.assertEqual(self.sent_texts(), [text])

    def test_very_large_input_split_per_slice(self):
        text = prose(150000)
        self.router.invoke.side_effect = lambda messages, options: reply(f"summary of {len(messages[-1]['content'])}")

        output = self.executor.apply_large("summarize", text)

        slices = chunker.split(text, 3800)
        self.assertGreaterEqual(len(slices), 2)
        self.assertEqual(self.router.invoke.call_count, len(slices))
        self.assertEqual(self.sent_texts(), slices)
        for sent in self.sent_texts():
            self.assertLessEqual(len(sent), 3800)
        self.assertTrue(self.sent_texts()[1].startswith("[CONTINUATION - PART 2]"))
        self.assertTrue(output.startswith("# Combined Summary"))

    def test_failed_slice_becomes_placeholder(self):
        executor = PatternExecutor(
            make_catalog(), router=self.router, sleep=self.sleeps.append,
            large_input_threshold=100, chunk_max_size=200
        )

        def invoke(messages, options):
            if "PART 2]" in messages[-1]["content"]:
                raise FatalBackendError(FailureReason.SERVER_ERROR)
            return reply("ok")

        self.router.invoke.side_effect = invoke
        text = prose(450)
        slices = chunker.split(text, 200)

        output = executor.apply_large("extract_wisdom", text)

        self.assertIn(SECTION_ERROR_PLACEHOLDER, output)
        self.assertIn("# Section 1 Insights\n\nok", output)
        # Failing slice was retried once
        self.assertEqual(self.router.invoke.call_count, len(slices) + 1)
        self.assertEqual(self.sleeps, [1.0])

    def test_oversize_slice_not_retried(self):
        executor = PatternExecutor(
            make_catalog(), router=self.router, sleep=self.sleeps.append,
            large_input_threshold=100, chunk_max_size=200
        )
        self.router.invoke.side_effect = ContentTooLargeError()
        text = prose(300)

        output = executor.apply_large("summarize", text)

        self.assertEqual(self.router.invoke.call_count, len(chunker.split(text, 200)))
        self.assertIn(SECTION_ERROR_PLACEHOLDER, output)
        self.assertEqual(self.sleeps, [])

    def test_unknown_pattern(self):
        with self.assertRaises(PatternNotFoundError):
            self.executor.apply("translate_text", "hola")
        self.router.invoke.assert_not_called()

    def test_same_family_fallback(self):
        self.router.invoke.return_value = reply("ideas")
        self.executor.apply("extract_ideas", "text")
        self.assertEqual(self.router.invoke.call_args.args[0][0]["content"], "You extract.")


class TestRunWithRetry(unittest.TestCase):

    def setUp(self):
        self.sleeps = []
        self.executor = PatternExecutor(make_catalog(), router=MagicMock(), sleep=self.sleeps.append)

    def test_transient_failure_retried(self):
        calls = []

        def operation():
            calls.append(1)
            if len(calls) == 1:
                raise TransientBackendError(FailureReason.CONNECTION_RESET)
            return "done"

        self.assertEqual(self.executor.run_with_retry(operation), "done")
        self.assertEqual(self.sleeps, [2.0])

    def test_non_transient_failure_propagates(self):
        operation = MagicMock(side_effect=FatalBackendError(FailureReason.OVERLOADED))
        with self.assertRaises(FatalBackendError):
            self.executor.run_with_retry(operation)
        self.assertEqual(operation.call_count, 1)


if __name__ == "__main__":
    unittest.main()
