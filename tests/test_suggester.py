"""
Tests for pattern suggestion: explicit requests, backend reasoning
and fallbacks.
"""

import json
import unittest
from unittest.mock import MagicMock, patch

from core.errors import FailureReason, TransientBackendError, FatalBackendError
from engine.executor import PatternExecutor
from llm.router import BackendReply, LLMProvider, ModelTier
from patterns.catalog import PatternCatalog, Pattern, PatternCategory
from patterns.suggester import (
    PatternSuggester,
    InteractionType,
    parse_json_object,
    EXPLICIT_CONFIDENCE,
    SHORT_CIRCUIT_CONFIDENCE,
)

NEUTRAL_TEXT = "The mitochondria produces ATP through cellular respiration in most living cells."


def make_catalog() -> PatternCatalog:
    return PatternCatalog.from_patterns([
        Pattern(name, PatternCategory.from_pattern_name(name), f"# {name}", name)
        for name in ("summarize", "extract_wisdom", "analyze_paper", "explain_code", "write_essay")
    ])


def reply(payload) -> BackendReply:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return BackendReply(content, LLMProvider.ANTHROPIC, "test-model", ModelTier.UTILITY)


@patch("patterns.suggester.log_info")
@patch("patterns.suggester.log_warning")
@patch("patterns.suggester.log_error")
class TestPatternSuggester(unittest.TestCase):

    def setUp(self):
        self.executor = MagicMock()
        self.executor.run_with_retry.side_effect = lambda operation: operation()
        self.router = MagicMock()
        self.suggester = PatternSuggester(make_catalog(), self.executor, router=self.router)

    def test_detects_pattern_name_and_phrases(self, *_logs):
        detect = self.suggester.detect_explicit_pattern
        self.assertEqual(detect("summarize: the meeting notes"), "summarize")
        self.assertEqual(detect("Please use extract_wisdom on this talk"), "extract_wisdom")
        self.assertEqual(detect("Can you give me a tldr of this article"), "summarize")
        self.assertEqual(detect("Could you review this code for me"), "explain_code")
        self.assertIsNone(detect(NEUTRAL_TEXT))

    def test_extract_content_after_pattern(self, *_logs):
        extract = PatternSuggester.extract_content_after_pattern
        self.assertEqual(extract("summarize: The content here", "summarize"), "The content here")
        self.assertEqual(extract("extract wisdom - line one\nline two", "extract_wisdom"), "line one\nline two")
        self.assertEqual(extract("Please summarize this: Big text", "summarize"), "Big text")
        self.assertIsNone(extract("nothing to see", "summarize"))

    def test_explicit_request_runs_immediately(self, *_logs):
        self.executor.apply_large.return_value = "A summary."

        suggestion = self.suggester.suggest("summarize: The content")

        self.executor.apply_large.assert_called_once_with("summarize", "The content")
        self.executor.run_with_retry.assert_called_once()
        self.router.invoke.assert_not_called()
        self.assertTrue(suggestion.executed)
        self.assertEqual(suggestion.result, "A summary.")
        self.assertEqual(suggestion.confidence, EXPLICIT_CONFIDENCE)

    def test_failed_explicit_request_short_circuits(self, *_logs):
        self.executor.apply_large.side_effect = TransientBackendError(FailureReason.TIMEOUT)

        suggestion = self.suggester.suggest("summarize: The content")

        self.router.invoke.assert_not_called()
        self.assertFalse(suggestion.executed)
        self.assertEqual(suggestion.pattern, "summarize")
        self.assertEqual(suggestion.confidence, SHORT_CIRCUIT_CONFIDENCE)

    def test_explicit_request_retries_transient_failure(self, *_logs):
        backend = MagicMock()
        backend.invoke.side_effect = [TransientBackendError(FailureReason.TIMEOUT), reply("A summary.")]
        executor = PatternExecutor(make_catalog(), router=backend, sleep=lambda s: None)
        suggester = PatternSuggester(make_catalog(), executor, router=self.router)

        suggestion = suggester.suggest("summarize: The content")

        self.assertTrue(suggestion.executed)
        self.assertEqual(suggestion.result, "A summary.")
        self.assertEqual(backend.invoke.call_count, 2)

    def test_unloaded_catalog_disables_suggestion(self, *_logs):
        suggester = PatternSuggester(PatternCatalog(), self.executor, router=self.router)
        self.assertIsNone(suggester.suggest("summarize: The content"))

    def test_reasoned_suggestion(self, *_logs):
        self.router.invoke.side_effect = [
            reply({"contentType": "text", "format": "prose"}),
            reply({
                "pattern": "analyze_paper",
                "confidence": 0.7,
                "reasoning": "Reads like a paper.",
                "alternativePatterns": ["summarize", "bogus", "extract_wisdom", "explain_code", "write_essay"],
            }),
        ]

        suggestion = self.suggester.suggest(NEUTRAL_TEXT)

        self.assertEqual(self.router.invoke.call_count, 2)
        self.assertEqual(suggestion.pattern, "analyze_paper")
        self.assertEqual(suggestion.category, PatternCategory.ANALYSIS)
        self.assertAlmostEqual(suggestion.confidence, 0.7)
        self.assertEqual(suggestion.alternative_patterns, ["summarize", "extract_wisdom", "explain_code"])
        self.assertFalse(suggestion.executed)

        system_prompt = self.router.invoke.call_args_list[1].args[0][0]["content"]
        self.assertIn("- analysis", system_prompt)
        self.assertIn("general_input", system_prompt)

    def test_unknown_suggestion_uses_similar_pattern(self, *_logs):
        self.router.invoke.side_effect = [
            reply({}),
            reply("<think>hmm</think>Here you go: {\"pattern\": \"extract_ideas\", \"confidence\": 0.5}"),
        ]

        suggestion = self.suggester.suggest(NEUTRAL_TEXT)

        self.assertEqual(suggestion.pattern, "extract_wisdom")
        self.assertAlmostEqual(suggestion.confidence, 0.4)

    def test_unknown_suggestion_without_family(self, *_logs):
        self.router.invoke.side_effect = [reply({}), reply({"pattern": "translate_text", "confidence": 0.9})]
        self.assertIsNone(self.suggester.suggest(NEUTRAL_TEXT))

    def test_unparseable_reasoning(self, *_logs):
        self.router.invoke.side_effect = [reply({}), reply("I think summarize fits best.")]
        self.assertIsNone(self.suggester.suggest(NEUTRAL_TEXT))

    def test_reasoning_backend_failure(self, *_logs):
        self.router.invoke.side_effect = [reply({}), FatalBackendError(FailureReason.AUTH)]
        self.assertIsNone(self.suggester.suggest(NEUTRAL_TEXT))

    def test_analysis_failure_uses_heuristics(self, *_logs):
        self.router.invoke.side_effect = TransientBackendError(FailureReason.TIMEOUT)
        analysis = self.suggester.analyze_input("see https://example.com?")
        self.assertTrue(analysis["hasUrls"])
        self.assertTrue(analysis["isQuestion"])

    def test_analysis_unwraps_characteristics(self, *_logs):
        self.router.invoke.return_value = reply({"characteristics": {"contentType": "code"}})
        self.assertEqual(self.suggester.analyze_input("x = 1"), {"contentType": "code"})


class TestInteractionType(unittest.TestCase):

    def test_classify(self):
        self.assertEqual(InteractionType.classify("Hello there"), InteractionType.GREETING)
        self.assertEqual(InteractionType.classify("History of Rome"), InteractionType.GENERAL_INPUT)
        self.assertEqual(InteractionType.classify("/start"), InteractionType.COMMAND)
        self.assertEqual(InteractionType.classify("What is ATP?"), InteractionType.FACTUAL_QUESTION)
        self.assertEqual(InteractionType.classify("How does it work?"), InteractionType.EXPLANATORY_QUESTION)
        self.assertEqual(InteractionType.classify("Please translate this"), InteractionType.COMMAND)
        self.assertEqual(InteractionType.classify("I think it is fine"), InteractionType.STATEMENT)
        self.assertEqual(InteractionType.classify("ok"), InteractionType.SHORT_INPUT)

    def test_question_words_match_whole_words(self):
        self.assertEqual(InteractionType.classify("Is it somewhat late?"), InteractionType.GENERAL_QUESTION)
        self.assertEqual(InteractionType.classify("Is this showing up?"), InteractionType.GENERAL_QUESTION)
        self.assertEqual(InteractionType.classify("Is that why?"), InteractionType.EXPLANATORY_QUESTION)


class TestParseJsonObject(unittest.TestCase):

    def test_embedded_object(self):
        self.assertEqual(parse_json_object('Sure! {"a": 1} done'), {"a": 1})

    def test_missing_object(self):
        with self.assertRaises(ValueError):
            parse_json_object("no json here")


if __name__ == "__main__":
    unittest.main()
