"""
Tests for the TTL session store and pattern session records.
"""

import unittest

from core.errors import SessionStateMissing
from engine.session import (
    SessionStore,
    SessionState,
    PatternSessions,
    PatternResult,
    ChunkSet,
)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestSessionStore(unittest.TestCase):
    """Test TTL expiry and copy semantics."""

    def setUp(self):
        self.clock = FakeClock()
        self.store = SessionStore(clock=self.clock)

    def test_get_before_and_after_expiry(self):
        self.store.set(("p", "u"), {"a": 1}, ttl_seconds=10)
        self.clock.advance(9)
        self.assertEqual(self.store.get(("p", "u")), {"a": 1})
        self.clock.advance(1)
        self.assertIsNone(self.store.get(("p", "u")))

    def test_write_refreshes_ttl(self):
        self.store.set(("p", "u"), 1, ttl_seconds=10)
        self.clock.advance(8)
        self.store.set(("p", "u"), 2, ttl_seconds=10)
        self.clock.advance(8)
        self.assertEqual(self.store.get(("p", "u")), 2)

    def test_values_are_copied(self):
        value = {"items": [1]}
        self.store.set(("p", "u"), value, ttl_seconds=10)
        value["items"].append(2)

        loaded = self.store.get(("p", "u"))
        self.assertEqual(loaded, {"items": [1]})
        loaded["items"].append(3)
        self.assertEqual(self.store.get(("p", "u")), {"items": [1]})

    def test_purge_expired(self):
        self.store.set(("p", "a"), 1, ttl_seconds=5)
        self.store.set(("p", "b"), 2, ttl_seconds=50)
        self.clock.advance(10)

        self.assertEqual(self.store.purge_expired(), 1)
        self.assertEqual(len(self.store), 1)

    def test_delete_absent_key_is_ignored(self):
        self.store.delete(("p", "nobody"))
        self.assertEqual(len(self.store), 0)


class TestSessionState(unittest.TestCase):
    """Test selection resolution."""

    def setUp(self):
        self.state = SessionState(user_id="u1", original_input="full text")

    def test_defaults_to_original_input(self):
        self.assertEqual(self.state.selected_content(), ("full text", "original input"))

    def test_selected_output_wins(self):
        self.state.store_result("summarize", PatternResult(output="summary"))
        self.state.select_output("summarize")
        text, label = self.state.selected_content()
        self.assertEqual(text, "summary")
        self.assertIn("summarize", label)

    def test_selected_output_chunk(self):
        result = PatternResult(output="ab", chunks=["a", "b"], cursor=0)
        self.state.store_result("summarize", result)
        self.state.select_output("summarize", 1)
        self.assertEqual(self.state.selected_content()[0], "b")

    def test_select_missing_output_raises(self):
        with self.assertRaises(KeyError):
            self.state.select_output("nope")

    def test_select_bad_output_chunk_raises(self):
        self.state.store_result("summarize", PatternResult(output="ab", chunks=["a", "b"]))
        with self.assertRaises(IndexError):
            self.state.select_output("summarize", 5)

    def test_input_chunk_clears_output_selection(self):
        self.state.chunk_set = ChunkSet(chunks=["part one", "part two"])
        self.state.store_result("summarize", PatternResult(output="summary"))
        self.state.select_output("summarize")

        self.state.select_input_chunk(1)

        self.assertIsNone(self.state.selection.use_processed_output)
        self.assertEqual(self.state.selected_content()[0], "part two")

    def test_use_full_input(self):
        self.state.chunk_set = ChunkSet(chunks=["part one", "part two"])
        self.state.select_input_chunk(0)
        self.state.use_full_input()
        self.assertEqual(self.state.selected_content()[0], "full text")

    def test_batch_results_do_not_become_last_processed(self):
        self.state.store_result("summarize", PatternResult(output="s", timestamp=1.0))
        self.state.store_result("batch", PatternResult(output="b", is_batch=True, timestamp=2.0))
        self.state.store_result("extract_wisdom", PatternResult(output="w", timestamp=3.0))

        self.assertEqual(self.state.selection.last_processed_pattern, "extract_wisdom")
        self.assertEqual(self.state.single_results(), ["summarize", "extract_wisdom"])

    def test_chunk_set_validates_cursor(self):
        with self.assertRaises(ValueError):
            ChunkSet(chunks=[])
        with self.assertRaises(ValueError):
            ChunkSet(chunks=["a"], cursor=1)


class TestPatternSessions(unittest.TestCase):
    """Test typed session access over the store."""

    def setUp(self):
        self.clock = FakeClock()
        self.sessions = PatternSessions(SessionStore(clock=self.clock), ttl_seconds=60)

    def test_load_missing_raises(self):
        with self.assertRaises(SessionStateMissing):
            self.sessions.load("u1")

    def test_start_save_load(self):
        state = self.sessions.start("u1", "hello")
        state.store_result("summarize", PatternResult(output="hi"))
        self.sessions.save(state)

        loaded = self.sessions.load("u1")
        self.assertEqual(loaded.original_input, "hello")
        self.assertIn("summarize", loaded.results)

    def test_loaded_state_is_a_copy(self):
        self.sessions.start("u1", "hello")
        loaded = self.sessions.load("u1")
        loaded.store_result("summarize", PatternResult(output="hi"))
        self.assertEqual(self.sessions.load("u1").results, {})

    def test_state_expires(self):
        self.sessions.start("u1", "hello")
        self.clock.advance(61)
        self.assertIsNone(self.sessions.find("u1"))

    def test_load_or_create_keeps_existing(self):
        self.sessions.start("u1", "first")
        self.assertEqual(self.sessions.load_or_create("u1", "second").original_input, "first")
        self.sessions.clear("u1")
        self.assertEqual(self.sessions.load_or_create("u1", "second").original_input, "second")


if __name__ == "__main__":
    unittest.main()
