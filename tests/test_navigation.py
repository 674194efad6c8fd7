"""
Tests for chunk cursor navigation.
"""

import unittest

from engine.navigation import (
    Direction,
    move,
    ensure_input_chunks,
    navigate_input,
    navigate_output,
)
from engine.session import SessionState, PatternResult


class TestMove(unittest.TestCase):
    """Test clamped cursor movement."""

    def test_next_and_prev(self):
        self.assertEqual(move(0, Direction.NEXT, 3), (1, True))
        self.assertEqual(move(2, Direction.PREV, 3), (1, True))

    def test_clamps_instead_of_wrapping(self):
        self.assertEqual(move(2, Direction.NEXT, 3), (2, False))
        self.assertEqual(move(0, Direction.PREV, 3), (0, False))

    def test_first_and_last(self):
        self.assertEqual(move(1, Direction.FIRST, 3), (0, True))
        self.assertEqual(move(1, Direction.LAST, 3), (2, True))
        self.assertEqual(move(2, Direction.LAST, 3), (2, False))

    def test_single_chunk_never_moves(self):
        for direction in Direction:
            self.assertEqual(move(0, direction, 1), (0, False))

    def test_empty_set_rejected(self):
        with self.assertRaises(ValueError):
            move(0, Direction.NEXT, 0)


class TestNavigateInput(unittest.TestCase):

    def setUp(self):
        text = "\n\n".join("Paragraph %d. " % i + "word " * 150 for i in range(10))
        self.state = SessionState(user_id="u1", original_input=text)

    def test_chunks_lazily(self):
        self.assertIsNone(self.state.chunk_set)
        chunk_set = ensure_input_chunks(self.state, 1000)
        self.assertGreater(len(chunk_set), 1)
        self.assertIs(ensure_input_chunks(self.state, 1000), chunk_set)

    def test_walk_to_end_and_back(self):
        chunk_set, moved = navigate_input(self.state, Direction.LAST, 1000)
        self.assertTrue(moved)
        self.assertEqual(chunk_set.cursor, len(chunk_set) - 1)

        chunk_set, moved = navigate_input(self.state, Direction.NEXT, 1000)
        self.assertFalse(moved)

        chunk_set, moved = navigate_input(self.state, Direction.FIRST, 1000)
        self.assertTrue(moved)
        self.assertEqual(chunk_set.cursor, 0)


class TestNavigateOutput(unittest.TestCase):

    def test_output_chunked_for_display(self):
        result = PatternResult(output="sentence one. " * 500)
        result, moved = navigate_output(result, Direction.NEXT, 1000)

        self.assertTrue(moved)
        self.assertEqual(result.cursor, 1)
        self.assertEqual("".join(result.chunks), result.output)
        self.assertEqual(result.current_chunk, result.chunks[1])

    def test_short_output_single_chunk(self):
        result, moved = navigate_output(PatternResult(output="short"), Direction.NEXT)
        self.assertFalse(moved)
        self.assertEqual(result.chunks, ["short"])


if __name__ == "__main__":
    unittest.main()
