"""
Unit tests for word-boundary normalization and estimation.
"""

import unittest

from ttsbridge.core.boundaries import (
    BoundaryMark,
    BoundarySource,
    estimate_boundaries,
    estimate_duration_ms,
    normalize_native,
    total_duration_ms,
)


class TestEstimation(unittest.TestCase):

    def test_duration_conservation(self):
        text = "The quick brown fox jumps over the lazy dog, twice!"
        for total in (1000.0, 1234.5, 7.0, 98765.0):
            with self.subTest(total=total):
                marks = estimate_boundaries(text, total)

                self.assertEqual(len(marks), 10)
                self.assertAlmostEqual(sum(m.duration_ms for m in marks), total, delta=1e-6)
                self.assertAlmostEqual(marks[-1].end_ms, total, delta=1e-6)
                self.assertEqual(marks[0].offset_ms, 0.0)
                offsets = [m.offset_ms for m in marks]
                self.assertEqual(offsets, sorted(offsets))
                self.assertTrue(all(m.duration_ms >= 0 for m in marks))

    def test_weight_is_character_length(self):
        marks = estimate_boundaries("a bbb", 400)

        self.assertEqual([m.text for m in marks], ["a", "bbb"])
        self.assertEqual(marks[0].duration_ms, 100)
        self.assertEqual(marks[1].offset_ms, 100)
        self.assertEqual(marks[1].duration_ms, 300)

    def test_punctuation_stays_attached(self):
        marks = estimate_boundaries("Hello,  world!\n", 1000)
        self.assertEqual([m.text for m in marks], ["Hello,", "world!"])

    def test_marks_are_tagged_estimated(self):
        marks = estimate_boundaries("one two", 500)
        self.assertTrue(all(m.source is BoundarySource.ESTIMATED for m in marks))

    def test_empty_text(self):
        self.assertEqual(estimate_boundaries("   ", 1000), [])

    def test_zero_duration(self):
        marks = estimate_boundaries("one two", 0)
        self.assertEqual([(m.offset_ms, m.duration_ms) for m in marks], [(0, 0), (0, 0)])


class TestDurationHeuristic(unittest.TestCase):

    def test_words_per_minute(self):
        # 5-letter words take exactly one word slot: 400ms at 150 wpm
        self.assertAlmostEqual(estimate_duration_ms("hello world"), 800.0)

    def test_length_factor_is_clamped(self):
        # "a" -> factor 0.5, long word -> factor 2.0
        self.assertAlmostEqual(estimate_duration_ms("a"), 200.0)
        self.assertAlmostEqual(estimate_duration_ms("incomprehensibilities"), 800.0)

    def test_rate_changes_duration(self):
        self.assertAlmostEqual(estimate_duration_ms("hello", words_per_minute=300), 200.0)

    def test_invalid_rate(self):
        with self.assertRaises(ValueError):
            estimate_duration_ms("hello", words_per_minute=0)


class TestNativeNormalization(unittest.TestCase):

    def test_tuples_pass_through(self):
        marks = normalize_native([("Mock", 0, 500), ("boundary", 500, 500), ("test.", 1000, 500)])

        self.assertEqual([m.text for m in marks], ["Mock", "boundary", "test."])
        self.assertEqual(marks[2].end_ms, 1500)
        self.assertTrue(all(m.source is BoundarySource.NATIVE for m in marks))

    def test_negative_offsets_clamped(self):
        marks = normalize_native([("early", -50, 100), ("late", 100, -5)])

        self.assertEqual(marks[0].offset_ms, 0)
        self.assertEqual(marks[1].duration_ms, 0)

    def test_input_order_preserved(self):
        marks = normalize_native([("b", 300, 100), ("a", 100, 100), ("c", 500, 100)])

        self.assertEqual([m.text for m in marks], ["b", "a", "c"])
        offsets = [m.offset_ms for m in marks]
        self.assertEqual(offsets, sorted(offsets))

    def test_duplicate_zero_width_dropped(self):
        marks = normalize_native([("x", 100, 0), ("x", 100, 0), ("y", 100, 0), ("x", 100, 50)])
        self.assertEqual([(m.text, m.duration_ms) for m in marks], [("x", 0), ("y", 0), ("x", 50)])

    def test_dict_inputs(self):
        marks = normalize_native([
            {"text": "Hello", "offset": 0, "duration": 250},
            {"word": "there", "offset_ms": 250, "duration_ms": 300},
            {"value": "friend", "time": 600},
        ], total_ms=1000)

        self.assertEqual([m.text for m in marks], ["Hello", "there", "friend"])
        self.assertEqual(marks[2].duration_ms, 400)

    def test_missing_durations_run_to_next_mark(self):
        marks = normalize_native([{"value": "a", "time": 0}, {"value": "b", "time": 350}])

        self.assertEqual(marks[0].duration_ms, 350)
        # Last mark has nothing to run to without a total duration
        self.assertEqual(marks[1].duration_ms, 0)

    def test_clamped_to_total_duration(self):
        marks = normalize_native([("long", 800, 500)], total_ms=1000)
        self.assertEqual(marks[0].end_ms, 1000)

    def test_existing_marks_accepted(self):
        original = BoundaryMark("hi", 10, 20, BoundarySource.ESTIMATED)
        marks = normalize_native([original])

        self.assertEqual(marks[0].text, "hi")
        self.assertIs(marks[0].source, BoundarySource.NATIVE)

    def test_invalid_value(self):
        with self.assertRaises(ValueError):
            normalize_native(["just a string"])
        with self.assertRaises(ValueError):
            normalize_native([{"offset": 10}])


class TestBoundaryMark(unittest.TestCase):

    def test_derived_times(self):
        mark = BoundaryMark("word", 1500, 250)

        self.assertEqual(mark.end_ms, 1750)
        self.assertEqual(mark.start_sec, 1.5)
        self.assertEqual(mark.end_sec, 1.75)
        self.assertEqual(mark.to_dict()["source"], "native")

    def test_total_duration(self):
        self.assertEqual(total_duration_ms([]), 0.0)
        self.assertEqual(total_duration_ms([BoundaryMark("a", 0, 100), BoundaryMark("b", 50, 200)]), 250)


if __name__ == "__main__":
    unittest.main()
