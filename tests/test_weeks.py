"""
Unit tests for week specification decoding.

Decoding contract:
- result is sorted and de-duplicated
- tokens without a week marker and without a range are ignored
- weeks outside 1..MAX_WEEK are ignored, scanning continues
- never raises
"""

import unittest

from schedulellm.weeks import MAX_WEEK, decode_weeks, format_week_ranges, has_week_info


class TestDecodeWeeks(unittest.TestCase):
    def test_plain_range(self) -> None:
        self.assertEqual(decode_weeks("1-16周"), list(range(1, 17)))

    def test_odd_weeks(self) -> None:
        self.assertEqual(decode_weeks("1-16周(单)"), list(range(1, 16, 2)))

    def test_even_weeks(self) -> None:
        self.assertEqual(decode_weeks("2-16周(双)"), list(range(2, 17, 2)))

    def test_bare_parity_marker(self) -> None:
        self.assertEqual(decode_weeks("1-16单"), list(range(1, 16, 2)))

    def test_multi_segment(self) -> None:
        self.assertEqual(decode_weeks("1-8,11-16周"), list(range(1, 9)) + list(range(11, 17)))

    def test_parity_applies_per_segment(self) -> None:
        self.assertEqual(decode_weeks("2-6周,8-12周(双)"), [2, 3, 4, 5, 6, 8, 10, 12])

    def test_full_width_input(self) -> None:
        self.assertEqual(decode_weeks("１－１６周（单）"), list(range(1, 16, 2)))

    def test_single_week(self) -> None:
        self.assertEqual(decode_weeks("5周"), [5])

    def test_course_code_is_skipped(self) -> None:
        self.assertEqual(decode_weeks("(43011091)1-16周"), list(range(1, 17)))

    def test_period_notes_are_not_weeks(self) -> None:
        self.assertEqual(decode_weeks("(1-2节)3-16周"), list(range(3, 17)))
        self.assertEqual(decode_weeks("1-2节 3-4周"), [3, 4])

    def test_out_of_bound_token_is_dropped(self) -> None:
        self.assertEqual(decode_weeks("1-60周"), [])
        self.assertEqual(decode_weeks("1-16周,40-45周"), list(range(1, 17)))
        self.assertTrue(all(w <= MAX_WEEK for w in decode_weeks("25-35周,28-30周")))

    def test_malformed_input(self) -> None:
        self.assertEqual(decode_weeks(""), [])
        self.assertEqual(decode_weeks(None), [])
        self.assertEqual(decode_weeks("abc"), [])
        self.assertEqual(decode_weeks("周"), [])
        self.assertEqual(decode_weeks("16-1周"), [])

    def test_bare_number_is_not_a_week(self) -> None:
        self.assertEqual(decode_weeks("5"), [])


class TestFormatWeekRanges(unittest.TestCase):
    def test_format(self) -> None:
        self.assertEqual(format_week_ranges([1, 2, 3, 5, 7, 8]), "1-3周,5周,7-8周")
        self.assertEqual(format_week_ranges([]), "")

    def test_decode_is_idempotent(self) -> None:
        for spec in ["1-16周", "1-16周(单)", "2-16周(双)", "1-8,11-16周", "2-6周,8-12周(双)", "5周"]:
            weeks = decode_weeks(spec)
            self.assertEqual(decode_weeks(format_week_ranges(weeks)), weeks, spec)


class TestHasWeekInfo(unittest.TestCase):
    def test_detection(self) -> None:
        self.assertTrue(has_week_info("高等数学 1-16周"))
        self.assertTrue(has_week_info("3周"))
        self.assertFalse(has_week_info("教三101"))


if __name__ == "__main__":
    unittest.main()
