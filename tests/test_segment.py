import unittest

from schedulellm.segment import clean_cell_text, split_cell, week_index


class TestSplitCell(unittest.TestCase):
    def test_two_entries_give_two_segments(self) -> None:
        cell = "高等数学/1-16周/教三101/软件2101班\n大学英语/(3-4节)1-8周/N608/软件2102班"
        segments = split_cell(cell)
        self.assertEqual(len(segments), 2)
        self.assertTrue(segments[0].startswith("高等数学"))
        self.assertTrue(segments[1].startswith("大学英语"))
        self.assertIn("N608", segments[1])

    def test_entry_with_course_code(self) -> None:
        cell = "数据结构/123456/1-16周/A101\n操作系统/654321/1-8周/A102"
        self.assertEqual(len(split_cell(cell)), 2)

    def test_single_entry_spread_over_lines(self) -> None:
        segments = split_cell("高等数学\n1-16周\n教三101")
        self.assertEqual(segments, ["高等数学 1-16周 教三101"])

    def test_line_buffer_flushes_on_second_week_line(self) -> None:
        segments = split_cell("数学 1-8周\n英语 9-16周")
        self.assertEqual(segments, ["数学 1-8周", "英语 9-16周"])

    def test_line_fallback_logs_week_tokens(self) -> None:
        with self.assertLogs("schedulellm.segment", level="DEBUG") as cm:
            split_cell("数学 1-8周\n英语 9-16周")
        self.assertIn("9-16周", cm.output[0])

    def test_line_after_slash_is_not_space_joined(self) -> None:
        segments = split_cell("高等数学/\n1-16周")
        self.assertEqual(segments, ["高等数学/1-16周"])

    def test_week_marker_on_next_line_is_healed(self) -> None:
        self.assertEqual(split_cell("数学/1-16\n周/教三101"), ["数学/1-16周/教三101"])

    def test_no_structure_returns_whole_text(self) -> None:
        self.assertEqual(split_cell("体育"), ["体育"])

    def test_empty(self) -> None:
        self.assertEqual(split_cell(""), [])
        self.assertEqual(split_cell(None), [])


class TestHelpers(unittest.TestCase):
    def test_clean_cell_text(self) -> None:
        self.assertEqual(clean_cell_text("数学◇1-16周《必修》"), "数学 / 1-16周(必修)")

    def test_week_index(self) -> None:
        idx = week_index("数学 1-8周 英语 9-16周")
        self.assertEqual([i["text"] for i in idx], ["1-8周", "9-16周"])


if __name__ == "__main__":
    unittest.main()
