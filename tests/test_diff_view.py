import unittest

from app.features.diff_view import HEADER_SECTION, build_diff_report, diff_texts


class DiffViewTests(unittest.TestCase):
    def test_segments_rebuild_both_texts(self):
        original = "## Summary\nBackend engineer.\n\n## Experience\n- Built APIs in Python\n- Ran on-call\n"
        tailored = "## Summary\nSenior backend engineer.\n\n## Experience\n- Built REST APIs in Python and Go\n"
        segments = diff_texts(original, tailored)
        self.assertEqual("".join(s.text for s in segments if s.type in {"equal", "delete"}), original)
        self.assertEqual("".join(s.text for s in segments if s.type in {"equal", "insert"}), tailored)

    def test_insertion_is_reported_in_its_section(self):
        report = build_diff_report(
            "## Experience\n- Built APIs in Python\n",
            "## Experience\n- Built REST APIs in Python\n",
        )
        self.assertEqual(report.summary.total, 1)
        self.assertEqual(report.summary.added, 1)
        change = report.changes[0]
        self.assertEqual(change.type, "added")
        self.assertEqual(change.section, "Experience")
        self.assertEqual(change.text, "REST")
        self.assertEqual(report.summary.sections_changed, ["Experience"])

    def test_replacement_becomes_a_modification(self):
        report = build_diff_report("## Skills\nPython Java\n", "## Skills\nPython Go\n")
        self.assertEqual(report.summary.modified, 1)
        self.assertEqual(report.summary.total, 1)
        change = report.changes[0]
        self.assertEqual(change.original_text, "Java")
        self.assertEqual(change.new_text, "Go")
        self.assertEqual(change.section, "Skills")
        self.assertEqual(list(report.grouped_changes), ["Skills"])

    def test_changes_above_first_heading_belong_to_header(self):
        report = build_diff_report("Jane Doe\n## Skills\nPython\n", "Jane A. Doe\n## Skills\nPython\n")
        self.assertEqual(report.changes[0].section, HEADER_SECTION)
        self.assertEqual(report.changes[0].type, "added")

    def test_identical_texts_have_no_changes(self):
        report = build_diff_report("## Skills\nPython\n", "## Skills\nPython\n")
        self.assertEqual(report.changes, [])
        self.assertEqual(report.summary.total, 0)
        self.assertEqual([segment.type for segment in report.segments], ["equal"])


if __name__ == "__main__":
    unittest.main()
