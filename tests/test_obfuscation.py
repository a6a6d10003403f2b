import unittest

from app.features.obfuscation import LOCKED_LABEL, locked_preview, obfuscate_resume, reveal_content

ORIGINAL = (
    "Jane Doe\n"
    "jane@example.com\n"
    "\n"
    "## Summary\n"
    "Engineer.\n"
    "\n"
    "## Experience\n"
    "- Built APIs\n"
    "\n"
    "## Skills\n"
    "Python\n"
)

TAILORED = (
    "Jane Doe\n"
    "jane@example.com\n"
    "\n"
    "## Summary\n"
    "Backend engineer with 5 years of Python.\n"
    "\n"
    "## Experience\n"
    "- Built REST APIs serving 2M requests per day\n"
    "\n"
    "## Skills\n"
    "Python, FastAPI, PostgreSQL\n"
)


class ObfuscationTests(unittest.TestCase):
    def test_reveal_restores_tailored_text_exactly(self):
        result = obfuscate_resume(ORIGINAL, TAILORED)
        self.assertEqual(reveal_content(result.obfuscated_resume, result.content_map), TAILORED)

    def test_contact_headers_and_free_section_stay_readable(self):
        result = obfuscate_resume(ORIGINAL, TAILORED)
        obfuscated = result.obfuscated_resume
        self.assertTrue(obfuscated.startswith("Jane Doe\njane@example.com\n"))
        for header in ("## Summary", "## Experience", "## Skills"):
            self.assertIn(header, obfuscated)
        self.assertIn("- Built REST APIs serving 2M requests per day", obfuscated)
        self.assertNotIn("Backend engineer with 5 years", obfuscated)
        self.assertNotIn("FastAPI", obfuscated)
        self.assertEqual(len(result.content_map), 2)

    def test_free_reveal_pairs_original_and_improved_text(self):
        reveal = obfuscate_resume(ORIGINAL, TAILORED).free_reveal
        self.assertIsNotNone(reveal)
        self.assertEqual(reveal.section, "Experience")
        self.assertEqual(reveal.original_text, "- Built APIs")
        self.assertEqual(reveal.improved_text, "- Built REST APIs serving 2M requests per day")

    def test_leaked_metrics_payload_is_never_revealed(self):
        tailored = TAILORED.replace(
            "- Built REST APIs serving 2M requests per day",
            '- Built APIs "improvementMetrics": {"atsKeywordsMatched": 4}',
        )
        result = obfuscate_resume(ORIGINAL, tailored)
        self.assertIsNotNone(result.free_reveal)
        self.assertNotEqual(result.free_reveal.section, "Experience")
        self.assertNotIn("improvementMetrics", result.obfuscated_resume)

    def test_tokens_are_unique_and_preview_hides_them(self):
        result = obfuscate_resume(ORIGINAL, TAILORED)
        self.assertEqual(len(set(result.content_map)), len(result.content_map))
        preview = locked_preview(result.obfuscated_resume, result.content_map)
        self.assertIn(LOCKED_LABEL, preview)
        for token in result.content_map:
            self.assertNotIn(token, preview)

    def test_missing_original_returns_tailored_unlocked(self):
        result = obfuscate_resume("", TAILORED)
        self.assertEqual(result.obfuscated_resume, TAILORED)
        self.assertEqual(result.content_map, {})
        self.assertIsNone(result.free_reveal)


if __name__ == "__main__":
    unittest.main()
