import unittest

from app.normalize.ats_sanitizer import light_sanitize, sanitize_resume_for_ats
from app.normalize.jd_cleaner import clean_job_description, trim_job_description_to_role_content


class JobDescriptionCleanerTests(unittest.TestCase):
    def test_strips_tags_and_decodes_entities(self):
        cleaned = clean_job_description("<p>Hello&nbsp;<b>world</b></p>")
        self.assertEqual(cleaned, "Hello world")

    def test_escaped_markup_cannot_reintroduce_tags(self):
        cleaned = clean_job_description("&lt;script&gt;alert(1)&lt;/script&gt; text")
        self.assertNotIn("<", cleaned)
        self.assertNotIn(">", cleaned)
        self.assertEqual(cleaned, "alert(1) text")

    def test_truncates_with_ellipsis(self):
        self.assertEqual(clean_job_description("a" * 50, max_length=10), "a" * 10 + "...")

    def test_empty_input(self):
        self.assertEqual(clean_job_description(None), "")
        self.assertEqual(clean_job_description(""), "")

    def test_length_is_bounded_and_markup_free(self):
        text = "<div><b>Senior</b> engineer &amp; mentor</div> " * 40
        for max_length in (1, 5, 17, 80, 4000):
            cleaned = clean_job_description(text, max_length=max_length)
            self.assertLessEqual(len(cleaned), max_length + 3)
            self.assertNotIn("<", cleaned)
            self.assertNotIn(">", cleaned)

    def test_trim_drops_intro_and_salary(self):
        text = "Intro about company.\nABOUT THE ROLE\nDo X.\nSalary Range: $100k"
        self.assertEqual(trim_job_description_to_role_content(text), "ABOUT THE ROLE\nDo X.")

    def test_trim_keeps_role_section(self):
        text = (
            "Acme builds rockets for everyone.\n"
            "ABOUT THE ROLE\n"
            "Build APIs in Python.\n"
            "Equal Opportunity Employer statement follows."
        )
        self.assertEqual(trim_job_description_to_role_content(text), "ABOUT THE ROLE\nBuild APIs in Python.")

    def test_trim_matches_capitalised_sentinels(self):
        text = "Intro.\nAbout The Role\nShip features.\nWhat We Offer\nSnacks."
        self.assertEqual(trim_job_description_to_role_content(text), "About The Role\nShip features.")

    def test_trim_without_start_sentinel_cuts_tail(self):
        text = "Build APIs.\nSalary Range: 100k"
        self.assertEqual(trim_job_description_to_role_content(text), "Build APIs.")

    def test_trim_without_sentinels_returns_input(self):
        text = "We need a backend engineer who enjoys Python."
        self.assertEqual(trim_job_description_to_role_content(text), text)


class AtsSanitizerTests(unittest.TestCase):
    def test_light_sanitize_normalises_glyphs(self):
        self.assertEqual(light_sanitize("• Led team — shipped"), "- Led team - shipped")

    def test_splits_pipe_joined_contact_line(self):
        resume = (
            "Jane Doe | jane@example.com | 555-123-4567\n"
            "## Experience\n"
            "• Built things — fast\n"
            "## Skills\n"
            "Python\n"
            "## Education\n"
            "BS Computer Science"
        )
        sanitized = sanitize_resume_for_ats(resume)
        self.assertTrue(sanitized.startswith("Jane Doe\njane@example.com\n555-123-4567\n## Experience"))
        self.assertIn("- Built things - fast", sanitized)
        self.assertNotIn("|", sanitized)

    def test_inserts_missing_headers_after_contact_block(self):
        resume = "Jane Doe\njane@example.com\n\nBackend developer who likes APIs."
        sanitized = sanitize_resume_for_ats(resume)
        self.assertTrue(sanitized.startswith("Jane Doe\njane@example.com\n"))
        experience = sanitized.index("## Experience")
        skills = sanitized.index("## Skills")
        education = sanitized.index("## Education")
        self.assertLess(experience, skills)
        self.assertLess(skills, education)
        self.assertIn("Backend developer who likes APIs.", sanitized)

    def test_glyphs_become_hyphens(self):
        sanitized = sanitize_resume_for_ats("- •Built thing — 2020–2021")
        for glyph in ("•", "—", "–"):
            self.assertNotIn(glyph, sanitized)
        self.assertIn("- -Built thing - 2020-2021", sanitized)

    def test_sanitizing_twice_changes_nothing(self):
        resumes = [
            "• Led team — shipped ▪ fast ◦ 2019–2020",
            "Jane Doe\njane@example.com\n\n## Experience\n● Built APIs — 40% faster\n▸ Ran on-call\n"
            "## Skills\nPython – SQL\n## Education\nBS",
            "Jane Doe\n\nBackend developer ○ who likes APIs.",
        ]
        for resume in resumes:
            once = sanitize_resume_for_ats(resume)
            self.assertEqual(sanitize_resume_for_ats(once), once)
            self.assertEqual(light_sanitize(light_sanitize(resume)), light_sanitize(resume))

    def test_missing_education_header_lands_in_first_fifty_lines(self):
        resume = "Jane Doe\n\n## Experience\n" + "".join(f"- Shipped feature {n}\n" for n in range(80)) + "## Skills\nPython"
        head = sanitize_resume_for_ats(resume).split("\n")[:50]
        self.assertIn("## Education", head)

    def test_empty_resume(self):
        self.assertEqual(sanitize_resume_for_ats(""), "")


if __name__ == "__main__":
    unittest.main()
