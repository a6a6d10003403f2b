import unittest

from app.features.keywords import (
    compute_keyword_gap,
    extract_keywords_frequency_based,
    normalize_keyword_response,
    prioritized_missing_keywords,
)
from app.features.relevancy import compute_composite_score, compute_resume_metrics, extract_requirements

JOB_DESCRIPTION = (
    "Requirements:\n"
    "- Python APIs at scale\n"
    "- Kubernetes deployment experience\n"
    "- Python Python Kubernetes Terraform Terraform\n"
)


class KeywordTests(unittest.TestCase):
    def test_frequency_fallback_ranks_repeated_terms(self):
        result = extract_keywords_frequency_based("Python Python Python Django Django Kubernetes Kubernetes the the and")
        self.assertEqual(result.critical_keywords, ["python", "django", "kubernetes"])
        self.assertEqual(result.keywords.technical[0].term, "python")
        self.assertEqual(result.keywords.technical[0].frequency, 3)
        self.assertEqual(result.keywords.technical[0].importance, "high")
        self.assertEqual(result.keyword_density.total_keywords, 3)

    def test_normalize_coerces_loose_model_output(self):
        raw = {
            "keywords": {
                "technical": [
                    {"term": "Python", "importance": "CRITICAL", "importanceScore": "95", "frequency": 3},
                    {"keyword": "Docker", "importance": "unheard-of"},
                    {"importance": "high"},
                    "not a dict",
                ],
                "soft": "not a list",
                "actionVerbs": [{"term": "Led", "frequency": 2}],
            }
        }
        result = normalize_keyword_response(raw)
        technical = result.keywords.technical
        self.assertEqual([item.term for item in technical], ["Python", "Docker"])
        self.assertEqual(technical[0].importance, "critical")
        self.assertEqual(technical[0].importance_score, 95)
        self.assertEqual(technical[1].importance, "medium")
        self.assertEqual(result.keywords.soft, [])
        self.assertEqual(result.keywords.action_verbs[0].term, "Led")
        self.assertEqual(result.critical_keywords, ["Python"])

    def test_normalize_rejects_non_objects(self):
        result = normalize_keyword_response(["python"])
        self.assertEqual(result.critical_keywords, [])
        self.assertEqual(result.keywords.technical, [])

    def test_keyword_gap_and_priorities(self):
        keywords = extract_keywords_frequency_based(JOB_DESCRIPTION)
        resume = "Python developer automating infrastructure with Terraform."
        gap = compute_keyword_gap(keywords, resume)
        self.assertIn("python", gap.found_in_resume)
        self.assertIn("terraform", gap.found_in_resume)
        self.assertIn("kubernetes", gap.missing_keywords)
        self.assertEqual(prioritized_missing_keywords(keywords, resume), ["kubernetes"])


class RelevancyTests(unittest.TestCase):
    def test_requirements_are_deduplicated_bullets(self):
        requirements = extract_requirements(JOB_DESCRIPTION + "- Python APIs at scale\n")
        self.assertEqual(requirements.count("Python APIs at scale"), 1)
        self.assertIn("Kubernetes deployment experience", requirements)

    def test_tailored_resume_scores_higher(self):
        before_resume = "## Experience\n- Worked on backend services for the team\n- Helped with deployments\n"
        after_resume = (
            "## Experience\n"
            "- Built Python APIs handling 2M requests per day, cutting latency 40%\n"
            "- Automated Kubernetes deployments with an internal platform CLI\n"
        )
        kwargs = {"critical_keywords": ["python", "kubernetes"], "technical_terms": ["python", "kubernetes"]}
        before = compute_resume_metrics(before_resume, JOB_DESCRIPTION, **kwargs)
        after = compute_resume_metrics(after_resume, JOB_DESCRIPTION, **kwargs)

        self.assertEqual(before.critical_keywords.matched, 0)
        self.assertEqual(after.critical_keywords.matched, 2)
        self.assertEqual(after.concrete_evidence.with_evidence, 2)
        self.assertEqual(after.platform_ownership, 1)
        self.assertGreater(compute_composite_score(after), compute_composite_score(before))

    def test_scores_are_bounded(self):
        metrics = compute_resume_metrics("", "")
        score = compute_composite_score(metrics)
        self.assertGreaterEqual(score, 0)
        self.assertLessEqual(score, 100)


if __name__ == "__main__":
    unittest.main()
