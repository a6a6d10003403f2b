import os
import unittest

os.environ.setdefault("TOOLS_LLM_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("ANALYTICS_ENABLED", "0")

from fastapi.testclient import TestClient

from app.core.request_limiter import get_request_counter
from app.core.ttl_cache import get_cache
from app.main import app

JOB_DESCRIPTION = (
    "We are hiring a backend engineer to build Python services on Kubernetes. "
    "You will own Python APIs, operate Kubernetes clusters, write Terraform modules "
    "and keep Terraform state healthy while mentoring engineers."
)
RESUME = (
    "Jane Doe | jane@example.com | 555-123-4567\n"
    "## Experience\n"
    "• Built Python APIs for a payments platform serving 1.2M users\n"
    "• Reduced API latency by 38% by introducing caching\n"
)


class ToolsApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        os.environ["TOOLS_LLM_ENABLED"] = "0"
        cls.client = TestClient(app)

    def setUp(self):
        get_request_counter().reset()
        get_cache().clear()

    def test_keyword_analyzer_rejects_short_description(self):
        response = self.client.post("/v1/tools/keyword-analyzer", json={"jobDescription": "Python dev"})
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["error"], "Invalid Input")
        self.assertEqual(body["message"], "Please provide a job description with at least 100 characters")

    def test_keyword_analyzer_frequency_fallback(self):
        response = self.client.post(
            "/v1/tools/keyword-analyzer",
            json={"jobDescription": JOB_DESCRIPTION, "resume": RESUME},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["source"], "frequency")
        self.assertEqual(body["industry"], "Technology")
        self.assertEqual(body["experienceLevel"], "mid")
        self.assertIn("python", body["criticalKeywords"])
        self.assertIn("python", body["foundInResume"])
        self.assertIn("kubernetes", body["missingFromResume"])
        self.assertEqual(body["recommendations"][0]["keyword"], body["missingFromResume"][0])

    def test_skills_gap_requires_both_inputs(self):
        response = self.client.post("/v1/tools/skills-gap", json={"resume": RESUME})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Both resume and job description are required")

    def test_skills_gap_fallback_score(self):
        response = self.client.post(
            "/v1/tools/skills-gap",
            json={"resume": RESUME, "jobDescription": JOB_DESCRIPTION},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["matchScore"], 50)
        self.assertEqual(body["skills"], {"matched": [], "missing": [], "extra": []})

    def test_ats_simulator_fallback(self):
        response = self.client.post("/v1/tools/ats-simulator", json={"resume": RESUME})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["atsScore"], 70)
        self.assertEqual(body["parsedData"]["contactInfo"]["email"], "jane@example.com")
        self.assertEqual(body["parsedData"]["sections"], ["Experience"])
        self.assertEqual(body["recommendations"], ["Enable full parsing by using structured format"])
        descriptions = " ".join(issue["description"] for issue in body["issues"])
        self.assertIn("pipes", descriptions)
        self.assertIn("Education", descriptions)

    def test_ats_simulator_rejects_short_resume(self):
        response = self.client.post("/v1/tools/ats-simulator", json={"resume": "Jane Doe"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Please provide a resume with at least 100 characters")

    def test_interview_prep_fallback(self):
        response = self.client.post("/v1/tools/interview-prep", json={"jobDescription": JOB_DESCRIPTION})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(
            body["interviewTips"],
            ["Prepare examples using the STAR method", "Research the company thoroughly"],
        )
        self.assertTrue(body["technical"])
        self.assertTrue(body["behavioral"])

    def test_interview_prep_requires_description(self):
        response = self.client.post("/v1/tools/interview-prep", json={"jobDescription": ""})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Job description is required")

    def test_relevancy_reports_signed_improvement(self):
        tailored = RESUME + "• Operated Kubernetes clusters and Terraform modules for 40 services\n"
        response = self.client.post(
            "/v1/tools/relevancy",
            json={"originalResume": RESUME, "tailoredResume": tailored, "jobDescription": JOB_DESCRIPTION},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertGreaterEqual(body["after"], body["before"])
        self.assertEqual(body["improvement"], f"+{body['after'] - body['before']}%")
        self.assertIn("criticalKeywords", body["afterMetrics"])
        self.assertEqual(body["commentary"], [])

    def test_request_counter_blocks_after_limit(self):
        statuses = [
            self.client.post("/v1/tools/ats-simulator", json={"resume": RESUME}).status_code for _ in range(6)
        ]
        self.assertEqual(statuses[:5], [200] * 5)
        self.assertEqual(statuses[5], 429)

    def test_request_validation_is_reported_as_invalid_input(self):
        response = self.client.post("/v1/tools/ats-simulator", json={"resume": 12})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid Input")

    def test_validate_resume_flags_unsupported_claims(self):
        original = "Jane Doe\n## Experience\n- Built Python APIs serving 1.2M users\n## Skills\nPython, SQL\n"
        tailored = (
            "Jane Doe\n## Experience\n- Built Python APIs serving 2M users and cut costs by 40%\n"
            "## Skills\nPython, SQL, Kubernetes\n"
        )
        response = self.client.post(
            "/v1/tools/validate-resume", json={"originalResume": original, "tailoredResume": tailored}
        )
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["source"], "rules")
        self.assertFalse(body["isValid"])
        metrics = [item for item in body["flaggedItems"] if item["type"] == "metric"]
        self.assertEqual([item["severity"] for item in metrics], ["high", "high"])
        self.assertTrue(all(item["location"] == "Experience" for item in metrics))
        self.assertIn('"2m"', metrics[0]["description"])
        self.assertIn('"40%"', metrics[1]["description"])
        technology = [item for item in body["flaggedItems"] if item["type"] == "technology"]
        self.assertEqual(len(technology), 1)
        self.assertIn("Kubernetes", technology[0]["description"])
        self.assertEqual(technology[0]["severity"], "medium")
        self.assertTrue(body["summary"].startswith("3 item(s)"))

    def test_validate_resume_accepts_reordered_content(self):
        original = "Jane Doe\n## Experience\n- Built Python APIs serving 1.2M users\n## Skills\nPython, SQL\n"
        tailored = "Jane Doe\n## Skills\nSQL, Python\n## Experience\n- Built Python APIs serving 1.2M users\n"
        response = self.client.post(
            "/v1/tools/validate-resume", json={"originalResume": original, "tailoredResume": tailored}
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["isValid"])
        self.assertEqual(body["flaggedItems"], [])
        self.assertEqual(body["summary"], "No unsupported claims were found.")

    def test_validate_resume_requires_both_versions(self):
        response = self.client.post("/v1/tools/validate-resume", json={"originalResume": RESUME})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Both original and tailored resumes are required")


if __name__ == "__main__":
    unittest.main()
