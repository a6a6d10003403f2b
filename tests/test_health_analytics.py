import unittest

from fastapi.testclient import TestClient

from app.core.lifespan import purge_expired_state
from app.core.ttl_cache import get_cache
from app.main import app


class HealthAndAnalyticsTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def test_health(self):
        response = self.client.get("/v1/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "healthy"})

    def test_ai_runs_summary_when_analytics_disabled(self):
        response = self.client.get("/v1/analytics/ai-runs", params={"days": 3})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"enabled": False})

    def test_ai_runs_days_are_bounded(self):
        response = self.client.get("/v1/analytics/ai-runs", params={"days": 0})
        self.assertEqual(response.status_code, 400)

    def test_purge_reports_every_store(self):
        get_cache().set("expired", 1, ttl_seconds=0)
        deleted = purge_expired_state()
        self.assertEqual(set(deleted), {"ai_analysis_runs", "cache_entries", "request_events"})
        self.assertGreaterEqual(deleted["cache_entries"], 1)


if __name__ == "__main__":
    unittest.main()
