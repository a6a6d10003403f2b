import os
import tempfile
import unittest

from fastapi.testclient import TestClient

from app.core.request_limiter import get_request_counter
from app.core.resume_store import SqliteResumeStore, set_resume_store
from app.core.security import AuthUser, reset_token_verifier, set_token_verifier
from app.features.obfuscation import LOCKED_LABEL
from app.main import app

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
    "Python"
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
    "Python, FastAPI, PostgreSQL"
)
TOKENS = {"token-user-1": AuthUser(id="user-1"), "token-user-2": AuthUser(id="user-2")}


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


class ResumeApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def setUp(self):
        get_request_counter().reset()
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SqliteResumeStore(os.path.join(self._tmp.name, "resumes.db"))
        set_resume_store(self.store)
        set_token_verifier(TOKENS.get)

    def tearDown(self):
        set_resume_store(None)
        reset_token_verifier()
        self._tmp.cleanup()

    def _save(self, headers=None, **fields):
        body = {"originalResume": ORIGINAL, "tailoredResume": TAILORED, "jobDescription": "<p>Build APIs</p>"}
        body.update(fields)
        response = self.client.post("/v1/resume/save", json=body, headers=headers or {})
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()["resumeId"]

    def _retrieve(self, body, headers=None):
        return self.client.post("/v1/resume/retrieve", json=body, headers=headers or {})

    def test_save_requires_both_resumes(self):
        response = self.client.post("/v1/resume/save", json={"originalResume": ORIGINAL})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Missing required fields: originalResume and tailoredResume")

    def test_save_stores_obfuscated_copy_and_clean_description(self):
        resume_id = self._save(matchScore=72)
        row = self.store.get_resume(resume_id)
        self.assertEqual(row["tailored_content"], TAILORED)
        self.assertEqual(row["job_description"], "Build APIs")
        self.assertEqual(row["match_score"], {"after": 72})
        self.assertNotIn("FastAPI", row["obfuscated_content"])
        self.assertTrue(row["content_map"])

    def test_save_with_session_updates_existing_row(self):
        first = self._save(sessionId="session-1")
        second = self._save(sessionId="session-1", tailoredResume=TAILORED + "\nGo")
        self.assertEqual(first, second)
        self.assertTrue(self.store.get_resume(first)["tailored_content"].endswith("Go"))

    def test_save_with_user_id_requires_matching_token(self):
        body = {"originalResume": ORIGINAL, "tailoredResume": TAILORED, "userId": "user-1"}
        self.assertEqual(self.client.post("/v1/resume/save", json=body).status_code, 401)
        self.assertEqual(self.client.post("/v1/resume/save", json=body, headers=_auth("token-user-2")).status_code, 403)

    def test_anonymous_retrieve_is_locked(self):
        resume_id = self._save()
        response = self._retrieve({"resumeId": resume_id})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["isUnlocked"])
        self.assertIn(LOCKED_LABEL, body["tailoredResume"])
        self.assertNotIn("FastAPI", body["tailoredResume"])
        self.assertEqual(body["contentMap"], {})
        self.assertEqual(body["freeReveal"]["section"], "Experience")
        self.assertEqual(body["originalResume"], ORIGINAL)

    def test_owner_within_free_limit_sees_everything(self):
        resume_id = self._save(headers=_auth("token-user-1"), userId="user-1")
        response = self._retrieve({"resumeId": resume_id, "userId": "user-1"}, headers=_auth("token-user-1"))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["isUnlocked"])
        self.assertEqual(body["tailoredResume"], TAILORED)
        self.assertTrue(body["contentMap"])
        self.assertNotIn("accessInfo", body)

    def test_other_users_get_the_locked_preview(self):
        resume_id = self._save(headers=_auth("token-user-1"), userId="user-1")
        response = self._retrieve({"resumeId": resume_id, "userId": "user-2"}, headers=_auth("token-user-2"))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["isUnlocked"])

    def test_retrieve_rejects_mismatched_token(self):
        resume_id = self._save()
        response = self._retrieve({"resumeId": resume_id, "userId": "user-1"}, headers=_auth("token-user-2"))
        self.assertEqual(response.status_code, 403)

    def test_retrieve_errors(self):
        self.assertEqual(self._retrieve({}).json()["message"], "Please provide a resumeId or email")
        missing = self._retrieve({"resumeId": "nope"})
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["message"], "Resume not found")

    def test_retrieve_by_email(self):
        resume_id = self._save(email="jane@example.com", sessionId="session-9")
        response = self._retrieve({"email": "jane@example.com", "sessionId": "session-9"})
        self.assertEqual(response.json()["resumeId"], resume_id)

    def test_link_claims_anonymous_session_resumes(self):
        resume_id = self._save(sessionId="session-1")
        response = self.client.post(
            "/v1/resume/link",
            json={"sessionId": "session-1", "resumeId": resume_id, "userId": "user-1"},
            headers=_auth("token-user-1"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "linkedCount": 1, "resumeIds": [resume_id]})
        self.assertEqual(self.store.get_resume(resume_id)["user_id"], "user-1")

    def test_link_by_session_claims_every_anonymous_resume(self):
        first = self._save(sessionId="session-1")
        second = self._save(sessionId="session-1")
        other = self._save(sessionId="session-2")
        response = self.client.post(
            "/v1/resume/link",
            json={"sessionId": "session-1", "userId": "user-1"},
            headers=_auth("token-user-1"),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(sorted(response.json()["resumeIds"]), sorted([first, second]))
        self.assertIsNone(self.store.get_resume(other)["user_id"])

    def test_link_prefers_resume_id_over_session(self):
        chosen = self._save(sessionId="session-1")
        sibling = self._save(sessionId="session-1")
        response = self.client.post(
            "/v1/resume/link",
            json={"sessionId": "session-1", "resumeId": chosen, "userId": "user-1"},
            headers=_auth("token-user-1"),
        )
        self.assertEqual(response.json()["resumeIds"], [chosen])
        self.assertIsNone(self.store.get_resume(sibling)["user_id"])

    def test_link_needs_session_or_resume(self):
        response = self.client.post("/v1/resume/link", json={"userId": "user-1"}, headers=_auth("token-user-1"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "sessionId or resumeId is required")

    def test_link_rejects_filter_syntax_in_ids(self):
        self._save(sessionId="session-1")
        response = self.client.post(
            "/v1/resume/link",
            json={"sessionId": "x,id.neq.none", "userId": "user-1"},
            headers=_auth("token-user-1"),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.store.user_resume_ids("user-1", 10), [])

    def test_link_requires_user(self):
        response = self.client.post("/v1/resume/link", json={"sessionId": "s", "resumeId": "r"})
        self.assertEqual(response.status_code, 401)

    def test_list_returns_own_resumes_newest_first(self):
        older = self._save(headers=_auth("token-user-1"), userId="user-1")
        newer = self._save(headers=_auth("token-user-1"), userId="user-1", jobDescription="Title: Data Engineer")
        self._save(sessionId="session-9")
        response = self.client.get("/v1/resume/list", params={"userId": "user-1"}, headers=_auth("token-user-1"))
        self.assertEqual(response.status_code, 200, response.text)
        resumes = response.json()["resumes"]
        self.assertEqual([item["id"] for item in resumes], [newer, older])
        self.assertTrue(resumes[0]["jobTitle"].startswith("Data Engineer - "))
        self.assertTrue(resumes[1]["jobTitle"].startswith("Build APIs - "))
        self.assertTrue(all(item["isUnlocked"] for item in resumes))
        self.assertEqual(resumes[0]["versionNumber"], 1)

    def test_list_by_session_stays_locked(self):
        resume_id = self._save(sessionId="session-9")
        response = self.client.get("/v1/resume/list", params={"sessionId": "session-9"})
        self.assertEqual(response.status_code, 200)
        resumes = response.json()["resumes"]
        self.assertEqual([item["id"] for item in resumes], [resume_id])
        self.assertFalse(resumes[0]["isUnlocked"])
        self.assertEqual(resumes[0]["matchScore"], {"before": 0, "after": 0})

    def test_list_checks_identity(self):
        self.assertEqual(self.client.get("/v1/resume/list", params={"userId": "user-1"}).status_code, 401)
        foreign = self.client.get("/v1/resume/list", params={"userId": "user-1"}, headers=_auth("token-user-2"))
        self.assertEqual(foreign.status_code, 403)
        missing = self.client.get("/v1/resume/list")
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json()["message"], "userId or sessionId is required")
        self.assertEqual(self.client.get("/v1/resume/list", params={"sessionId": "a,b"}).status_code, 400)

    def test_feedback_by_session(self):
        resume_id = self._save(sessionId="session-1")
        response = self.client.post(
            "/v1/resume/feedback",
            json={"resumeId": resume_id, "applied": True, "sessionId": "session-1", "comment": "x" * 600},
        )
        self.assertEqual(response.status_code, 200)
        row = self.store.get_resume(resume_id)
        self.assertTrue(row["applied_with_resume"])
        self.assertEqual(len(row["feedback_comment"]), 500)

    def test_feedback_rejects_foreign_session_and_missing_fields(self):
        resume_id = self._save(sessionId="session-1")
        foreign = self.client.post(
            "/v1/resume/feedback",
            json={"resumeId": resume_id, "applied": False, "sessionId": "session-2"},
        )
        self.assertEqual(foreign.status_code, 403)
        incomplete = self.client.post("/v1/resume/feedback", json={"resumeId": resume_id, "sessionId": "session-1"})
        self.assertEqual(incomplete.status_code, 400)
        anonymous = self.client.post("/v1/resume/feedback", json={"resumeId": resume_id, "applied": True})
        self.assertEqual(anonymous.status_code, 401)

    def test_versions_are_listed_for_the_owner(self):
        root = self.store.insert_resume(
            {"user_id": "user-1", "original_content": ORIGINAL, "tailored_content": TAILORED}
        )
        child = self.store.insert_resume(
            {
                "user_id": "user-1",
                "original_content": ORIGINAL,
                "tailored_content": TAILORED,
                "parent_resume_id": root["id"],
                "root_resume_id": root["id"],
                "version_number": 2,
            }
        )
        response = self.client.get(
            f"/v1/resume/{child['id']}/versions",
            params={"userId": "user-1"},
            headers=_auth("token-user-1"),
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["rootResumeId"], root["id"])
        self.assertEqual([version["versionNumber"] for version in body["versions"]], [1, 2])
        self.assertEqual(body["versions"][1]["parentResumeId"], root["id"])

        foreign = self.client.get(
            f"/v1/resume/{child['id']}/versions",
            params={"userId": "user-2"},
            headers=_auth("token-user-2"),
        )
        self.assertEqual(foreign.status_code, 403)
        self.assertEqual(self.client.get(f"/v1/resume/{child['id']}/versions").status_code, 401)


if __name__ == "__main__":
    unittest.main()
