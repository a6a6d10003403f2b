import os
import tempfile

# Settings are read once at import time, so these must be set before any app module loads.
_DATA_DIR = tempfile.mkdtemp(prefix="resume-tailor-tests-")

os.environ.setdefault("TOOLS_LLM_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("ANALYTICS_ENABLED", "0")
os.environ.setdefault("RESUME_STORE_BACKEND", "sqlite")
os.environ.setdefault("RESUME_STORE_DB_PATH", os.path.join(_DATA_DIR, "resumes.db"))
os.environ.setdefault("REQUEST_LIMITER_BACKEND", "memory")
os.environ.setdefault("SITE_URL", "http://localhost:3000")
