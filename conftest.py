import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).parent

# Set environment variables BEFORE importing app modules so the cached
# settings never point tests at a real database or SMS gateway.
os.environ["APP_ENV"] = "test"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["AUTO_ADVANCE_ENABLED"] = "false"
os.environ["SMS_API_URL"] = ""
os.environ.setdefault("PUBLIC_BASE_URL", "http://tracker.test")

# Add the backend directory to sys.path so imports work without installing
BACKEND_PATH = REPO_ROOT / "fastapi-backend"
for path in (BACKEND_PATH, REPO_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
