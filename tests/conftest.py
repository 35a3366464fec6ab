import os
import tempfile

# The application reads its settings at import time, so the test database has
# to be chosen before anything under request_desk is imported.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="request_desk_tests_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/requests.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
