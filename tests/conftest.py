# tests/conftest.py
import os
import tempfile

# Settings are read once; point them at a throw-away database before the
# application modules are imported.
_DB_DIR = tempfile.mkdtemp(prefix="tutorbook-tests-")
os.environ["APP_ENV"] = "test"
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SERIES_TIMEZONE"] = "UTC"
for _key in ("SMTP_HOST", "SMTP_FROM_ADDRESS", "SEARCH_APP_ID", "SEARCH_API_KEY"):
    os.environ.pop(_key, None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.db.session import AsyncSessionLocal, init_db_for_startup  # noqa: E402
from app.main import create_app  # noqa: E402


@pytest.fixture(scope="session")
def client() -> TestClient:
    """
    Shared TestClient fixture for all tests.

    Startup resets the schema of the test database once per session.
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
async def db_session():
    """
    AsyncSession on the test database for service-level tests.
    """
    await init_db_for_startup()
    async with AsyncSessionLocal() as session:
        yield session
