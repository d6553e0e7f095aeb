import os
import sys

# Provide required auth secrets for tests if not already set
os.environ.setdefault("ENV_SECRET", "test-secret")
os.environ.setdefault("ENV_RESET_PASSWORD_TOKEN_SECRET", "test-reset-secret")
os.environ.setdefault("ENV_VERIFICATION_TOKEN_SECRET", "test-verify-secret")

# Ensure project root is on sys.path so `statements`, `db` and friends resolve
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import auth.tables  # noqa: F401  registers the users table on the shared metadata
from db.models import Base
from storage.s3_client import S3Client, StorageError

USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")


# --- Database: one SQLite file per test, SAVEPOINT-capable ---

@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# --- Test utilities: fakes for OCR, object storage and the job queue ---

class FakeVision:
    """Returns canned text (or raises) and records every image it was sent."""

    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[bytes] = []

    async def detect_text(self, content: bytes) -> str:
        self.calls.append(content)
        if self.error is not None:
            raise self.error
        return self.text


class FakeStorage(S3Client):
    """S3Client with an in-memory object map instead of a remote bucket."""

    def __init__(self) -> None:
        super().__init__("http://storage.test", "test-key", "test-secret", region="us-east-1")
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.fail_uploads = False

    async def upload_bytes(self, bucket: str, key: str, data: bytes, content_type: str) -> str:
        if self.fail_uploads:
            raise StorageError("Error uploading file to storage: bucket unavailable")
        self.objects[(bucket, key)] = data
        self.content_types[(bucket, key)] = content_type
        return self.object_url(bucket, key)

    async def get_bytes(self, bucket: str, key: str) -> bytes:
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise StorageError(f"Error downloading {bucket}/{key} from storage: NoSuchKey") from None

    async def ensure_bucket(self, bucket: str) -> bool:
        return False


class FakeQueue:
    def __init__(self) -> None:
        self.submitted: list[tuple[uuid.UUID, str | None, bool]] = []
        self.error: Exception | None = None

    async def submit(self, statement_id: uuid.UUID, file_type: str | None = None, reprocess: bool = False) -> str:
        if self.error is not None:
            raise self.error
        self.submitted.append((statement_id, file_type, reprocess))
        return f"statement:{statement_id}:{len(self.submitted)}"


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_queue():
    return FakeQueue()
