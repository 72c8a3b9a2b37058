"""
Centralized Test Configuration.
"""

import asyncio
import base64
import hashlib

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.redis_client import get_redis
from backend.app.core.dependencies import (
    get_audit_service,
    get_blob_store,
    get_cipher,
    get_operator_identity,
    get_signature_verifier,
)
from backend.app.core.exceptions import CollaboratorError
from backend.app.core.jwt import create_session_token
from backend.app.domain.ledger.collaborators import AuditRef, DownloadedBlob, PublishedBlob, StaticIdentityProvider
from backend.app.models.user import User
import backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


# Fake collaborators

class FakeCipher:
    """Reversible, deterministic stand-in for wallet encryption."""
    PREFIX = "enc:"

    async def encrypt(self, plaintext: str) -> str:
        await asyncio.sleep(0)  # Yield like a network call would
        return self.PREFIX + base64.b64encode(plaintext.encode()).decode()

    async def decrypt(self, ciphertext: str) -> str:
        await asyncio.sleep(0)
        if not ciphertext.startswith(self.PREFIX):
            raise ValueError("not produced by this cipher")
        return base64.b64decode(ciphertext[len(self.PREFIX):].encode(), validate=True).decode()


class FakeAuditService:
    def __init__(self):
        self.records = []
        self.fail = False

    async def record(self, protocol_id, key_id, fields, description):
        await asyncio.sleep(0)
        if self.fail:
            raise CollaboratorError("wallet", "createAction failed")
        self.records.append({"protocol_id": protocol_id, "key_id": key_id, "fields": fields, "description": description})
        n = len(self.records)
        return AuditRef(txid=f"tx{n:04d}", output_script=f"script{n:04d}", metadata={"rawTx": f"raw{n:04d}"})


class FakeSignatureVerifier:
    """Accepts only "sig:<public key>:<data>"."""

    def __init__(self):
        self.calls = []

    async def verify(self, public_key, data, signature):
        await asyncio.sleep(0)
        self.calls.append((public_key, data))
        return signature == f"sig:{public_key}:{data}"


class FakeBlobStore:
    def __init__(self):
        self.blobs = {}
        self.fail = False

    async def publish(self, filename, content, content_type, retention_minutes):
        if self.fail:
            raise CollaboratorError("nanostore", "publish failed")
        digest = hashlib.sha256(content).hexdigest()
        url = f"uhrp://{digest}"
        self.blobs[url] = (content_type or "application/octet-stream", content)
        return PublishedBlob(uhrp_hash=digest, public_url=f"https://nanostore.test/cdn/{digest}")

    async def download(self, uhrp_url):
        if uhrp_url not in self.blobs:
            raise CollaboratorError("nanostore", "content not found")
        mime_type, data = self.blobs[uhrp_url]
        return DownloadedBlob(mime_type=mime_type, data=data)


OPERATOR_KEY = "02operator0000000000000000000000000000000000000000000000000000000000"


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply database and Redis overrides once for the session."""

    # Patch the global redis client used by token revocation and the cache
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture
def cipher():
    return FakeCipher()


@pytest.fixture
def audit_service():
    return FakeAuditService()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def signature_verifier():
    return FakeSignatureVerifier()


@pytest.fixture(autouse=True)
def collaborator_overrides(cipher, audit_service, blob_store, signature_verifier):
    """Route the wallet and blob-store collaborators to per-test fakes."""
    overrides = {
        get_cipher: lambda: cipher,
        get_audit_service: lambda: audit_service,
        get_blob_store: lambda: blob_store,
        get_operator_identity: lambda: StaticIdentityProvider(OPERATOR_KEY),
        get_signature_verifier: lambda: signature_verifier,
    }
    app.dependency_overrides.update(overrides)
    yield
    for dependency in overrides:
        app.dependency_overrides.pop(dependency, None)


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def make_member(db_session):
    """Create a team member directly in the database."""
    async def _make(public_key, role, email=None):
        user = User(public_key=public_key, email=email or f"{public_key[:8]}@example.com", role=role)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def headers_for():
    """Bearer headers for a member, as issued by POST /api/auth/session."""
    def _headers(user):
        token = create_session_token(user)
        return {"Authorization": f"Bearer {token}"}
    return _headers
