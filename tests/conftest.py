"""
Test fixtures for the Bill Payment API test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - session_factory: Sessionmaker over the same database (for the dispatcher)
  - client: Async HTTP test client (unauthenticated)
  - member / other_member / admin: Users inserted directly in the database
  - make_account / make_payee / set_threshold: Data builders
  - member_client / admin_client: Test client carrying a JWT for that user
  - document_dir: Temporary DOCUMENT_STORAGE_DIR for upload tests
  - make_pdf(): Minimal single-page PDF with a real text layer

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database, so no state leaks between tests.
  - We override FastAPI's get_db dependency to inject our test sessions,
    so the application code works exactly as it does in production.
  - Users are inserted directly and tokens minted with create_access_token,
    since sign-up and login belong to the identity service, not this API.
  - Builders commit, so data is visible to the request sessions and
    survives a rollback inside the code under test.
"""

import os

# Must be set before billpay.config is imported anywhere
os.environ.setdefault("SECRET_KEY", "test-secret-key-do-not-use-in-production")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.pop("WEBHOOK_URL", None)

import itertools
from decimal import Decimal

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from billpay.config import settings
from billpay.database import Base, get_db
from billpay.main import app
from billpay.models.account import Account
from billpay.models.payee import Payee
from billpay.models.user import User, UserType
from billpay.money import to_cents
from billpay.security import create_access_token
from billpay.services import threshold_service


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

_account_numbers = itertools.count(1000000001)


def auth_headers(user: User) -> dict:
    """Authorization header for a user, as the identity service would issue."""
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


async def balance_of(db: AsyncSession, account_id) -> int:
    """Read the committed balance in cents, bypassing the identity map."""
    result = await db.execute(
        select(Account.balance_cents).where(Account.id == account_id)
    )
    return result.scalar_one()


def make_pdf(lines: list[str]) -> bytes:
    """
    Build a one-page PDF whose text layer holds `lines`, one per line.

    Helvetica is a standard font, so no font file is embedded and pypdf can
    extract the text directly.
    """
    ops = ["BT", "/F1 12 Tf", "16 TL", "72 720 Td"]
    for line in lines:
        escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        ops.append(f"({escaped}) Tj T*")
    ops.append("ET")
    stream = "\n".join(ops).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
    ]

    pdf = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(pdf))
        pdf += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_offset = len(pdf)
    pdf += b"xref\n0 %d\n" % (len(objects) + 1)
    pdf += b"0000000000 65535 f \n"
    for offset in offsets:
        pdf += b"%010d 00000 n \n" % offset
    pdf += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref_offset,
    )
    return bytes(pdf)


async def create_user(
    db: AsyncSession,
    email: str,
    user_type: UserType = UserType.MEMBER,
) -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), user_type=user_type)
    db.add(user)
    await db.commit()
    return user


async def create_account(
    db: AsyncSession,
    user: User,
    balance: str = "0",
    status: str = "ACTIVE",
) -> Account:
    account = Account(
        user_id=user.id,
        account_number=str(next(_account_numbers)),
        balance_cents=to_cents(Decimal(balance)),
        status=status,
    )
    db.add(account)
    await db.commit()
    return account


async def create_payee(
    db: AsyncSession,
    user: User,
    name: str = "City Power & Light",
    category: str = "UTILITIES",
) -> Payee:
    payee = Payee(
        user_id=user.id,
        name=name,
        account_number="CPL-778812",
        category=category,
    )
    db.add(payee)
    await db.commit()
    return payee


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    """Sessionmaker bound to the test engine, configured like AsyncSessionLocal."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def member(db_session):
    return await create_user(db_session, "member@example.com")


@pytest_asyncio.fixture
async def other_member(db_session):
    """A second MEMBER user for cross-user authorization tests."""
    return await create_user(db_session, "other@example.com")


@pytest_asyncio.fixture
async def admin(db_session):
    """An ADMIN user, provisioned directly as a system operator would."""
    return await create_user(db_session, "reviewer@example.com", UserType.ADMIN)


@pytest_asyncio.fixture
async def make_account(db_session):
    async def _make(user, balance="0", status="ACTIVE"):
        return await create_account(db_session, user, balance, status)
    return _make


@pytest_asyncio.fixture
async def make_payee(db_session):
    async def _make(user, name="City Power & Light", category="UTILITIES"):
        return await create_payee(db_session, user, name, category)
    return _make


@pytest_asyncio.fixture
async def set_threshold(db_session):
    """Store a verification threshold the way the admin endpoint does."""
    async def _set(amount):
        await threshold_service.set_verification_threshold(db_session, Decimal(amount))
        await db_session.commit()
    return _set


@pytest_asyncio.fixture
async def member_client(client, member):
    """Test client authenticated as the MEMBER user."""
    client.headers.update(auth_headers(member))
    return client


@pytest_asyncio.fixture
async def admin_client(client, admin):
    """
    Test client authenticated as the ADMIN user.

    The admin can review verifications and change the threshold but
    cannot pay bills.
    """
    client.headers.update(auth_headers(admin))
    return client


@pytest_asyncio.fixture
async def document_dir(tmp_path, monkeypatch):
    """Point DOCUMENT_STORAGE_DIR at a per-test directory."""
    monkeypatch.setattr(settings, "DOCUMENT_STORAGE_DIR", str(tmp_path / "documents"))
    return tmp_path / "documents"
