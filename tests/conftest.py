"""
Test configuration and fixtures for OrbitLend backend tests.
"""
import os

# Must be set before app settings are first imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("USE_LOCAL_STORAGE", "false")

import pytest
from typing import AsyncGenerator, Dict, List, Optional
from decimal import Decimal
from datetime import datetime

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from app.core.database import Base, get_db, get_redis
from app.core.exceptions import ExternalServiceError
from app.core.security import get_password_hash
from app.integrations.verbwire import MintResult, TransferResult, get_minting_client
from app.integrations.pinata import get_pinning_client
from app.integrations.gemini import get_ai_client
from app.modules.users.models import User, UserRole, KYCStatus
from app.modules.users.services import UserService
from app.modules.loans.models import Loan, LoanPurpose, LoanStatus
from app.modules.loans.schemas import LoanApproveRequest
from app.modules.loans.services import LoanService
from app.modules.notifications.services import NotificationHub, get_notification_hub
from app.modules.chatbot.services import ChatbotService, get_chatbot_service
from main import app


BORROWER_WALLET = "0x" + "1" * 40
OTHER_WALLET = "0x" + "2" * 40
CONTRACT_ADDRESS = "0x" + "c" * 40
PASSWORD = "Password123"

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============================================================
# Fakes for outbound services
# ============================================================

class FakeRedis:
    """The subset of redis.asyncio.Redis the app uses"""

    def __init__(self):
        self.store: Dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = str(value)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed


class FakeMintingClient:
    chain = "sepolia"

    def __init__(self):
        self.fail_with: Optional[str] = None
        self.minted: List[tuple] = []
        self.transfers: List[tuple] = []
        self.owner: Optional[str] = None

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_with:
            raise ExternalServiceError(f"{operation} failed: {self.fail_with}")

    async def mint_loan_nft(self, recipient_address, terms, chain=None):
        self._maybe_fail("Mint NFT")
        self.minted.append((recipient_address, terms))
        number = len(self.minted)
        return MintResult(
            token_id=str(number),
            contract_address=CONTRACT_ADDRESS,
            transaction_hash="0x" + f"{number:064x}",
            block_number=1000 + number,
        )

    async def transfer_nft(self, contract_address, token_id, from_address, to_address, chain=None):
        self._maybe_fail("Transfer NFT")
        self.transfers.append((contract_address, token_id, from_address, to_address))
        return TransferResult(transaction_hash="0x" + "ab" * 32, status="success")

    async def get_nft_ownership(self, contract_address, token_id, chain=None):
        return {"owner": self.owner}


class FakePinningClient:
    def __init__(self):
        self.pinned: List[str] = []

    async def pin_file(self, content, filename, content_type="application/octet-stream", metadata=None):
        self.pinned.append(filename)
        ipfs_hash = f"Qm{len(self.pinned):044d}"
        return {"IpfsHash": ipfs_hash, "url": f"https://gateway.test/ipfs/{ipfs_hash}"}


class FakeAIClient:
    def __init__(self, reply: str = "Here is some help.\n\nNeed more help? I'm here to assist!"):
        self.reply = reply
        self.fail = False
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise ExternalServiceError("Generate content failed: quota exceeded")
        return self.reply


class RecordingHub(NotificationHub):
    """Hub that remembers every (room, event, data) it published"""

    def __init__(self):
        super().__init__()
        self.events: List[tuple] = []

    async def publish(self, room, event, data):
        self.events.append((room, event, data))
        return await super().publish(room, event, data)

    def names(self, room: Optional[str] = None) -> List[str]:
        return [event for r, event, _ in self.events if room is None or r == room]


# ============================================================
# Database Fixtures
# ============================================================

@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def redis():
    return FakeRedis()


@pytest.fixture
def minting():
    return FakeMintingClient()


@pytest.fixture
def pinning():
    return FakePinningClient()


@pytest.fixture
def ai():
    return FakeAIClient()


@pytest.fixture
def hub():
    return RecordingHub()


@pytest.fixture
def chatbot():
    return ChatbotService()


@pytest.fixture
async def client(db_session, redis, minting, pinning, ai, hub, chatbot) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database, redis, provider and hub overrides"""

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_minting_client] = lambda: minting
    app.dependency_overrides[get_pinning_client] = lambda: pinning
    app.dependency_overrides[get_ai_client] = lambda: ai
    app.dependency_overrides[get_notification_hub] = lambda: hub
    app.dependency_overrides[get_chatbot_service] = lambda: chatbot

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================
# User Fixtures
# ============================================================

async def create_user(
    db: AsyncSession,
    email: str,
    role: UserRole = UserRole.USER,
    kyc_status: KYCStatus = KYCStatus.APPROVED,
    wallet_address: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User"
) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
        kyc_status=kyc_status,
        wallet_address=wallet_address,
        is_wallet_user=False,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def headers_for(user: User) -> Dict[str, str]:
    token = UserService.create_token(user)["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def borrower(db_session):
    """KYC-approved borrower with a connected wallet"""
    return await create_user(db_session, "borrower@orbitlend.io", wallet_address=BORROWER_WALLET, first_name="Ada")


@pytest.fixture
async def other_borrower(db_session):
    return await create_user(db_session, "other@orbitlend.io", wallet_address=OTHER_WALLET, first_name="Grace")


@pytest.fixture
async def pending_borrower(db_session):
    return await create_user(db_session, "pending@orbitlend.io", kyc_status=KYCStatus.PENDING)


@pytest.fixture
async def admin(db_session):
    return await create_user(db_session, "admin@orbitlend.io", role=UserRole.ADMIN, first_name="Root")


@pytest.fixture
def borrower_headers(borrower):
    return headers_for(borrower)


@pytest.fixture
def other_headers(other_borrower):
    return headers_for(other_borrower)


@pytest.fixture
def pending_headers(pending_borrower):
    return headers_for(pending_borrower)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


# ============================================================
# Loan Fixtures
# ============================================================

async def create_loan(
    db: AsyncSession,
    user: User,
    amount: str = "12000.00",
    interest_rate: str = "12.00",
    term_months: int = 12,
    purpose: LoanPurpose = LoanPurpose.BUSINESS
) -> Loan:
    loan = Loan(
        user_id=user.id,
        amount=Decimal(amount),
        purpose=purpose,
        interest_rate=Decimal(interest_rate),
        term_months=term_months,
        status=LoanStatus.PENDING,
        request_date=datetime.utcnow(),
        total_repaid=Decimal("0.00"),
        remaining_balance=Decimal(amount),
        installments=[],
    )
    db.add(loan)
    await db.commit()
    return loan


@pytest.fixture
async def pending_loan(db_session, borrower):
    return await create_loan(db_session, borrower)


@pytest.fixture
async def active_loan(db_session, borrower, admin, minting):
    """Approved loan whose token was minted to the borrower's wallet"""
    loan = await create_loan(db_session, borrower)
    service = LoanService(db_session)
    loan, nft, warning = await service.approve(admin, loan.id, LoanApproveRequest(), minting, NotificationHub())
    assert warning is None
    return loan, nft
