import os

# Settings are read at import time, so configure the environment first
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_invoices.sqlite")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("RECURRING_SCHEDULER_ENABLED", "false")
os.environ.setdefault("R2_PUBLIC_URL", "https://cdn.example.test")

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from database import Base
from email_service import EmailService
from invoice_service import InvoiceService
from models import User, Company, Client, Invoice, Subscription, RecurrenceInterval
from pdf_service import InvoicePDFGenerator
from r2_client import StorageError


class FakeStorage:
    """In-memory stand-in for R2Storage"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects = {}
        self.puts = []

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail:
            raise StorageError("bucket unavailable")
        self.objects[key] = data
        self.puts.append(key)

    def public_url(self, key: str) -> str:
        return f"https://cdn.example.test/{key}"


def fake_html_renderer(html_content: str) -> bytes:
    return b"%PDF-1.4\n" + html_content.encode("utf-8")


class FakeEmailService(EmailService):
    """Records outgoing mail instead of calling Postmark"""

    def __init__(self, fail_for: set = None):
        super().__init__(server_token="test-token", enabled=True, test_mode=False)
        self.fail_for = fail_for or set()
        self.sent = []

    async def send_email(self, to_email, subject, html_content, plain_content, pdf_attachment=None, pdf_filename=None):
        if to_email in self.fail_for:
            return False
        self.sent.append({
            "to": to_email,
            "subject": subject,
            "plain": plain_content,
            "attachment": pdf_attachment,
            "filename": pdf_filename,
        })
        return True


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def pdf_generator(storage):
    return InvoicePDFGenerator(storage=storage, html_renderer=fake_html_renderer, currency="INR")


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def plan_limits():
    return {"free_limit": 5, "starter_limit": 50, "pro_limit": 100}


@pytest.fixture
def invoice_service(db, pdf_generator, email_service, plan_limits):
    return InvoiceService(db, pdf_generator=pdf_generator, email_service=email_service, plan_limits=plan_limits)


async def create_user(db, email="owner@example.com") -> User:
    user = User(email=email, hashed_password="not-a-real-hash", full_name="Owner")
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_company(db, user, name="Acme Pvt Ltd") -> Company:
    company = Company(user_id=user.id, name=name, address="12 MG Road, Bengaluru", tax_info="29ABCDE1234F1Z5")
    db.add(company)
    await db.commit()
    await db.refresh(company)
    return company


async def create_client(db, user, name="Globex", email="billing@globex.io") -> Client:
    client = Client(user_id=user.id, name=name, email=email)
    db.add(client)
    await db.commit()
    await db.refresh(client)
    return client


async def create_subscription(db, user, plan_name="starter", status="active", external_id="sub_123",
                              created_at: datetime = None) -> Subscription:
    subscription = Subscription(
        user_id=user.id,
        external_subscription_id=external_id,
        plan_name=plan_name,
        status=status,
        start_date=datetime.utcnow(),
        created_at=created_at or datetime.utcnow()
    )
    db.add(subscription)
    await db.commit()
    await db.refresh(subscription)
    return subscription


async def create_recurring_template(db, user, company, created_at: datetime,
                                    interval=RecurrenceInterval.MONTHLY,
                                    client_email="billing@globex.io") -> Invoice:
    template = Invoice(
        user_id=user.id,
        company_id=company.id,
        client_name="Globex",
        client_email=client_email,
        items=[{"description": "Retainer", "qty": 1, "price": 1000}],
        tax=18,
        total=1180,
        due_date=created_at + timedelta(days=7),
        is_recurring=True,
        recurrence_interval=interval,
        payment_details="UPI: acme@bank",
        created_at=created_at
    )
    db.add(template)
    await db.commit()
    await db.refresh(template)
    return template
