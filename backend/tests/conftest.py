import os
import secrets

# Ensure JWT_SECRET exists before importing relohire.main (it calls require_jwt_secret() at import time).
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")

from contextlib import contextmanager
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from relohire.core import config as app_config
from relohire.core.base import Base
from relohire.core.security import hash_password

# Import models so they register with SQLAlchemy metadata.
from relohire.models.application import Application
from relohire.models.company import Company
from relohire.models.generated_document import GeneratedDocument  # noqa: F401
from relohire.models.job import Job
from relohire.models.payment import Payment  # noqa: F401
from relohire.models.payment_config import PaymentConfig
from relohire.models.question import Question  # noqa: F401
from relohire.models.user import User

from relohire.core.database import get_db
from relohire.dependencies.auth import get_current_user
from relohire.services import workflow as workflow_service
from relohire.services.cache import reset_cache
from relohire.services.exam_security import reset_exam_security_manager
from relohire.services.exchange_rates import StaticExchangeRates
from relohire.services.payments import PaymentGateway
from relohire.services.rate_limiter import reset_rate_limiter
from relohire.services.workflow import WorkflowManager

WALLET = "0x9f2c4a1b7e3d5f60a8b9c0d1e2f3a4b5c6d7e8f9"


def tx_hash() -> str:
    return secrets.token_hex(32)


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def session_factory(db_engine):
    # The in-memory DB persists across tests (StaticPool); reset the schema per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _reset_mutable_settings(tmp_path):
    """
    Settings is process-global; restore anything a test tweaks and point
    side effects (email, documents, cache, limiter) at local fakes.
    """
    keys = [
        "EMAIL_ENABLED",
        "GENERATED_DOCS_DIR",
        "REDIS_URL",
        "EXCHANGE_RATE_PROVIDER",
        "RATE_LIMIT_ENABLED",
        "RATE_LIMIT_AUTH_MAX_REQUESTS",
        "EXAM_QUESTION_COUNT",
        "PAYMENT_EXPIRY_HOURS",
    ]
    original = {k: getattr(app_config.settings, k) for k in keys}

    app_config.settings.EMAIL_ENABLED = False
    app_config.settings.GENERATED_DOCS_DIR = str(tmp_path / "generated")
    app_config.settings.REDIS_URL = ""
    app_config.settings.EXCHANGE_RATE_PROVIDER = "static"
    app_config.settings.RATE_LIMIT_ENABLED = False
    reset_cache()
    reset_exam_security_manager()
    reset_rate_limiter()
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)
        reset_cache()
        reset_exam_security_manager()
        reset_rate_limiter()


@pytest.fixture(autouse=True)
def scheduled_documents(monkeypatch):
    """
    Record document generation requests instead of rendering PDFs inline.
    Task behaviour itself is covered in test_document_tasks.py.
    """
    calls: list[tuple[int, str]] = []
    monkeypatch.setattr(workflow_service, "_default_scheduler", lambda app_id, kind: calls.append((app_id, kind)))
    return calls


class RecordingNotifier:
    def __init__(self):
        self.events: list[tuple[str, int]] = []

    def application_accepted(self, application):
        self.events.append(("accepted", application.id))
        return True

    def application_rejected(self, application, reason=None):
        self.events.append(("rejected", application.id))
        return True

    def status_changed(self, application, status=None):
        self.events.append((status or application.status, application.id))
        return True


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def workflow(db_session, notifier, scheduled_documents):
    return WorkflowManager(
        db_session,
        notifier=notifier,
        documents=lambda app_id, kind: scheduled_documents.append((app_id, kind)),
    )


@pytest.fixture()
def rates():
    return StaticExchangeRates()


@pytest.fixture()
def gateway(db_session, rates):
    return PaymentGateway(db_session, rates=rates)


@pytest.fixture()
def app(db_session):
    app_config.settings.JWT_SECRET = app_config.settings.JWT_SECRET or "test_jwt_secret"

    import relohire.main as main

    fastapi_app = main.app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


def _make_user(db, *, email, name, role="user", **fields) -> User:
    user = User(
        email=email,
        name=name,
        password_hash=hash_password("test_password_123"),
        role=role,
        is_active=True,
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def candidate(db_session):
    return _make_user(
        db_session,
        email="candidate@example.com",
        name="Amina Candidate",
        nationality="Kenyan",
        preferred_countries=["Germany"],
        skills=["Python", "SQL"],
        experience_years=3,
    )


@pytest.fixture()
def other_candidate(db_session):
    return _make_user(db_session, email="other@example.com", name="Other Candidate")


@pytest.fixture()
def company_user(db_session):
    user = _make_user(db_session, email="hr@acme-jobs.com", name="Acme HR", role="company")
    db_session.add(
        Company(
            user_id=user.id,
            company_name="Acme GmbH",
            address="Hauptstrasse 1",
            city="Berlin",
            country="Germany",
        )
    )
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture()
def admin(db_session):
    return _make_user(db_session, email="admin@example.com", name="Admin", role="admin")


@pytest.fixture()
def job(db_session, company_user):
    job = Job(
        title="Backend Engineer",
        company="Acme GmbH",
        location="Berlin",
        country="Germany",
        salary="EUR 65,000",
        category="engineering",
        description="Build and run APIs.",
        skills=["Python", "Docker"],
        experience_level="Mid",
        visa_sponsorship=True,
        assessment_cutoff_score=70,
        posted_by=company_user.id,
    )
    db_session.add(job)
    db_session.commit()
    db_session.refresh(job)
    return job


@pytest.fixture()
def payment_configs(db_session):
    fees = {
        "assessment": Decimal("75.00"),
        "document_processing": Decimal("150.00"),
        "visa_processing": Decimal("500.00"),
    }
    rows = [PaymentConfig(step=step, amount_usd=amount, wallet_address=WALLET, wallet_type="USDT") for step, amount in fees.items()]
    db_session.add_all(rows)
    db_session.commit()
    return {r.step: r for r in rows}


@pytest.fixture()
def application(db_session, candidate, job):
    application = Application(user_id=candidate.id, job_id=job.id, assessment_cutoff_score=job.assessment_cutoff_score)
    db_session.add(application)
    db_session.commit()
    db_session.refresh(application)
    return application


@pytest.fixture()
def pay_step(gateway, workflow):
    """
    Create and confirm a payment for `step`, then run the workflow hook,
    the same sequence POST /payments/verify performs.
    """

    def _pay(application, step: str, currency: str = "USDT"):
        payment = gateway.create_payment(application.user_id, application.id, step, currency)
        assert gateway.verify_payment(payment.id, tx_hash(), user_id=application.user_id) is True
        workflow.process_payment_confirmation(payment.id)
        return payment

    return _pay


@pytest.fixture()
def client_for(app):
    """
    Context manager to create a client authenticated as an arbitrary user.

    Usage:
        with client_for(user) as c:
            ...
    """

    @contextmanager
    def _client_for(user: User):
        app.dependency_overrides[get_current_user] = lambda: user
        with TestClient(app) as c:
            yield c
        app.dependency_overrides.pop(get_current_user, None)

    return _client_for


@pytest.fixture()
def anonymous_client(app):
    with TestClient(app) as c:
        yield c
