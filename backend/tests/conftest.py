"""
PMC Licensing - Test Configuration and Fixtures
"""
import os
import re
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set testing environment
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['EXPOSE_OTP_IN_RESPONSE'] = 'false'
os.environ['ENVIRONMENT'] = 'testing'

from fastapi.testclient import TestClient

from licensing.clock import FakeClock, get_clock
from licensing.config import get_settings
from licensing.database import Base, get_db, init_db
from licensing.main import app
from licensing.models.application import Application, StageReview
from licensing.models.enums import (
    ApplicationStatus, ApprovalStatus, OfficerRole, PositionType, Stage,
)
from licensing.models.officer import Officer
from licensing.services.auth_service import create_access_token
from licensing.services.certificate_service import CertificateService
from licensing.services.document_store import InMemoryDocumentStore, get_document_store
from licensing.services.notification_service import InMemoryNotificationService, get_notifier
from licensing.services.state_machine import Caller
from licensing.services.workflow_service import StageWorkflowCoordinator
from licensing.utils.rate_limiter import reset_rate_limits

test_engine = create_engine(
    'sqlite://',
    connect_args={'check_same_thread': False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

OTP_PATTERN = re.compile(r'\b(\d{6})\b')


@pytest.fixture(autouse=True)
def _schema() -> Generator[None, None, None]:
    """Fresh tables for every test"""
    init_db(bind=test_engine)
    reset_rate_limits()
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db(_schema):
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> InMemoryNotificationService:
    return InMemoryNotificationService()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def client(_schema, clock, notifier, store) -> Generator[TestClient, None, None]:
    """Test client with database, clock, notifier and store overrides"""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_document_store] = lambda: store

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_officer(db):
    counter = {'n': 0}

    def _make(role: OfficerRole, specialty: PositionType = None, email: str = None,
              is_active: bool = True) -> Officer:
        counter['n'] += 1
        officer = Officer(
            name=f'Officer {counter["n"]}',
            email=email or f'officer{counter["n"]}@pmc.gov.in',
            role=role,
            specialty=specialty,
            is_active=is_active,
        )
        db.add(officer)
        db.commit()
        db.refresh(officer)
        return officer

    return _make


@pytest.fixture
def make_application(db, clock):
    counter = {'n': 0}

    def _make(
        position_type: PositionType = PositionType.STRUCTURAL_ENGINEER,
        status: ApplicationStatus = ApplicationStatus.SUBMITTED,
        email: str = 'applicant@example.com',
        assigned: dict = None,
        number: str = None,
    ) -> Application:
        counter['n'] += 1
        now = clock.now()
        application = Application(
            application_number=number or f'PMC-2025-{counter["n"]:06d}',
            position_type=position_type,
            applicant_name='Asha Kulkarni',
            applicant_email=email,
            status=status,
            created_at=now,
            updated_at=now,
            submitted_at=now,
        )
        db.add(application)
        db.flush()
        for stage, officer in (assigned or {}).items():
            db.add(StageReview(
                application_id=application.id,
                stage=stage,
                assigned_officer_id=officer.id,
                assigned_at=now,
                approval_status=ApprovalStatus.PENDING,
            ))
        db.commit()
        db.refresh(application)
        return application

    return _make


@pytest.fixture
def caller_for():
    def _caller(officer: Officer) -> Caller:
        return Caller(officer_id=officer.id, role=officer.role, specialty=officer.specialty, name=officer.name)
    return _caller


@pytest.fixture
def auth_headers():
    def _headers(officer: Officer) -> dict:
        token = create_access_token({
            'sub': str(officer.id),
            'role': officer.role.value,
            'specialty': officer.specialty.value if officer.specialty else None,
        })
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def last_otp(notifier):
    """Most recent OTP delivered to an identifier"""
    def _read(identifier: str) -> str:
        messages = notifier.messages_to(identifier)
        assert messages, f'no message sent to {identifier}'
        return OTP_PATTERN.search(messages[-1]).group(1)
    return _read


@pytest.fixture
def coordinator(db, clock, notifier, store):
    def _coordinator(stage: Stage) -> StageWorkflowCoordinator:
        return StageWorkflowCoordinator(
            db, stage,
            clock=clock,
            notifier=notifier,
            certificates=CertificateService(db, store=store, clock=clock),
        )
    return _coordinator
