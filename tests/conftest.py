from __future__ import annotations

import itertools
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from payreq.core.database import Base, get_db, init_db
from payreq.core.permissions import LegacyRole
from payreq.core.security import create_access_token
from payreq.models import Company, User, UserRole
from payreq.schemas import ClientInfo, PaymentRequestCreate, PaymentRequestItemCreate
from payreq.services.permission_service import RoleService, seed_permissions


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_permissions(session)
    RoleService(session).ensure_system_roles()
    session.commit()
    yield session
    session.close()


@pytest.fixture
def company(db):
    company = Company(name="Acme Trading Co.")
    db.add(company)
    db.commit()
    return company


@pytest.fixture
def other_company(db):
    company = Company(name="Other Co.")
    db.add(company)
    db.commit()
    return company


@pytest.fixture
def make_user(db, company):
    counter = itertools.count(1)

    def _make(legacy_role=LegacyRole.USER, role_names=(), company_id=None, is_active=True):
        n = next(counter)
        user = User(
            email=f"user{n}@example.com",
            first_name="Test",
            last_name=f"User{n}",
            legacy_role=legacy_role,
            company_id=company_id or company.id,
            is_active=is_active,
        )
        roles = RoleService(db)
        for name in role_names:
            user.role_links.append(UserRole(role=roles.get_by_name(name)))
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(LegacyRole.ADMIN, ["ADMINISTRATOR"])


@pytest.fixture
def manager(make_user):
    return make_user(LegacyRole.MANAGER, ["MANAGER"])


@pytest.fixture
def accountant(make_user):
    return make_user(LegacyRole.ACCOUNTANT, ["ACCOUNTANT"])


@pytest.fixture
def employee(make_user):
    return make_user(LegacyRole.USER, ["EMPLOYEE"])


@pytest.fixture
def payment_request_data():
    def _data(unit_price="1000000", quantity="1", discount="0", due_date=None, submit=False, **item):
        return PaymentRequestCreate(
            client=ClientInfo(name="Client Ltd", email="billing@client.example"),
            items=[PaymentRequestItemCreate(
                description="Consulting",
                quantity=Decimal(quantity),
                unit_price=Decimal(unit_price),
                **item
            )],
            discount_amount=Decimal(discount),
            due_date=due_date or date.today() + timedelta(days=30),
            submit=submit,
        )

    return _data


@pytest.fixture
def client(session_factory):
    from payreq.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers
