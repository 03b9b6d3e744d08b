"""Shared test fixtures.

Provides:
- Flask app built with TestingConfig and a fresh in-memory database per test
- Flask test client
- Identity factory with security questions already configured
"""
import pytest

from pitlane import create_app, db
from pitlane.config import TestingConfig
from pitlane.identity import create_identity
from pitlane.models import Role
from pitlane.security_questions import QUESTION_CATALOG, setup as setup_questions

PASSWORD = "Pit$top2024"
PET_QUESTION = QUESTION_CATALOG[0]
CITY_QUESTION = QUESTION_CATALOG[1]
PET_ANSWER = "Rex"
CITY_ANSWER = "Monza"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def request_ctx(app):
    """Request context for service calls that touch the session or client metadata."""
    with app.test_request_context(
        "/", headers={"User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.7"}
    ):
        yield


@pytest.fixture
def make_identity(app):
    def _make(email="driver@pitlane.test", password=PASSWORD, role=Role.DRIVER, questions=True):
        identity = create_identity(email, password, "Test Driver", role=role)
        if questions:
            setup_questions(identity, PET_QUESTION, PET_ANSWER, CITY_QUESTION, CITY_ANSWER, commit=False)
        db.session.commit()
        return identity

    return _make


@pytest.fixture
def identity(make_identity):
    return make_identity()


def login(client, email="driver@pitlane.test", password=PASSWORD):
    return client.post("/login", json={"email": email, "password": password})
