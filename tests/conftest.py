"""Shared fixtures: an in-memory Mongo database, accounts and tokens."""

from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from app.core.auth import create_access_token
from app.core.config import get_settings
from app.db import mongodb
from app.services.application_service import ApplicationService
from app.services.mongo_service import CompanyStore, OpportunityStore, StudentStore, utcnow


@pytest.fixture
def db(monkeypatch, tmp_path):
    """Fresh mongomock database wired into app.db.mongodb for each test."""
    database = mongomock.MongoClient()["placement_hub_test"]
    monkeypatch.setattr(mongodb, "_db", database)
    monkeypatch.setattr(get_settings(), "upload_dir", str(tmp_path / "uploads"))
    mongodb.init_mongo_indexes()
    return database


@pytest.fixture
def client(db):
    from app.main import app
    return TestClient(app)


@pytest.fixture
def service(db):
    return ApplicationService()


def make_student(name="Alice", email="alice@uni.edu"):
    return StudentStore().create(name, email, "not-a-real-hash")


def make_company(name="Acme Corp", email="hr@acme.io"):
    return CompanyStore().create(name, email, "not-a-real-hash")


def make_opportunity(company, **overrides):
    data = {
        "title": "Backend Intern",
        "description": "Build APIs",
        "category": "software",
        "opportunity_type": "internship",
        "experience_level": "entry",
        "requirements": [],
        "location": "Erbil",
        "tags": ["python"],
        "salary": {"min": 500, "max": 900, "currency": "USD"},
        "duration": "3 months",
        "deadline": utcnow() + timedelta(days=30),
        "status": "active",
    }
    data.update(overrides)
    doc = OpportunityStore().create(company["_id"], data)
    CompanyStore().add_opportunity(company["_id"], doc["_id"])
    return doc


def auth_header(account, role):
    token = create_access_token({"sub": str(account["_id"]), "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student(db):
    return make_student()


@pytest.fixture
def other_student(db):
    return make_student("Bob", "bob@uni.edu")


@pytest.fixture
def company(db):
    return make_company()


@pytest.fixture
def other_company(db):
    return make_company("Globex", "jobs@globex.io")


@pytest.fixture
def opportunity(company):
    return make_opportunity(company)


@pytest.fixture
def student_headers(student):
    return auth_header(student, "student")


@pytest.fixture
def company_headers(company):
    return auth_header(company, "company")


@pytest.fixture
def other_company_headers(other_company):
    return auth_header(other_company, "company")
