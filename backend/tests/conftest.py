import os

# Keep the app's own engine off the production database during tests.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coverdesk.api.deps import get_db
from coverdesk.db.base import Base
from coverdesk.main import app
from coverdesk.schemas.timetable import TimetableSnapshot
import coverdesk.models  # noqa: F401

MONDAY = date(2026, 10, 19)


def lesson(teacher_id, class_id, period, subject="", kind="actual", day="Monday", **extra):
    return {"teacher_id": teacher_id, "class_id": class_id, "day": day, "period": period, "subject": subject, "kind": kind, **extra}


def school_payload() -> dict:
    """One Monday for a small school.

    T teaches A1, B3 and C5. E is the home-room teacher of A. S co-teaches B1,
    I has individual lessons, R has stay periods, X is external and O is not
    in school on Mondays.
    """
    return {
        "staff": [
            {"id": "T", "name": "Tamar", "subjects": ["math"]},
            {"id": "E", "name": "Eli", "subjects": ["english"], "is_educator": True, "educator_class_id": "A"},
            {"id": "S", "name": "Sara", "subjects": ["science"]},
            {"id": "P", "name": "Peretz", "subjects": ["history"]},
            {"id": "I", "name": "Ilan", "subjects": ["english"]},
            {"id": "R", "name": "Rina", "subjects": ["religion"]},
            {"id": "F", "name": "Fadi", "subjects": ["art"]},
            {"id": "X", "name": "Xena", "subjects": ["math"], "is_external": True},
            {"id": "O", "name": "Omar", "subjects": ["physics"]},
        ],
        "classes": [
            {"id": "A", "name": "7A", "grade_level": 7},
            {"id": "B", "name": "7B", "grade_level": 7},
            {"id": "C", "name": "8A", "grade_level": 8},
            {"id": "D", "name": "8B", "grade_level": 8},
        ],
        "lessons": [
            lesson("T", "A", 1, "math"),
            lesson("T", "B", 3, "math"),
            lesson("T", "C", 5, "math"),
            lesson("E", "D", 2, "english"),
            lesson("E", "D", 4, "english"),
            lesson("S", "B", 1, "science", teacher_role="secondary"),
            lesson("S", "D", 5, "science"),
            lesson("P", "B", 1, "history"),
            lesson("P", "C", 2, "history"),
            lesson("P", "C", 3, "history"),
            lesson("I", "C", 1, "english", kind="individual"),
            lesson("I", "D", 3, "english", kind="individual"),
            lesson("I", "B", 6, "english"),
            lesson("R", "D", 1, "religion", kind="stay"),
            lesson("R", "D", 3, "religion", kind="stay"),
            lesson("R", "A", 6, "religion"),
            lesson("F", "B", 2, "art"),
            lesson("F", "A", 5, "art"),
            lesson("O", "A", 1, "physics", day="Tuesday"),
        ],
    }


@pytest.fixture()
def school_snapshot() -> TimetableSnapshot:
    return TimetableSnapshot.model_validate(school_payload())


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
