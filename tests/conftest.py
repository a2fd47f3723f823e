import asyncio
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PLATFORM_ADMIN_KEY", "test-platform-key")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-signing-access-tokens")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="school-marks-logs-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from school_app.core.database import Base, get_db, get_session_factory
from school_app.main import app
from school_app.models import Exam, Organization, Student, Subject
from school_app.utils.roles import get_current_user


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'school.db'}", poolclass=NullPool)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def school(session_factory):
    """One organization with an exam for class 8A, two students and a Drawing subject out of 50."""
    async def seed():
        async with session_factory() as db:
            organization = Organization(
                name="Green Valley School", login="greenvalley", password="unused", role="org_admin"
            )
            db.add(organization)
            await db.flush()

            exam = Exam(name="Term 1", class_name="8A", max_marks=100, organization_id=organization.id)
            students = [
                Student(name="Nikhil Varma", admission_no="A001", class_name="8A",
                        organization_id=organization.id),
                Student(name="Bhavani Devi", admission_no="A002", class_name="8A",
                        organization_id=organization.id),
            ]
            subject = Subject(name="Drawing", code="DRW", max_marks=50, organization_id=organization.id)
            db.add_all([exam, subject, *students])
            await db.commit()

            return {
                "organization_id": organization.id,
                "exam_id": exam.id,
                "student_ids": [student.id for student in students],
            }

    return asyncio.run(seed())


@pytest.fixture
def client(session_factory, school):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_current_user] = lambda: {
        "sub": "greenvalley",
        "role": "org_admin",
        "id": school["organization_id"],
        "org_id": school["organization_id"],
    }
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()
