import asyncio

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from school_app.main import app
from school_app.models import Mark, Subject, Teacher
from school_app.services.mark import MarkService
from school_app.services.teacher import TeacherService
from school_app.utils.roles import get_current_user

SCENARIO = "name,Physics,Chemistry\nNikhil Varma,85,90\nBhavani Devi,92,88"


@pytest.fixture
def teacher(session_factory, school):
    """A teacher of the seeded organization with a Physics subject available but not yet assigned."""
    async def seed():
        async with session_factory() as db:
            physics = Subject(name="Physics", code="PHY", max_marks=100, organization_id=school["organization_id"])
            teacher = Teacher(
                login="meera", password="unused", role="teacher", full_name="Meera Nair",
                organization_id=school["organization_id"]
            )
            db.add_all([physics, teacher])
            await db.commit()
            drawing = (await db.execute(select(Subject).where(Subject.name == "Drawing"))).scalars().one()
            return {"teacher_id": teacher.id, "physics_id": physics.id, "drawing_id": drawing.id}

    return asyncio.run(seed())


def _claims(school, teacher):
    return {"sub": "meera", "role": "teacher", "id": teacher["teacher_id"], "org_id": school["organization_id"]}


def test_assign_subjects_replaces_previous_assignment(session_factory, school, teacher):
    async def run():
        async with session_factory() as db:
            first = await TeacherService.assign_subjects(
                teacher["teacher_id"], school["organization_id"], [teacher["physics_id"], teacher["drawing_id"]], db
            )
            first_names = sorted(subject.name for subject in first.subjects)
        async with session_factory() as db:
            second = await TeacherService.assign_subjects(
                teacher["teacher_id"], school["organization_id"], [teacher["drawing_id"]], db
            )
            return first_names, [subject.name for subject in second.subjects]

    first_names, second_names = asyncio.run(run())

    assert first_names == ["Drawing", "Physics"]
    assert second_names == ["Drawing"]


def test_assign_unknown_subject_is_400(session_factory, school, teacher):
    async def run():
        async with session_factory() as db:
            await TeacherService.assign_subjects(
                teacher["teacher_id"], school["organization_id"], [teacher["physics_id"], 999], db
            )

    with pytest.raises(HTTPException) as exc:
        asyncio.run(run())

    assert exc.value.status_code == 400
    assert exc.value.detail == "Unknown subject IDs: 999"


def test_assign_to_teacher_of_another_organization_is_404(session_factory, school, teacher):
    async def run():
        async with session_factory() as db:
            await TeacherService.assign_subjects(
                teacher["teacher_id"], school["organization_id"] + 1, [teacher["physics_id"]], db
            )

    with pytest.raises(HTTPException) as exc:
        asyncio.run(run())

    assert exc.value.status_code == 404


def test_only_teachers_are_limited_to_their_subjects(session_factory, school, teacher):
    org_admin = {"sub": "greenvalley", "role": "org_admin", "id": school["organization_id"],
                 "org_id": school["organization_id"]}

    async def run():
        async with session_factory() as db:
            await TeacherService.assign_subjects(
                teacher["teacher_id"], school["organization_id"], [teacher["physics_id"]], db
            )
        async with session_factory() as db:
            return (
                await TeacherService.get_allowed_subjects(_claims(school, teacher), db),
                await TeacherService.get_allowed_subjects(org_admin, db),
            )

    teacher_subjects, admin_subjects = asyncio.run(run())

    assert teacher_subjects == {"physics"}
    assert admin_subjects is None


def test_upsert_outside_allowed_subjects_is_403(session_factory, school):
    async def run():
        async with session_factory() as db:
            await MarkService.upsert_mark(
                school["exam_id"], "Nikhil Varma", "Chemistry", 90, 100, db, allowed_subjects={"physics"}
            )

    with pytest.raises(HTTPException) as exc:
        asyncio.run(run())

    async def saved_marks():
        async with session_factory() as db:
            return list((await db.execute(select(Mark))).scalars().all())

    assert exc.value.status_code == 403
    assert exc.value.detail == "Subject not assigned: Chemistry"
    assert asyncio.run(saved_marks()) == []


def test_upsert_within_allowed_subjects_ignores_case(session_factory, school):
    async def run():
        async with session_factory() as db:
            return await MarkService.upsert_mark(
                school["exam_id"], "Nikhil Varma", "PHYSICS", 85, 100, db, allowed_subjects={"physics"}
            )

    assert asyncio.run(run()).marks_obtained == 85


def test_teacher_imports_only_assigned_subjects(client, school):
    physics = client.post("/api/v1/subject/create", json={"name": "Physics", "code": "PHY", "maxMarks": 100})
    created = client.post(
        "/api/v1/auth/teachers",
        json={"login": "meera", "password": "secret123", "fullName": "Meera Nair",
              "subjectIds": [physics.json()["id"]]},
    )

    assert created.status_code == 201
    assert [subject["name"] for subject in created.json()["subjects"]] == ["Physics"]

    app.dependency_overrides[get_current_user] = lambda: {
        "sub": "meera", "role": "teacher", "id": created.json()["id"], "org_id": school["organization_id"]
    }

    response = client.post("/api/v1/mark/import", json={"exam_id": school["exam_id"], "text": SCENARIO})

    assert response.status_code == 201
    result = response.json()["result"]
    assert (result["success"], result["failed"]) == (0, 2)
    assert result["details"][0]["imported_subjects"] == ["Physics"]
    assert result["details"][0]["failed_subjects"][0]["message"] == "Subject not assigned: Chemistry"

    single = client.post(
        "/api/v1/mark/import/single",
        json={"exam_id": school["exam_id"], "student_name": "Nikhil Varma", "subject": "Chemistry", "marks": 90},
    )
    assert single.status_code == 403

    mine = client.get("/api/v1/teacher/me/subjects")
    assert [subject["name"] for subject in mine.json()] == ["Physics"]


def test_admin_assigns_and_lists_teacher_subjects(client, school, teacher):
    response = client.put(
        f"/api/v1/teacher/{teacher['teacher_id']}/subjects",
        json={"subjectIds": [teacher["drawing_id"], teacher["physics_id"]]},
    )

    assert response.status_code == 200
    assert [subject["name"] for subject in response.json()["subjects"]] == ["Drawing", "Physics"]

    teachers = client.get("/api/v1/teacher/").json()
    assert [(item["fullName"], len(item["subjects"])) for item in teachers] == [("Meera Nair", 2)]

    unknown = client.put(f"/api/v1/teacher/{teacher['teacher_id']}/subjects", json={"subjectIds": [999]})
    assert unknown.status_code == 400


def test_teacher_with_unknown_subject_is_not_created(client, school):
    response = client.post(
        "/api/v1/auth/teachers",
        json={"login": "meera", "password": "secret123", "fullName": "Meera Nair", "subjectIds": [999]},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Unknown subject IDs: 999"
    assert client.get("/api/v1/teacher/").json() == []
