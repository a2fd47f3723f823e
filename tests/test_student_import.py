import asyncio
import io

import pytest
from sqlalchemy import select

from school_app.models import Student
from school_app.services.student import StudentService

ROSTER = "\n".join([
    "name,admission_no,class,email",
    "Ravi Kumar,A003,8A,ravi@example.com",
    "Asha Rao,,8A,",
    "Kiran Das,a001,8B,",
    "Meena Iyer,A004,8B,",
    "Lata Shah,a004,8C,",
    "Sita Nair,A005,8A",
])


def test_import_creates_students_and_skips_bad_rows(session_factory, school):
    async def run():
        async with session_factory() as db:
            created, skipped = await StudentService.import_students(school["organization_id"], ROSTER, db)
        async with session_factory() as db:
            result = await db.execute(select(Student).order_by(Student.admission_no))
            return created, skipped, list(result.scalars().all())

    created, skipped, students = asyncio.run(run())

    assert [(student.name, student.admission_no, student.class_name) for student in created] == [
        ("Ravi Kumar", "A003", "8A"),
        ("Meena Iyer", "A004", "8B"),
    ]
    assert created[0].email == "ravi@example.com"
    assert created[1].email is None
    assert [(row.row, row.reason) for row in skipped] == [
        (2, "Name, admission number and class are required"),
        (3, "Admission number a001 is already in use"),
        (5, "Admission number a004 is already in use"),
        (6, "Wrong number of fields"),
    ]
    assert [student.admission_no for student in students] == ["A001", "A002", "A003", "A004"]


def test_import_accepts_spaced_column_names(session_factory, school):
    text = "Student Name,Admission No,Class Name\nRavi Kumar,A003,8A"

    async def run():
        async with session_factory() as db:
            return await StudentService.import_students(school["organization_id"], text, db)

    created, skipped = asyncio.run(run())

    assert [student.admission_no for student in created] == ["A003"]
    assert skipped == []


@pytest.mark.parametrize("text, message", [
    ("name,admission_no,class", "at least a header row and one data row"),
    ("name,admission_no\nRavi Kumar,A003", 'must have "name", "admission_no" and "class" columns'),
])
def test_import_rejects_unusable_csv(session_factory, school, text, message):
    async def run():
        async with session_factory() as db:
            return await StudentService.import_students(school["organization_id"], text, db)

    with pytest.raises(ValueError, match=message):
        asyncio.run(run())


def test_import_students_from_uploaded_file(client, school):
    content = "\ufeff" + ROSTER

    response = client.post(
        "/api/v1/student/import",
        files={"file": ("students.csv", io.BytesIO(content.encode("utf-8")), "text/csv")},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["imported"] == 2
    assert body["message"] == "Successfully imported 2 students"
    assert [student["admissionNo"] for student in body["students"]] == ["A003", "A004"]
    assert [row["row"] for row in body["skipped"]] == [2, 3, 5, 6]

    students = client.get("/api/v1/student/").json()
    assert len(students) == 4


def test_import_students_without_class_column_is_400(client, school):
    response = client.post(
        "/api/v1/student/import",
        files={"file": ("students.csv", io.BytesIO(b"name,admission_no\nRavi Kumar,A003"), "text/csv")},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == 'CSV must have "name", "admission_no" and "class" columns'


def test_import_students_rejects_non_utf8_file(client, school):
    response = client.post(
        "/api/v1/student/import",
        files={"file": ("students.csv", io.BytesIO("name,admission_no,class\nRávi,A003,8A".encode("latin-1")), "text/csv")},
    )

    assert response.status_code == 400
