import io

SCENARIO = "name,Physics,Chemistry\nNikhil Varma,85,90\nBhavani Devi,92,88"


def test_parse_preview_lists_rows_and_errors(client, school):
    response = client.post(
        "/api/v1/mark/import/parse",
        json={"text": "name,Physics,Drawing\nNikhil Varma,85,60\nBhavani Devi,92,45"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["form"] == "wide"
    assert (body["total_count"], body["valid_count"], body["invalid_count"]) == (2, 1, 1)
    assert body["rows"][0]["errors"] == ["Invalid mark for Drawing: 60"]
    assert body["rows"][1]["marks"] == {"Physics": 92.0, "Drawing": 45.0}


def test_parse_rejects_bad_header(client):
    response = client.post("/api/v1/mark/import/parse", json={"text": "student,Physics\nRavi,90"})

    assert response.status_code == 400
    assert response.json()["detail"] == 'First column must be "name"'


def test_import_saves_marks_and_is_repeatable(client, school):
    payload = {"exam_id": school["exam_id"], "text": SCENARIO}

    first = client.post("/api/v1/mark/import", json=payload)
    second = client.post("/api/v1/mark/import", json=payload)

    assert first.status_code == 201
    assert first.json()["result"]["success"] == 2
    assert first.json()["result"]["failed"] == 0
    assert first.json()["total_attempts"] == 2
    assert second.json()["result"]["success"] == 2

    marks = client.get(f"/api/v1/mark/exam/{school['exam_id']}").json()
    saved = {(mark["student_name"], mark["subject"]): mark["marks_obtained"] for mark in marks}
    assert saved == {
        ("Nikhil Varma", "Physics"): 85,
        ("Nikhil Varma", "Chemistry"): 90,
        ("Bhavani Devi", "Physics"): 92,
        ("Bhavani Devi", "Chemistry"): 88,
    }


def test_import_reports_invalid_rows_and_unknown_students(client, school):
    text = "name,Physics\nNikhil Varma,85\nGhost,70\nBhavani Devi,abc"

    response = client.post("/api/v1/mark/import", json={"exam_id": school["exam_id"], "text": text})

    assert response.status_code == 201
    body = response.json()
    assert [row["student_name"] for row in body["invalid_rows"]] == ["Bhavani Devi"]
    assert body["result"]["success"] == 1
    assert body["result"]["failed"] == 1
    assert body["result"]["details"][1]["message"] == "Student not found: Ghost"


def test_import_without_valid_rows_is_400(client, school):
    response = client.post(
        "/api/v1/mark/import", json={"exam_id": school["exam_id"], "text": "name,Physics\nRavi,150"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "No valid rows to import"


def test_import_into_unknown_exam_is_404(client, school):
    response = client.post("/api/v1/mark/import", json={"exam_id": school["exam_id"] + 100, "text": SCENARIO})

    assert response.status_code == 404


def test_import_from_uploaded_file(client, school):
    content = "\ufeff" + SCENARIO

    response = client.post(
        "/api/v1/mark/import/file",
        data={"exam_id": str(school["exam_id"])},
        files={"file": ("marks.csv", io.BytesIO(content.encode("utf-8")), "text/csv")},
    )

    assert response.status_code == 201
    assert response.json()["result"]["success"] == 2


def test_single_import_updates_existing_mark(client, school):
    payload = {
        "exam_id": school["exam_id"],
        "student_name": "Nikhil Varma",
        "subject": "Physics",
        "marks": 85,
    }

    first = client.post("/api/v1/mark/import/single", json=payload)
    second = client.post("/api/v1/mark/import/single", json={**payload, "marks": 91})

    assert first.status_code == 201
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["marks_obtained"] == 91


def test_single_import_above_max_is_400(client, school):
    response = client.post(
        "/api/v1/mark/import/single",
        json={"exam_id": school["exam_id"], "student_name": "Nikhil Varma", "subject": "Drawing",
              "marks": 60, "max_marks": 50},
    )

    assert response.status_code == 400


def test_exam_marks_summary(client, school):
    client.post("/api/v1/mark/import", json={"exam_id": school["exam_id"], "text": SCENARIO})

    exams = client.get("/api/v1/exam/").json()

    assert exams[0]["marks_count"] == 4


def test_organization_signup_and_login(anonymous_client):
    signup = anonymous_client.post(
        "/api/v1/auth/register-organization",
        data={"name": "Hill Side School", "username": "hillside", "password": "s3cret-pass"},
    )
    assert signup.status_code == 200
    assert signup.json()["role"] == "org_admin"

    login = anonymous_client.post(
        "/api/v1/auth/login", data={"username": "hillside", "password": "s3cret-pass"}
    )
    assert login.status_code == 200
    token = login.json()["access_token"]

    students = anonymous_client.get("/api/v1/student/", headers={"Authorization": f"Bearer {token}"})
    assert students.status_code == 200
    assert students.json() == []


def test_wrong_password_is_401(anonymous_client):
    anonymous_client.post(
        "/api/v1/auth/register-organization",
        data={"name": "Hill Side School", "username": "hillside", "password": "s3cret-pass"},
    )

    response = anonymous_client.post("/api/v1/auth/login", data={"username": "hillside", "password": "nope"})

    assert response.status_code == 401


def test_requests_without_token_are_401(anonymous_client):
    response = anonymous_client.get("/api/v1/student/")

    assert response.status_code == 401
