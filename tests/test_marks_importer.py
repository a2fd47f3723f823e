import asyncio

import pytest
from fastapi import HTTPException

from school_app.api.v1.schemas.mark import ExamContext, ImportStatus
from school_app.services.marks_import import MarksImporter, NoValidRowsError, failed_rows, parse_flat, parse_wide

EXAM = ExamContext(exam_id=1, exam_name="Term 1", class_name="8A")


class RecordingPersist:
    """Persistence double recording calls and how many ran at once."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, entry, exam):
        self.calls.append((entry.student_name, entry.subject, entry.marks))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if (entry.student_name, entry.subject) in self.fail:
                raise HTTPException(status_code=404, detail=f"Student not found: {entry.student_name}")
            return entry
        finally:
            self.in_flight -= 1


def _class_of(count, subjects=("Maths", "Science")):
    header = ",".join(["name", *subjects])
    lines = [",".join([f"Student {i}", *(str(50 + i) for _ in subjects)]) for i in range(count)]
    return parse_wide("\n".join([header, *lines])).rows


def test_zero_marks_are_never_persisted():
    rows = parse_wide("name,Physics,Chemistry,Biology\nRavi,85,0,\nAsha,0,0,0").rows
    persist = RecordingPersist()

    result = asyncio.run(MarksImporter(persist).import_rows(rows, EXAM))

    assert persist.calls == [("Ravi", "Physics", 85.0)]
    assert result.success == 2
    assert result.details[1].imported_subjects == []


def test_invalid_rows_are_not_imported():
    rows = parse_wide("name,Physics\nRavi,85\nAsha,150").rows
    persist = RecordingPersist()

    result = asyncio.run(MarksImporter(persist).import_rows(rows, EXAM))

    assert persist.calls == [("Ravi", "Physics", 85.0)]
    assert [detail.student for detail in result.details] == ["Ravi"]


def test_failed_call_does_not_stop_other_calls():
    rows = parse_wide("name,Physics\nRavi,85\nAsha,90\nKiran,70").rows
    persist = RecordingPersist(fail={("Asha", "Physics")})

    result = asyncio.run(MarksImporter(persist, batch_size=2).import_rows(rows, EXAM))

    assert len(persist.calls) == 3
    assert result.success == 2
    assert result.failed == 1
    assert result.success + result.failed == 3


def test_student_with_a_failed_subject_is_reported_as_error():
    rows = parse_wide("name,Physics,Chemistry\nRavi,85,90").rows
    persist = RecordingPersist(fail={("Ravi", "Physics")})

    result = asyncio.run(MarksImporter(persist).import_rows(rows, EXAM))
    detail = result.details[0]

    assert (result.success, result.failed) == (0, 1)
    assert detail.status == ImportStatus.ERROR
    assert detail.message == "Student not found: Ravi"
    assert detail.imported_subjects == ["Chemistry"]
    assert [(item.subject, item.marks) for item in detail.failed_subjects] == [("Physics", 85.0)]


def test_groups_run_concurrently_but_never_overlap():
    persist = RecordingPersist()

    asyncio.run(MarksImporter(persist, batch_size=2).import_rows(_class_of(5), EXAM))

    assert len(persist.calls) == 10
    assert persist.max_in_flight == 4
    students_in_order = [name for name, _, _ in persist.calls]
    assert set(students_in_order[:4]) == {"Student 0", "Student 1"}
    assert set(students_in_order[4:8]) == {"Student 2", "Student 3"}
    assert set(students_in_order[8:]) == {"Student 4"}


def test_progress_is_reported_after_each_group():
    progress = []

    asyncio.run(
        MarksImporter(RecordingPersist(), batch_size=2).import_rows(
            _class_of(5), EXAM, on_progress=progress.append
        )
    )

    assert progress == [40.0, 80.0, 100.0]


def test_progress_never_exceeds_100_and_never_decreases():
    progress = []

    asyncio.run(
        MarksImporter(RecordingPersist(), batch_size=3).import_rows(
            _class_of(7), EXAM, on_progress=progress.append
        )
    )

    assert progress == sorted(progress)
    assert progress[-1] == 100.0
    assert all(0 < value <= 100 for value in progress)


def test_async_progress_callback_is_awaited():
    progress = []

    async def report(value):
        await asyncio.sleep(0)
        progress.append(value)

    asyncio.run(
        MarksImporter(RecordingPersist(), batch_size=5).import_rows(_class_of(3), EXAM, on_progress=report)
    )

    assert progress == [100.0]


def test_cancel_stops_before_next_group():
    persist = RecordingPersist()

    async def run():
        cancel = asyncio.Event()
        return await MarksImporter(persist, batch_size=2).import_rows(
            _class_of(5), EXAM, on_progress=lambda value: cancel.set(), cancel_event=cancel
        )

    result = asyncio.run(run())

    assert result.cancelled
    assert [detail.student for detail in result.details] == ["Student 0", "Student 1"]
    assert len(persist.calls) == 4


def test_no_valid_rows_raises():
    rows = parse_wide("name,Physics\nRavi,150\n,90").rows

    with pytest.raises(NoValidRowsError, match="No valid rows to import"):
        asyncio.run(MarksImporter(RecordingPersist()).import_rows(rows, EXAM))


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        MarksImporter(RecordingPersist(), batch_size=-1)


def test_failed_rows_keep_only_failed_subjects():
    rows = parse_wide("name,Physics,Chemistry\nRavi,85,90\nAsha,70,75").rows
    persist = RecordingPersist(fail={("Ravi", "Chemistry")})
    result = asyncio.run(MarksImporter(persist).import_rows(rows, EXAM))

    retry = failed_rows(rows, result)

    assert len(retry) == 1
    assert retry[0].student_name == "Ravi"
    assert retry[0].marks == {"Chemistry": 90.0}
    assert rows[0].marks == {"Physics": 85.0, "Chemistry": 90.0}

    retry_persist = RecordingPersist()
    retry_result = asyncio.run(MarksImporter(retry_persist).import_rows(retry, EXAM))
    assert retry_persist.calls == [("Ravi", "Chemistry", 90.0)]
    assert retry_result.success == 1


def test_scenario_with_untaken_subjects():
    text = "name,Science,Mathematics\nNikhil Varma,0,85\nBhavani Devi,92,0"
    parsed = parse_wide(text)
    persist = RecordingPersist()

    result = asyncio.run(MarksImporter(persist).import_rows(parsed.rows, EXAM))

    assert parsed.valid_count == 2
    assert sorted(persist.calls) == [("Bhavani Devi", "Science", 92.0), ("Nikhil Varma", "Mathematics", 85.0)]
    assert (result.success, result.failed) == (2, 0)


def test_failed_rows_match_student_and_subject_in_flat_layout():
    text = "\n".join([
        "Student Name,Subject,Marks",
        "Ravi,Physics,85",
        "Ravi,Chemistry,90",
        "Asha,Physics,70",
    ])
    rows = parse_flat(text).rows
    persist = RecordingPersist(fail={("Ravi", "Chemistry")})
    result = asyncio.run(MarksImporter(persist).import_rows(rows, EXAM))

    retry = failed_rows(rows, result)

    assert [(row.student_name, row.marks) for row in retry] == [("Ravi", {"Chemistry": 90.0})]

    retry_result = asyncio.run(MarksImporter(RecordingPersist()).import_rows(retry, EXAM))
    assert (retry_result.success, retry_result.failed) == (1, 0)
