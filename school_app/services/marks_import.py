import asyncio
import inspect
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from school_app.api.v1.schemas.mark import (
    ExamContext,
    FailedSubject,
    ImportDetail,
    ImportForm,
    ImportResult,
    ImportStatus,
    MarkEntry,
    MarkRecord,
    ParseResult,
)
from school_app.core.config import settings
from school_app.core.logger import logger
from school_app.utils.csv_table import read_csv_lines

PersistMark = Callable[[MarkEntry, ExamContext], Awaitable[Any]]
ProgressCallback = Callable[[float], Union[None, Awaitable[None]]]

# Accepted header spellings for the flat (one row per subject) layout
FLAT_COLUMNS: Dict[str, tuple] = {
    "student_name": ("student name", "studentname"),
    "admission_no": ("admission no", "admissionno"),
    "exam_name": ("exam name", "examname"),
    "subject": ("subject",),
    "marks": ("marks",),
    "max_marks": ("max marks", "maxmarks"),
}


class MarksParseError(ValueError):
    """The input cannot be read as a marks table; no rows are produced."""


class NoValidRowsError(ValueError):
    """Nothing is left to import once invalid rows are dropped."""


def _split_table(raw_text: str) -> List[List[str]]:
    table = read_csv_lines(raw_text)
    if len(table) < 2:
        raise MarksParseError("CSV must have at least a header row and one data row")
    return table


def _parse_number(raw: str) -> Optional[float]:
    try:
        value = float(raw)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def _summarize(form: ImportForm, rows: List[MarkRecord]) -> ParseResult:
    valid_count = sum(1 for row in rows if row.valid)
    return ParseResult(
        form=form,
        rows=rows,
        total_count=len(rows),
        valid_count=valid_count,
        invalid_count=len(rows) - valid_count,
    )


def _is_wide_header(headers: Sequence[str]) -> bool:
    return bool(headers) and headers[0].lower() == "name"


def _flat_columns(headers: Sequence[str]) -> Dict[str, int]:
    columns = {}
    for index, header in enumerate(headers):
        normalized = header.lower()
        for key, aliases in FLAT_COLUMNS.items():
            if normalized in aliases and key not in columns:
                columns[key] = index
    return columns


def _parse_wide_table(
        table: List[List[str]],
        max_allowed_mark: Optional[float],
        subject_max_marks: Optional[Dict[str, int]],
) -> ParseResult:
    headers, data = table[0], table[1:]
    if not _is_wide_header(headers):
        raise MarksParseError('First column must be "name"')

    if max_allowed_mark is None:
        max_allowed_mark = settings.MAX_ALLOWED_MARK
    overrides = {name.lower(): value for name, value in (subject_max_marks or {}).items()}

    subjects = headers[1:]
    seen = set()
    for subject in subjects:
        if not subject:
            raise MarksParseError("Subject column names must not be empty")
        if subject.lower() in seen:
            raise MarksParseError(f"Duplicate subject column: {subject}")
        seen.add(subject.lower())

    ceilings = {subject: overrides.get(subject.lower(), max_allowed_mark) for subject in subjects}

    rows: List[MarkRecord] = []
    for values in data:
        if len(values) != len(headers):
            continue

        record = MarkRecord(
            student_name=values[0],
            max_marks={subject: int(ceiling) for subject, ceiling in ceilings.items()},
        )
        if not record.student_name:
            record.errors.append("Student name is required.")

        for subject, raw in zip(subjects, values[1:]):
            mark = _parse_number(raw)
            if mark is None or mark < 0 or mark > ceilings[subject]:
                record.marks[subject] = 0.0
                if raw not in ("", "0"):
                    record.errors.append(f"Invalid mark for {subject}: {raw}")
            else:
                record.marks[subject] = mark

        record.valid = not record.errors
        rows.append(record)

    return _summarize(ImportForm.WIDE, rows)


def _parse_flat_table(table: List[List[str]], exam_name: Optional[str]) -> ParseResult:
    headers, data = table[0], table[1:]
    columns = _flat_columns(headers)
    if "student_name" not in columns or "subject" not in columns:
        raise MarksParseError('Flat import requires "Student Name" and "Subject" columns')

    rows: List[MarkRecord] = []
    for values in data:
        if len(values) != len(headers):
            continue

        def field(key: str) -> str:
            return values[columns[key]] if key in columns else ""

        student_name, subject = field("student_name"), field("subject")
        if not student_name or not subject:
            continue

        record = MarkRecord(
            student_name=student_name,
            admission_no=field("admission_no") or None,
            exam_name=field("exam_name") or None,
        )

        raw_max = field("max_marks")
        max_marks = _parse_number(raw_max) if raw_max else 100.0
        if max_marks is None or max_marks <= 0:
            record.errors.append(f"Invalid max marks for {subject}: {raw_max}")
            max_marks = 100.0

        raw_marks = field("marks")
        marks = _parse_number(raw_marks) if raw_marks else 0.0
        if marks is None or marks < 0 or marks > max_marks:
            if raw_marks not in ("", "0"):
                record.errors.append(f"Invalid mark for {subject}: {raw_marks}")
            marks = 0.0

        if exam_name and record.exam_name and record.exam_name.lower() != exam_name.lower():
            record.errors.append(f"Exam name does not match: {record.exam_name}")

        record.marks[subject] = marks
        record.max_marks[subject] = int(max_marks)
        record.valid = not record.errors
        rows.append(record)

    return _summarize(ImportForm.FLAT, rows)


def parse_wide(
        raw_text: str,
        max_allowed_mark: Optional[float] = None,
        subject_max_marks: Optional[Dict[str, int]] = None,
) -> ParseResult:
    """
    Parse the wide layout: ``name,<subject>,<subject>,...`` with one row per student.

    Args:
        raw_text: CSV text, first line is the header
        max_allowed_mark: Ceiling for every subject, defaults to MAX_ALLOWED_MARK
        subject_max_marks: Per-subject ceilings taking precedence over max_allowed_mark

    Returns:
        ParseResult: One MarkRecord per accepted line, in input order

    Raises:
        MarksParseError: Fewer than two lines or the first header is not "name"
    """
    return _parse_wide_table(_split_table(raw_text), max_allowed_mark, subject_max_marks)


def parse_flat(raw_text: str, exam_name: Optional[str] = None) -> ParseResult:
    """
    Parse the flat layout with one row per (student, subject).

    Rows without a student name or subject are dropped. When ``exam_name`` is
    given, rows naming a different exam are flagged invalid.
    """
    return _parse_flat_table(_split_table(raw_text), exam_name)


def parse_marks(
        raw_text: str,
        max_allowed_mark: Optional[float] = None,
        subject_max_marks: Optional[Dict[str, int]] = None,
        exam_name: Optional[str] = None,
) -> ParseResult:
    """Detect the layout from the header row and parse accordingly."""
    table = _split_table(raw_text)
    headers = table[0]

    if _is_wide_header(headers):
        result = _parse_wide_table(table, max_allowed_mark, subject_max_marks)
    elif {"student_name", "subject"}.issubset(_flat_columns(headers)):
        result = _parse_flat_table(table, exam_name)
    else:
        raise MarksParseError('First column must be "name"')

    logger.info(
        f"[MARKS PARSE] Layout {result.form.value}: {result.total_count} rows, "
        f"{result.valid_count} valid, {result.invalid_count} invalid"
    )
    return result


def failed_rows(rows: Sequence[MarkRecord], result: ImportResult) -> List[MarkRecord]:
    """
    Build the records needed to retry only what failed in ``result``.

    Each returned record carries just the subjects whose persistence call failed;
    records left without any such subject are dropped.
    """
    failures = {
        (detail.student, item.subject)
        for detail in result.details
        if detail.status == ImportStatus.ERROR
        for item in detail.failed_subjects
    }

    retry = []
    for row in rows:
        if not row.valid:
            continue
        marks = {
            subject: value for subject, value in row.marks.items()
            if (row.student_name, subject) in failures
        }
        if marks:
            retry.append(row.model_copy(update={"marks": marks, "errors": []}))
    return retry


async def _report_progress(on_progress: Optional[ProgressCallback], value: float) -> None:
    if on_progress is None:
        return
    outcome = on_progress(value)
    if inspect.isawaitable(outcome):
        await outcome


def _failure_message(error: Exception) -> str:
    detail = getattr(error, "detail", None)
    return str(detail or error) or "Import failed"


class MarksImporter:
    """
    Persists validated MarkRecords in fixed-size groups.

    Every (student, subject) call of a group runs concurrently; the next group
    starts only once the whole group has settled, so at most
    ``batch_size * subjects_per_student`` calls are in flight.
    """

    def __init__(self, persist: PersistMark, batch_size: Optional[int] = None):
        self.persist = persist
        self.batch_size = batch_size or settings.IMPORT_BATCH_SIZE
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    async def _import_row(self, row: MarkRecord, exam: ExamContext) -> ImportDetail:
        # 0 means the subject was not taken
        entries = [entry for entry in row.entries() if entry.marks != 0]
        outcomes = await asyncio.gather(
            *(self.persist(entry, exam) for entry in entries),
            return_exceptions=True
        )

        detail = ImportDetail(student=row.student_name, status=ImportStatus.SUCCESS)
        for entry, outcome in zip(entries, outcomes):
            if isinstance(outcome, Exception):
                message = _failure_message(outcome)
                logger.warning(
                    f"[MARKS IMPORT] {row.student_name} / {entry.subject} not saved: {message}"
                )
                detail.failed_subjects.append(
                    FailedSubject(subject=entry.subject, marks=entry.marks, message=message)
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                detail.imported_subjects.append(entry.subject)

        if detail.failed_subjects:
            detail.status = ImportStatus.ERROR
            detail.message = detail.failed_subjects[0].message
        return detail

    async def import_rows(
            self,
            rows: Sequence[MarkRecord],
            exam: ExamContext,
            on_progress: Optional[ProgressCallback] = None,
            cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportResult:
        """
        Import the valid rows for one exam.

        Args:
            rows: Parsed records; invalid ones are skipped
            exam: Exam the marks belong to
            on_progress: Called with a 0-100 percentage after every group
            cancel_event: When set, no further group is started

        Returns:
            ImportResult: Per-student outcomes and success/failure counts

        Raises:
            NoValidRowsError: No row passed validation
        """
        valid_rows = [row for row in rows if row.valid]
        if not valid_rows:
            logger.warning(f"[MARKS IMPORT] Exam ID {exam.exam_id}: no valid rows to import")
            raise NoValidRowsError("No valid rows to import")

        total = len(valid_rows)
        result = ImportResult()
        logger.info(
            f"[MARKS IMPORT] Exam ID {exam.exam_id} ({exam.exam_name}): "
            f"{total} students in groups of {self.batch_size}"
        )

        for start in range(0, total, self.batch_size):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"[MARKS IMPORT] Exam ID {exam.exam_id}: cancelled after {start} students")
                result.cancelled = True
                break

            group = valid_rows[start:start + self.batch_size]
            details = await asyncio.gather(*(self._import_row(row, exam) for row in group))

            for detail in details:
                result.details.append(detail)
                if detail.status == ImportStatus.SUCCESS:
                    result.success += 1
                else:
                    result.failed += 1

            progress = min(100.0, (start + self.batch_size) / total * 100)
            logger.debug(f"[MARKS IMPORT] Exam ID {exam.exam_id}: {progress:.0f}%")
            await _report_progress(on_progress, progress)

        logger.info(
            f"[MARKS IMPORT] Exam ID {exam.exam_id}: {result.success} succeeded, {result.failed} failed"
        )
        return result
