from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from school_app.api.v1.schemas.mark import (
    MarkCreate,
    MarkResponse,
    MarksImportText,
    MarksParseText,
    MarkUpdate,
    ParseResult,
    SingleMarkImport,
)
from school_app.core.database import get_db, get_session_factory
from school_app.core.logger import logger
from school_app.models import Mark, Student
from school_app.services.exam import ExamService
from school_app.services.mark import MarkService
from school_app.services.teacher import TeacherService
from school_app.utils.roles import require_roles, get_organization_id, Role

router = APIRouter(prefix="/mark", tags=["Mark"])

IMPORT_HELP = (
    "Wide layout: first column 'name', one column per subject, one row per student. "
    "Flat layout: Student Name, Admission No, Exam Name, Subject, Marks, Max Marks. "
    "A mark of 0 or an empty cell means the subject was not taken and is not saved."
)


def _to_response(mark: Mark, student: Optional[Student] = None) -> MarkResponse:
    return MarkResponse(
        id=mark.id,
        student_id=mark.student_id,
        exam_id=mark.exam_id,
        subject=mark.subject,
        marks_obtained=mark.marks_obtained,
        max_marks=mark.max_marks,
        student_name=student.name if student else None,
        admission_no=student.admission_no if student else None,
        created_at=mark.created_at,
        updated_at=mark.updated_at,
    )


async def _run_import(
        exam_id: int,
        text: str,
        organization_id: int,
        db: AsyncSession,
        session_factory: async_sessionmaker,
        current_user: dict
) -> dict:
    allowed_subjects = await TeacherService.get_allowed_subjects(current_user, db)
    try:
        parsed, result = await MarkService.import_marks_from_table(
            exam_id, text, organization_id, db,
            session_factory=session_factory,
            allowed_subjects=allowed_subjects
        )
    except ValueError as e:
        logger.warning(f"[MARKS IMPORT] Import rejected for exam ID {exam_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        ) from e

    logger.info(f"[MARKS IMPORT] Exam ID {exam_id}: {result.success} students imported, {result.failed} failed")

    return {
        "message": f"Imported marks for {result.success} students",
        "total_attempts": parsed.valid_count,
        "invalid_rows": [row for row in parsed.rows if not row.valid],
        "result": result,
    }


@router.get("/exam/{exam_id}", response_model=List[MarkResponse], status_code=status.HTTP_200_OK)
async def get_marks_by_exam(
        exam_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    marks = await MarkService.get_marks_by_exam(exam_id, get_organization_id(current_user), db)
    return [_to_response(mark, mark.student) for mark in marks]


@router.get("/{student_id}/{exam_id}", response_model=List[MarkResponse], status_code=status.HTTP_200_OK)
async def get_marks_by_student_and_exam(
        student_id: int,
        exam_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    marks = await MarkService.get_marks_by_student_and_exam(
        student_id, exam_id, get_organization_id(current_user), db
    )
    return [_to_response(mark, mark.student) for mark in marks]


@router.post("/", response_model=MarkResponse, status_code=status.HTTP_201_CREATED)
async def create_mark(
        mark_data: MarkCreate,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Record one mark; an existing mark for the same student, exam and subject is updated.

    Raises:
        HTTPException: 400 - Marks exceed max marks
        HTTPException: 403 - Subject not assigned to the teacher
        HTTPException: 404 - Student or exam not found
    """
    allowed_subjects = await TeacherService.get_allowed_subjects(current_user, db)
    mark = await MarkService.create_mark(mark_data, get_organization_id(current_user), db, allowed_subjects)
    return _to_response(mark)


@router.patch("/{mark_id}", response_model=MarkResponse, status_code=status.HTTP_200_OK)
async def update_mark(
        mark_id: int,
        mark_data: MarkUpdate,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    allowed_subjects = await TeacherService.get_allowed_subjects(current_user, db)
    mark = await MarkService.update_mark(
        mark_id, mark_data, get_organization_id(current_user), db, allowed_subjects
    )
    return _to_response(mark)


@router.delete("/{mark_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mark(
        mark_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    allowed_subjects = await TeacherService.get_allowed_subjects(current_user, db)
    await MarkService.delete_mark(mark_id, get_organization_id(current_user), db, allowed_subjects)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/import/parse", response_model=ParseResult, status_code=status.HTTP_200_OK, description=IMPORT_HELP)
async def parse_marks(
        parse_data: MarksParseText,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Preview a marks table: every row with its validation errors, nothing is saved.

    Raises:
        HTTPException: 400 - Header or line count not valid
        HTTPException: 404 - Exam not found
    """
    organization_id = get_organization_id(current_user)
    exam = None
    if parse_data.exam_id is not None:
        exam = await ExamService.get_exam_context(parse_data.exam_id, organization_id, db)

    try:
        return await MarkService.parse_marks_table(parse_data.text, organization_id, db, exam)
    except ValueError as e:
        logger.warning(f"[MARKS PARSE] {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        ) from e


@router.post("/import", status_code=status.HTTP_201_CREATED, description=IMPORT_HELP)
async def import_marks(
        import_data: MarksImportText,
        db: AsyncSession = Depends(get_db),
        session_factory: async_sessionmaker = Depends(get_session_factory),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Import pasted CSV marks for an exam.

    Args:
        import_data: Exam ID and CSV text
        db: Async SQLAlchemy session
        current_user: Current user claims

    Returns:
        dict: Import summary, invalid rows and per-student outcome

    Raises:
        HTTPException: 400 - Table cannot be parsed or has no valid rows
        HTTPException: 404 - Exam not found
    """
    return await _run_import(
        import_data.exam_id, import_data.text, get_organization_id(current_user), db, session_factory, current_user
    )


@router.post("/import/file", status_code=status.HTTP_201_CREATED, description=IMPORT_HELP)
async def import_marks_file(
        exam_id: int = Form(...),
        file: UploadFile = File(...),
        db: AsyncSession = Depends(get_db),
        session_factory: async_sessionmaker = Depends(get_session_factory),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Import marks from an uploaded CSV file for an exam.

    Raises:
        HTTPException: 400 - File is not UTF-8 text or cannot be parsed
        HTTPException: 404 - Exam not found
    """
    try:
        text = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError as e:
        logger.warning(f"[MARKS IMPORT] File {file.filename} is not UTF-8 text")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a UTF-8 encoded CSV"
        ) from e

    return await _run_import(exam_id, text, get_organization_id(current_user), db, session_factory, current_user)


@router.post("/import/single", response_model=MarkResponse, status_code=status.HTTP_201_CREATED)
async def import_single_mark(
        mark_data: SingleMarkImport,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Save one imported mark by student name; repeated calls update the same mark.

    Raises:
        HTTPException: 400 - Marks exceed max marks
        HTTPException: 403 - Subject not assigned to the teacher
        HTTPException: 404 - Exam or student not found
    """
    await ExamService.get_exam(mark_data.exam_id, get_organization_id(current_user), db)
    allowed_subjects = await TeacherService.get_allowed_subjects(current_user, db)

    mark = await MarkService.upsert_mark(
        mark_data.exam_id,
        mark_data.student_name,
        mark_data.subject,
        mark_data.marks,
        mark_data.max_marks,
        db,
        admission_no=mark_data.admission_no,
        allowed_subjects=allowed_subjects
    )
    return _to_response(mark)
