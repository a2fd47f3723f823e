from typing import List, Optional
from fastapi import APIRouter, Depends, File, HTTPException, status, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from school_app.api.v1.schemas.student import CreateNewStudent, StudentImportResult, StudentResponse, UpdateStudent
from school_app.core.database import get_db
from school_app.core.logger import logger
from school_app.models import Student
from school_app.services.student import StudentService
from school_app.utils.roles import require_roles, get_organization_id, Role

router = APIRouter(prefix="/student", tags=["Student"])


def _to_response(student: Student) -> StudentResponse:
    return StudentResponse(
        id=student.id,
        name=student.name,
        admissionNo=student.admission_no,
        className=student.class_name,
        email=student.email,
        organization_id=student.organization_id,
    )


@router.get("/", response_model=List[StudentResponse], status_code=status.HTTP_200_OK)
async def get_students(
        class_name: Optional[str] = None,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    List the students of the caller's organization.

    Args:
        class_name: Optional class filter
        db: Async SQLAlchemy session
        current_user: Current user claims

    Returns:
        List[StudentResponse]: Students
    """
    students = await StudentService.get_all_students(get_organization_id(current_user), db, class_name)
    return [_to_response(student) for student in students]


@router.post("/create", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def create_student(
        student_data: CreateNewStudent,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Create a student.

    Raises:
        HTTPException: 400 - Admission number already used
        HTTPException: 500 - Internal server error
    """
    student = await StudentService.create_student(get_organization_id(current_user), student_data, db)
    logger.info(f"[CREATE STUDENT] Student ID {student.id} created by {current_user['sub']}")
    return _to_response(student)


@router.post("/import", response_model=StudentImportResult, status_code=status.HTTP_201_CREATED)
async def import_students(
        file: UploadFile = File(...),
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Create students from an uploaded CSV with name, admission_no, class and optional email columns.

    Incomplete rows and admission numbers already in use are skipped and listed.

    Raises:
        HTTPException: 400 - File is not UTF-8 text or lacks the required columns
        HTTPException: 500 - Internal server error
    """
    try:
        text = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError as e:
        logger.warning(f"[IMPORT STUDENTS] File {file.filename} is not UTF-8 text")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a UTF-8 encoded CSV"
        ) from e

    try:
        students, skipped = await StudentService.import_students(get_organization_id(current_user), text, db)
    except ValueError as e:
        logger.warning(f"[IMPORT STUDENTS] {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        ) from e

    return StudentImportResult(
        message=f"Successfully imported {len(students)} students",
        imported=len(students),
        skipped=skipped,
        students=[_to_response(student) for student in students]
    )


@router.patch("/update/{student_id}", response_model=StudentResponse, status_code=status.HTTP_200_OK)
async def update_student(
        student_id: int,
        student_data: UpdateStudent,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Update a student by ID.

    Raises:
        HTTPException: 404 - Student not found
        HTTPException: 500 - Internal server error
    """
    student = await StudentService.update_student(
        student_id, get_organization_id(current_user), student_data, db
    )
    return _to_response(student)


@router.delete("/delete/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_student(
        student_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN]))
):
    """
    Delete a student by ID.

    Raises:
        HTTPException: 404 - Student not found
        HTTPException: 500 - Internal server error
    """
    await StudentService.delete_student(student_id, get_organization_id(current_user), db)
    logger.info(f"[DELETE STUDENT] Student ID {student_id} deleted by {current_user['sub']}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
