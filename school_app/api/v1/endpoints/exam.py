from typing import List

from fastapi import APIRouter, Depends, status, Response
from sqlalchemy.ext.asyncio import AsyncSession

from school_app.api.v1.schemas.exam import CreateExam, ExamResponse, ExamMarksResponse
from school_app.core.database import get_db
from school_app.core.logger import logger
from school_app.services.exam import ExamService
from school_app.utils.roles import require_roles, get_organization_id, Role

router = APIRouter(prefix="/exam", tags=["Exam"])


@router.post("/create", response_model=ExamResponse, status_code=status.HTTP_201_CREATED)
async def create_exam(
        exam_data: CreateExam,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Create an exam.

    Args:
        exam_data: New exam data
        db: Async SQLAlchemy session
        current_user: Current user claims

    Returns:
        ExamResponse: Created exam
    """
    exam = await ExamService.create_exam(get_organization_id(current_user), exam_data, db)
    logger.info(f"[CREATE EXAM] Exam ID {exam.id} created by {current_user['sub']}")

    return ExamResponse(
        id=exam.id,
        name=exam.name,
        className=exam.class_name,
        maxMarks=exam.max_marks,
        marks_count=0
    )


@router.get("/", response_model=List[ExamResponse], status_code=status.HTTP_200_OK)
async def get_exams(
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    exams = await ExamService.get_all_exams(get_organization_id(current_user), db)
    return [ExamResponse(**exam) for exam in exams]


@router.get("/{exam_id}/marks", response_model=ExamMarksResponse, status_code=status.HTTP_200_OK)
async def get_exam_marks(
        exam_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    """
    Get every mark of an exam.

    Raises:
        HTTPException: 404 - Exam not found
    """
    return await ExamService.get_exam_marks(exam_id, get_organization_id(current_user), db)


@router.delete("/delete/{exam_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exam(
        exam_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN]))
):
    await ExamService.delete_exam(exam_id, get_organization_id(current_user), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
