from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_app.api.v1.schemas.auth import AssignSubjects, TeacherResponse
from school_app.api.v1.schemas.subject import SubjectResponse
from school_app.core.database import get_db
from school_app.models import Teacher
from school_app.services.teacher import TeacherService
from school_app.utils.roles import require_roles, get_organization_id, Role

router = APIRouter(prefix="/teacher", tags=["Teacher"])


def _subjects_of(teacher: Teacher) -> List[SubjectResponse]:
    return [
        SubjectResponse(id=subject.id, name=subject.name, code=subject.code, maxMarks=subject.max_marks)
        for subject in sorted(teacher.subjects, key=lambda subject: subject.name)
    ]


def teacher_response(teacher: Teacher) -> TeacherResponse:
    return TeacherResponse(
        id=teacher.id,
        login=teacher.login,
        fullName=teacher.full_name,
        organization_id=teacher.organization_id,
        subjects=_subjects_of(teacher)
    )


@router.get("/", response_model=List[TeacherResponse], status_code=status.HTTP_200_OK)
async def get_teachers(
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN]))
):
    teachers = await TeacherService.get_teachers(get_organization_id(current_user), db)
    return [teacher_response(teacher) for teacher in teachers]


@router.get("/me/subjects", response_model=List[SubjectResponse], status_code=status.HTTP_200_OK)
async def get_my_subjects(
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.TEACHER]))
):
    """
    Subjects the signed-in teacher may record marks for.
    """
    teacher = await TeacherService.get_teacher(current_user["id"], get_organization_id(current_user), db)
    return _subjects_of(teacher)


@router.put("/{teacher_id}/subjects", response_model=TeacherResponse, status_code=status.HTTP_200_OK)
async def assign_subjects(
        teacher_id: int,
        assign_data: AssignSubjects,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN]))
):
    """
    Replace the subjects a teacher may record marks for.

    Args:
        teacher_id: Teacher identifier
        assign_data: IDs of the organization's subjects
        db: Async SQLAlchemy session
        current_user: Current user claims

    Returns:
        TeacherResponse: Teacher with the assigned subjects

    Raises:
        HTTPException: 400 - Unknown subject ID
        HTTPException: 404 - Teacher not found
    """
    teacher = await TeacherService.assign_subjects(
        teacher_id, get_organization_id(current_user), assign_data.subjectIds, db
    )
    return teacher_response(teacher)
