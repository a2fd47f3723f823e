from typing import List

from fastapi import APIRouter, Depends, status, Response
from sqlalchemy.ext.asyncio import AsyncSession

from school_app.api.v1.schemas.subject import CreateSubject, SubjectResponse
from school_app.core.database import get_db
from school_app.services.subject import SubjectService
from school_app.utils.roles import require_roles, get_organization_id, Role

router = APIRouter(prefix="/subject", tags=["Subject"])


@router.get("/", response_model=List[SubjectResponse], status_code=status.HTTP_200_OK)
async def get_subjects(
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN, Role.TEACHER]))
):
    subjects = await SubjectService.get_all_subjects(get_organization_id(current_user), db)
    return [
        SubjectResponse(id=subject.id, name=subject.name, code=subject.code, maxMarks=subject.max_marks)
        for subject in subjects
    ]


@router.post("/create", response_model=SubjectResponse, status_code=status.HTTP_201_CREATED)
async def create_subject(
        subject_data: CreateSubject,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN]))
):
    """
    Create a subject. Its max marks become the validation ceiling of bulk imports.

    Raises:
        HTTPException: 400 - Subject already exists
    """
    subject = await SubjectService.create_subject(get_organization_id(current_user), subject_data, db)
    return SubjectResponse(id=subject.id, name=subject.name, code=subject.code, maxMarks=subject.max_marks)


@router.delete("/delete/{subject_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_subject(
        subject_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN]))
):
    await SubjectService.delete_subject(subject_id, get_organization_id(current_user), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
