from typing import List, Optional, Set

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_app.core.logger import logger
from school_app.models import Subject, Teacher, TeacherSubject
from school_app.utils.roles import Role


class TeacherService:
    @staticmethod
    async def get_teachers(organization_id: int, db: AsyncSession) -> List[Teacher]:
        """
        List the teachers of an organization with their assigned subjects.

        Raises:
            HTTPException: 500 - Database error
        """
        try:
            result = await db.execute(
                select(Teacher)
                .where(Teacher.organization_id == organization_id)
                .options(selectinload(Teacher.subjects))
                .order_by(Teacher.full_name)
            )
            return list(result.scalars().all())

        except SQLAlchemyError as e:
            logger.error(f"[GET TEACHERS] Database error for organization ID {organization_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching teachers"
            ) from e

    @staticmethod
    async def get_teacher(teacher_id: int, organization_id: int, db: AsyncSession) -> Teacher:
        try:
            result = await db.execute(
                select(Teacher)
                .where(Teacher.id == teacher_id, Teacher.organization_id == organization_id)
                .options(selectinload(Teacher.subjects))
                .execution_options(populate_existing=True)
            )
            teacher = result.scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"[GET TEACHER] Database error for ID {teacher_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching teacher"
            ) from e

        if not teacher:
            logger.warning(f"[GET TEACHER] Teacher not found: ID {teacher_id}")
            raise HTTPException(
                status_code=404,
                detail="Teacher not found"
            )
        return teacher

    @staticmethod
    async def get_subjects(subject_ids: List[int], organization_id: int, db: AsyncSession) -> List[Subject]:
        """
        Load the organization's subjects with the given IDs.

        Raises:
            HTTPException: 400 - A subject does not belong to the organization
            HTTPException: 500 - Database error
        """
        wanted = set(subject_ids)
        if not wanted:
            return []

        try:
            result = await db.execute(
                select(Subject).where(Subject.id.in_(wanted), Subject.organization_id == organization_id)
            )
            subjects = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"[GET SUBJECTS] Database error for organization ID {organization_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching subjects"
            ) from e

        unknown = sorted(wanted - {subject.id for subject in subjects})
        if unknown:
            logger.warning(f"[GET SUBJECTS] Unknown subject IDs for organization ID {organization_id}: {unknown}")
            raise HTTPException(
                status_code=400,
                detail=f"Unknown subject IDs: {', '.join(str(subject_id) for subject_id in unknown)}"
            )
        return subjects

    @staticmethod
    async def assign_subjects(
            teacher_id: int,
            organization_id: int,
            subject_ids: List[int],
            db: AsyncSession
    ) -> Teacher:
        """
        Replace the subjects assigned to a teacher.

        Args:
            teacher_id: Teacher identifier
            organization_id: Organization of the caller
            subject_ids: Subjects the teacher may record marks for
            db: Async SQLAlchemy session

        Returns:
            Teacher: Teacher with the new subjects loaded

        Raises:
            HTTPException: 400 - A subject does not belong to the organization
            HTTPException: 404 - Teacher not found
            HTTPException: 500 - Database error
        """
        teacher = await TeacherService.get_teacher(teacher_id, organization_id, db)
        subjects = await TeacherService.get_subjects(subject_ids, organization_id, db)

        try:
            teacher.subjects = subjects
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[ASSIGN SUBJECTS] Database error for teacher ID {teacher_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while assigning subjects"
            ) from e

        logger.info(f"[ASSIGN SUBJECTS] Teacher ID {teacher_id}: {len(subjects)} subjects assigned")
        return await TeacherService.get_teacher(teacher_id, organization_id, db)

    @staticmethod
    async def get_allowed_subjects(current_user: dict, db: AsyncSession) -> Optional[Set[str]]:
        """
        Lower-cased names of the subjects the caller may record marks for.

        Returns None for organization admins, who may record any subject.
        """
        if current_user["role"] != Role.TEACHER:
            return None

        try:
            result = await db.execute(
                select(func.lower(Subject.name))
                .join(TeacherSubject, TeacherSubject.subject_id == Subject.id)
                .where(TeacherSubject.teacher_id == current_user["id"])
            )
            return set(result.scalars().all())

        except SQLAlchemyError as e:
            logger.error(f"[ALLOWED SUBJECTS] Database error for '{current_user['sub']}': {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching assigned subjects"
            ) from e
