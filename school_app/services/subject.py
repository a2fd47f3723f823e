from typing import Dict, List

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from school_app.models import Subject
from school_app.core.logger import logger
from school_app.api.v1.schemas.subject import CreateSubject


class SubjectService:
    @staticmethod
    async def get_all_subjects(organization_id: int, db: AsyncSession) -> List[Subject]:
        try:
            result = await db.execute(
                select(Subject)
                .where(Subject.organization_id == organization_id)
                .order_by(Subject.name)
            )
            subjects = result.scalars().all()

            logger.info(f"[GET SUBJECTS] {len(subjects)} subjects for organization ID {organization_id}")
            return list(subjects)

        except SQLAlchemyError as e:
            logger.error(f"[GET SUBJECTS] Database error: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while listing subjects"
            ) from e

    @staticmethod
    async def get_max_marks_by_subject(organization_id: int, db: AsyncSession) -> Dict[str, int]:
        """Configured max marks per subject name, used as import validation ceilings."""
        subjects = await SubjectService.get_all_subjects(organization_id, db)
        return {subject.name: subject.max_marks for subject in subjects}

    @staticmethod
    async def create_subject(organization_id: int, subject_data: CreateSubject, db: AsyncSession) -> Subject:
        """
        Create a subject.

        Args:
            organization_id: Organization the subject belongs to
            subject_data: New subject data
            db: Async SQLAlchemy session

        Returns:
            Subject: Created subject

        Raises:
            HTTPException: 400 - Subject with this name already exists
            HTTPException: 500 - Database error
        """
        try:
            existing = await db.execute(
                select(Subject.id).where(
                    Subject.organization_id == organization_id,
                    func.lower(Subject.name) == subject_data.name.lower()
                )
            )
            if existing.scalars().first() is not None:
                logger.warning(f"[CREATE SUBJECT] Subject already exists: {subject_data.name}")
                raise HTTPException(
                    status_code=400,
                    detail=f"Subject {subject_data.name} already exists"
                )

            subject = Subject(
                name=subject_data.name,
                code=subject_data.code,
                max_marks=subject_data.maxMarks,
                organization_id=organization_id
            )

            db.add(subject)
            await db.commit()
            await db.refresh(subject)

            logger.info(f"[CREATE SUBJECT] Created subject ID {subject.id}: {subject.name}")
            return subject

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[CREATE SUBJECT] Database error: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while creating subject"
            ) from e

    @staticmethod
    async def delete_subject(subject_id: int, organization_id: int, db: AsyncSession) -> bool:
        try:
            result = await db.execute(
                select(Subject).where(
                    Subject.id == subject_id,
                    Subject.organization_id == organization_id
                )
            )
            subject = result.scalars().first()

            if not subject:
                logger.warning(f"[DELETE SUBJECT] Subject not found: ID {subject_id}")
                raise HTTPException(
                    status_code=404,
                    detail="Subject not found"
                )

            await db.delete(subject)
            await db.commit()

            logger.info(f"[DELETE SUBJECT] Subject deleted: ID {subject_id}")
            return True

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[DELETE SUBJECT] Database error for ID {subject_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while deleting subject"
            ) from e
