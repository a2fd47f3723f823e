from typing import List

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import SQLAlchemyError

from school_app.models import Exam, Mark
from school_app.core.logger import logger
from school_app.api.v1.schemas.exam import CreateExam, ExamMarksResponse, StudentSubjectMark
from school_app.api.v1.schemas.mark import ExamContext



class ExamService:
    @staticmethod
    async def create_exam(organization_id: int, exam_data: CreateExam, db: AsyncSession) -> Exam:
        """
        Create an exam.

        Args:
            organization_id: Organization the exam belongs to
            exam_data: New exam data
            db: Async SQLAlchemy session

        Returns:
            Exam: Created exam

        Raises:
            HTTPException: 500 - Error while creating the exam
        """
        try:
            new_exam = Exam(
                name=exam_data.name,
                class_name=exam_data.className,
                max_marks=exam_data.maxMarks,
                organization_id=organization_id
            )

            db.add(new_exam)
            await db.commit()
            await db.refresh(new_exam)

            logger.info(f"[CREATE EXAM] Created exam ID {new_exam.id}: {new_exam.name}")
            return new_exam

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[CREATE EXAM] Error while creating exam: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail=f"Error while creating exam: {str(e)}"
            ) from e

    @staticmethod
    async def get_all_exams(organization_id: int, db: AsyncSession) -> List[dict]:
        """
        List the exams of an organization with their mark counts.

        Raises:
            HTTPException: 500 - Database error
        """
        try:
            result = await db.execute(
                select(Exam, func.count(Mark.id))
                .outerjoin(Mark, Mark.exam_id == Exam.id)
                .where(Exam.organization_id == organization_id)
                .group_by(Exam.id)
                .order_by(Exam.created_at.desc(), Exam.id.desc())
            )
            rows = result.all()

            logger.info(f"[GET EXAMS] {len(rows)} exams for organization ID {organization_id}")

            return [
                {
                    "id": exam.id,
                    "name": exam.name,
                    "className": exam.class_name,
                    "maxMarks": exam.max_marks,
                    "marks_count": marks_count,
                }
                for exam, marks_count in rows
            ]

        except SQLAlchemyError as e:
            logger.error(f"[GET EXAMS] Error while listing exams: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while listing exams"
            ) from e

    @staticmethod
    async def get_exam(exam_id: int, organization_id: int, db: AsyncSession) -> Exam:
        """
        Get an exam of the organization.

        Raises:
            HTTPException: 404 - Exam not found
            HTTPException: 500 - Database error
        """
        try:
            result = await db.execute(
                select(Exam).where(
                    Exam.id == exam_id,
                    Exam.organization_id == organization_id
                )
            )
            exam = result.scalar_one_or_none()

            if not exam:
                logger.warning(f"[EXAM DETAILS] Exam not found: ID {exam_id}")
                raise HTTPException(
                    status_code=404,
                    detail="Exam not found"
                )

            return exam

        except SQLAlchemyError as e:
            logger.error(f"[EXAM DETAILS] Error for exam ID {exam_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching exam"
            ) from e

    @staticmethod
    async def get_exam_context(exam_id: int, organization_id: int, db: AsyncSession) -> ExamContext:
        """Exam id, name and class used to scope a bulk marks import."""
        exam = await ExamService.get_exam(exam_id, organization_id, db)
        return ExamContext(exam_id=exam.id, exam_name=exam.name, class_name=exam.class_name)

    @staticmethod
    async def get_exam_marks(exam_id: int, organization_id: int, db: AsyncSession) -> ExamMarksResponse:
        """
        Get all marks recorded for an exam.

        Raises:
            HTTPException: 404 - Exam not found
            HTTPException: 500 - Database error
        """
        try:
            result = await db.execute(
                select(Exam)
                .where(
                    Exam.id == exam_id,
                    Exam.organization_id == organization_id
                )
                .options(
                    selectinload(Exam.marks).selectinload(Mark.student)
                )
            )
            exam = result.scalar_one_or_none()

            if not exam:
                logger.warning(f"[GET EXAM MARKS] Exam not found: ID {exam_id}")
                raise HTTPException(
                    status_code=404,
                    detail="Exam not found"
                )

            marks = [
                StudentSubjectMark(
                    student_id=mark.student.id,
                    student_name=mark.student.name,
                    admission_no=mark.student.admission_no,
                    subject=mark.subject,
                    marks_obtained=mark.marks_obtained,
                    max_marks=mark.max_marks
                )
                for mark in sorted(exam.marks, key=lambda m: (m.student.name, m.subject))
            ]

            logger.info(f"[GET EXAM MARKS] {len(marks)} marks for exam ID {exam_id}")

            return ExamMarksResponse(
                exam_id=exam.id,
                name=exam.name,
                className=exam.class_name,
                marks=marks
            )

        except SQLAlchemyError as e:
            logger.error(f"[GET EXAM MARKS] Error for exam ID {exam_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching marks"
            ) from e

    @staticmethod
    async def delete_exam(exam_id: int, organization_id: int, db: AsyncSession) -> bool:
        """
        Delete an exam and its marks.

        Raises:
            HTTPException: 404 - Exam not found
            HTTPException: 500 - Database error
        """
        exam = await ExamService.get_exam(exam_id, organization_id, db)

        try:
            await db.delete(exam)
            await db.commit()

            logger.info(f"[DELETE EXAM] Exam deleted: ID {exam_id}")
            return True

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[DELETE EXAM] Error while deleting exam ID {exam_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail=f"Error while deleting exam: {str(e)}"
            ) from e
