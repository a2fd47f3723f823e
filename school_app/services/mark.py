from typing import Callable, List, Optional, Set, Tuple

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import SQLAlchemyError

from school_app.api.v1.schemas.mark import (
    ExamContext,
    ImportResult,
    MarkCreate,
    MarkEntry,
    MarkUpdate,
    ParseResult,
)
from school_app.core.config import settings
from school_app.core.database import AsyncSessionLocal
from school_app.core.logger import logger
from school_app.models import Exam, Mark, Student
from school_app.services.exam import ExamService
from school_app.services.marks_import import MarksImporter, ProgressCallback, parse_marks
from school_app.services.student import StudentService
from school_app.services.subject import SubjectService


class MarkService:
    @staticmethod
    def _ensure_subject_allowed(subject: str, allowed_subjects: Optional[Set[str]]) -> None:
        """Raise 403 when the subject is outside allowed_subjects. None allows every subject."""
        if allowed_subjects is not None and subject.lower() not in allowed_subjects:
            logger.warning(f"[SUBJECT CHECK] Subject not assigned: {subject}")
            raise HTTPException(
                status_code=403,
                detail=f"Subject not assigned: {subject}"
            )

    @staticmethod
    async def get_marks_by_exam(exam_id: int, organization_id: int, db: AsyncSession) -> List[Mark]:
        """
        Get the marks of an exam with their students loaded.

        Raises:
            HTTPException: 404 - Exam not found
            HTTPException: 500 - Database error
        """
        await ExamService.get_exam(exam_id, organization_id, db)

        try:
            result = await db.execute(
                select(Mark)
                .where(Mark.exam_id == exam_id)
                .options(selectinload(Mark.student))
                .order_by(Mark.student_id, Mark.subject)
            )
            marks = result.scalars().all()

            logger.info(f"[GET MARKS] {len(marks)} marks for exam ID {exam_id}")
            return list(marks)

        except SQLAlchemyError as e:
            logger.error(f"[GET MARKS] Database error for exam ID {exam_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching marks"
            ) from e

    @staticmethod
    async def get_marks_by_student_and_exam(
            student_id: int,
            exam_id: int,
            organization_id: int,
            db: AsyncSession
    ) -> List[Mark]:
        """
        Get one student's marks for an exam.

        Raises:
            HTTPException: 404 - Student or exam not found
            HTTPException: 500 - Database error
        """
        await StudentService.get_student(student_id, organization_id, db)
        await ExamService.get_exam(exam_id, organization_id, db)

        try:
            result = await db.execute(
                select(Mark)
                .where(Mark.exam_id == exam_id, Mark.student_id == student_id)
                .options(selectinload(Mark.student))
                .order_by(Mark.subject)
            )
            return list(result.scalars().all())

        except SQLAlchemyError as e:
            logger.error(f"[GET MARKS] Database error for student ID {student_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching student marks"
            ) from e

    @staticmethod
    async def _save_mark(
            student: Student,
            exam: Exam,
            subject: str,
            marks_obtained: int,
            max_marks: int,
            db: AsyncSession
    ) -> Mark:
        """Insert or update the single mark of (student, exam, subject) and commit."""
        if marks_obtained > max_marks:
            raise HTTPException(
                status_code=400,
                detail=f"Marks {marks_obtained} exceed max marks {max_marks} for {subject}"
            )

        try:
            result = await db.execute(
                select(Mark).where(
                    Mark.student_id == student.id,
                    Mark.exam_id == exam.id,
                    func.lower(Mark.subject) == subject.lower()
                )
            )
            mark = result.scalars().first()

            if mark:
                mark.marks_obtained = marks_obtained
                mark.max_marks = max_marks
                action = "updated"
            else:
                mark = Mark(
                    student_id=student.id,
                    exam_id=exam.id,
                    subject=subject,
                    marks_obtained=marks_obtained,
                    max_marks=max_marks
                )
                db.add(mark)
                action = "created"

            await db.commit()
            await db.refresh(mark)

            logger.info(
                f"[SAVE MARK] Mark {action}: student ID {student.id}, exam ID {exam.id}, "
                f"{subject} = {marks_obtained}/{max_marks}"
            )
            return mark

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[SAVE MARK] Database error for student ID {student.id}, {subject}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail=f"Error while saving mark for {subject}"
            ) from e

    @staticmethod
    async def upsert_mark(
            exam_id: int,
            student_name: str,
            subject: str,
            marks: float,
            max_marks: int,
            db: AsyncSession,
            admission_no: Optional[str] = None,
            allowed_subjects: Optional[Set[str]] = None
    ) -> Mark:
        """
        Create or update one mark for a student identified by name.

        Calling it again for the same exam, student and subject updates the
        existing mark instead of adding a second one.

        Args:
            exam_id: Exam identifier
            student_name: Name as typed in the import
            subject: Subject name
            marks: Marks obtained, rounded to an integer before saving
            max_marks: Maximum marks for the subject
            db: Async SQLAlchemy session
            admission_no: Admission number, preferred over the name when given
            allowed_subjects: Subjects a teacher may record, None for no restriction

        Returns:
            Mark: Saved mark

        Raises:
            HTTPException: 400 - Marks exceed max marks
            HTTPException: 403 - Subject not assigned to the teacher
            HTTPException: 404 - Exam or student not found
            HTTPException: 500 - Database error
        """
        MarkService._ensure_subject_allowed(subject, allowed_subjects)

        try:
            exam = await db.get(Exam, exam_id)
        except SQLAlchemyError as e:
            logger.error(f"[SAVE MARK] Database error for exam ID {exam_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching exam"
            ) from e

        if not exam:
            logger.warning(f"[SAVE MARK] Exam not found: ID {exam_id}")
            raise HTTPException(
                status_code=404,
                detail="Exam not found"
            )

        student = await StudentService.find_student(
            exam.organization_id,
            db,
            name=student_name,
            admission_no=admission_no,
            class_name=exam.class_name
        )
        if not student:
            logger.warning(f"[SAVE MARK] Student not found: {student_name}")
            raise HTTPException(
                status_code=404,
                detail=f"Student not found: {student_name}"
            )

        return await MarkService._save_mark(student, exam, subject, int(round(marks)), max_marks, db)

    @staticmethod
    async def create_mark(
            mark_data: MarkCreate,
            organization_id: int,
            db: AsyncSession,
            allowed_subjects: Optional[Set[str]] = None
    ) -> Mark:
        """
        Record a mark, updating the existing one for the same subject.

        Raises:
            HTTPException: 400 - Marks exceed max marks
            HTTPException: 403 - Subject not assigned to the teacher
            HTTPException: 404 - Student or exam not found
            HTTPException: 500 - Database error
        """
        MarkService._ensure_subject_allowed(mark_data.subject, allowed_subjects)
        student = await StudentService.get_student(mark_data.student_id, organization_id, db)
        exam = await ExamService.get_exam(mark_data.exam_id, organization_id, db)

        return await MarkService._save_mark(
            student, exam, mark_data.subject, mark_data.marks_obtained, mark_data.max_marks, db
        )

    @staticmethod
    async def _get_mark(mark_id: int, organization_id: int, db: AsyncSession) -> Mark:
        try:
            result = await db.execute(
                select(Mark)
                .join(Exam, Exam.id == Mark.exam_id)
                .where(Mark.id == mark_id, Exam.organization_id == organization_id)
                .options(selectinload(Mark.student))
            )
            mark = result.scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"[GET MARK] Database error for ID {mark_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching mark"
            ) from e

        if not mark:
            logger.warning(f"[GET MARK] Mark not found: ID {mark_id}")
            raise HTTPException(
                status_code=404,
                detail="Mark not found"
            )
        return mark

    @staticmethod
    async def update_mark(
            mark_id: int,
            mark_data: MarkUpdate,
            organization_id: int,
            db: AsyncSession,
            allowed_subjects: Optional[Set[str]] = None
    ) -> Mark:
        """
        Update a mark.

        Raises:
            HTTPException: 400 - Marks exceed max marks
            HTTPException: 403 - Subject not assigned to the teacher
            HTTPException: 404 - Mark not found
            HTTPException: 500 - Database error
        """
        mark = await MarkService._get_mark(mark_id, organization_id, db)
        MarkService._ensure_subject_allowed(mark.subject, allowed_subjects)
        if mark_data.subject is not None:
            MarkService._ensure_subject_allowed(mark_data.subject, allowed_subjects)

        update_data = mark_data.model_dump(exclude_unset=True, exclude_none=True)
        marks_obtained = update_data.get("marks_obtained", mark.marks_obtained)
        max_marks = update_data.get("max_marks", mark.max_marks)
        if marks_obtained > max_marks:
            raise HTTPException(
                status_code=400,
                detail=f"Marks {marks_obtained} exceed max marks {max_marks}"
            )

        try:
            for field, value in update_data.items():
                setattr(mark, field, value)

            await db.commit()
            await db.refresh(mark)

            logger.info(f"[UPDATE MARK] Mark updated: ID {mark_id}")
            return mark

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[UPDATE MARK] Database error for ID {mark_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while updating mark"
            ) from e

    @staticmethod
    async def delete_mark(
            mark_id: int,
            organization_id: int,
            db: AsyncSession,
            allowed_subjects: Optional[Set[str]] = None
    ) -> bool:
        mark = await MarkService._get_mark(mark_id, organization_id, db)
        MarkService._ensure_subject_allowed(mark.subject, allowed_subjects)

        try:
            await db.delete(mark)
            await db.commit()

            logger.info(f"[DELETE MARK] Mark deleted: ID {mark_id}")
            return True

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[DELETE MARK] Database error for ID {mark_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while deleting mark"
            ) from e

    @staticmethod
    async def parse_marks_table(
            text: str,
            organization_id: int,
            db: AsyncSession,
            exam: Optional[ExamContext] = None
    ) -> ParseResult:
        """
        Parse CSV text with the organization's subject ceilings applied.

        Raises:
            MarksParseError: The text is not a marks table
        """
        subject_max_marks = None
        if settings.USE_SUBJECT_MAX_MARKS:
            subject_max_marks = await SubjectService.get_max_marks_by_subject(organization_id, db)

        return parse_marks(
            text,
            subject_max_marks=subject_max_marks,
            exam_name=exam.exam_name if exam else None
        )

    @staticmethod
    async def import_marks_from_table(
            exam_id: int,
            text: str,
            organization_id: int,
            db: AsyncSession,
            session_factory: Optional[Callable[[], AsyncSession]] = None,
            on_progress: Optional[ProgressCallback] = None,
            allowed_subjects: Optional[Set[str]] = None
    ) -> Tuple[ParseResult, ImportResult]:
        """
        Parse a marks table and save its valid rows for an exam.

        Args:
            exam_id: Exam the marks belong to
            text: CSV text in the wide or flat layout
            organization_id: Organization of the caller
            db: Async SQLAlchemy session used for lookups
            session_factory: Session factory for the per-mark writes
            on_progress: Called with a 0-100 percentage after each group
            allowed_subjects: Subjects a teacher may record; other subjects fail per call

        Returns:
            Tuple[ParseResult, ImportResult]: Parsed rows and import outcome

        Raises:
            HTTPException: 404 - Exam not found
            MarksParseError: The text is not a marks table
            NoValidRowsError: No row passed validation
        """
        exam = await ExamService.get_exam_context(exam_id, organization_id, db)
        parsed = await MarkService.parse_marks_table(text, organization_id, db, exam)

        importer = MarksImporter(MarkPersistence(session_factory or AsyncSessionLocal, allowed_subjects))
        result = await importer.import_rows(parsed.rows, exam, on_progress=on_progress)

        return parsed, result


class MarkPersistence:
    """
    Saves one importer entry per call.

    Each call opens its own session, as concurrent calls cannot share one.
    """

    def __init__(
            self,
            session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
            allowed_subjects: Optional[Set[str]] = None
    ):
        self.session_factory = session_factory
        self.allowed_subjects = allowed_subjects

    async def __call__(self, entry: MarkEntry, exam: ExamContext) -> Mark:
        async with self.session_factory() as db:
            return await MarkService.upsert_mark(
                exam.exam_id,
                entry.student_name,
                entry.subject,
                entry.marks,
                entry.max_marks,
                db,
                admission_no=entry.admission_no,
                allowed_subjects=self.allowed_subjects
            )
