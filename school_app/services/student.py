from typing import List, Optional, Tuple

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import select, func, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from school_app.models import Student
from school_app.core.logger import logger
from school_app.api.v1.schemas.student import CreateNewStudent, SkippedStudentRow, UpdateStudent
from school_app.utils.csv_table import read_csv_lines

# Accepted header spellings for the student CSV
STUDENT_COLUMNS = {
    "name": ("name", "student name"),
    "admission_no": ("admission_no", "admission no", "admissionno"),
    "class_name": ("class", "class_name", "class name", "classname"),
    "email": ("email",),
}
REQUIRED_STUDENT_COLUMNS = ("name", "admission_no", "class_name")


class StudentService:
    @staticmethod
    async def get_all_students(
            organization_id: int,
            db: AsyncSession,
            class_name: Optional[str] = None
    ) -> List[Student]:
        """
        Get the students of an organization.

        Args:
            organization_id: Organization the caller belongs to
            db: Async SQLAlchemy session
            class_name: Optional class filter

        Returns:
            List[Student]: Students ordered by name

        Raises:
            HTTPException: 500 - Database error
        """
        try:
            stmt = select(Student).where(Student.organization_id == organization_id)
            if class_name:
                stmt = stmt.where(Student.class_name == class_name)

            result = await db.execute(stmt.order_by(Student.name))
            students = result.scalars().all()

            logger.info(f"[GET STUDENTS] {len(students)} students for organization ID {organization_id}")
            return list(students)

        except SQLAlchemyError as e:
            logger.error(f"[GET STUDENTS] Database error: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching students"
            ) from e

    @staticmethod
    async def get_student(student_id: int, organization_id: int, db: AsyncSession) -> Student:
        """
        Get one student of an organization.

        Raises:
            HTTPException: 404 - Student not found
            HTTPException: 500 - Database error
        """
        try:
            result = await db.execute(
                select(Student).where(
                    Student.id == student_id,
                    Student.organization_id == organization_id
                )
            )
            student = result.scalars().first()

            if not student:
                logger.warning(f"[GET STUDENT] Student not found: ID {student_id}")
                raise HTTPException(
                    status_code=404,
                    detail="Student not found"
                )

            return student

        except SQLAlchemyError as e:
            logger.error(f"[GET STUDENT] Database error for ID {student_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while fetching student"
            ) from e

    @staticmethod
    async def find_student(
            organization_id: int,
            db: AsyncSession,
            name: Optional[str] = None,
            admission_no: Optional[str] = None,
            class_name: Optional[str] = None
    ) -> Optional[Student]:
        """
        Resolve a name or admission number typed by a user to a student.

        The admission number wins when given. Name matching ignores case; when
        several students share a name, one from ``class_name`` is preferred.

        Args:
            organization_id: Organization to search in
            db: Async SQLAlchemy session
            name: Student name
            admission_no: Admission number
            class_name: Class of the exam being imported

        Returns:
            Optional[Student]: Matching student or None
        """
        if admission_no:
            result = await db.execute(
                select(Student).where(
                    Student.organization_id == organization_id,
                    func.lower(Student.admission_no) == admission_no.strip().lower()
                )
            )
            student = result.scalars().first()
            if student:
                return student

        if not name:
            return None

        stmt = select(Student).where(
            Student.organization_id == organization_id,
            func.lower(Student.name) == name.strip().lower()
        )
        if class_name:
            stmt = stmt.order_by(case((Student.class_name == class_name, 0), else_=1), Student.id)

        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def _check_admission_no_taken(
            organization_id: int,
            admission_no: str,
            db: AsyncSession,
            exclude_id: Optional[int] = None
    ) -> bool:
        """Check whether an admission number is already used in the organization."""
        stmt = select(Student.id).where(
            Student.organization_id == organization_id,
            Student.admission_no == admission_no
        )
        if exclude_id is not None:
            stmt = stmt.where(Student.id != exclude_id)
        result = await db.execute(stmt)
        return result.scalars().first() is not None

    @staticmethod
    async def create_student(organization_id: int, student_data: CreateNewStudent, db: AsyncSession) -> Student:
        """
        Create a student.

        Args:
            organization_id: Organization the student belongs to
            student_data: New student data
            db: Async SQLAlchemy session

        Returns:
            Student: Created student

        Raises:
            HTTPException: 400 - Admission number already used
            HTTPException: 500 - Database error
        """
        try:
            if await StudentService._check_admission_no_taken(organization_id, student_data.admissionNo, db):
                logger.warning(f"[CREATE STUDENT] Admission number taken: {student_data.admissionNo}")
                raise HTTPException(
                    status_code=400,
                    detail=f"Admission number {student_data.admissionNo} is already in use"
                )

            student = Student(
                name=student_data.name,
                admission_no=student_data.admissionNo,
                class_name=student_data.className,
                email=student_data.email,
                organization_id=organization_id
            )

            db.add(student)
            await db.commit()
            await db.refresh(student)

            logger.info(f"[CREATE STUDENT] Created student ID {student.id}, admission no {student.admission_no}")
            return student

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[CREATE STUDENT] Database error: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while creating student"
            ) from e

    @staticmethod
    async def update_student(
            student_id: int,
            organization_id: int,
            student_data: UpdateStudent,
            db: AsyncSession
    ) -> Student:
        """
        Update a student.

        Raises:
            HTTPException: 400 - Admission number already used
            HTTPException: 404 - Student not found
            HTTPException: 500 - Database error
        """
        student = await StudentService.get_student(student_id, organization_id, db)

        try:
            update_data = student_data.model_dump(exclude_unset=True)
            if "admissionNo" in update_data:
                admission_no = update_data.pop("admissionNo")
                if await StudentService._check_admission_no_taken(
                        organization_id, admission_no, db, exclude_id=student_id
                ):
                    raise HTTPException(
                        status_code=400,
                        detail=f"Admission number {admission_no} is already in use"
                    )
                update_data["admission_no"] = admission_no
            if "className" in update_data:
                update_data["class_name"] = update_data.pop("className")

            for field, value in update_data.items():
                if hasattr(student, field):
                    setattr(student, field, value)

            await db.commit()
            await db.refresh(student)

            logger.info(f"[UPDATE STUDENT] Student updated: ID {student_id}")
            return student

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[UPDATE STUDENT] Database error for ID {student_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while updating student"
            ) from e

    @staticmethod
    async def delete_student(student_id: int, organization_id: int, db: AsyncSession) -> bool:
        """
        Delete a student together with their marks.

        Raises:
            HTTPException: 404 - Student not found
            HTTPException: 500 - Database error
        """
        student = await StudentService.get_student(student_id, organization_id, db)

        try:
            await db.delete(student)
            await db.commit()

            logger.info(f"[DELETE STUDENT] Student deleted: ID {student_id}")
            return True

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[DELETE STUDENT] Database error for ID {student_id}: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while deleting student"
            ) from e

    @staticmethod
    async def import_students(
            organization_id: int,
            text: str,
            db: AsyncSession
    ) -> Tuple[List[Student], List[SkippedStudentRow]]:
        """
        Create students from CSV text with name, admission_no, class and optional email columns.

        Rows with missing fields, bad values or an admission number already in
        use are skipped and reported; the remaining rows are saved together.

        Args:
            organization_id: Organization the students belong to
            text: CSV text, first line is the header
            db: Async SQLAlchemy session

        Returns:
            Tuple[List[Student], List[SkippedStudentRow]]: Created students and skipped rows

        Raises:
            ValueError: No data rows or a required column is missing
            HTTPException: 500 - Database error
        """
        table = read_csv_lines(text)
        if len(table) < 2:
            raise ValueError("CSV must have at least a header row and one data row")

        headers = table[0]
        columns = {}
        for index, header in enumerate(headers):
            for key, aliases in STUDENT_COLUMNS.items():
                if header.lower() in aliases and key not in columns:
                    columns[key] = index
        if any(key not in columns for key in REQUIRED_STUDENT_COLUMNS):
            raise ValueError('CSV must have "name", "admission_no" and "class" columns')

        try:
            result = await db.execute(
                select(Student.admission_no).where(Student.organization_id == organization_id)
            )
            taken = {admission_no.lower() for admission_no in result.scalars().all()}
        except SQLAlchemyError as e:
            logger.error(f"[IMPORT STUDENTS] Database error: {str(e)}")
            raise HTTPException(
                status_code=500,
                detail="Error while importing students"
            ) from e

        students: List[Student] = []
        skipped: List[SkippedStudentRow] = []
        for row_number, values in enumerate(table[1:], start=1):
            if len(values) != len(headers):
                skipped.append(SkippedStudentRow(row=row_number, reason="Wrong number of fields"))
                continue

            def field(key: str) -> str:
                return values[columns[key]] if key in columns else ""

            if not all(field(key) for key in REQUIRED_STUDENT_COLUMNS):
                skipped.append(SkippedStudentRow(row=row_number, reason="Name, admission number and class are required"))
                continue

            try:
                student_data = CreateNewStudent(
                    name=field("name"),
                    admissionNo=field("admission_no"),
                    className=field("class_name"),
                    email=field("email") or None
                )
            except ValidationError as e:
                skipped.append(SkippedStudentRow(row=row_number, reason=f"Invalid student data: {e.errors()[0]['msg']}"))
                continue

            if student_data.admissionNo.lower() in taken:
                skipped.append(SkippedStudentRow(
                    row=row_number,
                    reason=f"Admission number {student_data.admissionNo} is already in use"
                ))
                continue
            taken.add(student_data.admissionNo.lower())

            students.append(Student(
                name=student_data.name,
                admission_no=student_data.admissionNo,
                class_name=student_data.className,
                email=student_data.email,
                organization_id=organization_id
            ))

        if students:
            try:
                db.add_all(students)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"[IMPORT STUDENTS] Database error: {str(e)}")
                raise HTTPException(
                    status_code=500,
                    detail="Error while importing students"
                ) from e

        logger.info(
            f"[IMPORT STUDENTS] Organization ID {organization_id}: {len(students)} imported, {len(skipped)} skipped"
        )
        return students, skipped
