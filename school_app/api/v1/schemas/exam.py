from typing import Optional, List

from pydantic import BaseModel, Field, constr


class CreateExam(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=255)
    className: constr(strip_whitespace=True, min_length=1, max_length=10)
    maxMarks: int = Field(default=100, gt=0)


class ExamResponse(BaseModel):
    id: int
    name: str
    className: str
    maxMarks: int
    marks_count: Optional[int] = None


class StudentSubjectMark(BaseModel):
    student_id: int
    student_name: str
    admission_no: str
    subject: str
    marks_obtained: int
    max_marks: int

class ExamMarksResponse(BaseModel):
    exam_id: int
    name: str
    className: str
    marks: List[StudentSubjectMark]
