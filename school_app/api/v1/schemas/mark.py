from datetime import datetime
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from pydantic import BaseModel, Field, constr


class MarkCreate(BaseModel):
    student_id: int
    exam_id: int
    subject: constr(strip_whitespace=True, min_length=1, max_length=100)
    marks_obtained: int = Field(ge=0)
    max_marks: int = Field(default=100, gt=0)


class MarkUpdate(BaseModel):
    subject: Optional[constr(strip_whitespace=True, min_length=1, max_length=100)] = None
    marks_obtained: Optional[int] = Field(default=None, ge=0)
    max_marks: Optional[int] = Field(default=None, gt=0)


class MarkResponse(BaseModel):
    id: int
    student_id: int
    exam_id: int
    subject: str
    marks_obtained: int
    max_marks: int
    student_name: Optional[str] = None
    admission_no: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MarkEntry(NamedTuple):
    """One (student, subject) mark ready to persist."""
    student_name: str
    admission_no: Optional[str]
    subject: str
    marks: float
    max_marks: int


class ImportForm(str, Enum):
    WIDE = "wide"
    FLAT = "flat"


class MarkRecord(BaseModel):
    """
    Staging row produced by the CSV parser.

    The wide form keeps every subject of one student on a single record, the
    flat form holds exactly one subject per record. Both are read through
    ``entries()`` so the importer never needs to know which form produced them.
    """
    student_name: str
    admission_no: Optional[str] = None
    exam_name: Optional[str] = None
    marks: Dict[str, float] = Field(default_factory=dict)
    max_marks: Dict[str, int] = Field(default_factory=dict)
    valid: bool = True
    errors: List[str] = Field(default_factory=list)

    def entries(self) -> List[MarkEntry]:
        return [
            MarkEntry(
                student_name=self.student_name,
                admission_no=self.admission_no or None,
                subject=subject,
                marks=value,
                max_marks=self.max_marks.get(subject, 100),
            )
            for subject, value in self.marks.items()
        ]


class ParseResult(BaseModel):
    form: ImportForm
    rows: List[MarkRecord]
    total_count: int
    valid_count: int
    invalid_count: int


class ImportStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class FailedSubject(BaseModel):
    subject: str
    marks: float
    message: str


class ImportDetail(BaseModel):
    student: str
    status: ImportStatus
    message: Optional[str] = None
    imported_subjects: List[str] = Field(default_factory=list)
    failed_subjects: List[FailedSubject] = Field(default_factory=list)


class ImportResult(BaseModel):
    success: int = 0
    failed: int = 0
    details: List[ImportDetail] = Field(default_factory=list)
    cancelled: bool = False


class ExamContext(BaseModel):
    exam_id: int
    exam_name: str
    class_name: Optional[str] = None


class MarksImportText(BaseModel):
    exam_id: int
    text: constr(min_length=1)


class MarksParseText(BaseModel):
    text: constr(min_length=1)
    exam_id: Optional[int] = None


class SingleMarkImport(BaseModel):
    exam_id: int
    student_name: constr(strip_whitespace=True, min_length=1)
    admission_no: Optional[constr(strip_whitespace=True)] = None
    subject: constr(strip_whitespace=True, min_length=1, max_length=100)
    marks: float = Field(ge=0)
    max_marks: int = Field(default=100, gt=0)
