from typing import List, Optional

from pydantic import BaseModel, Field, constr


class StudentResponse(BaseModel):
    id: int
    name: str
    admissionNo: str
    className: str
    email: Optional[str] = None
    organization_id: Optional[int] = None


class CreateNewStudent(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=255)
    admissionNo: constr(strip_whitespace=True, min_length=1, max_length=50)
    className: constr(strip_whitespace=True, min_length=1, max_length=10)
    email: Optional[str] = None

class UpdateStudent(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=1, max_length=255)] = None
    admissionNo: Optional[constr(strip_whitespace=True, min_length=1, max_length=50)] = None
    className: Optional[constr(strip_whitespace=True, min_length=1, max_length=10)] = None
    email: Optional[str] = None


class SkippedStudentRow(BaseModel):
    row: int
    reason: str


class StudentImportResult(BaseModel):
    message: str
    imported: int
    skipped: List[SkippedStudentRow] = Field(default_factory=list)
    students: List[StudentResponse] = Field(default_factory=list)
