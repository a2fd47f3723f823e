from typing import List

from pydantic import BaseModel, Field, constr
from enum import Enum

from school_app.api.v1.schemas.subject import SubjectResponse

class RoleEnum(str, Enum):
    PLATFORM_ADMIN = "platform_admin"
    ORG_ADMIN = "org_admin"
    TEACHER = "teacher"

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: RoleEnum
    username: str

class RegisterResponse(BaseModel):
    username: str
    role: RoleEnum
    access_token: str

class CreateTeacher(BaseModel):
    login: constr(strip_whitespace=True, min_length=3)
    password: constr(min_length=6)
    fullName: constr(strip_whitespace=True, min_length=1)
    subjectIds: List[int] = Field(default_factory=list)

class AssignSubjects(BaseModel):
    subjectIds: List[int]

class TeacherResponse(BaseModel):
    id: int
    login: str
    fullName: str
    organization_id: int
    subjects: List[SubjectResponse] = Field(default_factory=list)
