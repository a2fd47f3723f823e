from pydantic import BaseModel, Field, constr


class CreateSubject(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=100)
    code: constr(strip_whitespace=True, min_length=1, max_length=50)
    maxMarks: int = Field(default=100, gt=0)


class SubjectResponse(BaseModel):
    id: int
    name: str
    code: str
    maxMarks: int
