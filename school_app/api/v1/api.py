from fastapi import APIRouter
from school_app.api.v1.endpoints import auth, student, subject, exam, mark, teacher

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(student.router)
api_router.include_router(subject.router)
api_router.include_router(exam.router)
api_router.include_router(mark.router)
api_router.include_router(teacher.router)
