from .admin import PlatformAdmin
from .exam import Exam
from .mark import Mark
from .organization import Organization
from .student import Student
from .subject import Subject
from .teacher import Teacher, TeacherSubject

__all__ = [
    "PlatformAdmin",
    "Exam",
    "Mark",
    "Organization",
    "Student",
    "Subject",
    "Teacher",
    "TeacherSubject",
]
