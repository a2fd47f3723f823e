from datetime import datetime

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_app.core.database import Base, BigIntId

class Organization(Base):
    __tablename__ = "organization"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    login: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    password: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    teachers: Mapped[list["Teacher"]] = relationship(
        "Teacher",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    students: Mapped[list["Student"]] = relationship(
        "Student",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    subjects: Mapped[list["Subject"]] = relationship(
        "Subject",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    exams: Mapped[list["Exam"]] = relationship(
        "Exam",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
