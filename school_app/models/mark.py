from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Integer, String, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_app.core.database import Base, BigIntId

class Mark(Base):
    __tablename__ = "marks"
    __table_args__ = (
        UniqueConstraint("student_id", "exam_id", "subject", name="uq_mark_student_exam_subject"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    subject: Mapped[str] = mapped_column(String(100), nullable=False)
    marks_obtained: Mapped[int] = mapped_column(Integer, nullable=False)
    max_marks: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    exam_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("exam.id", ondelete="CASCADE"), nullable=False)
    student_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("student.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    exam: Mapped["Exam"] = relationship("Exam", back_populates="marks", passive_deletes=True)
    student: Mapped["Student"] = relationship("Student", back_populates="marks", passive_deletes=True)
