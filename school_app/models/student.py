from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, String, ForeignKey, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_app.core.database import Base, BigIntId

class Student(Base):
    __tablename__ = "student"
    __table_args__ = (
        UniqueConstraint("organization_id", "admission_no", name="uq_student_admission_no"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    admission_no: Mapped[str] = mapped_column(String(50), nullable=False)
    class_name: Mapped[str] = mapped_column(String(10), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="students", passive_deletes=True
    )
    marks: Mapped[list["Mark"]] = relationship(
        "Mark",
        back_populates="student",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
