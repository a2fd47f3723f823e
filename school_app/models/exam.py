from datetime import datetime

from sqlalchemy import BigInteger, String, Integer, ForeignKey, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_app.core.database import Base, BigIntId

class Exam(Base):
    __tablename__ = "exam"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    class_name: Mapped[str] = mapped_column(String(10), nullable=False)
    max_marks: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="exams", passive_deletes=True
    )
    marks: Mapped[list["Mark"]] = relationship(
        "Mark",
        back_populates="exam",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
