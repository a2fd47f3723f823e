from sqlalchemy import BigInteger, String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_app.core.database import Base, BigIntId

class TeacherSubject(Base):
    __tablename__ = "teacher_subject"

    teacher_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("teacher.id", ondelete="CASCADE"), primary_key=True
    )
    subject_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("subject.id", ondelete="CASCADE"), primary_key=True
    )

class Teacher(Base):
    __tablename__ = "teacher"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    login: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    password: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False
    )

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="teachers", passive_deletes=True
    )
    # Subjects whose marks the teacher may record
    subjects: Mapped[list["Subject"]] = relationship(
        "Subject",
        secondary=TeacherSubject.__table__,
        lazy="selectin",
        passive_deletes=True
    )
