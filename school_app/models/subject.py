from sqlalchemy import BigInteger, String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_app.core.database import Base, BigIntId

class Subject(Base):
    __tablename__ = "subject"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_subject_name"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    max_marks: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False
    )

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="subjects", passive_deletes=True
    )
