from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from school_app.core.database import Base, BigIntId

class PlatformAdmin(Base):
    __tablename__ = "platform_admin"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    login: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    password: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False)
