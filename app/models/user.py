import enum
import uuid
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum
from datetime import datetime, timezone
from app.core.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class RoleEnum(str, enum.Enum):
    user = "user"
    admin = "admin"

class User(Base):
    __tablename__ = "users"

    id              = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    username        = Column(String(20), unique=True, index=True, nullable=False)
    email           = Column(String(254), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name      = Column(String, nullable=True)
    last_name       = Column(String, nullable=True)
    role            = Column(
                        SQLEnum(RoleEnum, name="role_enum"),
                        default=RoleEnum.user,
                        nullable=False,
                     )
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    last_login = Column(DateTime(timezone=True), nullable=True)
