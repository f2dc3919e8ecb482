from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, Text, UniqueConstraint
from app.core.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class University(Base):
    __tablename__ = "universities"

    id           = Column(Integer, primary_key=True)
    external_id  = Column(String, unique=True, nullable=False)
    name         = Column(String(100), nullable=False)
    description  = Column(Text, nullable=False)
    university   = Column(String, nullable=False, index=True)
    field        = Column(String, nullable=False, index=True)
    location     = Column(String, nullable=False, index=True)
    deadline     = Column(String, nullable=False)
    requirements = Column(JSON, nullable=False, default=list)
    source       = Column(String, nullable=False)
    created_at   = Column(DateTime(timezone=True), default=_utcnow)
    updated_at   = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Job(Base):
    __tablename__ = "jobs"

    id           = Column(Integer, primary_key=True)
    external_id  = Column(String, unique=True, nullable=False)
    title        = Column(String(100), nullable=False)
    company      = Column(String, nullable=False, index=True)
    location     = Column(String, nullable=False, index=True)
    type         = Column(String, nullable=False, index=True)
    salary       = Column(String, nullable=True)
    description  = Column(Text, nullable=False)
    requirements = Column(JSON, nullable=False, default=list)
    source       = Column(String, nullable=False)
    is_active    = Column(Boolean, nullable=False, default=True)
    created_at   = Column(DateTime(timezone=True), default=_utcnow)
    updated_at   = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("user_id", "item_type", "item_id", name="uq_favorite_item"),
    )

    id         = Column(Integer, primary_key=True)
    user_id    = Column(
                   String(32),
                   ForeignKey("users.id", ondelete="CASCADE"),
                   nullable=False,
                   index=True,
                 )
    # "university" or "job"; item_id points into the matching table
    item_type  = Column(String(16), nullable=False)
    item_id    = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
