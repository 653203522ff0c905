import enum
import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.database import Base


class UserRole(str, enum.Enum):
    """Valid user roles (stored as String in DB)."""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class User(Base):
    """Account owned by the identity provider; ids are opaque strings."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(150), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    role = Column(String(20), nullable=False, default=UserRole.STUDENT.value)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    profiles = relationship("StudentProfile", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def has_role(self, role: UserRole) -> bool:
        return self.role == role.value


class StudentProfile(Base):
    """A learner persona under one student account (several children per login)."""

    __tablename__ = "student_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    display_name = Column(String(200), nullable=False, default="")
    grade_level = Column(String(50), nullable=True)
    is_archived = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="profiles")

    __table_args__ = (
        Index("ix_student_profiles_user", "user_id"),
    )

    @property
    def resolved_name(self) -> str:
        """Display name, then the account's full name, then its username."""
        if self.display_name and self.display_name.strip():
            return self.display_name.strip()
        if self.user is not None:
            if self.user.full_name:
                return self.user.full_name
            if self.user.username:
                return self.user.username
        return "Unknown Student"
