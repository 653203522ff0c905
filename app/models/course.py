import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.utils import as_utc, utc_now
from app.db.database import Base


class CourseAccessLevel(enum.IntEnum):
    """Ordered access levels (stored as Integer so levels compare)."""
    NONE = 0
    VIEW_ONLY = 1
    LESSONS = 2
    EXAMS = 3
    RESOURCES = 4
    FULL = 5


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    order = Column(Integer, default=0)
    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    chapters = relationship(
        "Chapter", back_populates="course", cascade="all, delete-orphan", order_by="Chapter.order",
    )


class Chapter(Base):
    __tablename__ = "chapters"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    objective = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    order = Column(Integer, default=0)

    course = relationship("Course", back_populates="chapters")
    subchapters = relationship(
        "SubChapter", back_populates="chapter", cascade="all, delete-orphan", order_by="SubChapter.order",
    )

    __table_args__ = (
        Index("ix_chapters_course_order", "course_id", "order"),
    )


class SubChapter(Base):
    __tablename__ = "subchapters"

    id = Column(Integer, primary_key=True, index=True)
    chapter_id = Column(Integer, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    objective = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    order = Column(Integer, default=0)

    chapter = relationship("Chapter", back_populates="subchapters")

    __table_args__ = (
        Index("ix_subchapters_chapter_order", "chapter_id", "order"),
    )


class CourseEnrollment(Base):
    """A student's direct enrollment in a course.

    Legacy enrollments carry no profile; profile-scoped enrollments carry one.
    Both kinds coexist, so uniqueness is enforced by two partial indexes.
    Unenrolling deactivates the row; enrolling again reactivates it.
    """

    __tablename__ = "course_enrollments"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    student_profile_id = Column(Integer, ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    enrolled_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)
    progress_percentage = Column(Integer, default=0)

    course = relationship("Course")
    student = relationship("User")
    student_profile = relationship("StudentProfile")

    __table_args__ = (
        Index(
            "uq_course_enrollments_legacy",
            "course_id", "student_id",
            unique=True,
            sqlite_where=student_profile_id.is_(None),
            postgresql_where=student_profile_id.is_(None),
        ),
        Index(
            "uq_course_enrollments_profile",
            "course_id", "student_id", "student_profile_id",
            unique=True,
            sqlite_where=student_profile_id.isnot(None),
            postgresql_where=student_profile_id.isnot(None),
        ),
    )


class CourseAccess(Base):
    """Enrollment-independent grant of visibility into a course."""

    __tablename__ = "course_accesses"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    access_level = Column(Integer, nullable=False, default=CourseAccessLevel.VIEW_ONLY.value)
    is_active = Column(Boolean, default=True, nullable=False)
    granted_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    granted_by = Column(String(36), nullable=True)
    notes = Column(Text, nullable=True)

    course = relationship("Course")
    student = relationship("User")

    __table_args__ = (
        Index("uq_course_accesses_course_student", "course_id", "student_id", unique=True),
    )

    def is_expired(self, now=None) -> bool:
        now = now or utc_now()
        return self.expires_at is not None and as_utc(self.expires_at) <= now

    def is_valid(self, now=None) -> bool:
        return bool(self.is_active) and not self.is_expired(now)
