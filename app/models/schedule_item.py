import enum

from sqlalchemy import (
    Column, Integer, Float, String, Text, Boolean, DateTime, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.core.utils import utc_now
from app.db.database import Base


class ScheduleItemType(str, enum.Enum):
    """Valid schedule item types (stored as String in DB)."""
    REMINDER = "reminder"
    WRITING = "writing"
    AUDIO = "audio"
    GAP_FILL = "gap_fill"
    MULTIPLE_CHOICE = "multiple_choice"
    MATCH = "match"
    ERROR_FINDING = "error_finding"
    CODE_EXERCISE = "code_exercise"
    QUIZ = "quiz"

    @property
    def label(self) -> str:
        return _TYPE_LABELS[self]


_TYPE_LABELS = {
    ScheduleItemType.REMINDER: "Reminder",
    ScheduleItemType.WRITING: "Writing",
    ScheduleItemType.AUDIO: "Audio",
    ScheduleItemType.GAP_FILL: "Gap fill",
    ScheduleItemType.MULTIPLE_CHOICE: "Multiple choice",
    ScheduleItemType.MATCH: "Match",
    ScheduleItemType.ERROR_FINDING: "Error finding",
    ScheduleItemType.CODE_EXERCISE: "Code exercise",
    ScheduleItemType.QUIZ: "Quiz",
}


class ScheduleItemStatus(str, enum.Enum):
    """Derived at read time, never stored."""
    DRAFT = "draft"
    PUBLISHED = "published"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


class ScheduleItem(Base):
    """A gradeable or assignable unit of work on a plan's or course's timeline.

    ``updated_at`` doubles as the optimistic concurrency token: every UPDATE
    is issued with ``WHERE updated_at = <loaded value>`` and a stale write
    raises ``StaleDataError``.
    """

    __tablename__ = "schedule_items"

    id = Column(Integer, primary_key=True, index=True)
    teaching_plan_id = Column(Integer, ForeignKey("teaching_plans.id", ondelete="CASCADE"), nullable=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=True)
    session_report_id = Column(
        Integer, ForeignKey("teaching_session_reports.id", ondelete="SET NULL"), nullable=True,
    )

    type = Column(String(30), nullable=False, default=ScheduleItemType.REMINDER.value)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=True)
    is_mandatory = Column(Boolean, default=False)
    content_json = Column(Text, nullable=False, default="{}")  # opaque to this service
    max_score = Column(Float, nullable=True)
    is_completed = Column(Boolean, default=False)
    current_step = Column(Integer, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    teaching_plan = relationship("TeachingPlan", back_populates="schedule_items")
    course = relationship("Course")
    session_report = relationship("TeachingSessionReport", back_populates="schedule_items")
    group_assignments = relationship(
        "ScheduleItemGroupAssignment", back_populates="schedule_item", cascade="all, delete-orphan",
    )
    subchapter_assignments = relationship(
        "ScheduleItemSubChapterAssignment", back_populates="schedule_item", cascade="all, delete-orphan",
    )
    student_assignments = relationship(
        "ScheduleItemStudentAssignment", back_populates="schedule_item", cascade="all, delete-orphan",
    )

    __mapper_args__ = {
        "version_id_col": updated_at,
        "version_id_generator": lambda _previous: utc_now(),
    }

    __table_args__ = (
        Index("ix_schedule_items_plan_start", "teaching_plan_id", "start_date"),
        Index("ix_schedule_items_course", "course_id"),
        Index("ix_schedule_items_session_report", "session_report_id"),
    )

    @property
    def effective_course_id(self) -> int | None:
        if self.course_id is not None:
            return self.course_id
        return self.teaching_plan.course_id if self.teaching_plan else None

    @property
    def has_assignments(self) -> bool:
        return bool(self.group_assignments) or bool(self.student_assignments)


class ScheduleItemGroupAssignment(Base):
    __tablename__ = "schedule_item_group_assignments"

    id = Column(Integer, primary_key=True, index=True)
    schedule_item_id = Column(Integer, ForeignKey("schedule_items.id", ondelete="CASCADE"), nullable=False)
    student_group_id = Column(Integer, ForeignKey("student_groups.id", ondelete="CASCADE"), nullable=False)

    schedule_item = relationship("ScheduleItem", back_populates="group_assignments")
    student_group = relationship("StudentGroup")

    __table_args__ = (
        UniqueConstraint("schedule_item_id", "student_group_id", name="uq_item_group_assignment"),
    )


class ScheduleItemSubChapterAssignment(Base):
    __tablename__ = "schedule_item_subchapter_assignments"

    id = Column(Integer, primary_key=True, index=True)
    schedule_item_id = Column(Integer, ForeignKey("schedule_items.id", ondelete="CASCADE"), nullable=False)
    subchapter_id = Column(Integer, ForeignKey("subchapters.id", ondelete="CASCADE"), nullable=False)

    schedule_item = relationship("ScheduleItem", back_populates="subchapter_assignments")
    subchapter = relationship("SubChapter")

    __table_args__ = (
        UniqueConstraint("schedule_item_id", "subchapter_id", name="uq_item_subchapter_assignment"),
    )


class ScheduleItemStudentAssignment(Base):
    __tablename__ = "schedule_item_student_assignments"

    id = Column(Integer, primary_key=True, index=True)
    schedule_item_id = Column(Integer, ForeignKey("schedule_items.id", ondelete="CASCADE"), nullable=False)
    student_profile_id = Column(Integer, ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    schedule_item = relationship("ScheduleItem", back_populates="student_assignments")
    student_profile = relationship("StudentProfile")

    __table_args__ = (
        UniqueConstraint("schedule_item_id", "student_profile_id", name="uq_item_student_assignment"),
    )
