import enum

from sqlalchemy import (
    Column, Integer, Float, String, Text, Boolean, DateTime, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.utils import utc_now
from app.db.database import Base


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class SessionMode(str, enum.Enum):
    IN_PERSON = "in_person"
    ONLINE = "online"
    HYBRID = "hybrid"


class TopicType(str, enum.Enum):
    SUBTOPIC = "subtopic"
    LESSON = "lesson"
    ADDITIONAL = "additional"


class CoverageStatus(enum.IntEnum):
    NOT_COVERED = 0
    PARTIALLY_COVERED = 1
    FULLY_COVERED = 2
    POSTPONED = 3


class TeachingSessionReport(Base):
    """One actual class session of a teaching plan."""

    __tablename__ = "teaching_session_reports"

    id = Column(Integer, primary_key=True, index=True)
    teaching_plan_id = Column(Integer, ForeignKey("teaching_plans.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(300), nullable=True)
    session_date = Column(DateTime(timezone=True), nullable=False)
    mode = Column(String(20), nullable=False, default=SessionMode.IN_PERSON.value)
    location = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    created_by_teacher_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    current_step = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)
    step_completions_json = Column(Text, nullable=True)  # {"<step>": <payload>}

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    teaching_plan = relationship("TeachingPlan")
    attendance = relationship("TeachingSessionAttendance", back_populates="report", cascade="all, delete-orphan")
    plans = relationship("TeachingSessionPlan", back_populates="report", cascade="all, delete-orphan")
    executions = relationship("TeachingSessionExecution", back_populates="report", cascade="all, delete-orphan")
    topic_coverages = relationship(
        "TeachingSessionTopicCoverage", back_populates="report", cascade="all, delete-orphan",
    )
    schedule_items = relationship("ScheduleItem", back_populates="session_report")

    __table_args__ = (
        Index("ix_session_reports_plan_date", "teaching_plan_id", "session_date"),
        Index("ix_session_reports_teacher", "created_by_teacher_id"),
    )


class TeachingSessionAttendance(Base):
    __tablename__ = "teaching_session_attendances"

    id = Column(Integer, primary_key=True, index=True)
    teaching_session_report_id = Column(
        Integer, ForeignKey("teaching_session_reports.id", ondelete="CASCADE"), nullable=False,
    )
    student_profile_id = Column(Integer, ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default=AttendanceStatus.ABSENT.value)
    participation_score = Column(Float, nullable=True)
    comment = Column(String(1000), nullable=True)

    report = relationship("TeachingSessionReport", back_populates="attendance")

    __table_args__ = (
        UniqueConstraint("teaching_session_report_id", "student_profile_id", name="uq_attendance_report_profile"),
        Index("ix_attendance_status", "status"),
    )


class TeachingSessionPlan(Base):
    """Topics a teacher planned for one group before the session."""

    __tablename__ = "teaching_session_plans"

    id = Column(Integer, primary_key=True, index=True)
    teaching_session_report_id = Column(
        Integer, ForeignKey("teaching_session_reports.id", ondelete="CASCADE"), nullable=False,
    )
    student_group_id = Column(Integer, ForeignKey("student_groups.id", ondelete="CASCADE"), nullable=False)
    planned_objectives = Column(Text, nullable=True)
    planned_subtopics_json = Column(Text, nullable=True)
    planned_lessons_json = Column(Text, nullable=True)
    additional_topics = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    report = relationship("TeachingSessionReport", back_populates="plans")
    student_group = relationship("StudentGroup")

    __table_args__ = (
        UniqueConstraint("teaching_session_report_id", "student_group_id", name="uq_session_plan_report_group"),
    )


class TeachingSessionExecution(Base):
    """Per-group feedback after the session; levels are 1-5."""

    __tablename__ = "teaching_session_executions"

    id = Column(Integer, primary_key=True, index=True)
    teaching_session_report_id = Column(
        Integer, ForeignKey("teaching_session_reports.id", ondelete="CASCADE"), nullable=False,
    )
    student_group_id = Column(Integer, ForeignKey("student_groups.id", ondelete="CASCADE"), nullable=False)
    group_feedback = Column(Text, nullable=True)
    understanding_level = Column(Integer, nullable=False, default=3)
    participation_level = Column(Integer, nullable=False, default=3)
    teacher_satisfaction = Column(Integer, nullable=False, default=3)
    challenges = Column(Text, nullable=True)
    next_session_recommendations = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    report = relationship("TeachingSessionReport", back_populates="executions")
    student_group = relationship("StudentGroup")

    __table_args__ = (
        UniqueConstraint("teaching_session_report_id", "student_group_id", name="uq_execution_report_group"),
    )


class TeachingSessionTopicCoverage(Base):
    """Per-group, per-topic coverage claim for one session."""

    __tablename__ = "teaching_session_topic_coverages"

    id = Column(Integer, primary_key=True, index=True)
    teaching_session_report_id = Column(
        Integer, ForeignKey("teaching_session_reports.id", ondelete="CASCADE"), nullable=False,
    )
    student_group_id = Column(Integer, ForeignKey("student_groups.id", ondelete="CASCADE"), nullable=False)
    topic_type = Column(String(20), nullable=False, default=TopicType.SUBTOPIC.value)
    topic_id = Column(Integer, nullable=True)  # subchapter id or lesson id
    topic_title = Column(String(300), nullable=True)
    was_planned = Column(Boolean, nullable=False, default=False)
    was_covered = Column(Boolean, nullable=False, default=False)
    coverage_percentage = Column(Integer, nullable=False, default=0)
    coverage_status = Column(Integer, nullable=False, default=CoverageStatus.NOT_COVERED.value)
    teacher_notes = Column(Text, nullable=True)
    challenges = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    report = relationship("TeachingSessionReport", back_populates="topic_coverages")
    student_group = relationship("StudentGroup")

    __table_args__ = (
        Index("ix_topic_coverages_report_group", "teaching_session_report_id", "student_group_id"),
        Index("ix_topic_coverages_topic", "topic_type", "topic_id"),
    )
