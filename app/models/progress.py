import enum

from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from app.core.utils import utc_now
from app.db.database import Base


class ProgressStatus(enum.IntEnum):
    NOT_STARTED = 0
    IN_PROGRESS = 1
    COMPLETED = 2
    # 3 and 4 are reserved (needs review / skipped)


class TeachingPlanProgress(Base):
    """Denormalized rollup of topic coverage per (plan, subchapter, group).

    Upserted after each coverage save. The percentage only ever increases.
    """

    __tablename__ = "teaching_plan_progresses"

    id = Column(Integer, primary_key=True, index=True)
    teaching_plan_id = Column(Integer, ForeignKey("teaching_plans.id", ondelete="CASCADE"), nullable=False)
    subtopic_id = Column(Integer, ForeignKey("subchapters.id", ondelete="CASCADE"), nullable=False)
    student_group_id = Column(Integer, ForeignKey("student_groups.id", ondelete="CASCADE"), nullable=False)

    overall_status = Column(Integer, nullable=False, default=ProgressStatus.NOT_STARTED.value)
    overall_progress_percentage = Column(Integer, nullable=False, default=0)
    sessions_count = Column(Integer, nullable=False, default=0)
    first_taught_date = Column(DateTime(timezone=True), nullable=True)
    last_taught_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    teaching_plan = relationship("TeachingPlan")
    subtopic = relationship("SubChapter")
    student_group = relationship("StudentGroup")

    __table_args__ = (
        UniqueConstraint(
            "teaching_plan_id", "subtopic_id", "student_group_id", name="uq_plan_progress_plan_subtopic_group",
        ),
        Index("ix_plan_progress_group", "student_group_id"),
    )
