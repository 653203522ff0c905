from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.database import Base


class TeachingPlan(Base):
    """Instructor-guided plan for a course; owns groups and schedule items."""

    __tablename__ = "teaching_plans"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    objectives = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    course = relationship("Course")
    teacher = relationship("User")
    groups = relationship(
        "StudentGroup", back_populates="teaching_plan", cascade="all, delete-orphan", order_by="StudentGroup.name",
    )
    schedule_items = relationship("ScheduleItem", back_populates="teaching_plan", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_teaching_plans_teacher", "teacher_id"),
        Index("ix_teaching_plans_course", "course_id"),
    )


class StudentGroup(Base):
    __tablename__ = "student_groups"

    id = Column(Integer, primary_key=True, index=True)
    teaching_plan_id = Column(Integer, ForeignKey("teaching_plans.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)

    teaching_plan = relationship("TeachingPlan", back_populates="groups")
    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")

    def has_profile(self, student_profile_id: int) -> bool:
        return any(m.student_profile_id == student_profile_id for m in self.members)


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, index=True)
    student_group_id = Column(Integer, ForeignKey("student_groups.id", ondelete="CASCADE"), nullable=False)
    student_profile_id = Column(Integer, ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("StudentGroup", back_populates="members")
    student_profile = relationship("StudentProfile")

    __table_args__ = (
        UniqueConstraint("student_group_id", "student_profile_id", name="uq_group_members_group_profile"),
    )
