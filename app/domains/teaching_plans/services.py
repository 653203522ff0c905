"""Teaching plan domain service - plans, student groups and group membership."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.result import Result
from app.models.course import Course
from app.models.teaching_plan import GroupMember, StudentGroup, TeachingPlan
from app.models.user import StudentProfile
from app.schemas.teaching_plan import (
    GroupMemberResponse,
    StudentGroupResponse,
    TeachingPlanCreate,
    TeachingPlanResponse,
)

logger = logging.getLogger(__name__)


def _to_group_response(group: StudentGroup) -> StudentGroupResponse:
    return StudentGroupResponse(
        id=group.id,
        teaching_plan_id=group.teaching_plan_id,
        name=group.name,
        members=[
            GroupMemberResponse(
                id=m.id,
                student_profile_id=m.student_profile_id,
                display_name=m.student_profile.resolved_name if m.student_profile else "Unknown Student",
            )
            for m in sorted(group.members, key=lambda m: m.id)
        ],
    )


class TeachingPlanService:
    """Every mutation here requires the caller to own the plan."""

    def __init__(self, db: Session):
        self.db = db

    def _owned_plan(self, teacher_id: str, plan_id: int) -> Result[TeachingPlan]:
        try:
            plan = self.db.query(TeachingPlan).filter(TeachingPlan.id == plan_id).first()
        except SQLAlchemyError as exc:
            logger.error(f"Plan lookup failed for plan {plan_id}: {exc}", exc_info=True)
            return Result.fail(f"Loading teaching plan failed: {exc}")
        if not plan:
            return Result.not_found("Teaching plan not found")
        if plan.teacher_id != teacher_id:
            return Result.forbidden("You do not own this teaching plan")
        return Result.ok(plan)

    def _owned_group(self, teacher_id: str, group_id: int) -> Result[StudentGroup]:
        group = self.db.query(StudentGroup).filter(StudentGroup.id == group_id).first()
        if not group:
            return Result.not_found("Student group not found")
        if group.teaching_plan.teacher_id != teacher_id:
            return Result.forbidden("You do not own this teaching plan")
        return Result.ok(group)

    def create_plan(self, teacher_id: str, payload: TeachingPlanCreate) -> Result[TeachingPlanResponse]:
        course = self.db.query(Course).filter(Course.id == payload.course_id).first()
        if not course:
            return Result.not_found("Course not found")

        try:
            plan = TeachingPlan(
                course_id=payload.course_id,
                teacher_id=teacher_id,
                title=payload.title.strip(),
                description=payload.description,
                objectives=payload.objectives,
            )
            self.db.add(plan)
            self.db.commit()
            self.db.refresh(plan)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Creating teaching plan failed: {exc}", exc_info=True)
            return Result.fail(f"Creating teaching plan failed: {exc}")

        logger.info(f"Teaching plan {plan.id} created | course={payload.course_id} teacher={teacher_id}")
        return Result.ok(TeachingPlanResponse.model_validate(plan))

    def create_group(self, teacher_id: str, plan_id: int, name: str) -> Result[StudentGroupResponse]:
        if not name or not name.strip():
            return Result.invalid("Group name is required")
        owned = self._owned_plan(teacher_id, plan_id)
        if not owned.success:
            return owned

        try:
            group = StudentGroup(teaching_plan_id=plan_id, name=name.strip())
            self.db.add(group)
            self.db.commit()
            self.db.refresh(group)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Creating group failed | plan={plan_id}: {exc}", exc_info=True)
            return Result.fail(f"Creating group failed: {exc}")

        return Result.ok(_to_group_response(group))

    def list_groups(self, teacher_id: str, plan_id: int) -> Result[list[StudentGroupResponse]]:
        owned = self._owned_plan(teacher_id, plan_id)
        if not owned.success:
            return owned

        try:
            groups = (
                self.db.query(StudentGroup)
                .options(
                    selectinload(StudentGroup.members)
                    .selectinload(GroupMember.student_profile)
                    .selectinload(StudentProfile.user)
                )
                .filter(StudentGroup.teaching_plan_id == plan_id)
                .order_by(StudentGroup.name.asc(), StudentGroup.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error(f"Group lookup failed for plan {plan_id}: {exc}", exc_info=True)
            return Result.fail(f"Loading student groups failed: {exc}")
        return Result.ok([_to_group_response(g) for g in groups])

    def add_members(self, teacher_id: str, group_id: int, profile_ids: list[int]) -> Result[StudentGroupResponse]:
        """Add profiles to a group; profiles already in the group are skipped."""
        if not profile_ids:
            return Result.invalid("At least one student profile is required")
        owned = self._owned_group(teacher_id, group_id)
        if not owned.success:
            return owned
        group = owned.value

        wanted = set(profile_ids)
        found = {
            pid for (pid,) in self.db.query(StudentProfile.id)
            .filter(StudentProfile.id.in_(wanted), StudentProfile.is_archived.is_(False))
            .all()
        }
        missing = wanted - found
        if missing:
            return Result.not_found(f"Student profiles {sorted(missing)} not found")

        existing = {m.student_profile_id for m in group.members}
        try:
            added = 0
            for pid in dict.fromkeys(profile_ids):
                if pid in existing:
                    continue
                group.members.append(GroupMember(student_profile_id=pid))
                added += 1
            self.db.commit()
            self.db.refresh(group)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Adding members failed | group={group_id}: {exc}", exc_info=True)
            return Result.fail(f"Adding members failed: {exc}")

        logger.info(f"Group {group_id} members added={added} skipped={len(wanted) - added}")
        return Result.ok(_to_group_response(group))

    def remove_member(self, teacher_id: str, group_id: int, profile_id: int) -> Result[None]:
        owned = self._owned_group(teacher_id, group_id)
        if not owned.success:
            return owned

        member = (
            self.db.query(GroupMember)
            .filter(GroupMember.student_group_id == group_id, GroupMember.student_profile_id == profile_id)
            .first()
        )
        if not member:
            return Result.not_found("Student is not a member of this group")

        try:
            self.db.delete(member)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Removing member failed | group={group_id}: {exc}", exc_info=True)
            return Result.fail(f"Removing member failed: {exc}")
        return Result.ok(None)

    def transfer_member(
        self, teacher_id: str, from_group_id: int, to_group_id: int, profile_id: int,
    ) -> Result[StudentGroupResponse]:
        """Move a member between two groups of the same plan."""
        if from_group_id == to_group_id:
            return Result.invalid("Source and target group are the same")
        source = self._owned_group(teacher_id, from_group_id)
        if not source.success:
            return source
        target = self._owned_group(teacher_id, to_group_id)
        if not target.success:
            return target
        if source.value.teaching_plan_id != target.value.teaching_plan_id:
            return Result.invalid("Groups belong to different teaching plans")

        member = (
            self.db.query(GroupMember)
            .filter(GroupMember.student_group_id == from_group_id, GroupMember.student_profile_id == profile_id)
            .first()
        )
        if not member:
            return Result.not_found("Student is not a member of the source group")
        if target.value.has_profile(profile_id):
            return Result.invalid("Student is already a member of the target group")

        try:
            member.student_group_id = to_group_id
            self.db.commit()
            self.db.refresh(target.value)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Transfer failed | {from_group_id}->{to_group_id}: {exc}", exc_info=True)
            return Result.fail(f"Transferring member failed: {exc}")

        logger.info(f"Profile {profile_id} moved from group {from_group_id} to {to_group_id}")
        return Result.ok(_to_group_response(target.value))
