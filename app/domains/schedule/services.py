"""Schedule item domain service - visibility resolution and item lifecycle."""

import logging
from datetime import datetime

from sqlalchemy import and_, exists, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from app.core.result import Result
from app.core.utils import as_utc, utc_now
from app.models.course import Course, CourseAccess, CourseEnrollment, Chapter, SubChapter
from app.models.schedule_item import (
    ScheduleItem,
    ScheduleItemGroupAssignment,
    ScheduleItemStatus,
    ScheduleItemStudentAssignment,
    ScheduleItemSubChapterAssignment,
    ScheduleItemType,
)
from app.models.teaching_plan import GroupMember, StudentGroup, TeachingPlan
from app.models.teaching_session import TeachingSessionReport
from app.models.user import StudentProfile
from app.schemas.schedule_item import (
    ScheduleItemCreate,
    ScheduleItemResponse,
    ScheduleItemUpdate,
    StudentAssignmentResponse,
)

logger = logging.getLogger(__name__)


def compute_item_status(item: ScheduleItem, now: datetime | None = None) -> ScheduleItemStatus:
    """Derive the display status. Completed wins, then Expired, Active, Published."""
    now = now or utc_now()
    start = as_utc(item.start_date)
    due = as_utc(item.due_date)

    if item.is_completed:
        return ScheduleItemStatus.COMPLETED
    if due is not None and now > due:
        return ScheduleItemStatus.EXPIRED
    if start <= now and (due is None or now <= due):
        return ScheduleItemStatus.ACTIVE
    if now < start:
        return ScheduleItemStatus.PUBLISHED
    return ScheduleItemStatus.DRAFT


def is_visible_to_profile(item: ScheduleItem, student_profile_id: int) -> bool:
    """Item-level visibility for one student profile.

    An item with no group and no student assignments is broadcast to the
    whole plan. A direct student assignment always grants visibility. A
    group assignment grants visibility to members of that group only while
    no member of the group holds a direct assignment on the item: once the
    teacher singles out specific students, the rest of their group loses
    the group-level grant.
    """
    if not item.has_assignments:
        return True

    assigned = {sa.student_profile_id for sa in item.student_assignments}
    if student_profile_id in assigned:
        return True

    for ga in item.group_assignments:
        group = ga.student_group
        if group is None:
            continue
        member_ids = {m.student_profile_id for m in group.members}
        if student_profile_id in member_ids and not (member_ids & assigned):
            return True
    return False


def to_item_response(item: ScheduleItem, now: datetime | None = None) -> ScheduleItemResponse:
    item_type = ScheduleItemType(item.type)
    assignments = []
    for sa in item.student_assignments:
        profile = sa.student_profile
        assignments.append(StudentAssignmentResponse(
            id=sa.id,
            student_profile_id=sa.student_profile_id,
            student_user_id=profile.user_id if profile else None,
            student_display_name=profile.resolved_name if profile else "Unknown Student",
            created_at=sa.created_at,
        ))

    return ScheduleItemResponse(
        id=item.id,
        teaching_plan_id=item.teaching_plan_id,
        course_id=item.course_id,
        session_report_id=item.session_report_id,
        type=item_type,
        type_name=item_type.label,
        title=item.title,
        description=item.description,
        start_date=item.start_date,
        due_date=item.due_date,
        is_mandatory=bool(item.is_mandatory),
        max_score=item.max_score,
        content_json=item.content_json or "{}",
        current_step=item.current_step or 0,
        status=compute_item_status(item, now),
        group_ids=[ga.student_group_id for ga in item.group_assignments],
        subchapter_ids=[sa.subchapter_id for sa in item.subchapter_assignments],
        student_profile_ids=[sa.student_profile_id for sa in item.student_assignments],
        student_assignments=assignments,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def _unique(ids) -> list[int]:
    return list(dict.fromkeys(ids))


class ScheduleItemService:
    """Service for schedule item queries and teacher-side edits."""

    def __init__(self, db: Session):
        self.db = db

    # ── Queries ────────────────────────────────────────────────────────

    def _item_query(self):
        return self.db.query(ScheduleItem).options(
            selectinload(ScheduleItem.teaching_plan),
            selectinload(ScheduleItem.group_assignments)
            .selectinload(ScheduleItemGroupAssignment.student_group)
            .selectinload(StudentGroup.members),
            selectinload(ScheduleItem.subchapter_assignments),
            selectinload(ScheduleItem.student_assignments)
            .selectinload(ScheduleItemStudentAssignment.student_profile)
            .selectinload(StudentProfile.user),
        )

    def _course_gate(self, student_id: str, student_profile_id: int, now: datetime):
        """Items with no course pass; otherwise an enrollment or a live grant is needed."""
        enrolled = exists().where(
            CourseEnrollment.course_id == ScheduleItem.course_id,
            CourseEnrollment.student_id == student_id,
            CourseEnrollment.student_profile_id == student_profile_id,
            CourseEnrollment.is_active.is_(True),
        )
        granted = exists().where(
            CourseAccess.course_id == ScheduleItem.course_id,
            CourseAccess.student_id == student_id,
            CourseAccess.is_active.is_(True),
            or_(CourseAccess.expires_at.is_(None), CourseAccess.expires_at > now),
        )
        return or_(ScheduleItem.course_id.is_(None), enrolled, granted)

    @staticmethod
    def _assignment_prefilter(student_profile_id: int):
        """Cheap SQL narrowing; the group suppression rule is applied in Python."""
        broadcast = and_(
            ~ScheduleItem.group_assignments.any(),
            ~ScheduleItem.student_assignments.any(),
        )
        direct = ScheduleItem.student_assignments.any(
            ScheduleItemStudentAssignment.student_profile_id == student_profile_id
        )
        via_group = ScheduleItem.group_assignments.any(
            ScheduleItemGroupAssignment.student_group.has(
                StudentGroup.members.any(GroupMember.student_profile_id == student_profile_id)
            )
        )
        return or_(broadcast, direct, via_group)

    def _accessible_items(self, student_id: str, student_profile_id: int, now: datetime) -> list[ScheduleItem]:
        candidates = (
            self._item_query()
            .filter(
                self._course_gate(student_id, student_profile_id, now),
                self._assignment_prefilter(student_profile_id),
            )
            .order_by(ScheduleItem.start_date.asc(), ScheduleItem.id.asc())
            .all()
        )
        return [item for item in candidates if is_visible_to_profile(item, student_profile_id)]

    def get_accessible_items(
        self, student_id: str, student_profile_id: int, now: datetime | None = None,
    ) -> Result[list[ScheduleItemResponse]]:
        """Every schedule item the given student profile may see, oldest start first."""
        if not isinstance(student_id, str) or not student_id.strip():
            return Result.invalid("Student id is required")
        if (
            not isinstance(student_profile_id, int)
            or isinstance(student_profile_id, bool)
            or student_profile_id <= 0
        ):
            return Result.invalid("Student profile id must be a positive integer")

        now = now or utc_now()
        try:
            items = self._accessible_items(student_id, student_profile_id, now)
        except SQLAlchemyError as exc:
            logger.error(f"Accessible item lookup failed for profile {student_profile_id}: {exc}", exc_info=True)
            return Result.fail(f"Failed to load schedule items: {exc}")

        logger.debug(f"Profile {student_profile_id} can see {len(items)} schedule items")
        return Result.ok([to_item_response(item, now) for item in items])

    def get_course_items_for_student(
        self,
        course_id: int,
        student_id: str,
        student_profile_id: int | None = None,
        now: datetime | None = None,
    ) -> Result[list[ScheduleItemResponse]]:
        """Items of one course for an enrolled student.

        With a profile the result is the visibility-resolved set narrowed to
        the course. Without one, every item of the course is returned (legacy
        accounts predating profiles).
        """
        if not isinstance(course_id, int) or course_id <= 0:
            return Result.invalid("Course id must be a positive integer")
        if not isinstance(student_id, str) or not student_id.strip():
            return Result.invalid("Student id is required")
        if student_profile_id is not None and student_profile_id <= 0:
            return Result.invalid("Student profile id must be a positive integer")

        now = now or utc_now()
        try:
            profile_match = (
                CourseEnrollment.student_profile_id.is_(None)
                if student_profile_id is None
                else CourseEnrollment.student_profile_id == student_profile_id
            )
            enrollment = (
                self.db.query(CourseEnrollment)
                .filter(
                    CourseEnrollment.course_id == course_id,
                    CourseEnrollment.student_id == student_id,
                    CourseEnrollment.is_active.is_(True),
                    profile_match,
                )
                .first()
            )
            if not enrollment:
                return Result.forbidden("Student is not enrolled in this course")

            if student_profile_id is not None:
                items = [
                    item for item in self._accessible_items(student_id, student_profile_id, now)
                    if item.effective_course_id == course_id
                ]
            else:
                items = (
                    self._item_query()
                    .outerjoin(TeachingPlan, ScheduleItem.teaching_plan_id == TeachingPlan.id)
                    .filter(or_(ScheduleItem.course_id == course_id, TeachingPlan.course_id == course_id))
                    .order_by(ScheduleItem.start_date.asc(), ScheduleItem.id.asc())
                    .all()
                )
        except SQLAlchemyError as exc:
            logger.error(f"Course item lookup failed for course {course_id}: {exc}", exc_info=True)
            return Result.fail(f"Failed to load course schedule items: {exc}")

        return Result.ok([to_item_response(item, now) for item in items])

    def get_item(self, teacher_id: str, item_id: int, is_admin: bool = False) -> Result[ScheduleItemResponse]:
        """One item for its managing teacher. Admins may read any item."""
        try:
            item = self._item_query().filter(ScheduleItem.id == item_id).first()
            if not item:
                return Result.not_found("Schedule item not found")
            if not is_admin and not self._can_manage(teacher_id, item.teaching_plan, item.course):
                return Result.forbidden("You cannot view this schedule item")
            return Result.ok(to_item_response(item))
        except SQLAlchemyError as exc:
            logger.error(f"Schedule item lookup failed for item {item_id}: {exc}", exc_info=True)
            return Result.fail(f"Failed to load schedule item: {exc}")

    def _reload_item(self, item_id: int) -> Result[ScheduleItemResponse]:
        try:
            item = self._item_query().filter(ScheduleItem.id == item_id).first()
        except SQLAlchemyError as exc:
            logger.error(f"Reloading schedule item {item_id} failed: {exc}", exc_info=True)
            return Result.fail(f"Failed to load schedule item: {exc}")
        if not item:
            return Result.not_found("Schedule item not found")
        return Result.ok(to_item_response(item))

    def get_items_by_session_report(self, teacher_id: str, report_id: int) -> Result[list[ScheduleItemResponse]]:
        try:
            report = self.db.query(TeachingSessionReport).filter(TeachingSessionReport.id == report_id).first()
            if not report:
                return Result.not_found("Session report not found")
            if report.teaching_plan.teacher_id != teacher_id:
                return Result.forbidden("You do not own this teaching plan")

            items = (
                self._item_query()
                .filter(ScheduleItem.session_report_id == report_id)
                .order_by(ScheduleItem.start_date.asc(), ScheduleItem.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error(f"Session item lookup failed for report {report_id}: {exc}", exc_info=True)
            return Result.fail(f"Failed to load session schedule items: {exc}")

        now = utc_now()
        return Result.ok([to_item_response(item, now) for item in items])

    # ── Commands ───────────────────────────────────────────────────────

    def _can_manage(self, teacher_id: str, plan: TeachingPlan | None, course: Course | None) -> bool:
        if plan is not None:
            return plan.teacher_id == teacher_id
        if course is None:
            return False
        if course.created_by_user_id == teacher_id:
            return True
        return (
            self.db.query(TeachingPlan.id)
            .filter(TeachingPlan.course_id == course.id, TeachingPlan.teacher_id == teacher_id)
            .first()
            is not None
        )

    def _check_assignment_targets(
        self,
        plan: TeachingPlan | None,
        course_id: int | None,
        group_ids: list[int] | None,
        subchapter_ids: list[int] | None,
        student_profile_ids: list[int] | None,
    ) -> str | None:
        """Return an error message when an assignment target is out of scope."""
        if group_ids:
            if plan is None:
                return "Group assignments require a teaching plan"
            plan_group_ids = {g.id for g in plan.groups}
            foreign = set(group_ids) - plan_group_ids
            if foreign:
                return f"Groups {sorted(foreign)} do not belong to this teaching plan"

        if subchapter_ids:
            found = {
                sid for (sid,) in self.db.query(SubChapter.id)
                .join(Chapter, SubChapter.chapter_id == Chapter.id)
                .filter(SubChapter.id.in_(subchapter_ids), Chapter.course_id == course_id)
                .all()
            }
            missing = set(subchapter_ids) - found
            if missing:
                return f"Subchapters {sorted(missing)} do not belong to this course"

        if student_profile_ids:
            found = {
                pid for (pid,) in self.db.query(StudentProfile.id)
                .filter(StudentProfile.id.in_(student_profile_ids))
                .all()
            }
            missing = set(student_profile_ids) - found
            if missing:
                return f"Student profiles {sorted(missing)} not found"
        return None

    def _check_session_report(self, plan: TeachingPlan | None, report_id: int | None) -> str | None:
        if report_id is None:
            return None
        report = self.db.query(TeachingSessionReport).filter(TeachingSessionReport.id == report_id).first()
        if not report or plan is None or report.teaching_plan_id != plan.id:
            return "Session report does not belong to this teaching plan"
        return None

    def _replace_assignments(
        self,
        item: ScheduleItem,
        group_ids: list[int] | None,
        subchapter_ids: list[int] | None,
        student_profile_ids: list[int] | None,
    ) -> None:
        """Replace each provided join list wholesale; None leaves it untouched."""
        if item.id is not None:
            replaced = False
            if group_ids is not None:
                item.group_assignments.clear()
                replaced = True
            if subchapter_ids is not None:
                item.subchapter_assignments.clear()
                replaced = True
            if student_profile_ids is not None:
                item.student_assignments.clear()
                replaced = True
            # old rows must be gone before re-inserting the same keys
            if replaced:
                self.db.flush()

        for gid in _unique(group_ids or []):
            item.group_assignments.append(ScheduleItemGroupAssignment(student_group_id=gid))
        for sid in _unique(subchapter_ids or []):
            item.subchapter_assignments.append(ScheduleItemSubChapterAssignment(subchapter_id=sid))
        for pid in _unique(student_profile_ids or []):
            item.student_assignments.append(ScheduleItemStudentAssignment(student_profile_id=pid))

    def create_item(self, teacher_id: str, payload: ScheduleItemCreate) -> Result[ScheduleItemResponse]:
        plan = None
        if payload.teaching_plan_id is not None:
            plan = self.db.query(TeachingPlan).filter(TeachingPlan.id == payload.teaching_plan_id).first()
            if not plan:
                return Result.not_found("Teaching plan not found")

        course = None
        if payload.course_id is not None:
            course = self.db.query(Course).filter(Course.id == payload.course_id).first()
            if not course:
                return Result.not_found("Course not found")
            if plan is not None and plan.course_id != course.id:
                return Result.invalid("Teaching plan belongs to a different course")

        if not self._can_manage(teacher_id, plan, course):
            return Result.forbidden("You cannot add items to this plan or course")

        effective_course_id = course.id if course else plan.course_id
        error = self._check_assignment_targets(
            plan, effective_course_id, payload.group_ids, payload.subchapter_ids, payload.student_profile_ids,
        ) or self._check_session_report(plan, payload.session_report_id)
        if error:
            return Result.invalid(error)

        try:
            item = ScheduleItem(
                teaching_plan_id=payload.teaching_plan_id,
                course_id=payload.course_id,
                session_report_id=payload.session_report_id,
                type=payload.type.value,
                title=payload.title,
                description=payload.description,
                start_date=payload.start_date,
                due_date=payload.due_date,
                is_mandatory=payload.is_mandatory,
                content_json=payload.content_json,
                max_score=payload.max_score,
            )
            self._replace_assignments(
                item, payload.group_ids, payload.subchapter_ids, payload.student_profile_ids,
            )
            self.db.add(item)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Creating schedule item failed: {exc}", exc_info=True)
            return Result.fail(f"Creating schedule item failed: {exc}")

        logger.info(f"Schedule item {item.id} created by {teacher_id}")
        return self._reload_item(item.id)

    def update_item(
        self, teacher_id: str, item_id: int, payload: ScheduleItemUpdate,
    ) -> Result[ScheduleItemResponse]:
        """Apply a partial update.

        Raises StaleDataError when the client's ``updated_at`` stamp is out of
        date or a concurrent writer committed first.
        """
        item = self._item_query().filter(ScheduleItem.id == item_id).first()
        if not item:
            return Result.not_found("Schedule item not found")
        plan = item.teaching_plan
        if not self._can_manage(teacher_id, plan, item.course):
            return Result.forbidden("You cannot edit this schedule item")

        if payload.updated_at is not None and as_utc(payload.updated_at) != as_utc(item.updated_at):
            raise StaleDataError(f"Schedule item {item_id} was modified by another request")

        changes = payload.model_dump(
            exclude_unset=True,
            exclude={"group_ids", "subchapter_ids", "student_profile_ids", "updated_at"},
        )
        if changes.get("title") is not None:
            changes["title"] = changes["title"].strip()
            if not changes["title"]:
                return Result.invalid("title cannot be blank")
        for required in ("title", "start_date", "type", "content_json"):
            if required in changes and changes[required] is None:
                return Result.invalid(f"{required} cannot be null")

        start = as_utc(changes.get("start_date", item.start_date))
        due = as_utc(changes.get("due_date", item.due_date))
        if due is not None and due < start:
            return Result.invalid("due_date cannot be before start_date")

        error = self._check_assignment_targets(
            plan, item.effective_course_id, payload.group_ids, payload.subchapter_ids, payload.student_profile_ids,
        )
        if error is None and "session_report_id" in changes:
            error = self._check_session_report(plan, changes["session_report_id"])
        if error:
            return Result.invalid(error)

        try:
            for name, value in changes.items():
                if name == "type":
                    value = ScheduleItemType(value).value
                setattr(item, name, value)
            self._replace_assignments(
                item, payload.group_ids, payload.subchapter_ids, payload.student_profile_ids,
            )
            # join-row edits alone do not dirty the item; force the version bump
            flag_modified(item, "title")
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent update rejected for schedule item {item_id}")
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Updating schedule item {item_id} failed: {exc}", exc_info=True)
            return Result.fail(f"Updating schedule item failed: {exc}")

        return self._reload_item(item.id)

    def delete_item(self, teacher_id: str, item_id: int) -> Result[None]:
        item = self.db.query(ScheduleItem).filter(ScheduleItem.id == item_id).first()
        if not item:
            return Result.not_found("Schedule item not found")
        if not self._can_manage(teacher_id, item.teaching_plan, item.course):
            return Result.forbidden("You cannot delete this schedule item")

        try:
            self.db.delete(item)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Deleting schedule item {item_id} failed: {exc}", exc_info=True)
            return Result.fail(f"Deleting schedule item failed: {exc}")

        logger.info(f"Schedule item {item_id} deleted by {teacher_id}")
        return Result.ok(None)
