"""Teaching session domain service - session reports and the step saves."""

import json
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.result import Result
from app.core.utils import percentage, safe_average, utc_now
from app.db.upsert import upsert_scoped
from app.domains.schedule.services import compute_item_status
from app.models.course import Chapter, SubChapter
from app.models.teaching_plan import GroupMember, StudentGroup, TeachingPlan
from app.models.teaching_session import (
    AttendanceStatus,
    SessionMode,
    TeachingSessionAttendance,
    TeachingSessionExecution,
    TeachingSessionPlan,
    TeachingSessionReport,
    TeachingSessionTopicCoverage,
    TopicType,
)
from app.models.user import StudentProfile
from app.schemas.teaching_session import (
    AttendanceResponse,
    AttendanceStepInput,
    ExecutionResponse,
    FeedbackStepInput,
    GroupSubChapterCoverage,
    SessionAssignmentResponse,
    SessionPlansInput,
    SessionStats,
    StepCompletionInput,
    SubChapterCoverageItem,
    SubChapterCoverageStepInput,
    TeachingSessionReportCreate,
    TeachingSessionReportDetail,
    TeachingSessionReportSummary,
    TopicCoverageResponse,
    TopicCoverageStepInput,
)
from app.services.coverage_service import CoverageEntry, apply_session_coverage

logger = logging.getLogger(__name__)

SUBCHAPTER_STEP_KEY = "3"


class TeachingSessionService:
    """Service for session reports and their step-by-step completion."""

    def __init__(self, db: Session):
        self.db = db

    # ── Helpers ────────────────────────────────────────────────────────

    def _owned_plan(self, teacher_id: str, plan_id: int) -> Result[TeachingPlan]:
        try:
            plan = self.db.query(TeachingPlan).filter(TeachingPlan.id == plan_id).first()
        except SQLAlchemyError as exc:
            return self._fail_db("Loading teaching plan", 0, exc)
        if not plan:
            return Result.not_found("Teaching plan not found")
        if plan.teacher_id != teacher_id:
            return Result.forbidden("You do not own this teaching plan")
        return Result.ok(plan)

    def _owned_report(self, teacher_id: str, report_id: int) -> Result[TeachingSessionReport]:
        try:
            report = (
                self.db.query(TeachingSessionReport)
                .options(selectinload(TeachingSessionReport.teaching_plan).selectinload(TeachingPlan.groups))
                .filter(TeachingSessionReport.id == report_id)
                .first()
            )
        except SQLAlchemyError as exc:
            return self._fail_db("Loading session report", report_id, exc)
        if not report:
            return Result.not_found("Session report not found")
        if report.teaching_plan.teacher_id != teacher_id:
            return Result.forbidden("You do not own this teaching plan")
        return Result.ok(report)

    @staticmethod
    def _foreign_groups(report: TeachingSessionReport, group_ids) -> set[int]:
        return set(group_ids) - {g.id for g in report.teaching_plan.groups}

    def _foreign_subtopics(self, report: TeachingSessionReport, subtopic_ids) -> set[int]:
        subtopic_ids = set(subtopic_ids)
        if not subtopic_ids:
            return set()
        found = {
            sid for (sid,) in self.db.query(SubChapter.id)
            .join(Chapter, SubChapter.chapter_id == Chapter.id)
            .filter(SubChapter.id.in_(subtopic_ids), Chapter.course_id == report.teaching_plan.course_id)
            .all()
        }
        return subtopic_ids - found

    def _fail_db(self, operation: str, report_id: int, exc: SQLAlchemyError) -> Result:
        self.db.rollback()
        logger.error(f"{operation} failed | session={report_id}: {exc}", exc_info=True)
        return Result.fail(f"{operation} failed: {exc}")

    # ── Reports ────────────────────────────────────────────────────────

    def create_report(self, teacher_id: str, payload: TeachingSessionReportCreate) -> Result[TeachingSessionReportSummary]:
        owned = self._owned_plan(teacher_id, payload.teaching_plan_id)
        if not owned.success:
            return owned

        try:
            report = TeachingSessionReport(
                teaching_plan_id=payload.teaching_plan_id,
                title=payload.title,
                session_date=payload.session_date,
                mode=payload.mode.value,
                location=payload.location,
                notes=payload.notes,
                created_by_teacher_id=teacher_id,
                current_step=0,
                is_completed=False,
            )
            self.db.add(report)
            self.db.commit()
            self.db.refresh(report)
        except SQLAlchemyError as exc:
            return self._fail_db("Creating session report", 0, exc)

        logger.info(f"Session report {report.id} created | plan={payload.teaching_plan_id}")
        return Result.ok(self._summary(report))

    @staticmethod
    def _summary(report: TeachingSessionReport) -> TeachingSessionReportSummary:
        return TeachingSessionReportSummary(
            id=report.id,
            teaching_plan_id=report.teaching_plan_id,
            title=report.title,
            session_date=report.session_date,
            mode=SessionMode(report.mode),
            current_step=report.current_step or 0,
            is_completed=bool(report.is_completed),
            attendance_count=len(report.attendance),
            present_count=sum(1 for a in report.attendance if a.status == AttendanceStatus.PRESENT.value),
            created_at=report.created_at,
        )

    def list_reports(self, teacher_id: str, plan_id: int) -> Result[list[TeachingSessionReportSummary]]:
        try:
            owned = self._owned_plan(teacher_id, plan_id)
            if not owned.success:
                return owned

            reports = (
                self.db.query(TeachingSessionReport)
                .options(selectinload(TeachingSessionReport.attendance))
                .filter(TeachingSessionReport.teaching_plan_id == plan_id)
                .order_by(TeachingSessionReport.session_date.desc(), TeachingSessionReport.id.desc())
                .all()
            )
            return Result.ok([self._summary(r) for r in reports])
        except SQLAlchemyError as exc:
            return self._fail_db("Loading session reports", 0, exc)

    def get_report_detail(
        self, teacher_id: str, report_id: int, now: datetime | None = None,
    ) -> Result[TeachingSessionReportDetail]:
        """Full read model of one session with attendance for every group member."""
        try:
            return self._report_detail(teacher_id, report_id, now or utc_now())
        except SQLAlchemyError as exc:
            return self._fail_db("Loading session report", report_id, exc)

    def _report_detail(self, teacher_id: str, report_id: int, now: datetime) -> Result[TeachingSessionReportDetail]:
        owned = self._owned_report(teacher_id, report_id)
        if not owned.success:
            return owned
        report = owned.value
        plan = report.teaching_plan

        groups = (
            self.db.query(StudentGroup)
            .options(
                selectinload(StudentGroup.members)
                .selectinload(GroupMember.student_profile)
                .selectinload(StudentProfile.user)
            )
            .filter(StudentGroup.teaching_plan_id == plan.id)
            .order_by(StudentGroup.name.asc(), StudentGroup.id.asc())
            .all()
        )
        recorded = {a.student_profile_id: a for a in report.attendance}

        attendance: list[AttendanceResponse] = []
        seen: set[int] = set()
        for group in groups:
            for member in sorted(group.members, key=lambda m: m.id):
                # a profile sitting in two groups is reported once, under the first
                if member.student_profile_id in seen:
                    continue
                seen.add(member.student_profile_id)
                row = recorded.get(member.student_profile_id)
                profile = member.student_profile
                attendance.append(AttendanceResponse(
                    id=row.id if row else None,
                    student_profile_id=member.student_profile_id,
                    student_name=profile.resolved_name if profile else "Unknown Student",
                    group_id=group.id,
                    status=AttendanceStatus(row.status) if row else AttendanceStatus.ABSENT,
                    participation_score=row.participation_score if row else None,
                    comment=row.comment if row else None,
                ))

        group_names = {g.id: g.name for g in groups}
        executions = [
            ExecutionResponse(
                id=e.id,
                student_group_id=e.student_group_id,
                group_name=group_names.get(e.student_group_id, ""),
                group_feedback=e.group_feedback,
                understanding_level=e.understanding_level,
                participation_level=e.participation_level,
                teacher_satisfaction=e.teacher_satisfaction,
                challenges=e.challenges,
                next_session_recommendations=e.next_session_recommendations,
            )
            for e in sorted(report.executions, key=lambda e: e.id)
        ]
        coverages = sorted(report.topic_coverages, key=lambda c: c.id)

        by_status = {status: 0 for status in AttendanceStatus}
        for dto in attendance:
            by_status[dto.status] += 1

        stats = SessionStats(
            attendance_count=len(attendance),
            present_count=by_status[AttendanceStatus.PRESENT],
            absent_count=by_status[AttendanceStatus.ABSENT],
            late_count=by_status[AttendanceStatus.LATE],
            excused_count=by_status[AttendanceStatus.EXCUSED],
            attendance_percentage=percentage(by_status[AttendanceStatus.PRESENT], len(attendance)),
            total_topics=len(coverages),
            covered_topics=sum(1 for c in coverages if c.was_covered),
            average_coverage_percentage=safe_average(c.coverage_percentage for c in coverages),
            average_understanding=safe_average(e.understanding_level for e in executions),
            average_participation=safe_average(e.participation_level for e in executions),
            average_satisfaction=safe_average(e.teacher_satisfaction for e in executions),
        )

        assignments = [
            SessionAssignmentResponse(
                schedule_item_id=item.id,
                title=item.title,
                type=item.type,
                start_date=item.start_date,
                due_date=item.due_date,
                status=compute_item_status(item, now).value,
            )
            for item in sorted(report.schedule_items, key=lambda i: (i.start_date, i.id))
        ]

        return Result.ok(TeachingSessionReportDetail(
            id=report.id,
            teaching_plan_id=plan.id,
            teaching_plan_title=plan.title,
            title=report.title,
            session_date=report.session_date,
            mode=SessionMode(report.mode),
            location=report.location,
            notes=report.notes,
            created_by_teacher_id=report.created_by_teacher_id,
            current_step=report.current_step or 0,
            is_completed=bool(report.is_completed),
            stats=stats,
            attendance=attendance,
            executions=executions,
            topic_coverages=[
                TopicCoverageResponse(
                    id=c.id,
                    student_group_id=c.student_group_id,
                    topic_type=c.topic_type,
                    topic_id=c.topic_id,
                    topic_title=c.topic_title,
                    was_planned=c.was_planned,
                    was_covered=c.was_covered,
                    coverage_percentage=c.coverage_percentage,
                    coverage_status=c.coverage_status,
                )
                for c in coverages
            ],
            assignments=assignments,
            created_at=report.created_at,
            updated_at=report.updated_at,
        ))

    # ── Step saves ─────────────────────────────────────────────────────

    def save_group_plans(self, teacher_id: str, report_id: int, payload: SessionPlansInput) -> Result[None]:
        owned = self._owned_report(teacher_id, report_id)
        if not owned.success:
            return owned
        report = owned.value

        foreign = self._foreign_groups(report, (p.group_id for p in payload.group_plans))
        if foreign:
            return Result.invalid(f"Groups {sorted(foreign)} do not belong to this teaching plan")

        incoming = {
            (p.group_id,): {
                "teaching_session_report_id": report.id,
                "student_group_id": p.group_id,
                "planned_objectives": p.planned_objectives,
                "planned_subtopics_json": json.dumps(p.planned_subtopic_ids),
                "planned_lessons_json": json.dumps(p.planned_lesson_ids),
                "additional_topics": p.additional_topics,
            }
            for p in payload.group_plans
        }
        try:
            counts = upsert_scoped(
                self.db,
                TeachingSessionPlan,
                TeachingSessionPlan.teaching_session_report_id == report.id,
                TeachingSessionPlan.student_group_id,
                (p.group_id for p in payload.group_plans),
                incoming,
                key_columns=("student_group_id",),
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            return self._fail_db("Saving session plans", report_id, exc)

        logger.info(f"Saved session plans | session={report_id} groups={len(incoming)} inserted={counts.inserted}")
        return Result.ok(None)

    def save_attendance(self, teacher_id: str, report_id: int, payload: AttendanceStepInput) -> Result[None]:
        """Step 1. Replaces attendance only for the students named in the payload."""
        owned = self._owned_report(teacher_id, report_id)
        if not owned.success:
            return owned
        report = owned.value

        foreign = self._foreign_groups(report, (g.group_id for g in payload.group_attendances))
        if foreign:
            return Result.invalid(f"Groups {sorted(foreign)} do not belong to this teaching plan")

        incoming = {}
        for group in payload.group_attendances:
            for student in group.students:
                incoming[(student.student_profile_id,)] = {
                    "teaching_session_report_id": report.id,
                    "student_profile_id": student.student_profile_id,
                    "status": student.status.value,
                    "participation_score": student.participation_score,
                    "comment": student.comment,
                }

        try:
            counts = upsert_scoped(
                self.db,
                TeachingSessionAttendance,
                TeachingSessionAttendance.teaching_session_report_id == report.id,
                TeachingSessionAttendance.student_profile_id,
                (key[0] for key in incoming),
                incoming,
                key_columns=("student_profile_id",),
            )
            report.current_step = 1
            self.db.commit()
        except SQLAlchemyError as exc:
            return self._fail_db("Saving attendance", report_id, exc)

        logger.info(
            f"Saved attendance step | session={report_id} students={len(incoming)} "
            f"inserted={counts.inserted} updated={counts.updated} deleted={counts.deleted}"
        )
        return Result.ok(None)

    def save_feedback(self, teacher_id: str, report_id: int, payload: FeedbackStepInput) -> Result[None]:
        """Step 2. One execution row per group."""
        owned = self._owned_report(teacher_id, report_id)
        if not owned.success:
            return owned
        report = owned.value

        group_ids = [f.group_id for f in payload.group_feedbacks]
        foreign = self._foreign_groups(report, group_ids)
        if foreign:
            return Result.invalid(f"Groups {sorted(foreign)} do not belong to this teaching plan")

        now = utc_now()
        incoming = {
            (f.group_id,): {
                "teaching_session_report_id": report.id,
                "student_group_id": f.group_id,
                "group_feedback": f.group_feedback,
                "understanding_level": f.understanding_level,
                "participation_level": f.participation_level,
                "teacher_satisfaction": f.teacher_satisfaction,
                "challenges": f.challenges,
                "next_session_recommendations": f.next_session_recommendations,
                "completed_at": now,
            }
            for f in payload.group_feedbacks
        }
        try:
            counts = upsert_scoped(
                self.db,
                TeachingSessionExecution,
                TeachingSessionExecution.teaching_session_report_id == report.id,
                TeachingSessionExecution.student_group_id,
                group_ids,
                incoming,
                key_columns=("student_group_id",),
            )
            report.current_step = 2
            self.db.commit()
        except SQLAlchemyError as exc:
            return self._fail_db("Saving feedback", report_id, exc)

        logger.info(f"Saved feedback step | session={report_id} groups={len(incoming)} updated={counts.updated}")
        return Result.ok(None)

    def save_topic_coverage(self, teacher_id: str, report_id: int, payload: TopicCoverageStepInput) -> Result[None]:
        """Step 3. Subtopic and lesson coverage for the groups in the payload."""
        for group in payload.group_topic_coverages:
            for entry in group.subtopic_coverages + group.lesson_coverages:
                if entry.topic_id is None:
                    return Result.invalid("Subtopic and lesson coverage entries need a topic_id")

        owned = self._owned_report(teacher_id, report_id)
        if not owned.success:
            return owned
        report = owned.value

        group_ids = [g.group_id for g in payload.group_topic_coverages]
        foreign = self._foreign_groups(report, group_ids)
        if foreign:
            return Result.invalid(f"Groups {sorted(foreign)} do not belong to this teaching plan")

        incoming = {}
        progress_entries = []
        for group in payload.group_topic_coverages:
            typed = [(TopicType.SUBTOPIC, e) for e in group.subtopic_coverages]
            typed += [(TopicType.LESSON, e) for e in group.lesson_coverages]
            for topic_type, entry in typed:
                incoming[(group.group_id, topic_type.value, entry.topic_id)] = {
                    "teaching_session_report_id": report.id,
                    "student_group_id": group.group_id,
                    "topic_type": topic_type.value,
                    "topic_id": entry.topic_id,
                    "topic_title": entry.topic_title,
                    "was_planned": entry.was_planned,
                    "was_covered": entry.was_covered,
                    "coverage_percentage": entry.coverage_percentage,
                    "coverage_status": int(entry.coverage_status),
                    "teacher_notes": entry.teacher_notes,
                    "challenges": entry.challenges,
                }
                if topic_type == TopicType.SUBTOPIC:
                    progress_entries.append(CoverageEntry(
                        entry.topic_id, group.group_id, entry.coverage_percentage, entry.was_covered,
                    ))

        try:
            foreign = self._foreign_subtopics(
                report, (e.topic_id for g in payload.group_topic_coverages for e in g.subtopic_coverages),
            )
            if foreign:
                return Result.invalid(f"Subchapters {sorted(foreign)} do not belong to this course")

            counts = upsert_scoped(
                self.db,
                TeachingSessionTopicCoverage,
                TeachingSessionTopicCoverage.teaching_session_report_id == report.id,
                TeachingSessionTopicCoverage.student_group_id,
                group_ids,
                incoming,
                key_columns=("student_group_id", "topic_type", "topic_id"),
            )
            report.current_step = 3
            report.is_completed = True
            self.db.flush()
            apply_session_coverage(self.db, report.teaching_plan_id, progress_entries)
            self.db.commit()
        except SQLAlchemyError as exc:
            return self._fail_db("Saving topic coverage", report_id, exc)

        logger.info(
            f"Saved topic coverage step | session={report_id} topics={len(incoming)} "
            f"inserted={counts.inserted} deleted={counts.deleted}"
        )
        return Result.ok(None)

    def save_subchapter_coverage(
        self, teacher_id: str, report_id: int, payload: SubChapterCoverageStepInput,
    ) -> Result[None]:
        """Step 3 (curriculum view). Only subchapters with entered data are stored."""
        owned = self._owned_report(teacher_id, report_id)
        if not owned.success:
            return owned
        report = owned.value

        group_ids = [g.group_id for g in payload.group_coverages]
        foreign = self._foreign_groups(report, group_ids)
        if foreign:
            return Result.invalid(f"Groups {sorted(foreign)} do not belong to this teaching plan")

        incoming = {}
        progress_entries = []
        for group in payload.group_coverages:
            for entry in group.subchapter_coverages:
                if not entry.has_data:
                    continue
                incoming[(group.group_id, TopicType.SUBTOPIC.value, entry.subchapter_id)] = {
                    "teaching_session_report_id": report.id,
                    "student_group_id": group.group_id,
                    "topic_type": TopicType.SUBTOPIC.value,
                    "topic_id": entry.subchapter_id,
                    "topic_title": entry.subchapter_title or None,
                    "was_planned": entry.was_planned,
                    "was_covered": entry.was_covered,
                    "coverage_percentage": entry.coverage_percentage,
                    "coverage_status": int(entry.coverage_status),
                    "teacher_notes": entry.teacher_notes,
                    "challenges": entry.challenges,
                }
                progress_entries.append(CoverageEntry(
                    entry.subchapter_id, group.group_id, entry.coverage_percentage, entry.was_covered,
                ))

        try:
            foreign = self._foreign_subtopics(
                report, (s.subchapter_id for g in payload.group_coverages for s in g.subchapter_coverages),
            )
            if foreign:
                return Result.invalid(f"Subchapters {sorted(foreign)} do not belong to this course")

            counts = upsert_scoped(
                self.db,
                TeachingSessionTopicCoverage,
                TeachingSessionTopicCoverage.teaching_session_report_id == report.id,
                TeachingSessionTopicCoverage.student_group_id,
                group_ids,
                incoming,
                key_columns=("student_group_id", "topic_type", "topic_id"),
                extra_filters=(TeachingSessionTopicCoverage.topic_type == TopicType.SUBTOPIC.value,),
            )
            completions = json.loads(report.step_completions_json or "{}")
            completions[SUBCHAPTER_STEP_KEY] = payload.model_dump(mode="json")
            report.step_completions_json = json.dumps(completions)
            report.current_step = 3
            report.is_completed = True
            self.db.flush()
            apply_session_coverage(self.db, report.teaching_plan_id, progress_entries)
            self.db.commit()
        except SQLAlchemyError as exc:
            return self._fail_db("Saving subchapter coverage", report_id, exc)

        logger.info(
            f"Saved subchapter coverage step | session={report_id} entries={len(incoming)} "
            f"inserted={counts.inserted} updated={counts.updated} deleted={counts.deleted}"
        )
        return Result.ok(None)

    def save_step_completion(self, teacher_id: str, report_id: int, payload: StepCompletionInput) -> Result[dict]:
        owned = self._owned_report(teacher_id, report_id)
        if not owned.success:
            return owned
        report = owned.value

        step = payload.step_number
        try:
            report.current_step = step + 1 if payload.is_completed else step
            report.is_completed = payload.is_completed and step >= settings.session_step_count
            self.db.commit()
        except SQLAlchemyError as exc:
            return self._fail_db("Saving step completion", report_id, exc)

        return Result.ok({"current_step": report.current_step, "is_completed": report.is_completed})

    def get_subchapter_coverage_step_data(self, teacher_id: str, report_id: int) -> Result[dict]:
        """Editing grid for the curriculum coverage step, prefilled from saved rows."""
        try:
            return self._subchapter_coverage_grid(teacher_id, report_id)
        except SQLAlchemyError as exc:
            return self._fail_db("Loading subchapter coverage", report_id, exc)

    def _subchapter_coverage_grid(self, teacher_id: str, report_id: int) -> Result[dict]:
        owned = self._owned_report(teacher_id, report_id)
        if not owned.success:
            return owned
        report = owned.value

        rows = (
            self.db.query(SubChapter, Chapter)
            .join(Chapter, SubChapter.chapter_id == Chapter.id)
            .filter(
                Chapter.course_id == report.teaching_plan.course_id,
                Chapter.is_active.is_(True),
                SubChapter.is_active.is_(True),
            )
            .order_by(Chapter.order.asc(), Chapter.id.asc(), SubChapter.order.asc(), SubChapter.id.asc())
            .all()
        )
        saved = {
            (c.student_group_id, c.topic_id): c
            for c in report.topic_coverages
            if c.topic_type == TopicType.SUBTOPIC.value
        }
        stored_payload = json.loads(report.step_completions_json or "{}").get(SUBCHAPTER_STEP_KEY, {})
        stored_groups = {g["group_id"]: g for g in stored_payload.get("group_coverages", [])}

        group_coverages = []
        for group in report.teaching_plan.groups:
            items = []
            for subchapter, chapter in rows:
                existing = saved.get((group.id, subchapter.id))
                prefill = {}
                if existing is not None:
                    prefill = {
                        "was_planned": existing.was_planned,
                        "was_covered": existing.was_covered,
                        "coverage_percentage": existing.coverage_percentage,
                        "coverage_status": existing.coverage_status,
                        "teacher_notes": existing.teacher_notes,
                        "challenges": existing.challenges,
                    }
                items.append(SubChapterCoverageItem(
                    subchapter_id=subchapter.id,
                    subchapter_title=subchapter.title,
                    chapter_title=chapter.title,
                    **prefill,
                ))

            stored = stored_groups.get(group.id, {})
            group_coverages.append(GroupSubChapterCoverage(
                group_id=group.id,
                group_name=group.name,
                subchapter_coverages=items,
                general_notes=stored.get("general_notes"),
                challenges=stored.get("challenges"),
                recommendations=stored.get("recommendations"),
            ))

        return Result.ok({"session_id": report.id, "group_coverages": group_coverages})
