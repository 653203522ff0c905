"""Coverage and progress aggregation.

TeachingPlanProgress is a denormalized rollup of per-session topic coverage,
one row per (plan, subchapter, group). It is refreshed after every coverage
save and read back here as chapter/subchapter statistics.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, NamedTuple

from sqlalchemy import func as sa_func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.result import Result
from app.core.utils import safe_average, utc_now
from app.models.course import Chapter, SubChapter
from app.models.progress import ProgressStatus, TeachingPlanProgress
from app.models.teaching_plan import TeachingPlan
from app.models.teaching_session import TeachingSessionReport, TeachingSessionTopicCoverage, TopicType

logger = logging.getLogger(__name__)


class CoverageEntry(NamedTuple):
    subtopic_id: int
    student_group_id: int
    coverage_percentage: int
    was_covered: bool


# ---------------------------------------------------------------------------
# Progress rollup
# ---------------------------------------------------------------------------

def _covered_session_count(db: Session, teaching_plan_id: int, subtopic_id: int, group_id: int) -> int:
    """Distinct reports of the plan that covered this subtopic for this group."""
    return (
        db.query(sa_func.count(sa_func.distinct(TeachingSessionTopicCoverage.teaching_session_report_id)))
        .join(
            TeachingSessionReport,
            TeachingSessionTopicCoverage.teaching_session_report_id == TeachingSessionReport.id,
        )
        .filter(
            TeachingSessionReport.teaching_plan_id == teaching_plan_id,
            TeachingSessionTopicCoverage.topic_type == TopicType.SUBTOPIC.value,
            TeachingSessionTopicCoverage.topic_id == subtopic_id,
            TeachingSessionTopicCoverage.student_group_id == group_id,
            TeachingSessionTopicCoverage.was_covered.is_(True),
        )
        .scalar()
    ) or 0


def apply_session_coverage(
    db: Session,
    teaching_plan_id: int,
    entries: Iterable[CoverageEntry],
    now: datetime | None = None,
) -> list[TeachingPlanProgress]:
    """Fold one session's coverage entries into the plan progress rows.

    Entries are grouped per (subtopic, group). The stored percentage only
    rises, and a Completed row is never downgraded. Does not commit; the
    caller owns the transaction and must have flushed the coverage rows.
    """
    now = now or utc_now()
    grouped: dict[tuple[int, int], list[CoverageEntry]] = defaultdict(list)
    for entry in entries:
        grouped[(entry.subtopic_id, entry.student_group_id)].append(entry)
    if not grouped:
        return []

    db.flush()
    updated = []
    for (subtopic_id, group_id), pair_entries in grouped.items():
        new_average = round(safe_average(e.coverage_percentage for e in pair_entries))
        was_covered = any(e.was_covered for e in pair_entries)

        progress = (
            db.query(TeachingPlanProgress)
            .filter(
                TeachingPlanProgress.teaching_plan_id == teaching_plan_id,
                TeachingPlanProgress.subtopic_id == subtopic_id,
                TeachingPlanProgress.student_group_id == group_id,
            )
            .first()
        )
        if progress is None:
            progress = TeachingPlanProgress(
                teaching_plan_id=teaching_plan_id,
                subtopic_id=subtopic_id,
                student_group_id=group_id,
                overall_status=ProgressStatus.NOT_STARTED.value,
                overall_progress_percentage=0,
                sessions_count=0,
            )
            db.add(progress)

        progress.overall_progress_percentage = max(progress.overall_progress_percentage or 0, new_average)

        if was_covered:
            if progress.overall_status == ProgressStatus.NOT_STARTED:
                progress.overall_status = ProgressStatus.IN_PROGRESS.value
                progress.first_taught_date = now
            progress.last_taught_date = now
        if progress.overall_progress_percentage >= 100:
            progress.overall_status = ProgressStatus.COMPLETED.value

        progress.sessions_count = _covered_session_count(db, teaching_plan_id, subtopic_id, group_id)
        progress.updated_at = now
        updated.append(progress)

    logger.debug(f"Progress rollup | plan={teaching_plan_id} pairs={len(updated)}")
    return updated


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def _subchapter_stats(subchapter: SubChapter, rows: list[TeachingPlanProgress]) -> dict:
    return {
        "subchapter_id": subchapter.id,
        "title": subchapter.title,
        "order": subchapter.order,
        "coverage_count": len(rows),
        "completed_count": sum(1 for r in rows if r.overall_status == ProgressStatus.COMPLETED),
        "average_progress_percentage": safe_average(r.overall_progress_percentage for r in rows),
    }


def _chapter_stats(chapters: list[Chapter], rows: list[TeachingPlanProgress]) -> list[dict]:
    rows_by_subtopic: dict[int, list[TeachingPlanProgress]] = defaultdict(list)
    for row in rows:
        rows_by_subtopic[row.subtopic_id].append(row)

    stats = []
    for chapter in chapters:
        subchapters = [s for s in chapter.subchapters if s.is_active]
        chapter_rows = [r for s in subchapters for r in rows_by_subtopic.get(s.id, [])]
        stats.append({
            "chapter_id": chapter.id,
            "title": chapter.title,
            "order": chapter.order,
            "total_coverage_count": len(chapter_rows),
            "average_progress_percentage": safe_average(r.overall_progress_percentage for r in chapter_rows),
            "subchapters": [
                _subchapter_stats(s, rows_by_subtopic.get(s.id, [])) for s in subchapters
            ],
        })
    return stats


def _active_chapters(db: Session, course_id: int) -> list[Chapter]:
    return (
        db.query(Chapter)
        .options(selectinload(Chapter.subchapters))
        .filter(Chapter.course_id == course_id, Chapter.is_active.is_(True))
        .order_by(Chapter.order.asc(), Chapter.id.asc())
        .all()
    )


def _course_progress_rows(db: Session, chapters: list[Chapter]) -> list[TeachingPlanProgress]:
    """Every progress row of the course, across plans."""
    subtopic_ids = [s.id for c in chapters for s in c.subchapters]
    if not subtopic_ids:
        return []
    return db.query(TeachingPlanProgress).filter(TeachingPlanProgress.subtopic_id.in_(subtopic_ids)).all()


def get_plan_coverage_stats(db: Session, teaching_plan_id: int, teacher_id: str | None = None) -> Result[dict]:
    """Course-wide chapter stats plus the same breakdown per plan group.

    When ``teacher_id`` is given the plan must belong to that teacher.
    """
    try:
        plan = db.query(TeachingPlan).filter(TeachingPlan.id == teaching_plan_id).first()
        if not plan:
            return Result.not_found("Teaching plan not found")
        if teacher_id is not None and plan.teacher_id != teacher_id:
            return Result.forbidden("You do not own this teaching plan")

        chapters = _active_chapters(db, plan.course_id)
        rows = _course_progress_rows(db, chapters)

        groups = []
        for group in plan.groups:
            group_rows = [r for r in rows if r.student_group_id == group.id]
            groups.append({
                "group_id": group.id,
                "group_name": group.name,
                "chapter_stats": _chapter_stats(chapters, group_rows),
            })
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Coverage stats failed for plan {teaching_plan_id}: {exc}", exc_info=True)
        return Result.fail(f"Loading coverage stats failed: {exc}")

    return Result.ok({
        "teaching_plan_id": plan.id,
        "course_id": plan.course_id,
        "course": _chapter_stats(chapters, rows),
        "groups": groups,
    })
