from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.api.deps import require_role
from app.core.rate_limit import limit_step_save
from app.core.result import to_response
from app.db.database import get_db
from app.domains.schedule.services import ScheduleItemService
from app.domains.teaching_sessions.services import TeachingSessionService
from app.models.user import User, UserRole
from app.schemas.common import Envelope
from app.schemas.schedule_item import ScheduleItemResponse
from app.schemas.teaching_session import (
    AttendanceStepInput,
    FeedbackStepInput,
    SessionPlansInput,
    StepCompletionInput,
    SubChapterCoverageStepInput,
    TeachingSessionReportCreate,
    TeachingSessionReportDetail,
    TeachingSessionReportSummary,
    TopicCoverageStepInput,
)

router = APIRouter(tags=["Teaching Sessions"])

teacher_only = require_role(UserRole.TEACHER)


# ── Reports ───────────────────────────────────────────────────────


@router.post(
    "/teaching-sessions",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[TeachingSessionReportSummary],
)
def create_report(
    payload: TeachingSessionReportCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    return to_response(TeachingSessionService(db).create_report(current_user.id, payload), "Session created")


@router.get("/teaching-plans/{plan_id}/sessions", response_model=Envelope[list[TeachingSessionReportSummary]])
def list_reports(
    plan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    return to_response(TeachingSessionService(db).list_reports(current_user.id, plan_id))


@router.get("/teaching-sessions/{report_id}", response_model=Envelope[TeachingSessionReportDetail])
def get_report(
    report_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    return to_response(TeachingSessionService(db).get_report_detail(current_user.id, report_id))


@router.get("/teaching-sessions/{report_id}/schedule-items", response_model=Envelope[list[ScheduleItemResponse]])
def list_report_items(
    report_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    return to_response(ScheduleItemService(db).get_items_by_session_report(current_user.id, report_id))


@router.get("/teaching-sessions/{report_id}/subchapter-coverage", response_model=Envelope[dict])
def get_subchapter_coverage(
    report_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    return to_response(TeachingSessionService(db).get_subchapter_coverage_step_data(current_user.id, report_id))


# ── Step saves ────────────────────────────────────────────────────


@router.put("/teaching-sessions/{report_id}/plans", response_model=Envelope[None])
@limit_step_save
def save_plans(
    request: Request,
    report_id: int,
    payload: SessionPlansInput,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingSessionService(db).save_group_plans(current_user.id, report_id, payload)
    return to_response(result, "Session plans saved")


@router.put("/teaching-sessions/{report_id}/attendance", response_model=Envelope[None])
@limit_step_save
def save_attendance(
    request: Request,
    report_id: int,
    payload: AttendanceStepInput,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingSessionService(db).save_attendance(current_user.id, report_id, payload)
    return to_response(result, "Attendance saved")


@router.put("/teaching-sessions/{report_id}/feedback", response_model=Envelope[None])
@limit_step_save
def save_feedback(
    request: Request,
    report_id: int,
    payload: FeedbackStepInput,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingSessionService(db).save_feedback(current_user.id, report_id, payload)
    return to_response(result, "Feedback saved")


@router.put("/teaching-sessions/{report_id}/topic-coverage", response_model=Envelope[None])
@limit_step_save
def save_topic_coverage(
    request: Request,
    report_id: int,
    payload: TopicCoverageStepInput,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingSessionService(db).save_topic_coverage(current_user.id, report_id, payload)
    return to_response(result, "Topic coverage saved")


@router.put("/teaching-sessions/{report_id}/subchapter-coverage", response_model=Envelope[None])
@limit_step_save
def save_subchapter_coverage(
    request: Request,
    report_id: int,
    payload: SubChapterCoverageStepInput,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingSessionService(db).save_subchapter_coverage(current_user.id, report_id, payload)
    return to_response(result, "Subchapter coverage saved")


@router.put("/teaching-sessions/{report_id}/step", response_model=Envelope[dict])
@limit_step_save
def save_step_completion(
    request: Request,
    report_id: int,
    payload: StepCompletionInput,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingSessionService(db).save_step_completion(current_user.id, report_id, payload)
    return to_response(result, "Step saved")
