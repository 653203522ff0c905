from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_role
from app.core.result import to_response
from app.db.database import get_db
from app.domains.enrollment.services import EnrollmentService
from app.models.user import User, UserRole
from app.schemas.common import Envelope
from app.schemas.enrollment import (
    CourseAccessGrant,
    CourseAccessResponse,
    CourseAccessRevoke,
    EnrollmentRequest,
    EnrollmentResponse,
)

router = APIRouter(tags=["Enrollments"])


# ── Enrollments (student self-service) ────────────────────────────


@router.post("/enrollments", status_code=status.HTTP_201_CREATED, response_model=Envelope[EnrollmentResponse])
def enroll(
    payload: EnrollmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.STUDENT)),
):
    result = EnrollmentService(db).enroll(payload.course_id, current_user.id, payload.student_profile_id)
    return to_response(result, "Enrolled")


@router.delete("/enrollments", response_model=Envelope[None])
def unenroll(
    payload: EnrollmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.STUDENT)),
):
    result = EnrollmentService(db).unenroll(payload.course_id, current_user.id, payload.student_profile_id)
    return to_response(result, "Unenrolled")


@router.get("/enrollments/me", response_model=Envelope[list[EnrollmentResponse]])
def my_enrollments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_response(EnrollmentService(db).list_student_enrollments(current_user.id))


# ── Course access grants (teacher/admin) ──────────────────────────


@router.post("/course-access", response_model=Envelope[CourseAccessResponse])
def grant_access(
    payload: CourseAccessGrant,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER, UserRole.ADMIN)),
):
    result = EnrollmentService(db).grant_access(
        payload.course_id,
        payload.student_id,
        access_level=payload.access_level,
        expires_at=payload.expires_at,
        granted_by=current_user.id,
        notes=payload.notes,
    )
    return to_response(result, "Access granted")


@router.delete("/course-access", response_model=Envelope[None])
def revoke_access(
    payload: CourseAccessRevoke,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER, UserRole.ADMIN)),
):
    result = EnrollmentService(db).revoke_access(payload.course_id, payload.student_id)
    return to_response(result, "Access revoked")
