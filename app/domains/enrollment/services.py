"""Enrollment domain service - course enrollments and enrollment-free access grants."""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.result import ErrorType, Result
from app.core.utils import as_utc, utc_now
from app.models.course import Course, CourseAccess, CourseAccessLevel, CourseEnrollment
from app.models.user import StudentProfile, User
from app.schemas.enrollment import CourseAccessResponse, EnrollmentResponse

logger = logging.getLogger(__name__)


def _to_enrollment_response(enrollment: CourseEnrollment) -> EnrollmentResponse:
    return EnrollmentResponse(
        id=enrollment.id,
        course_id=enrollment.course_id,
        course_title=enrollment.course.title if enrollment.course else None,
        student_id=enrollment.student_id,
        student_profile_id=enrollment.student_profile_id,
        is_active=enrollment.is_active,
        enrolled_at=enrollment.enrolled_at,
        completed_at=enrollment.completed_at,
        last_accessed_at=enrollment.last_accessed_at,
        progress_percentage=enrollment.progress_percentage or 0,
    )


class EnrollmentService:
    """Service for enrollment and course access rules."""

    def __init__(self, db: Session):
        self.db = db

    def _find_enrollment(self, course_id: int, student_id: str, student_profile_id: int | None):
        query = self.db.query(CourseEnrollment).filter(
            CourseEnrollment.course_id == course_id,
            CourseEnrollment.student_id == student_id,
        )
        if student_profile_id is None:
            query = query.filter(CourseEnrollment.student_profile_id.is_(None))
        else:
            query = query.filter(CourseEnrollment.student_profile_id == student_profile_id)
        return query.first()

    def enroll(
        self, course_id: int, student_id: str, student_profile_id: int | None = None,
    ) -> Result[EnrollmentResponse]:
        """Enroll, or reactivate the inactive row for the same tuple."""
        course = self.db.query(Course).filter(Course.id == course_id).first()
        if not course or not course.is_active:
            return Result.not_found("Course not found")

        if student_profile_id is not None:
            profile = self.db.query(StudentProfile).filter(StudentProfile.id == student_profile_id).first()
            if not profile or profile.is_archived:
                return Result.not_found("Student profile not found")
            if profile.user_id != student_id:
                return Result.forbidden("Student profile belongs to another account")

        enrollment = self._find_enrollment(course_id, student_id, student_profile_id)
        if enrollment and enrollment.is_active:
            return Result.fail("Already enrolled in this course", ErrorType.CONFLICT)

        try:
            if enrollment:
                enrollment.is_active = True
                enrollment.enrolled_at = utc_now()
                enrollment.completed_at = None
            else:
                enrollment = CourseEnrollment(
                    course_id=course_id,
                    student_id=student_id,
                    student_profile_id=student_profile_id,
                    is_active=True,
                )
                self.db.add(enrollment)
            self.db.commit()
            self.db.refresh(enrollment)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Enrollment failed | course={course_id} student={student_id}: {exc}", exc_info=True)
            return Result.fail(f"Enrollment failed: {exc}")

        logger.info(f"Enrolled | course={course_id} student={student_id} profile={student_profile_id}")
        return Result.ok(_to_enrollment_response(enrollment))

    def unenroll(self, course_id: int, student_id: str, student_profile_id: int | None = None) -> Result[None]:
        enrollment = self._find_enrollment(course_id, student_id, student_profile_id)
        if not enrollment or not enrollment.is_active:
            return Result.not_found("Enrollment not found")

        try:
            enrollment.is_active = False
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Unenroll failed | course={course_id} student={student_id}: {exc}", exc_info=True)
            return Result.fail(f"Unenroll failed: {exc}")

        logger.info(f"Unenrolled | course={course_id} student={student_id} profile={student_profile_id}")
        return Result.ok(None)

    def list_student_enrollments(self, student_id: str) -> Result[list[EnrollmentResponse]]:
        try:
            enrollments = (
                self.db.query(CourseEnrollment)
                .options(selectinload(CourseEnrollment.course))
                .filter(CourseEnrollment.student_id == student_id, CourseEnrollment.is_active.is_(True))
                .order_by(CourseEnrollment.enrolled_at.desc(), CourseEnrollment.id.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error(f"Enrollment lookup failed | student={student_id}: {exc}", exc_info=True)
            return Result.fail(f"Loading enrollments failed: {exc}")
        return Result.ok([_to_enrollment_response(e) for e in enrollments])

    def grant_access(
        self,
        course_id: int,
        student_id: str,
        access_level: CourseAccessLevel = CourseAccessLevel.VIEW_ONLY,
        expires_at: datetime | None = None,
        granted_by: str | None = None,
        notes: str | None = None,
    ) -> Result[CourseAccessResponse]:
        """Create or refresh a course access grant for a student account."""
        if expires_at is not None and as_utc(expires_at) <= utc_now():
            return Result.invalid("expires_at must be in the future")

        course = self.db.query(Course).filter(Course.id == course_id).first()
        if not course:
            return Result.not_found("Course not found")
        student = self.db.query(User).filter(User.id == student_id).first()
        if not student:
            return Result.not_found("Student not found")

        access = (
            self.db.query(CourseAccess)
            .filter(CourseAccess.course_id == course_id, CourseAccess.student_id == student_id)
            .first()
        )
        try:
            if access is None:
                access = CourseAccess(course_id=course_id, student_id=student_id)
                self.db.add(access)
            access.access_level = int(access_level)
            access.is_active = True
            access.granted_at = utc_now()
            access.expires_at = expires_at
            access.granted_by = granted_by
            access.notes = notes
            self.db.commit()
            self.db.refresh(access)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Granting access failed | course={course_id} student={student_id}: {exc}", exc_info=True)
            return Result.fail(f"Granting access failed: {exc}")

        logger.info(f"Access granted | course={course_id} student={student_id} level={int(access_level)}")
        return Result.ok(CourseAccessResponse.model_validate(access))

    def revoke_access(self, course_id: int, student_id: str) -> Result[None]:
        access = (
            self.db.query(CourseAccess)
            .filter(
                CourseAccess.course_id == course_id,
                CourseAccess.student_id == student_id,
                CourseAccess.is_active.is_(True),
            )
            .first()
        )
        if not access:
            return Result.not_found("No active access grant for this course")

        try:
            access.is_active = False
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Revoking access failed | course={course_id} student={student_id}: {exc}", exc_info=True)
            return Result.fail(f"Revoking access failed: {exc}")

        logger.info(f"Access revoked | course={course_id} student={student_id}")
        return Result.ok(None)
