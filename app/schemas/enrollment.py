from pydantic import BaseModel, Field
from datetime import datetime

from app.models.course import CourseAccessLevel


class EnrollmentRequest(BaseModel):
    course_id: int = Field(gt=0)
    student_profile_id: int | None = Field(default=None, gt=0)


class EnrollmentResponse(BaseModel):
    id: int
    course_id: int
    course_title: str | None = None
    student_id: str
    student_profile_id: int | None
    is_active: bool
    enrolled_at: datetime
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None
    progress_percentage: int


class CourseAccessGrant(BaseModel):
    course_id: int = Field(gt=0)
    student_id: str = Field(min_length=1)
    access_level: CourseAccessLevel = CourseAccessLevel.VIEW_ONLY
    expires_at: datetime | None = None
    notes: str | None = None


class CourseAccessRevoke(BaseModel):
    course_id: int = Field(gt=0)
    student_id: str = Field(min_length=1)


class CourseAccessResponse(BaseModel):
    id: int
    course_id: int
    student_id: str
    access_level: CourseAccessLevel
    is_active: bool
    granted_at: datetime
    expires_at: datetime | None = None
    granted_by: str | None = None
    notes: str | None = None

    class Config:
        from_attributes = True
