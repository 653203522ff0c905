import json
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.schedule_item import ScheduleItemStatus, ScheduleItemType


def _check_content_json(value: str | None) -> str | None:
    if value is None:
        return value
    if not value.strip():
        raise ValueError("content_json cannot be empty")
    try:
        json.loads(value)
    except ValueError:
        raise ValueError("content_json must be valid JSON")
    return value


class ScheduleItemCreate(BaseModel):
    teaching_plan_id: int | None = Field(default=None, gt=0)
    course_id: int | None = Field(default=None, gt=0)
    session_report_id: int | None = Field(default=None, gt=0)
    type: ScheduleItemType = ScheduleItemType.REMINDER
    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    start_date: datetime
    due_date: datetime | None = None
    is_mandatory: bool = False
    content_json: str = "{}"
    max_score: float | None = Field(default=None, ge=0)

    # None leaves the existing join rows alone; a list replaces them wholesale
    group_ids: list[int] | None = None
    subchapter_ids: list[int] | None = None
    student_profile_ids: list[int] | None = None

    @field_validator("content_json")
    @classmethod
    def content_is_json(cls, value: str | None) -> str | None:
        return _check_content_json(value)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title cannot be blank")
        return value.strip()

    @model_validator(mode="after")
    def check_scope_and_dates(self):
        if self.teaching_plan_id is None and self.course_id is None:
            raise ValueError("Either teaching_plan_id or course_id is required")
        if self.due_date is not None and self.due_date < self.start_date:
            raise ValueError("due_date cannot be before start_date")
        return self


class ScheduleItemUpdate(BaseModel):
    type: ScheduleItemType | None = None
    title: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = None
    start_date: datetime | None = None
    due_date: datetime | None = None
    is_mandatory: bool | None = None
    content_json: str | None = None
    max_score: float | None = Field(default=None, ge=0)
    session_report_id: int | None = Field(default=None, gt=0)

    group_ids: list[int] | None = None
    subchapter_ids: list[int] | None = None
    student_profile_ids: list[int] | None = None

    # Concurrency stamp: the updated_at value the client last read
    updated_at: datetime | None = None

    @field_validator("content_json")
    @classmethod
    def content_is_json(cls, value: str | None) -> str | None:
        return _check_content_json(value)


class StudentAssignmentResponse(BaseModel):
    id: int
    student_profile_id: int
    student_user_id: str | None = None
    student_display_name: str = ""
    created_at: datetime | None = None


class ScheduleItemResponse(BaseModel):
    id: int
    teaching_plan_id: int | None
    course_id: int | None
    session_report_id: int | None
    type: ScheduleItemType
    type_name: str
    title: str
    description: str | None
    start_date: datetime
    due_date: datetime | None
    is_mandatory: bool
    max_score: float | None
    content_json: str
    current_step: int
    status: ScheduleItemStatus
    group_ids: list[int] = []
    subchapter_ids: list[int] = []
    student_profile_ids: list[int] = []
    student_assignments: list[StudentAssignmentResponse] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None
