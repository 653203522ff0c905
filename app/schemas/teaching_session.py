from datetime import datetime

from pydantic import BaseModel, Field

from app.models.teaching_session import AttendanceStatus, CoverageStatus, SessionMode


# --- Session reports ---

class TeachingSessionReportCreate(BaseModel):
    teaching_plan_id: int = Field(gt=0)
    title: str | None = Field(default=None, max_length=300)
    session_date: datetime
    mode: SessionMode = SessionMode.IN_PERSON
    location: str | None = Field(default=None, max_length=200)
    notes: str | None = None


class TeachingSessionReportSummary(BaseModel):
    id: int
    teaching_plan_id: int
    title: str | None
    session_date: datetime
    mode: SessionMode
    current_step: int
    is_completed: bool
    attendance_count: int
    present_count: int
    created_at: datetime | None = None


# --- Step payloads ---

class GroupPlanInput(BaseModel):
    group_id: int = Field(gt=0)
    planned_objectives: str | None = None
    planned_subtopic_ids: list[int] = []
    planned_lesson_ids: list[int] = []
    additional_topics: str | None = None


class SessionPlansInput(BaseModel):
    group_plans: list[GroupPlanInput]


class StudentAttendanceInput(BaseModel):
    student_profile_id: int = Field(gt=0)
    status: AttendanceStatus
    participation_score: float | None = Field(default=None, ge=0, le=100)
    comment: str | None = Field(default=None, max_length=1000)


class GroupAttendanceInput(BaseModel):
    group_id: int = Field(gt=0)
    students: list[StudentAttendanceInput] = []


class AttendanceStepInput(BaseModel):
    group_attendances: list[GroupAttendanceInput]


class GroupFeedbackInput(BaseModel):
    group_id: int = Field(gt=0)
    group_feedback: str | None = None
    understanding_level: int = Field(default=3, ge=1, le=5)
    participation_level: int = Field(default=3, ge=1, le=5)
    teacher_satisfaction: int = Field(default=3, ge=1, le=5)
    challenges: str | None = None
    next_session_recommendations: str | None = None


class FeedbackStepInput(BaseModel):
    group_feedbacks: list[GroupFeedbackInput]


class TopicCoverageInput(BaseModel):
    topic_id: int | None = Field(default=None, gt=0)
    topic_title: str | None = Field(default=None, max_length=300)
    was_planned: bool = False
    was_covered: bool = False
    coverage_percentage: int = Field(default=0, ge=0, le=100)
    coverage_status: CoverageStatus = CoverageStatus.NOT_COVERED
    teacher_notes: str | None = None
    challenges: str | None = None


class GroupTopicCoverageInput(BaseModel):
    group_id: int = Field(gt=0)
    subtopic_coverages: list[TopicCoverageInput] = []
    lesson_coverages: list[TopicCoverageInput] = []


class TopicCoverageStepInput(BaseModel):
    group_topic_coverages: list[GroupTopicCoverageInput]


class SubChapterCoverageItem(BaseModel):
    subchapter_id: int = Field(gt=0)
    subchapter_title: str = ""
    chapter_title: str = ""
    was_planned: bool = False
    was_covered: bool = False
    coverage_percentage: int = Field(default=0, ge=0, le=100)
    coverage_status: CoverageStatus = CoverageStatus.NOT_COVERED
    teacher_notes: str | None = None
    challenges: str | None = None

    @property
    def has_data(self) -> bool:
        """True when the teacher entered anything for this subchapter."""
        return (
            self.was_covered
            or self.coverage_percentage > 0
            or self.coverage_status > 0
            or bool(self.teacher_notes and self.teacher_notes.strip())
            or bool(self.challenges and self.challenges.strip())
        )


class GroupSubChapterCoverage(BaseModel):
    group_id: int = Field(gt=0)
    group_name: str = ""
    subchapter_coverages: list[SubChapterCoverageItem] = []
    general_notes: str | None = None
    challenges: str | None = None
    recommendations: str | None = None


class SubChapterCoverageStepInput(BaseModel):
    group_coverages: list[GroupSubChapterCoverage]


class StepCompletionInput(BaseModel):
    step_number: int = Field(ge=1)
    is_completed: bool = True


# --- Read model ---

class AttendanceResponse(BaseModel):
    id: int | None = None
    student_profile_id: int
    student_name: str
    group_id: int | None = None
    status: AttendanceStatus
    participation_score: float | None = None
    comment: str | None = None


class ExecutionResponse(BaseModel):
    id: int
    student_group_id: int
    group_name: str = ""
    group_feedback: str | None = None
    understanding_level: int
    participation_level: int
    teacher_satisfaction: int
    challenges: str | None = None
    next_session_recommendations: str | None = None


class TopicCoverageResponse(BaseModel):
    id: int
    student_group_id: int
    topic_type: str
    topic_id: int | None = None
    topic_title: str | None = None
    was_planned: bool
    was_covered: bool
    coverage_percentage: int
    coverage_status: int


class SessionAssignmentResponse(BaseModel):
    schedule_item_id: int
    title: str
    type: str
    start_date: datetime
    due_date: datetime | None = None
    status: str


class SessionStats(BaseModel):
    attendance_count: int = 0
    present_count: int = 0
    absent_count: int = 0
    late_count: int = 0
    excused_count: int = 0
    attendance_percentage: float = 0.0
    total_topics: int = 0
    covered_topics: int = 0
    average_coverage_percentage: float = 0.0
    average_understanding: float = 0.0
    average_participation: float = 0.0
    average_satisfaction: float = 0.0


class TeachingSessionReportDetail(BaseModel):
    id: int
    teaching_plan_id: int
    teaching_plan_title: str
    title: str | None
    session_date: datetime
    mode: SessionMode
    location: str | None = None
    notes: str | None = None
    created_by_teacher_id: str
    current_step: int
    is_completed: bool
    stats: SessionStats
    attendance: list[AttendanceResponse] = []
    executions: list[ExecutionResponse] = []
    topic_coverages: list[TopicCoverageResponse] = []
    assignments: list[SessionAssignmentResponse] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None
