from app.schemas.common import Envelope
from app.schemas.course import CourseCreate, CourseResponse, ChapterCreate, SubChapterCreate, CourseOutline
from app.schemas.enrollment import EnrollmentRequest, EnrollmentResponse, CourseAccessGrant, CourseAccessResponse
from app.schemas.teaching_plan import (
    TeachingPlanCreate, TeachingPlanResponse, StudentGroupCreate, StudentGroupResponse,
)
from app.schemas.schedule_item import ScheduleItemCreate, ScheduleItemUpdate, ScheduleItemResponse
from app.schemas.teaching_session import (
    TeachingSessionReportCreate, TeachingSessionReportSummary, TeachingSessionReportDetail,
    AttendanceStepInput, FeedbackStepInput, TopicCoverageStepInput, SubChapterCoverageStepInput,
)

__all__ = [
    "Envelope",
    "CourseCreate", "CourseResponse", "ChapterCreate", "SubChapterCreate", "CourseOutline",
    "EnrollmentRequest", "EnrollmentResponse", "CourseAccessGrant", "CourseAccessResponse",
    "TeachingPlanCreate", "TeachingPlanResponse", "StudentGroupCreate", "StudentGroupResponse",
    "ScheduleItemCreate", "ScheduleItemUpdate", "ScheduleItemResponse",
    "TeachingSessionReportCreate", "TeachingSessionReportSummary", "TeachingSessionReportDetail",
    "AttendanceStepInput", "FeedbackStepInput", "TopicCoverageStepInput", "SubChapterCoverageStepInput",
]
