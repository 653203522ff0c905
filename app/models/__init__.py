from app.models.user import User, StudentProfile
from app.models.course import Course, Chapter, SubChapter, CourseEnrollment, CourseAccess
from app.models.teaching_plan import TeachingPlan, StudentGroup, GroupMember
from app.models.schedule_item import (
    ScheduleItem,
    ScheduleItemGroupAssignment,
    ScheduleItemSubChapterAssignment,
    ScheduleItemStudentAssignment,
)
from app.models.teaching_session import (
    TeachingSessionReport,
    TeachingSessionAttendance,
    TeachingSessionPlan,
    TeachingSessionExecution,
    TeachingSessionTopicCoverage,
)
from app.models.progress import TeachingPlanProgress

__all__ = [
    "User",
    "StudentProfile",
    "Course",
    "Chapter",
    "SubChapter",
    "CourseEnrollment",
    "CourseAccess",
    "TeachingPlan",
    "StudentGroup",
    "GroupMember",
    "ScheduleItem",
    "ScheduleItemGroupAssignment",
    "ScheduleItemSubChapterAssignment",
    "ScheduleItemStudentAssignment",
    "TeachingSessionReport",
    "TeachingSessionAttendance",
    "TeachingSessionPlan",
    "TeachingSessionExecution",
    "TeachingSessionTopicCoverage",
    "TeachingPlanProgress",
]
