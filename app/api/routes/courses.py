from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import ensure_own_profile, get_current_user, require_role
from app.core.result import to_response
from app.db.database import get_db
from app.domains.courses.services import CourseService
from app.domains.schedule.services import ScheduleItemService
from app.models.user import User, UserRole
from app.schemas.common import Envelope
from app.schemas.course import (
    ChapterCreate,
    ChapterResponse,
    CourseCreate,
    CourseOutline,
    CourseResponse,
    SubChapterCreate,
    SubChapterResponse,
)
from app.schemas.schedule_item import ScheduleItemResponse

router = APIRouter(tags=["Courses"])


@router.post("/courses", status_code=status.HTTP_201_CREATED, response_model=Envelope[CourseResponse])
def create_course(
    payload: CourseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER, UserRole.ADMIN)),
):
    return to_response(CourseService(db).create_course(current_user.id, payload), "Course created")


@router.post(
    "/courses/{course_id}/chapters",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[ChapterResponse],
)
def create_chapter(
    course_id: int,
    payload: ChapterCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER, UserRole.ADMIN)),
):
    return to_response(CourseService(db).create_chapter(current_user.id, course_id, payload), "Chapter created")


@router.post(
    "/chapters/{chapter_id}/subchapters",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[SubChapterResponse],
)
def create_subchapter(
    chapter_id: int,
    payload: SubChapterCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER, UserRole.ADMIN)),
):
    result = CourseService(db).create_subchapter(current_user.id, chapter_id, payload)
    return to_response(result, "Subchapter created")


@router.get("/courses/{course_id}/outline", response_model=Envelope[CourseOutline])
def get_course_outline(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_response(CourseService(db).get_course_outline(course_id))


@router.get("/courses/{course_id}/schedule-items", response_model=Envelope[list[ScheduleItemResponse]])
def list_course_schedule_items(
    course_id: int,
    student_profile_id: int | None = Query(None, gt=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.STUDENT)),
):
    """Course items for the current student; omit the profile for legacy enrollments."""
    ensure_own_profile(db, current_user, student_profile_id)
    result = ScheduleItemService(db).get_course_items_for_student(course_id, current_user.id, student_profile_id)
    return to_response(result, "Schedule items loaded")
