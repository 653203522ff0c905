"""Course domain service - courses and their chapter/subchapter outline."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.result import Result
from app.models.course import Chapter, Course, SubChapter
from app.schemas.course import (
    ChapterCreate,
    ChapterResponse,
    CourseCreate,
    CourseOutline,
    CourseResponse,
    SubChapterCreate,
    SubChapterResponse,
)

logger = logging.getLogger(__name__)


class CourseService:
    def __init__(self, db: Session):
        self.db = db

    def create_course(self, user_id: str, payload: CourseCreate) -> Result[CourseResponse]:
        try:
            course = Course(
                title=payload.title.strip(),
                description=payload.description,
                order=payload.order,
                created_by_user_id=user_id,
            )
            self.db.add(course)
            self.db.commit()
            self.db.refresh(course)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Creating course failed: {exc}", exc_info=True)
            return Result.fail(f"Creating course failed: {exc}")

        logger.info(f"Course {course.id} created by {user_id}")
        return Result.ok(CourseResponse.model_validate(course))

    def _owned_course(self, user_id: str, course_id: int) -> Result[Course]:
        course = self.db.query(Course).filter(Course.id == course_id).first()
        if not course:
            return Result.not_found("Course not found")
        if course.created_by_user_id != user_id:
            return Result.forbidden("Only the course author can edit its outline")
        return Result.ok(course)

    def create_chapter(self, user_id: str, course_id: int, payload: ChapterCreate) -> Result[ChapterResponse]:
        owned = self._owned_course(user_id, course_id)
        if not owned.success:
            return owned

        try:
            chapter = Chapter(
                course_id=course_id,
                title=payload.title.strip(),
                objective=payload.objective,
                order=payload.order,
            )
            self.db.add(chapter)
            self.db.commit()
            self.db.refresh(chapter)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Creating chapter failed for course {course_id}: {exc}", exc_info=True)
            return Result.fail(f"Creating chapter failed: {exc}")

        return Result.ok(ChapterResponse.model_validate(chapter))

    def create_subchapter(
        self, user_id: str, chapter_id: int, payload: SubChapterCreate,
    ) -> Result[SubChapterResponse]:
        chapter = self.db.query(Chapter).filter(Chapter.id == chapter_id).first()
        if not chapter:
            return Result.not_found("Chapter not found")
        owned = self._owned_course(user_id, chapter.course_id)
        if not owned.success:
            return owned

        try:
            subchapter = SubChapter(
                chapter_id=chapter_id,
                title=payload.title.strip(),
                objective=payload.objective,
                order=payload.order,
            )
            self.db.add(subchapter)
            self.db.commit()
            self.db.refresh(subchapter)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Creating subchapter failed for chapter {chapter_id}: {exc}", exc_info=True)
            return Result.fail(f"Creating subchapter failed: {exc}")

        return Result.ok(SubChapterResponse.model_validate(subchapter))

    def get_course_outline(self, course_id: int) -> Result[CourseOutline]:
        """Active chapters and subchapters, each level ordered by ``order``."""
        try:
            course = self.db.query(Course).filter(Course.id == course_id).first()
            if not course:
                return Result.not_found("Course not found")

            chapters = []
            for chapter in course.chapters:
                if not chapter.is_active:
                    continue
                data = ChapterResponse.model_validate(chapter)
                data.subchapters = [s for s in data.subchapters if s.is_active]
                chapters.append(data)
        except SQLAlchemyError as exc:
            logger.error(f"Course outline failed for course {course_id}: {exc}", exc_info=True)
            return Result.fail(f"Loading course outline failed: {exc}")

        return Result.ok(CourseOutline(course=CourseResponse.model_validate(course), chapters=chapters))
