"""Shared fixtures: a fresh in-memory database per test and a TestClient bound to it."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.core.rate_limit import limiter
from app.core.security import create_access_token
from app.db.database import Base, get_db
from app.main import app
from app.models.course import Chapter, Course, CourseAccess, CourseEnrollment, SubChapter
from app.models.schedule_item import (
    ScheduleItem,
    ScheduleItemGroupAssignment,
    ScheduleItemStudentAssignment,
)
from app.models.teaching_plan import GroupMember, StudentGroup, TeachingPlan
from app.models.teaching_session import TeachingSessionReport
from app.models.user import StudentProfile, User, UserRole


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture()
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def auth():
    return auth_headers


# ---------------------------------------------------------------------------
# Builder: terse row factories so each test states only what it cares about
# ---------------------------------------------------------------------------

class Builder:
    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def user(self, role: UserRole = UserRole.STUDENT, username=None, first_name="", last_name="", **kw):
        return self._save(User(
            username=username or f"{role.value}{self._next()}",
            first_name=first_name,
            last_name=last_name,
            role=role.value,
            **kw,
        ))

    def teacher(self, **kw):
        return self.user(UserRole.TEACHER, **kw)

    def profile(self, user, display_name="", **kw):
        return self._save(StudentProfile(user_id=user.id, display_name=display_name, **kw))

    def course(self, title="Algebra", created_by=None, **kw):
        return self._save(Course(title=title, created_by_user_id=created_by.id if created_by else None, **kw))

    def chapter(self, course, title="Chapter", order=0, **kw):
        return self._save(Chapter(course_id=course.id, title=title, order=order, **kw))

    def subchapter(self, chapter, title="Subchapter", order=0, **kw):
        return self._save(SubChapter(chapter_id=chapter.id, title=title, order=order, **kw))

    def plan(self, course, teacher, title="Plan A"):
        return self._save(TeachingPlan(course_id=course.id, teacher_id=teacher.id, title=title))

    def group(self, plan, name="Group", profiles=()):
        group = StudentGroup(teaching_plan_id=plan.id, name=name)
        for profile in profiles:
            group.members.append(GroupMember(student_profile_id=profile.id))
        return self._save(group)

    def enrollment(self, course, user, profile=None, is_active=True):
        return self._save(CourseEnrollment(
            course_id=course.id,
            student_id=user.id,
            student_profile_id=profile.id if profile else None,
            is_active=is_active,
        ))

    def access(self, course, user, expires_at=None, is_active=True):
        return self._save(CourseAccess(
            course_id=course.id, student_id=user.id, expires_at=expires_at, is_active=is_active,
        ))

    def item(
        self,
        plan=None,
        course=None,
        title="Homework",
        start_date=None,
        due_date=None,
        groups=(),
        profiles=(),
        session_report=None,
        **kw,
    ):
        item = ScheduleItem(
            teaching_plan_id=plan.id if plan else None,
            course_id=course.id if course else None,
            session_report_id=session_report.id if session_report else None,
            title=title,
            start_date=start_date or datetime(2026, 3, 1, 9, 0),
            due_date=due_date,
            content_json="{}",
            **kw,
        )
        for group in groups:
            item.group_assignments.append(ScheduleItemGroupAssignment(student_group_id=group.id))
        for profile in profiles:
            item.student_assignments.append(ScheduleItemStudentAssignment(student_profile_id=profile.id))
        return self._save(item)

    def report(self, plan, teacher=None, session_date=None, title="Session"):
        return self._save(TeachingSessionReport(
            teaching_plan_id=plan.id,
            title=title,
            session_date=session_date or datetime(2026, 3, 2, 10, 0) + timedelta(days=self._next()),
            created_by_teacher_id=(teacher or plan.teacher).id,
        ))


@pytest.fixture()
def build(db_session):
    return Builder(db_session)


@pytest.fixture()
def failing_queries(db_session):
    """Patch ``db_session.query`` so every call past the first ``after`` raises.

    Use as ``with failing_queries(after=1): ...``.
    """
    def install(after=0):
        real_query = db_session.query
        calls = {"count": 0}

        def query(*entities, **kwargs):
            calls["count"] += 1
            if calls["count"] > after:
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            return real_query(*entities, **kwargs)

        return patch.object(db_session, "query", side_effect=query)
    return install
