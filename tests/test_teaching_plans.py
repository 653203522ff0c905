"""Tests for courses, teaching plans, student groups and coverage statistics."""

import pytest

from app.core.result import ErrorType
from app.domains.courses.services import CourseService
from app.domains.teaching_plans.services import TeachingPlanService
from app.domains.teaching_sessions.services import TeachingSessionService
from app.models.teaching_plan import GroupMember
from app.schemas.course import ChapterCreate, CourseCreate, SubChapterCreate
from app.schemas.teaching_plan import TeachingPlanCreate
from app.schemas.teaching_session import TopicCoverageStepInput
from app.services import coverage_service


@pytest.fixture()
def teacher(build):
    return build.teacher()


# ===========================================================================
# Courses
# ===========================================================================

class TestCourseOutline:
    def test_outline_orders_and_hides_inactive(self, db_session, build, teacher):
        svc = CourseService(db_session)
        course = svc.create_course(teacher.id, CourseCreate(title="History")).value
        late = svc.create_chapter(teacher.id, course.id, ChapterCreate(title="Modern", order=2)).value
        early = svc.create_chapter(teacher.id, course.id, ChapterCreate(title="Ancient", order=1)).value
        svc.create_subchapter(teacher.id, early.id, SubChapterCreate(title="Rome", order=2))
        svc.create_subchapter(teacher.id, early.id, SubChapterCreate(title="Egypt", order=1))
        hidden = build.chapter(course, "Draft", order=0, is_active=False)

        outline = svc.get_course_outline(course.id).value

        assert [c.title for c in outline.chapters] == ["Ancient", "Modern"]
        assert [s.title for s in outline.chapters[0].subchapters] == ["Egypt", "Rome"]
        assert hidden.id not in [c.id for c in outline.chapters]
        assert late.id == outline.chapters[1].id

    def test_only_author_edits_outline(self, db_session, build, teacher):
        svc = CourseService(db_session)
        course = svc.create_course(teacher.id, CourseCreate(title="Art")).value

        result = svc.create_chapter(build.teacher().id, course.id, ChapterCreate(title="Color"))

        assert result.error_type == ErrorType.FORBIDDEN


# ===========================================================================
# Plans and groups
# ===========================================================================

@pytest.fixture()
def plan(db_session, build, teacher):
    course = build.course(created_by=teacher)
    return TeachingPlanService(db_session).create_plan(
        teacher.id, TeachingPlanCreate(course_id=course.id, title="Spring term"),
    ).value


class TestGroups:
    def test_add_members_skips_existing(self, db_session, build, teacher, plan):
        svc = TeachingPlanService(db_session)
        group = svc.create_group(teacher.id, plan.id, "Juniors").value
        a, b = build.profile(build.user(), "A"), build.profile(build.user(), "B")
        svc.add_members(teacher.id, group.id, [a.id])

        result = svc.add_members(teacher.id, group.id, [a.id, b.id, b.id])

        assert result.success, result.error
        assert [m.display_name for m in result.value.members] == ["A", "B"]
        assert db_session.query(GroupMember).count() == 2

    def test_add_unknown_profile(self, db_session, teacher, plan):
        svc = TeachingPlanService(db_session)
        group = svc.create_group(teacher.id, plan.id, "Juniors").value

        assert svc.add_members(teacher.id, group.id, [4040]).error_type == ErrorType.NOT_FOUND

    def test_transfer_within_plan(self, db_session, build, teacher, plan):
        svc = TeachingPlanService(db_session)
        source = svc.create_group(teacher.id, plan.id, "One").value
        target = svc.create_group(teacher.id, plan.id, "Two").value
        kid = build.profile(build.user(), "Kid")
        svc.add_members(teacher.id, source.id, [kid.id])

        result = svc.transfer_member(teacher.id, source.id, target.id, kid.id)

        assert [m.student_profile_id for m in result.value.members] == [kid.id]
        groups = {g.name: g for g in svc.list_groups(teacher.id, plan.id).value}
        assert groups["One"].members == []

    def test_transfer_across_plans_rejected(self, db_session, build, teacher, plan):
        svc = TeachingPlanService(db_session)
        other_plan = svc.create_plan(teacher.id, TeachingPlanCreate(course_id=plan.course_id, title="Other")).value
        source = svc.create_group(teacher.id, plan.id, "One").value
        target = svc.create_group(teacher.id, other_plan.id, "Elsewhere").value
        kid = build.profile(build.user())
        svc.add_members(teacher.id, source.id, [kid.id])

        assert svc.transfer_member(teacher.id, source.id, target.id, kid.id).error_type == ErrorType.VALIDATION

    def test_remove_member(self, db_session, build, teacher, plan):
        svc = TeachingPlanService(db_session)
        group = svc.create_group(teacher.id, plan.id, "One").value
        kid = build.profile(build.user())
        svc.add_members(teacher.id, group.id, [kid.id])

        assert svc.remove_member(teacher.id, group.id, kid.id).success
        assert svc.remove_member(teacher.id, group.id, kid.id).error_type == ErrorType.NOT_FOUND

    def test_plan_mutations_require_ownership(self, db_session, build, teacher, plan):
        intruder = build.teacher()
        svc = TeachingPlanService(db_session)

        assert svc.create_group(intruder.id, plan.id, "Mine").error_type == ErrorType.FORBIDDEN
        assert svc.list_groups(intruder.id, plan.id).error_type == ErrorType.FORBIDDEN

    def test_blank_group_name(self, db_session, teacher, plan):
        assert TeachingPlanService(db_session).create_group(teacher.id, plan.id, "  ").error_type == (
            ErrorType.VALIDATION
        )


# ===========================================================================
# Coverage statistics
# ===========================================================================

class TestCoverageStats:
    def test_chapter_and_group_rollups(self, db_session, build, teacher):
        course = build.course(created_by=teacher)
        chapter = build.chapter(course, "Cells", order=1)
        membrane = build.subchapter(chapter, "Membrane", order=1)
        nucleus = build.subchapter(chapter, "Nucleus", order=2)
        plan = build.plan(course, teacher)
        red, blue = build.group(plan, "Red"), build.group(plan, "Blue")
        report = build.report(plan)

        TeachingSessionService(db_session).save_topic_coverage(teacher.id, report.id, TopicCoverageStepInput(
            group_topic_coverages=[
                {"group_id": red.id, "subtopic_coverages": [
                    {"topic_id": membrane.id, "was_covered": True, "coverage_percentage": 50},
                    {"topic_id": nucleus.id, "was_covered": True, "coverage_percentage": 25},
                ]},
                {"group_id": blue.id, "subtopic_coverages": [
                    {"topic_id": membrane.id, "was_covered": True, "coverage_percentage": 100},
                ]},
            ],
        ))

        result = coverage_service.get_plan_coverage_stats(db_session, plan.id, teacher_id=teacher.id)
        assert result.success
        stats = result.value

        course_chapter = stats["course"][0]
        assert course_chapter["total_coverage_count"] == 3
        assert course_chapter["average_progress_percentage"] == pytest.approx(58.33)
        membrane_stats = course_chapter["subchapters"][0]
        assert (membrane_stats["coverage_count"], membrane_stats["average_progress_percentage"]) == (2, 75.0)
        assert membrane_stats["completed_count"] == 1

        by_group = {g["group_name"]: g["chapter_stats"][0] for g in stats["groups"]}
        assert by_group["Red"]["total_coverage_count"] == 2
        assert by_group["Red"]["average_progress_percentage"] == 37.5
        assert by_group["Blue"]["subchapters"][1]["coverage_count"] == 0
        assert by_group["Blue"]["subchapters"][1]["average_progress_percentage"] == 0

    def test_unknown_plan(self, db_session):
        result = coverage_service.get_plan_coverage_stats(db_session, 404)
        assert result.error_type == ErrorType.NOT_FOUND

    def test_other_teacher_forbidden(self, db_session, build, teacher):
        plan = build.plan(build.course(created_by=teacher), teacher)
        result = coverage_service.get_plan_coverage_stats(db_session, plan.id, teacher_id=build.teacher().id)
        assert result.error_type == ErrorType.FORBIDDEN

    def test_database_error_returns_failure(self, db_session, build, teacher, failing_queries):
        plan = build.plan(build.course(created_by=teacher), teacher)

        with failing_queries(after=1):
            result = coverage_service.get_plan_coverage_stats(db_session, plan.id, teacher_id=teacher.id)

        assert not result.success
        assert result.error_type == ErrorType.ERROR
        assert result.error.startswith("Loading coverage stats failed")
