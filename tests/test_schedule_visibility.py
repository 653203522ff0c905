"""Tests for the schedule item visibility resolver and the course-scoped item query."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.core.result import ErrorType
from app.domains.schedule.services import ScheduleItemService, compute_item_status, is_visible_to_profile
from app.models.schedule_item import ScheduleItem, ScheduleItemStatus

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _titles(result):
    assert result.success, result.error
    return [item.title for item in result.value]


@pytest.fixture()
def world(build):
    """One course with a plan and two groups.

    Group Red holds Ann and Ben; group Blue holds Cat. Ann and Ben share one
    student account (two children under one login); Cat has a separate account.
    """
    teacher = build.teacher()
    course = build.course(created_by=teacher)
    plan = build.plan(course, teacher)

    family = build.user()
    ann = build.profile(family, "Ann")
    ben = build.profile(family, "Ben")
    cat_user = build.user()
    cat = build.profile(cat_user, "Cat")

    red = build.group(plan, "Red", [ann, ben])
    blue = build.group(plan, "Blue", [cat])

    for user, profile in ((family, ann), (family, ben), (cat_user, cat)):
        build.enrollment(course, user, profile)

    return {
        "teacher": teacher, "course": course, "plan": plan,
        "family": family, "ann": ann, "ben": ben, "cat_user": cat_user, "cat": cat,
        "red": red, "blue": blue,
    }


def _accessible(db, user, profile):
    return ScheduleItemService(db).get_accessible_items(user.id, profile.id, now=NOW)


# ===========================================================================
# Item gate
# ===========================================================================

class TestItemGate:
    def test_broadcast_item_visible_to_every_enrolled_profile(self, db_session, build, world):
        build.item(plan=world["plan"], course=world["course"], title="Broadcast")

        assert _titles(_accessible(db_session, world["family"], world["ann"])) == ["Broadcast"]
        assert _titles(_accessible(db_session, world["family"], world["ben"])) == ["Broadcast"]
        assert _titles(_accessible(db_session, world["cat_user"], world["cat"])) == ["Broadcast"]

    def test_group_assignment_limits_item_to_members(self, db_session, build, world):
        build.item(plan=world["plan"], course=world["course"], title="Red only", groups=[world["red"]])

        assert _titles(_accessible(db_session, world["family"], world["ann"])) == ["Red only"]
        assert _titles(_accessible(db_session, world["cat_user"], world["cat"])) == []

    def test_direct_assignment_visible_without_group_membership(self, db_session, build, world):
        build.item(plan=world["plan"], course=world["course"], title="For Cat", profiles=[world["cat"]])

        assert _titles(_accessible(db_session, world["cat_user"], world["cat"])) == ["For Cat"]
        assert _titles(_accessible(db_session, world["family"], world["ann"])) == []

    def test_direct_assignment_wins_even_when_group_is_not_assigned(self, db_session, build, world):
        build.item(
            plan=world["plan"], course=world["course"], title="Mixed",
            groups=[world["blue"]], profiles=[world["ann"]],
        )

        assert _titles(_accessible(db_session, world["family"], world["ann"])) == ["Mixed"]
        assert _titles(_accessible(db_session, world["cat_user"], world["cat"])) == ["Mixed"]
        assert _titles(_accessible(db_session, world["family"], world["ben"])) == []

    def test_individual_assignment_suppresses_group_grant_for_other_members(self, db_session, build, world):
        build.item(
            plan=world["plan"], course=world["course"], title="Singled out",
            groups=[world["red"]], profiles=[world["ann"]],
        )

        assert _titles(_accessible(db_session, world["family"], world["ann"])) == ["Singled out"]
        # Ben is in Red but has no assignment of his own
        assert _titles(_accessible(db_session, world["family"], world["ben"])) == []

    def test_results_ordered_by_start_date(self, db_session, build, world):
        build.item(plan=world["plan"], course=world["course"], title="Later", start_date=datetime(2026, 3, 5))
        build.item(plan=world["plan"], course=world["course"], title="Earlier", start_date=datetime(2026, 3, 1))
        build.item(plan=world["plan"], course=world["course"], title="Middle", start_date=datetime(2026, 3, 3))

        assert _titles(_accessible(db_session, world["cat_user"], world["cat"])) == ["Earlier", "Middle", "Later"]


# ===========================================================================
# Course gate
# ===========================================================================

class TestCourseGate:
    def test_no_enrollment_and_no_access_hides_course_item(self, db_session, build, world):
        outsider = build.user()
        stranger = build.profile(outsider, "Dan")
        build.item(course=world["course"], title="Course wide")

        assert _titles(_accessible(db_session, outsider, stranger)) == []

    def test_legacy_enrollment_does_not_open_profile_view(self, db_session, build):
        course = build.course()
        student = build.user()
        profile = build.profile(student, "Eve")
        build.enrollment(course, student, profile=None)
        build.item(course=course, title="Legacy only")

        assert _titles(_accessible(db_session, student, profile)) == []

    def test_enrollment_for_another_profile_does_not_count(self, db_session, build, world):
        build.item(course=world["course"], title="Course wide")
        dan = build.profile(world["family"], "Dan")

        assert _titles(_accessible(db_session, world["family"], dan)) == []

    def test_inactive_enrollment_hides_item(self, db_session, build):
        course = build.course()
        student = build.user()
        profile = build.profile(student)
        build.enrollment(course, student, profile, is_active=False)
        build.item(course=course, title="Hidden")

        assert _titles(_accessible(db_session, student, profile)) == []

    def test_course_access_grant_opens_item_without_enrollment(self, db_session, build):
        course = build.course()
        student = build.user()
        profile = build.profile(student)
        build.access(course, student, expires_at=NOW + timedelta(days=7))
        build.item(course=course, title="Granted")

        assert _titles(_accessible(db_session, student, profile)) == ["Granted"]

    def test_expired_or_inactive_access_does_not_count(self, db_session, build):
        course = build.course()
        expired_user, revoked_user = build.user(), build.user()
        expired_profile, revoked_profile = build.profile(expired_user), build.profile(revoked_user)
        build.access(course, expired_user, expires_at=NOW - timedelta(hours=1))
        build.access(course, revoked_user, is_active=False)
        build.item(course=course, title="Closed")

        assert _titles(_accessible(db_session, expired_user, expired_profile)) == []
        assert _titles(_accessible(db_session, revoked_user, revoked_profile)) == []

    def test_item_without_course_skips_course_check(self, db_session, build, world):
        outsider = build.user()
        stranger = build.profile(outsider)
        build.item(plan=world["plan"], title="Plan scoped")

        assert _titles(_accessible(db_session, outsider, stranger)) == ["Plan scoped"]


# ===========================================================================
# Input validation happens before any query
# ===========================================================================

class TestValidation:
    @pytest.mark.parametrize("student_id, profile_id", [
        ("", 1),
        ("   ", 1),
        ("s1", 0),
        ("s1", -3),
    ])
    def test_invalid_input_rejected_without_touching_db(self, student_id, profile_id):
        db = MagicMock()
        result = ScheduleItemService(db).get_accessible_items(student_id, profile_id)

        assert not result.success
        assert result.error_type == ErrorType.VALIDATION
        db.query.assert_not_called()

    def test_course_query_rejects_bad_course_id(self):
        db = MagicMock()
        result = ScheduleItemService(db).get_course_items_for_student(0, "s1", 1)

        assert result.error_type == ErrorType.VALIDATION
        db.query.assert_not_called()


# ===========================================================================
# Course-scoped query
# ===========================================================================

class TestCourseScopedQuery:
    def test_profile_view_is_resolver_output_for_the_course(self, db_session, build, world):
        other_course = build.course(title="Geometry")
        build.enrollment(other_course, world["family"], world["ann"])
        build.item(plan=world["plan"], title="Via plan")
        build.item(plan=world["plan"], course=world["course"], title="Blue work", groups=[world["blue"]])
        build.item(course=other_course, title="Elsewhere")

        result = ScheduleItemService(db_session).get_course_items_for_student(
            world["course"].id, world["family"].id, world["ann"].id, now=NOW,
        )

        assert _titles(result) == ["Via plan"]

    def test_requires_enrollment_for_exact_profile(self, db_session, build, world):
        dan = build.profile(world["family"], "Dan")
        result = ScheduleItemService(db_session).get_course_items_for_student(
            world["course"].id, world["family"].id, dan.id,
        )

        assert not result.success
        assert result.error_type == ErrorType.FORBIDDEN

    def test_legacy_view_returns_every_course_item(self, db_session, build, world):
        legacy = build.user()
        build.enrollment(world["course"], legacy, profile=None)
        build.item(plan=world["plan"], title="Plan item", groups=[world["red"]])
        build.item(course=world["course"], title="Course item", start_date=datetime(2026, 2, 1))

        result = ScheduleItemService(db_session).get_course_items_for_student(world["course"].id, legacy.id)

        assert _titles(result) == ["Course item", "Plan item"]

    def test_legacy_view_needs_profileless_enrollment(self, db_session, world):
        result = ScheduleItemService(db_session).get_course_items_for_student(
            world["course"].id, world["family"].id,
        )
        assert result.error_type == ErrorType.FORBIDDEN


# ===========================================================================
# Pure helpers
# ===========================================================================

class TestStatus:
    def _item(self, start, due=None, completed=False):
        return ScheduleItem(start_date=start, due_date=due, is_completed=completed)

    def test_completed_wins_over_expired(self):
        item = self._item(NOW - timedelta(days=5), NOW - timedelta(days=1), completed=True)
        assert compute_item_status(item, NOW) == ScheduleItemStatus.COMPLETED

    def test_expired_after_due(self):
        item = self._item(NOW - timedelta(days=5), NOW - timedelta(seconds=1))
        assert compute_item_status(item, NOW) == ScheduleItemStatus.EXPIRED

    def test_active_inside_window_or_without_due_date(self):
        assert compute_item_status(self._item(NOW - timedelta(days=1), NOW + timedelta(days=1)), NOW) == (
            ScheduleItemStatus.ACTIVE
        )
        assert compute_item_status(self._item(NOW - timedelta(days=1)), NOW) == ScheduleItemStatus.ACTIVE

    def test_published_before_start(self):
        item = self._item(NOW + timedelta(hours=1), NOW + timedelta(days=1))
        assert compute_item_status(item, NOW) == ScheduleItemStatus.PUBLISHED

    def test_naive_database_dates_treated_as_utc(self):
        item = self._item(datetime(2026, 3, 10, 11, 0), datetime(2026, 3, 10, 13, 0))
        assert compute_item_status(item, NOW) == ScheduleItemStatus.ACTIVE


def test_is_visible_to_profile_without_assignments():
    assert is_visible_to_profile(ScheduleItem(), 42) is True
