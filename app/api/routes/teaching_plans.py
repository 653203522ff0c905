from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import require_role
from app.core.result import to_response
from app.db.database import get_db
from app.domains.teaching_plans.services import TeachingPlanService
from app.models.user import User, UserRole
from app.schemas.common import Envelope
from app.schemas.teaching_plan import (
    GroupMembersAdd,
    GroupMemberTransfer,
    StudentGroupCreate,
    StudentGroupResponse,
    TeachingPlanCreate,
    TeachingPlanResponse,
)
from app.services import coverage_service

router = APIRouter(tags=["Teaching Plans"])

teacher_only = require_role(UserRole.TEACHER)


@router.post("/teaching-plans", status_code=status.HTTP_201_CREATED, response_model=Envelope[TeachingPlanResponse])
def create_plan(
    payload: TeachingPlanCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    return to_response(TeachingPlanService(db).create_plan(current_user.id, payload), "Teaching plan created")


@router.get("/teaching-plans/{plan_id}/groups", response_model=Envelope[list[StudentGroupResponse]])
def list_groups(
    plan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    return to_response(TeachingPlanService(db).list_groups(current_user.id, plan_id))


@router.post(
    "/teaching-plans/{plan_id}/groups",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[StudentGroupResponse],
)
def create_group(
    plan_id: int,
    payload: StudentGroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    return to_response(TeachingPlanService(db).create_group(current_user.id, plan_id, payload.name), "Group created")


@router.post("/groups/{group_id}/members", response_model=Envelope[StudentGroupResponse])
def add_members(
    group_id: int,
    payload: GroupMembersAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingPlanService(db).add_members(current_user.id, group_id, payload.student_profile_ids)
    return to_response(result, "Members added")


@router.delete("/groups/{group_id}/members/{profile_id}", response_model=Envelope[None])
def remove_member(
    group_id: int,
    profile_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingPlanService(db).remove_member(current_user.id, group_id, profile_id)
    return to_response(result, "Member removed")


@router.post("/groups/{group_id}/transfer", response_model=Envelope[StudentGroupResponse])
def transfer_member(
    group_id: int,
    payload: GroupMemberTransfer,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    result = TeachingPlanService(db).transfer_member(
        current_user.id, group_id, payload.to_group_id, payload.student_profile_id,
    )
    return to_response(result, "Member transferred")


@router.get("/teaching-plans/{plan_id}/coverage-stats", response_model=Envelope[dict])
def get_coverage_stats(
    plan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(teacher_only),
):
    """Chapter and subchapter progress for the plan's course and each of its groups."""
    return to_response(coverage_service.get_plan_coverage_stats(db, plan_id, teacher_id=current_user.id))
