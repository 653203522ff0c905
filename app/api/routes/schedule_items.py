from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import ensure_own_profile, get_current_user, require_role
from app.core.result import to_response
from app.db.database import get_db
from app.domains.schedule.services import ScheduleItemService
from app.models.user import User, UserRole
from app.schemas.common import Envelope
from app.schemas.schedule_item import ScheduleItemCreate, ScheduleItemResponse, ScheduleItemUpdate

router = APIRouter(prefix="/schedule-items", tags=["Schedule Items"])


@router.get("/accessible", response_model=Envelope[list[ScheduleItemResponse]])
def list_accessible_items(
    student_profile_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.STUDENT)),
):
    """Schedule items visible to one of the current student's profiles."""
    ensure_own_profile(db, current_user, student_profile_id)
    result = ScheduleItemService(db).get_accessible_items(current_user.id, student_profile_id)
    return to_response(result, "Schedule items loaded")


@router.get("/{item_id}", response_model=Envelope[ScheduleItemResponse])
def get_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER, UserRole.ADMIN)),
):
    result = ScheduleItemService(db).get_item(
        current_user.id, item_id, is_admin=current_user.has_role(UserRole.ADMIN),
    )
    return to_response(result)


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=Envelope[ScheduleItemResponse])
def create_item(
    payload: ScheduleItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER)),
):
    result = ScheduleItemService(db).create_item(current_user.id, payload)
    return to_response(result, "Schedule item created")


@router.put("/{item_id}", response_model=Envelope[ScheduleItemResponse])
def update_item(
    item_id: int,
    payload: ScheduleItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER)),
):
    result = ScheduleItemService(db).update_item(current_user.id, item_id, payload)
    return to_response(result, "Schedule item updated")


@router.delete("/{item_id}", response_model=Envelope[None])
def delete_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEACHER)),
):
    result = ScheduleItemService(db).delete_item(current_user.id, item_id)
    return to_response(result, "Schedule item deleted")
