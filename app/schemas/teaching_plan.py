from pydantic import BaseModel, Field
from datetime import datetime


class TeachingPlanCreate(BaseModel):
    course_id: int = Field(gt=0)
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    objectives: str | None = None


class TeachingPlanResponse(BaseModel):
    id: int
    course_id: int
    teacher_id: str
    title: str
    description: str | None
    objectives: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class StudentGroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class GroupMembersAdd(BaseModel):
    student_profile_ids: list[int] = Field(min_length=1)


class GroupMemberTransfer(BaseModel):
    to_group_id: int = Field(gt=0)
    student_profile_id: int = Field(gt=0)


class GroupMemberResponse(BaseModel):
    id: int
    student_profile_id: int
    display_name: str


class StudentGroupResponse(BaseModel):
    id: int
    teaching_plan_id: int
    name: str
    members: list[GroupMemberResponse] = []
