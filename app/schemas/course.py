from pydantic import BaseModel, Field
from datetime import datetime


class CourseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    order: int = 0


class CourseResponse(BaseModel):
    id: int
    title: str
    description: str | None
    is_active: bool
    order: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class ChapterCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    objective: str | None = None
    order: int = 0


class SubChapterCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    objective: str | None = None
    order: int = 0


class SubChapterResponse(BaseModel):
    id: int
    chapter_id: int
    title: str
    objective: str | None
    is_active: bool
    order: int

    class Config:
        from_attributes = True


class ChapterResponse(BaseModel):
    id: int
    course_id: int
    title: str
    objective: str | None
    is_active: bool
    order: int
    subchapters: list[SubChapterResponse] = []

    class Config:
        from_attributes = True


class CourseOutline(BaseModel):
    course: CourseResponse
    chapters: list[ChapterResponse]
