from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class BookCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    genre: str = Field("", max_length=100)
    image_path: str = Field("", max_length=500)

    @field_validator("title", "author")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("genre")
    @classmethod
    def strip_genre(cls, v: str) -> str:
        return v.strip()


class BookUpdateRequest(BookCreateRequest):
    pass


class BookResponse(BaseModel):
    id: int
    title: str
    author: str
    description: str | None = None
    genre: str | None = None
    image_path: str | None = None
    created_at: datetime
    user_id: int | None = None
    user_email: str | None = None
    user_username: str | None = None
    user_avatar_path: str | None = None
    is_requested: bool = False

    model_config = {"from_attributes": True}


class GenreStatsResponse(BaseModel):
    genre: str
    book_count: int

    model_config = {"from_attributes": True}


class StatsResponse(BaseModel):
    total_books: int
    active_users: int
    total_genres: int

    model_config = {"from_attributes": True}


class UploadResponse(BaseModel):
    image_path: str
