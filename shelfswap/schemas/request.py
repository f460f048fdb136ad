from datetime import datetime

from pydantic import BaseModel


class WishlistItemResponse(BaseModel):
    id: int
    book_id: int
    requester_id: int
    created_at: datetime
    book_title: str | None = None
    book_author: str | None = None
    book_image: str | None = None

    model_config = {"from_attributes": True}


class TopRequestedBookResponse(BaseModel):
    book_id: int
    title: str
    author: str
    image_path: str | None = None
    request_count: int

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    message: str
