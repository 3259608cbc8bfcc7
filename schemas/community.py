import datetime
from enum import Enum
from typing import List, Optional
from pydantic import Field, computed_field, field_validator
from schemas.shared import CamelModel, StrictInput

MAX_TITLE_LENGTH = 100
MAX_CONTENT_LENGTH = 5000
MAX_COMMENT_LENGTH = 1000

class PostCategory(str, Enum):
    sharing = "sharing"
    support = "support"
    question = "question"
    other = "other"

CATEGORY_LABELS = {
    PostCategory.sharing: "Sharing",
    PostCategory.support: "Emotional support",
    PostCategory.question: "Q&A",
    PostCategory.other: "Other",
}

def category_label(category) -> str:
    try:
        return CATEGORY_LABELS[PostCategory(category)]
    except ValueError:
        return CATEGORY_LABELS[PostCategory.other]

def _check_title(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError('Title cannot be empty')
    if len(v) > MAX_TITLE_LENGTH:
        raise ValueError(f'Title must be at most {MAX_TITLE_LENGTH} characters long')
    return v

def _check_content(v: str) -> str:
    if not v or not v.strip():
        raise ValueError('Content cannot be empty')
    return v

class PostCreate(StrictInput):
    title: str
    content: str = Field(max_length=MAX_CONTENT_LENGTH)
    category: PostCategory = PostCategory.sharing

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        return _check_title(v)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        return _check_content(v)

class PostUpdate(StrictInput):
    title: Optional[str] = None
    content: Optional[str] = Field(default=None, max_length=MAX_CONTENT_LENGTH)
    category: Optional[PostCategory] = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        return _check_title(v) if v is not None else v

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        return _check_content(v) if v is not None else v

class CommentCreate(StrictInput):
    content: str = Field(max_length=MAX_COMMENT_LENGTH)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        return _check_content(v)

class CommentResponse(CamelModel):
    id: int
    author: int
    author_name: str
    content: str
    created_at: datetime.datetime

class PostSummary(CamelModel):
    id: int
    title: str
    category: PostCategory
    author: int
    author_name: str
    like_count: int
    comment_count: int
    views: int
    is_pinned: bool
    is_locked: bool
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @computed_field(alias="categoryLabel")
    @property
    def category_label(self) -> str:
        return category_label(self.category)

class PostResponse(PostSummary):
    content: str
    likes: List[int] = []
    comments: List[CommentResponse] = []

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int

class PostListResponse(CamelModel):
    posts: List[PostSummary]
    pagination: Pagination

class LikeResponse(CamelModel):
    liked: bool
    like_count: int

class PinResponse(CamelModel):
    is_pinned: bool

class LockResponse(CamelModel):
    is_locked: bool
