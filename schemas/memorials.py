import json
import datetime
from enum import Enum
from typing import ClassVar, List, Optional, Tuple
from pydantic import Field, field_validator
from schemas.shared import CamelModel, FormInput, StrictInput

MAX_BIOGRAPHY_LENGTH = 5000

class Privacy(str, Enum):
    public = "public"
    semi_private = "semi-private"
    private = "private"
    restricted = "restricted"

class TimelineEntryIn(StrictInput):
    date: Optional[datetime.date] = None
    title: Optional[str] = None
    description: Optional[str] = None
    photo: Optional[str] = None
    video: Optional[str] = None
    is_milestone: bool = False

class ImportantDateIn(StrictInput):
    date_type: Optional[str] = Field(default=None, alias="type")
    date: Optional[datetime.date] = None
    description: Optional[str] = None

def _parse_json_list(v):
    # sequences arrive as JSON strings inside multipart forms
    if isinstance(v, str):
        try:
            v = json.loads(v)
        except ValueError:
            raise ValueError('Must be a JSON array')
    if v is not None and not isinstance(v, list):
        raise ValueError('Must be a JSON array')
    return v

class MemorialFields(FormInput):
    hometown: Optional[str] = None
    profession: Optional[str] = None
    epitaph: Optional[str] = None
    biography: Optional[str] = Field(default=None, max_length=MAX_BIOGRAPHY_LENGTH)
    theme: Optional[str] = None
    password: Optional[str] = None
    timeline: Optional[List[TimelineEntryIn]] = None
    important_dates: Optional[List[ImportantDateIn]] = None

    @field_validator('timeline', 'important_dates', mode='before')
    @classmethod
    def validate_sequences(cls, v):
        return _parse_json_list(v)

class MemorialCreate(MemorialFields):
    name: str
    birth_date: datetime.date
    death_date: datetime.date
    theme: str = "warm"
    privacy: Privacy = Privacy.semi_private

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Name is required')
        return v

class MemorialUpdate(MemorialFields):
    clearable_fields: ClassVar[Tuple[str, ...]] = ("hometown", "profession", "epitaph", "biography", "password")

    name: Optional[str] = None
    birth_date: Optional[datetime.date] = None
    death_date: Optional[datetime.date] = None
    privacy: Optional[Privacy] = None

class MessageCreate(StrictInput):
    author: Optional[str] = None
    content: str

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        if not v or not v.strip():
            raise ValueError('Content cannot be empty')
        return v

class AdminAdd(StrictInput):
    user_id: int

class PhotoItem(CamelModel):
    id: int
    url: str
    description: Optional[str] = None
    date: Optional[datetime.date] = None
    category: Optional[str] = None

class VideoItem(CamelModel):
    id: int
    url: str
    thumbnail: Optional[str] = None
    description: Optional[str] = None
    uploaded_at: datetime.datetime

class AudioItem(CamelModel):
    id: int
    url: str
    description: Optional[str] = None
    uploaded_at: datetime.datetime

class DocumentItem(CamelModel):
    id: int
    url: str
    title: Optional[str] = None
    doc_type: Optional[str] = Field(default=None, alias="type")
    uploaded_at: datetime.datetime

class TimelineEntry(CamelModel):
    id: int
    date: Optional[datetime.date] = None
    title: Optional[str] = None
    description: Optional[str] = None
    photo: Optional[str] = None
    video: Optional[str] = None
    is_milestone: bool = False

class GuestbookMessage(CamelModel):
    id: int
    author: str
    content: str
    created_at: datetime.datetime

class ImportantDate(CamelModel):
    id: int
    date_type: Optional[str] = Field(default=None, alias="type")
    date: Optional[datetime.date] = None
    description: Optional[str] = None

class MemorialResponse(CamelModel):
    id: int
    name: str
    birth_date: datetime.date
    death_date: datetime.date
    hometown: Optional[str] = None
    profession: Optional[str] = None
    epitaph: Optional[str] = None
    biography: Optional[str] = None
    main_photo: Optional[str] = None
    background_music: Optional[str] = None
    background_image: Optional[str] = None
    theme: str
    privacy: Privacy
    has_password: bool
    created_by: int
    admins: List[int] = []
    photos: List[PhotoItem] = []
    videos: List[VideoItem] = []
    audios: List[AudioItem] = []
    documents: List[DocumentItem] = []
    timeline: List[TimelineEntry] = []
    messages: List[GuestbookMessage] = []
    important_dates: List[ImportantDate] = []
    views: int
    flowers: int
    candles: int
    created_at: datetime.datetime
    updated_at: datetime.datetime

class CounterResponse(CamelModel):
    message: str
    count: int
