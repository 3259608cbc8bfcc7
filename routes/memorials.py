import datetime
import logging
from typing import Dict, List, Optional, Tuple
from fastapi import APIRouter, HTTPException, Depends, Request, UploadFile, File, Form
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile as StarletteUploadFile
from database import get_db, write_transaction
from auth import hash_password
from file_utils import (
    check_upload, save_upload, delete_media_file, delete_media_files, replace_slot_file, UploadRejected, UPLOAD_URL_PREFIX
)
from schemas.memorials import (
    MemorialCreate, MemorialUpdate, MemorialResponse, MessageCreate, AdminAdd, CounterResponse,
    PhotoItem, VideoItem, AudioItem, DocumentItem, TimelineEntry, GuestbookMessage, ImportantDate,
    Privacy
)
from schemas.shared import MessageResponse
from utils.route_helpers import get_current_user_id, get_optional_user_id, get_user_by_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/memorials", tags=["memorials"])

ANONYMOUS_AUTHOR = "Anonymous visitor"

# form field -> (column, storage category) for the single-file media slots
SLOT_FIELDS = {
    "mainPhoto": ("main_photo", "photos"),
    "backgroundImage": ("background_image", "photos"),
    "backgroundMusic": ("background_music", "audios"),
}

MEMORIAL_COLUMNS = (
    "id", "name", "birth_date", "death_date", "hometown", "profession", "epitaph", "biography",
    "main_photo", "background_music", "background_image", "theme", "privacy", "password_hash",
    "created_by", "views", "flowers", "candles", "created_at", "updated_at",
)

# column -> model attribute for the plain text/date fields a client may set
EDITABLE_COLUMNS = {
    "name": "name",
    "birth_date": "birth_date",
    "death_date": "death_date",
    "hometown": "hometown",
    "profession": "profession",
    "epitaph": "epitaph",
    "biography": "biography",
    "theme": "theme",
    "privacy": "privacy",
}

def fetch_memorial_row(cursor, memorial_id: int) -> Optional[dict]:
    cursor.execute(f"SELECT {', '.join(MEMORIAL_COLUMNS)} FROM memorials WHERE id = ?", (memorial_id,))
    row = cursor.fetchone()
    return dict(zip(MEMORIAL_COLUMNS, row)) if row else None

def get_memorial_admins(cursor, memorial_id: int) -> List[int]:
    cursor.execute("SELECT user_id FROM memorial_admins WHERE memorial_id = ? ORDER BY id", (memorial_id,))
    return [r[0] for r in cursor.fetchall()]

def is_memorial_admin(cursor, memorial: dict, user_id: int) -> bool:
    if memorial["created_by"] == user_id:
        return True
    cursor.execute("SELECT 1 FROM memorial_admins WHERE memorial_id = ? AND user_id = ?", (memorial["id"], user_id))
    return cursor.fetchone() is not None

def check_memorial_owner(memorial: Optional[dict], user_id: int, action: str) -> dict:
    if not memorial:
        raise HTTPException(status_code=404, detail="Memorial not found")
    if memorial["created_by"] != user_id:
        raise HTTPException(status_code=403, detail=f"You can only {action} your own memorial.")
    return memorial

def build_memorial_response(cursor, memorial: dict) -> MemorialResponse:
    memorial_id = memorial["id"]
    cursor.execute("SELECT id, url, description, date, category FROM memorial_photos WHERE memorial_id = ? ORDER BY id", (memorial_id,))
    photos = [PhotoItem(id=r[0], url=r[1], description=r[2], date=r[3], category=r[4]) for r in cursor.fetchall()]
    cursor.execute("SELECT id, url, thumbnail, description, uploaded_at FROM memorial_videos WHERE memorial_id = ? ORDER BY id", (memorial_id,))
    videos = [VideoItem(id=r[0], url=r[1], thumbnail=r[2], description=r[3], uploaded_at=r[4]) for r in cursor.fetchall()]
    cursor.execute("SELECT id, url, description, uploaded_at FROM memorial_audios WHERE memorial_id = ? ORDER BY id", (memorial_id,))
    audios = [AudioItem(id=r[0], url=r[1], description=r[2], uploaded_at=r[3]) for r in cursor.fetchall()]
    cursor.execute("SELECT id, url, title, doc_type, uploaded_at FROM memorial_documents WHERE memorial_id = ? ORDER BY id", (memorial_id,))
    documents = [DocumentItem(id=r[0], url=r[1], title=r[2], doc_type=r[3], uploaded_at=r[4]) for r in cursor.fetchall()]
    cursor.execute("SELECT id, date, title, description, photo, video, is_milestone FROM memorial_timeline WHERE memorial_id = ? ORDER BY id", (memorial_id,))
    timeline = [
        TimelineEntry(id=r[0], date=r[1], title=r[2], description=r[3], photo=r[4], video=r[5], is_milestone=bool(r[6]))
        for r in cursor.fetchall()
    ]
    cursor.execute("SELECT id, author, content, created_at FROM memorial_messages WHERE memorial_id = ? ORDER BY id", (memorial_id,))
    messages = [GuestbookMessage(id=r[0], author=r[1], content=r[2], created_at=r[3]) for r in cursor.fetchall()]
    cursor.execute("SELECT id, date_type, date, description FROM memorial_important_dates WHERE memorial_id = ? ORDER BY id", (memorial_id,))
    important_dates = [ImportantDate(id=r[0], date_type=r[1], date=r[2], description=r[3]) for r in cursor.fetchall()]
    return MemorialResponse(
        id=memorial_id,
        name=memorial["name"],
        birth_date=memorial["birth_date"],
        death_date=memorial["death_date"],
        hometown=memorial["hometown"],
        profession=memorial["profession"],
        epitaph=memorial["epitaph"],
        biography=memorial["biography"],
        main_photo=memorial["main_photo"],
        background_music=memorial["background_music"],
        background_image=memorial["background_image"],
        theme=memorial["theme"] or "warm",
        privacy=memorial["privacy"],
        has_password=bool(memorial["password_hash"]),
        created_by=memorial["created_by"],
        admins=get_memorial_admins(cursor, memorial_id),
        photos=photos,
        videos=videos,
        audios=audios,
        documents=documents,
        timeline=timeline,
        messages=messages,
        important_dates=important_dates,
        views=memorial["views"],
        flowers=memorial["flowers"],
        candles=memorial["candles"],
        created_at=memorial["created_at"],
        updated_at=memorial["updated_at"],
    )

def get_memorial_response(memorial_id: int) -> MemorialResponse:
    with get_db() as conn:
        cursor = conn.cursor()
        memorial = fetch_memorial_row(cursor, memorial_id)
        if not memorial:
            raise HTTPException(status_code=404, detail="Memorial not found")
        return build_memorial_response(cursor, memorial)

def list_memorial_responses(sql: str, params: tuple) -> List[MemorialResponse]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(sql, params)
        ids = [r[0] for r in cursor.fetchall()]
        return [build_memorial_response(cursor, fetch_memorial_row(cursor, mid)) for mid in ids]

def file_references(cursor, memorial: dict) -> List[str]:
    """Every stored upload a memorial points at: the three slots plus the attachment lists"""
    refs = [memorial["main_photo"], memorial["background_image"], memorial["background_music"]]
    for table in ("memorial_photos", "memorial_videos", "memorial_audios", "memorial_documents"):
        cursor.execute(f"SELECT url FROM {table} WHERE memorial_id = ?", (memorial["id"],))
        refs.extend(r[0] for r in cursor.fetchall())
    return [ref for ref in refs if ref and ref.startswith(UPLOAD_URL_PREFIX + "/")]

def replace_timeline(cursor, memorial_id: int, entries):
    cursor.execute("DELETE FROM memorial_timeline WHERE memorial_id = ?", (memorial_id,))
    for entry in entries:
        cursor.execute(
            "INSERT INTO memorial_timeline (memorial_id, date, title, description, photo, video, is_milestone) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (memorial_id, entry.date.isoformat() if entry.date else None, entry.title, entry.description,
             entry.photo, entry.video, int(entry.is_milestone))
        )

def replace_important_dates(cursor, memorial_id: int, entries):
    cursor.execute("DELETE FROM memorial_important_dates WHERE memorial_id = ?", (memorial_id,))
    for entry in entries:
        cursor.execute(
            "INSERT INTO memorial_important_dates (memorial_id, date_type, date, description) VALUES (?, ?, ?, ?)",
            (memorial_id, entry.date_type, entry.date.isoformat() if entry.date else None, entry.description)
        )

def column_value(value):
    if isinstance(value, Privacy):
        return value.value
    if isinstance(value, datetime.date):
        return value.isoformat()
    return value

def parse_optional_date(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    try:
        return datetime.date.fromisoformat(value.strip()[:10]).isoformat()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")

# Multipart handling for create/update

def split_form(form) -> Tuple[Dict[str, str], Dict[str, List[StarletteUploadFile]]]:
    fields: Dict[str, str] = {}
    files: Dict[str, List[StarletteUploadFile]] = {}
    for key, value in form.multi_items():
        if isinstance(value, StarletteUploadFile):
            files.setdefault(key, []).append(value)
        else:
            fields[key] = value
    return fields, files

def parse_form(model_cls, fields: Dict[str, str]):
    try:
        return model_cls.model_validate(fields)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False))

def collect_slot_uploads(files: Dict[str, List[StarletteUploadFile]]) -> Dict[str, StarletteUploadFile]:
    """Check every slot upload before any of them is written"""
    uploads = {}
    for field, items in files.items():
        if field not in SLOT_FIELDS:
            raise UploadRejected(f"Unexpected file field: {field}")
        if len(items) > 1:
            raise UploadRejected(f"Only one file allowed for {field}")
        check_upload(items[0], SLOT_FIELDS[field][1])
        uploads[field] = items[0]
    return uploads

def save_slot_uploads(uploads: Dict[str, StarletteUploadFile]) -> Dict[str, str]:
    saved: Dict[str, str] = {}
    try:
        for field, upload in uploads.items():
            column, category = SLOT_FIELDS[field]
            saved[column] = save_upload(upload, category)
    except Exception:
        delete_media_files(saved.values())
        raise
    return saved

def _create_memorial(user_id: int, data: MemorialCreate, uploads) -> int:
    saved = save_slot_uploads(uploads)
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO memorials (name, birth_date, death_date, hometown, profession, epitaph, biography,
                                       main_photo, background_music, background_image, theme, privacy,
                                       password_hash, created_by)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (data.name, data.birth_date.isoformat(), data.death_date.isoformat(), data.hometown,
                 data.profession, data.epitaph, data.biography, saved.get("main_photo"),
                 saved.get("background_music"), saved.get("background_image"), data.theme,
                 data.privacy.value, hash_password(data.password) if data.password else None, user_id)
            )
            memorial_id = cursor.lastrowid
            # The creator is always part of the admin set
            cursor.execute("INSERT INTO memorial_admins (memorial_id, user_id) VALUES (?, ?)", (memorial_id, user_id))
            if data.timeline:
                replace_timeline(cursor, memorial_id, data.timeline)
            if data.important_dates:
                replace_important_dates(cursor, memorial_id, data.important_dates)
            conn.commit()
    except Exception:
        delete_media_files(saved.values())
        raise
    logger.info("User %s created memorial %s with slots %s", user_id, memorial_id, sorted(saved))
    return memorial_id

def _update_memorial(memorial_id: int, user_id: int, data: MemorialUpdate, uploads) -> None:
    with get_db() as conn:
        check_memorial_owner(fetch_memorial_row(conn.cursor(), memorial_id), user_id, "edit")

    values = data.model_dump(exclude_unset=True)
    password_hash = hash_password(data.password) if data.password else None
    saved = save_slot_uploads(uploads)
    try:
        # The slot values being replaced are read under the same write lock as the UPDATE
        with write_transaction() as conn:
            cursor = conn.cursor()
            memorial = check_memorial_owner(fetch_memorial_row(cursor, memorial_id), user_id, "edit")
            fields = []
            params = []
            for column, attr in EDITABLE_COLUMNS.items():
                if attr in values:
                    fields.append(f"{column} = ?")
                    params.append(column_value(getattr(data, attr)))
            if "password" in values:
                fields.append("password_hash = ?")
                params.append(password_hash)
            for column, reference in saved.items():
                fields.append(f"{column} = ?")
                params.append(reference)
            fields.append("updated_at = CURRENT_TIMESTAMP")
            params.append(memorial_id)
            cursor.execute(f"UPDATE memorials SET {', '.join(fields)} WHERE id = ?", params)
            if data.timeline is not None:
                replace_timeline(cursor, memorial_id, data.timeline)
            if data.important_dates is not None:
                replace_important_dates(cursor, memorial_id, data.important_dates)
    except Exception:
        delete_media_files(saved.values())
        raise

    # Reclaim the files the replaced slots pointed at
    for column, reference in saved.items():
        replace_slot_file(memorial[column], reference)

def _delete_memorial(memorial_id: int, user_id: int) -> int:
    with write_transaction() as conn:
        cursor = conn.cursor()
        memorial = check_memorial_owner(fetch_memorial_row(cursor, memorial_id), user_id, "delete")
        references = file_references(cursor, memorial)
        cursor.execute("DELETE FROM memorials WHERE id = ?", (memorial_id,))
    removed = delete_media_files(references)
    if removed != len(references):
        logger.warning("Memorial %s deleted; %d of %d files reclaimed", memorial_id, removed, len(references))
    return removed

def _check_attach_allowed(cursor, memorial_id: int, user_id: int):
    memorial = fetch_memorial_row(cursor, memorial_id)
    if not memorial:
        raise HTTPException(status_code=404, detail="Memorial not found")
    if not is_memorial_admin(cursor, memorial, user_id):
        raise HTTPException(status_code=403, detail="Only memorial admins can add media.")

def _attach_file(memorial_id: int, user_id: int, upload: UploadFile, category: str, insert_sql: str, extra: tuple):
    with get_db() as conn:
        _check_attach_allowed(conn.cursor(), memorial_id, user_id)
    reference = save_upload(upload, category)
    try:
        # Re-checked under the write lock so a concurrent delete cannot orphan the file
        with write_transaction() as conn:
            cursor = conn.cursor()
            _check_attach_allowed(cursor, memorial_id, user_id)
            cursor.execute(insert_sql, (memorial_id, reference) + extra)
            cursor.execute("UPDATE memorials SET updated_at = CURRENT_TIMESTAMP WHERE id = ?", (memorial_id,))
    except Exception:
        delete_media_file(reference)
        raise
    return get_memorial_response(memorial_id)

def _increment_counter(memorial_id: int, column: str) -> int:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"UPDATE memorials SET {column} = {column} + 1 WHERE id = ?", (memorial_id,))
        if cursor.rowcount == 0:
            raise HTTPException(status_code=404, detail="Memorial not found")
        cursor.execute(f"SELECT {column} FROM memorials WHERE id = ?", (memorial_id,))
        count = cursor.fetchone()[0]
        conn.commit()
        return count

@router.get("", response_model=List[MemorialResponse])
def list_public_memorials():
    return list_memorial_responses(
        "SELECT id FROM memorials WHERE privacy = 'public' ORDER BY created_at DESC, id DESC", ()
    )

@router.get("/my", response_model=List[MemorialResponse])
def list_my_memorials(current_user_id: int = Depends(get_current_user_id)):
    return list_memorial_responses(
        """
        SELECT id FROM memorials
        WHERE created_by = ? OR id IN (SELECT memorial_id FROM memorial_admins WHERE user_id = ?)
        ORDER BY created_at DESC, id DESC
        """,
        (current_user_id, current_user_id)
    )

@router.get("/{memorial_id}", response_model=MemorialResponse)
def get_memorial(memorial_id: int, current_user_id: Optional[int] = Depends(get_optional_user_id)):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT privacy FROM memorials WHERE id = ?", (memorial_id,))
        row = cursor.fetchone()
        if not row:
            raise HTTPException(status_code=404, detail="Memorial not found")
        if row[0] == Privacy.restricted.value and current_user_id is None:
            raise HTTPException(status_code=403, detail="Login required to view this memorial")
        cursor.execute("UPDATE memorials SET views = views + 1 WHERE id = ?", (memorial_id,))
        conn.commit()
    return get_memorial_response(memorial_id)

@router.post("", status_code=201, response_model=MemorialResponse)
async def create_memorial(request: Request, current_user_id: int = Depends(get_current_user_id)):
    form = await request.form()
    fields, files = split_form(form)
    data = parse_form(MemorialCreate, fields)
    uploads = collect_slot_uploads(files)
    memorial_id = await run_in_threadpool(_create_memorial, current_user_id, data, uploads)
    return await run_in_threadpool(get_memorial_response, memorial_id)

@router.put("/{memorial_id}", response_model=MemorialResponse)
async def update_memorial(memorial_id: int, request: Request, current_user_id: int = Depends(get_current_user_id)):
    form = await request.form()
    fields, files = split_form(form)
    data = parse_form(MemorialUpdate, fields)
    uploads = collect_slot_uploads(files)
    await run_in_threadpool(_update_memorial, memorial_id, current_user_id, data, uploads)
    return await run_in_threadpool(get_memorial_response, memorial_id)

@router.delete("/{memorial_id}", response_model=MessageResponse)
def delete_memorial(memorial_id: int, current_user_id: int = Depends(get_current_user_id)):
    _delete_memorial(memorial_id, current_user_id)
    return {"message": "Memorial deleted"}

@router.post("/{memorial_id}/photos", response_model=MemorialResponse)
def upload_photo(
    memorial_id: int,
    photo: UploadFile = File(...),
    description: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    current_user_id: int = Depends(get_current_user_id)
):
    return _attach_file(
        memorial_id, current_user_id, photo, "photos",
        "INSERT INTO memorial_photos (memorial_id, url, description, date, category) VALUES (?, ?, ?, ?, ?)",
        (description, parse_optional_date(date), category)
    )

@router.post("/{memorial_id}/videos", response_model=MemorialResponse)
def upload_video(
    memorial_id: int,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    thumbnail: Optional[str] = Form(None),
    current_user_id: int = Depends(get_current_user_id)
):
    return _attach_file(
        memorial_id, current_user_id, file, "videos",
        "INSERT INTO memorial_videos (memorial_id, url, thumbnail, description) VALUES (?, ?, ?, ?)",
        (thumbnail, description)
    )

@router.post("/{memorial_id}/audios", response_model=MemorialResponse)
def upload_audio(
    memorial_id: int,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    current_user_id: int = Depends(get_current_user_id)
):
    return _attach_file(
        memorial_id, current_user_id, file, "audios",
        "INSERT INTO memorial_audios (memorial_id, url, description) VALUES (?, ?, ?)",
        (description,)
    )

@router.post("/{memorial_id}/documents", response_model=MemorialResponse)
def upload_document(
    memorial_id: int,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    current_user_id: int = Depends(get_current_user_id)
):
    return _attach_file(
        memorial_id, current_user_id, file, "documents",
        "INSERT INTO memorial_documents (memorial_id, url, title, doc_type) VALUES (?, ?, ?, ?)",
        (title or file.filename, file.content_type)
    )

@router.post("/{memorial_id}/messages", response_model=MemorialResponse)
def add_message(memorial_id: int, message: MessageCreate):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT 1 FROM memorials WHERE id = ?", (memorial_id,))
        if not cursor.fetchone():
            raise HTTPException(status_code=404, detail="Memorial not found")
        author = (message.author or "").strip() or ANONYMOUS_AUTHOR
        cursor.execute(
            "INSERT INTO memorial_messages (memorial_id, author, content) VALUES (?, ?, ?)",
            (memorial_id, author, message.content)
        )
        conn.commit()
    return get_memorial_response(memorial_id)

@router.post("/{memorial_id}/candle", response_model=CounterResponse)
def light_candle(memorial_id: int):
    return {"message": "Candle lit", "count": _increment_counter(memorial_id, "candles")}

@router.post("/{memorial_id}/flower", response_model=CounterResponse)
def offer_flower(memorial_id: int):
    return {"message": "Flower offered", "count": _increment_counter(memorial_id, "flowers")}

@router.post("/{memorial_id}/admins", response_model=MemorialResponse)
def add_admin(memorial_id: int, req: AdminAdd, current_user_id: int = Depends(get_current_user_id)):
    with get_db() as conn:
        cursor = conn.cursor()
        memorial = fetch_memorial_row(cursor, memorial_id)
        if not memorial:
            raise HTTPException(status_code=404, detail="Memorial not found")
        if memorial["created_by"] != current_user_id:
            raise HTTPException(status_code=403, detail="Only the creator can manage admins.")
        if not get_user_by_id(req.user_id):
            raise HTTPException(status_code=404, detail="User not found")
        cursor.execute("INSERT OR IGNORE INTO memorial_admins (memorial_id, user_id) VALUES (?, ?)", (memorial_id, req.user_id))
        conn.commit()
    return get_memorial_response(memorial_id)

@router.delete("/{memorial_id}/admins/{user_id}", response_model=MemorialResponse)
def remove_admin(memorial_id: int, user_id: int, current_user_id: int = Depends(get_current_user_id)):
    with get_db() as conn:
        cursor = conn.cursor()
        memorial = fetch_memorial_row(cursor, memorial_id)
        if not memorial:
            raise HTTPException(status_code=404, detail="Memorial not found")
        if memorial["created_by"] != current_user_id:
            raise HTTPException(status_code=403, detail="Only the creator can manage admins.")
        if user_id == memorial["created_by"]:
            raise HTTPException(status_code=400, detail="The creator cannot be removed from admins.")
        cursor.execute("DELETE FROM memorial_admins WHERE memorial_id = ? AND user_id = ?", (memorial_id, user_id))
        conn.commit()
    return get_memorial_response(memorial_id)
