import logging
import math
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import List, Optional
from database import get_db, write_transaction
from schemas.community import (
    PostCategory, PostCreate, PostUpdate, CommentCreate, CommentResponse,
    PostSummary, PostResponse, PostListResponse, Pagination, LikeResponse, PinResponse, LockResponse
)
from schemas.shared import MessageResponse
from utils.route_helpers import get_current_user_id, get_user_by_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/community", tags=["community"])

ANONYMOUS_USER = "Anonymous user"

SUMMARY_COLUMNS = (
    "id", "title", "category", "author_id", "author_name", "like_count", "comment_count",
    "views", "is_pinned", "is_locked", "created_at", "updated_at",
)

# Helper: post row without the body, as shown in listings
def row_to_summary(row) -> PostSummary:
    post = dict(zip(SUMMARY_COLUMNS, row))
    return PostSummary(
        id=post["id"],
        title=post["title"],
        category=post["category"],
        author=post["author_id"],
        author_name=post["author_name"],
        like_count=post["like_count"],
        comment_count=post["comment_count"],
        views=post["views"],
        is_pinned=bool(post["is_pinned"]),
        is_locked=bool(post["is_locked"]),
        created_at=post["created_at"],
        updated_at=post["updated_at"],
    )

def get_post_author(cursor, post_id: int) -> int:
    cursor.execute("SELECT author_id FROM posts WHERE id = ?", (post_id,))
    row = cursor.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="Post not found")
    return row[0]

def get_author_name(user_id: int) -> str:
    user = get_user_by_id(user_id)
    return user["username"] if user else ANONYMOUS_USER

def refresh_post_counters(cursor, post_id: int):
    """Re-derive like_count and comment_count from their collections"""
    cursor.execute(
        """
        UPDATE posts
        SET like_count = (SELECT COUNT(*) FROM post_likes WHERE post_id = ?),
            comment_count = (SELECT COUNT(*) FROM post_comments WHERE post_id = ?)
        WHERE id = ?
        """,
        (post_id, post_id, post_id)
    )

def get_post_comments(cursor, post_id: int) -> List[CommentResponse]:
    cursor.execute(
        "SELECT id, author_id, author_name, content, created_at FROM post_comments WHERE post_id = ? ORDER BY id ASC",
        (post_id,)
    )
    return [
        CommentResponse(id=r[0], author=r[1], author_name=r[2], content=r[3], created_at=r[4])
        for r in cursor.fetchall()
    ]

def get_post_response(post_id: int) -> PostResponse:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"SELECT {', '.join(SUMMARY_COLUMNS)}, content FROM posts WHERE id = ?", (post_id,))
        row = cursor.fetchone()
        if not row:
            raise HTTPException(status_code=404, detail="Post not found")
        summary = row_to_summary(row[:-1])
        cursor.execute("SELECT user_id FROM post_likes WHERE post_id = ? ORDER BY id ASC", (post_id,))
        likes = [r[0] for r in cursor.fetchall()]
        comments = get_post_comments(cursor, post_id)
        return PostResponse(**summary.model_dump(exclude={"category_label"}), content=row[-1], likes=likes, comments=comments)

@router.get("/posts", response_model=PostListResponse)
def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[PostCategory] = Query(None),
    search: Optional[str] = Query(None)
):
    conditions = []
    params = []
    if category:
        conditions.append("category = ?")
        params.append(category.value)
    if search:
        pattern = "%" + search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        conditions.append("(title LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\')")
        params.extend([pattern, pattern])
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"SELECT COUNT(*) FROM posts {where}", params)
        total = cursor.fetchone()[0]
        cursor.execute(
            f"""
            SELECT {', '.join(SUMMARY_COLUMNS)} FROM posts {where}
            ORDER BY is_pinned DESC, created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            params + [limit, (page - 1) * limit]
        )
        posts = [row_to_summary(r) for r in cursor.fetchall()]
    return PostListResponse(
        posts=posts,
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit))
    )

@router.get("/posts/hot", response_model=List[PostSummary])
def list_hot_posts(limit: int = Query(5, ge=1, le=50)):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"""
            SELECT {', '.join(SUMMARY_COLUMNS)} FROM posts
            ORDER BY like_count DESC, comment_count DESC, views DESC, id DESC
            LIMIT ?
            """,
            (limit,)
        )
        return [row_to_summary(r) for r in cursor.fetchall()]

@router.get("/posts/{post_id}", response_model=PostResponse)
def get_post(post_id: int):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("UPDATE posts SET views = views + 1 WHERE id = ?", (post_id,))
        if cursor.rowcount == 0:
            raise HTTPException(status_code=404, detail="Post not found")
        conn.commit()
    return get_post_response(post_id)

@router.post("/posts", status_code=201, response_model=PostResponse)
def create_post(post: PostCreate, current_user_id: int = Depends(get_current_user_id)):
    author_name = get_author_name(current_user_id)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO posts (title, content, category, author_id, author_name) VALUES (?, ?, ?, ?, ?)",
            (post.title, post.content, post.category.value, current_user_id, author_name)
        )
        post_id = cursor.lastrowid
        conn.commit()
    logger.info("User %s created post %s", current_user_id, post_id)
    return get_post_response(post_id)

@router.put("/posts/{post_id}", response_model=PostResponse)
def edit_post(post_id: int, post: PostUpdate, current_user_id: int = Depends(get_current_user_id)):
    with get_db() as conn:
        cursor = conn.cursor()
        if get_post_author(cursor, post_id) != current_user_id:
            raise HTTPException(status_code=403, detail="You can only edit your own post.")
        # Build update query
        fields = []
        params = []
        if post.title is not None:
            fields.append("title = ?")
            params.append(post.title)
        if post.content is not None:
            fields.append("content = ?")
            params.append(post.content)
        if post.category is not None:
            fields.append("category = ?")
            params.append(post.category.value)
        if fields:
            fields.append("updated_at = CURRENT_TIMESTAMP")
            params.append(post_id)
            cursor.execute(f"UPDATE posts SET {', '.join(fields)} WHERE id = ?", params)
        conn.commit()
    return get_post_response(post_id)

@router.delete("/posts/{post_id}", response_model=MessageResponse)
def delete_post(post_id: int, current_user_id: int = Depends(get_current_user_id)):
    with get_db() as conn:
        cursor = conn.cursor()
        if get_post_author(cursor, post_id) != current_user_id:
            raise HTTPException(status_code=403, detail="You can only delete your own post.")
        cursor.execute("DELETE FROM posts WHERE id = ?", (post_id,))
        conn.commit()
    return {"message": "Post deleted"}

@router.post("/posts/{post_id}/like", response_model=LikeResponse)
def toggle_like(post_id: int, current_user_id: int = Depends(get_current_user_id)):
    with write_transaction() as conn:
        cursor = conn.cursor()
        get_post_author(cursor, post_id)
        cursor.execute("DELETE FROM post_likes WHERE post_id = ? AND user_id = ?", (post_id, current_user_id))
        liked = cursor.rowcount == 0
        if liked:
            cursor.execute("INSERT INTO post_likes (post_id, user_id) VALUES (?, ?)", (post_id, current_user_id))
        refresh_post_counters(cursor, post_id)
        cursor.execute("SELECT like_count FROM posts WHERE id = ?", (post_id,))
        like_count = cursor.fetchone()[0]
    return {"liked": liked, "like_count": like_count}

@router.post("/posts/{post_id}/comments", response_model=PostResponse)
def add_comment(post_id: int, comment: CommentCreate, current_user_id: int = Depends(get_current_user_id)):
    author_name = get_author_name(current_user_id)
    with write_transaction() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT is_locked FROM posts WHERE id = ?", (post_id,))
        row = cursor.fetchone()
        if not row:
            raise HTTPException(status_code=404, detail="Post not found")
        if row[0]:
            raise HTTPException(status_code=403, detail="This post is locked.")
        cursor.execute(
            "INSERT INTO post_comments (post_id, author_id, author_name, content) VALUES (?, ?, ?, ?)",
            (post_id, current_user_id, author_name, comment.content)
        )
        refresh_post_counters(cursor, post_id)
    return get_post_response(post_id)

@router.delete("/posts/{post_id}/comments/{comment_id}", response_model=MessageResponse)
def delete_comment(post_id: int, comment_id: int, current_user_id: int = Depends(get_current_user_id)):
    with write_transaction() as conn:
        cursor = conn.cursor()
        post_author_id = get_post_author(cursor, post_id)
        cursor.execute("SELECT author_id FROM post_comments WHERE id = ? AND post_id = ?", (comment_id, post_id))
        row = cursor.fetchone()
        if not row:
            raise HTTPException(status_code=404, detail="Comment not found")
        if current_user_id not in (row[0], post_author_id):
            raise HTTPException(status_code=403, detail="You do not have permission to delete this comment.")
        cursor.execute("DELETE FROM post_comments WHERE id = ?", (comment_id,))
        refresh_post_counters(cursor, post_id)
    return {"message": "Comment deleted"}

@router.put("/posts/{post_id}/pin", response_model=PinResponse)
def toggle_pin(post_id: int, current_user_id: int = Depends(get_current_user_id)):
    with get_db() as conn:
        cursor = conn.cursor()
        if get_post_author(cursor, post_id) != current_user_id:
            raise HTTPException(status_code=403, detail="You can only pin your own post.")
        cursor.execute("UPDATE posts SET is_pinned = NOT is_pinned WHERE id = ?", (post_id,))
        cursor.execute("SELECT is_pinned FROM posts WHERE id = ?", (post_id,))
        is_pinned = bool(cursor.fetchone()[0])
        conn.commit()
    return {"is_pinned": is_pinned}

@router.put("/posts/{post_id}/lock", response_model=LockResponse)
def toggle_lock(post_id: int, current_user_id: int = Depends(get_current_user_id)):
    with get_db() as conn:
        cursor = conn.cursor()
        if get_post_author(cursor, post_id) != current_user_id:
            raise HTTPException(status_code=403, detail="You can only lock your own post.")
        cursor.execute("UPDATE posts SET is_locked = NOT is_locked WHERE id = ?", (post_id,))
        cursor.execute("SELECT is_locked FROM posts WHERE id = ?", (post_id,))
        is_locked = bool(cursor.fetchone()[0])
        conn.commit()
    return {"is_locked": is_locked}
