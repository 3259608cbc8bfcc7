from typing import Optional
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from database import get_db
from auth import get_user_id_from_token

# auto_error is off so a missing header gets our own 401 message
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

def get_current_user_id(token: Optional[str] = Depends(oauth2_scheme)) -> int:
    """Resolve the caller from the bearer token, rejecting missing or invalid tokens"""
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user_id = get_user_id_from_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id

def get_optional_user_id(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[int]:
    if not token:
        return None
    return get_user_id_from_token(token)

def get_user_by_id(user_id: int):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id, username, email FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        if row:
            return {"id": row[0], "username": row[1], "email": row[2]}
        return None