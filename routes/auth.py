import logging
import sqlite3
import time
from fastapi import APIRouter, HTTPException, Depends
from schemas.auth import (
    UserCreate, LoginRequest, ForgotPasswordRequest, ResetPasswordRequest,
    UserResponse, AuthResponse, TokenCheckResponse
)
from schemas.shared import MessageResponse
from database import get_db
from auth import hash_password, verify_password, create_access_token, generate_reset_token
from config import get_settings
from mailer import send_reset_password_email
from utils.route_helpers import get_current_user_id, get_user_by_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])

DUPLICATE_USER_MESSAGE = "Username or email already exists"
BAD_CREDENTIALS_MESSAGE = "Invalid email or password"
INVALID_RESET_TOKEN_MESSAGE = "Invalid or expired token"
FORGOT_PASSWORD_MESSAGE = "If that email is registered, a password reset link has been sent"

def now_millis() -> int:
    return int(time.time() * 1000)

def get_user_by_email(email: str, include_password=False):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id, username, email, password_hash FROM users WHERE email = ?", (email.strip(),))
        row = cursor.fetchone()
        if not row:
            return None
        user = {"id": row[0], "username": row[1], "email": row[2]}
        if include_password:
            user["password_hash"] = row[3]
        return user

def find_user_by_reset_token(token: str):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT id, email FROM users WHERE reset_password_token = ? AND reset_password_expire > ?",
            (token, now_millis())
        )
        row = cursor.fetchone()
        return {"id": row[0], "email": row[1]} if row else None

def auth_response(message: str, user: dict) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=create_access_token(user["id"]),
        user=UserResponse(id=user["id"], username=user["username"], email=user["email"])
    )

@router.post("/register", status_code=201, response_model=AuthResponse)
def register(user: UserCreate):
    hashed = hash_password(user.password)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT 1 FROM users WHERE username = ? OR email = ?", (user.username, user.email))
        if cursor.fetchone():
            raise HTTPException(status_code=400, detail=DUPLICATE_USER_MESSAGE)
        try:
            cursor.execute(
                "INSERT INTO users (username, email, password_hash) VALUES (?, ?, ?)",
                (user.username, user.email, hashed)
            )
        except sqlite3.IntegrityError:
            # lost a race with a concurrent registration
            raise HTTPException(status_code=400, detail=DUPLICATE_USER_MESSAGE)
        user_id = cursor.lastrowid
        conn.commit()
    logger.info("Registered user %s (id=%s)", user.username, user_id)
    return auth_response("Registration successful", {"id": user_id, "username": user.username, "email": user.email})

@router.post("/login", response_model=AuthResponse)
def login(login_data: LoginRequest):
    user = get_user_by_email(login_data.email, include_password=True)
    if not user or not verify_password(login_data.password, user["password_hash"]):
        raise HTTPException(status_code=400, detail=BAD_CREDENTIALS_MESSAGE)
    logger.info("User %s logged in", user["username"])
    return auth_response("Login successful", user)

@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(req: ForgotPasswordRequest):
    user = get_user_by_email(req.email)
    # Same answer whether or not the account exists
    if not user:
        return {"message": FORGOT_PASSWORD_MESSAGE}

    settings = get_settings()
    reset_token = generate_reset_token()
    expires_at = now_millis() + settings.reset_token_expire_minutes * 60 * 1000
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE users SET reset_password_token = ?, reset_password_expire = ? WHERE id = ?",
            (reset_token, expires_at, user["id"])
        )
        conn.commit()

    reset_url = f"{settings.client_url.rstrip('/')}/reset-password/{reset_token}"
    try:
        send_reset_password_email(user["email"], reset_url)
    except Exception:
        logger.exception("Failed to send password reset email to user %s", user["id"])
    return {"message": FORGOT_PASSWORD_MESSAGE}

@router.post("/reset-password/{token}", response_model=MessageResponse)
def reset_password(token: str, req: ResetPasswordRequest):
    hashed = hash_password(req.password)
    with get_db() as conn:
        cursor = conn.cursor()
        # Matching and clearing the token in one statement makes it single-use
        cursor.execute(
            """
            UPDATE users
            SET password_hash = ?, reset_password_token = NULL, reset_password_expire = NULL
            WHERE reset_password_token = ? AND reset_password_expire > ?
            """,
            (hashed, token, now_millis())
        )
        updated = cursor.rowcount
        conn.commit()
    if updated != 1:
        raise HTTPException(status_code=400, detail=INVALID_RESET_TOKEN_MESSAGE)
    return {"message": "Password has been reset"}

@router.get("/verify-reset-token/{token}", response_model=TokenCheckResponse)
def verify_reset_token(token: str):
    if not find_user_by_reset_token(token):
        raise HTTPException(status_code=400, detail=INVALID_RESET_TOKEN_MESSAGE)
    return {"valid": True}

@router.get("/me", response_model=UserResponse)
def get_current_user(current_user_id: int = Depends(get_current_user_id)):
    user = get_user_by_id(current_user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
