from pydantic import BaseModel, field_validator
from schemas.shared import StrictInput
from auth import MIN_PASSWORD_LENGTH

def _check_password(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long')
    return v

class UserCreate(StrictInput):
    username: str
    email: str
    password: str

    @field_validator('username', 'email')
    @classmethod
    def validate_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('This field is required')
        return v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if '@' not in v:
            raise ValueError('Invalid email address')
        return v

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _check_password(v)

class LoginRequest(StrictInput):
    email: str
    password: str

class ForgotPasswordRequest(StrictInput):
    email: str

class ResetPasswordRequest(StrictInput):
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _check_password(v)

class UserResponse(BaseModel):
    id: int
    username: str
    email: str

class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserResponse

class TokenCheckResponse(BaseModel):
    valid: bool
