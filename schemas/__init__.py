# Schemas package
from .auth import UserCreate, LoginRequest, ForgotPasswordRequest, ResetPasswordRequest, UserResponse, AuthResponse, TokenCheckResponse
from .memorials import Privacy, MemorialCreate, MemorialUpdate, MemorialResponse, MessageCreate, AdminAdd, CounterResponse
from .community import PostCategory, PostCreate, PostUpdate, CommentCreate, CommentResponse, PostSummary, PostResponse, PostListResponse, Pagination, LikeResponse, PinResponse, LockResponse, category_label
from .shared import MessageResponse
