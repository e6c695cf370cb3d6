from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Field names are snake_case in Python and camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- User ---

class NewUser(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    user: NewUser


class LoginUser(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    user: LoginUser


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    username: str | None = Field(None, min_length=1, max_length=100)
    password: str | None = Field(None, min_length=1)
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class UpdateUserRequest(BaseModel):
    user: UserUpdate


class UserResponse(BaseModel):
    email: str
    token: str
    username: str
    bio: str | None = None
    image: str | None = None


class UserEnvelope(BaseModel):
    user: UserResponse


# --- Profile ---

class ProfileResponse(BaseModel):
    username: str
    bio: str | None = None
    image: str | None = None
    following: bool = False


class ProfileEnvelope(BaseModel):
    profile: ProfileResponse


# --- Article ---

class ArticleCreate(CamelModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field(min_length=1)
    body: str = Field(min_length=1)
    tag_list: list[str] = []


class CreateArticleRequest(BaseModel):
    article: ArticleCreate


class ArticleUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, min_length=1)
    body: str | None = Field(None, min_length=1)
    tag_list: list[str] | None = None


class UpdateArticleRequest(BaseModel):
    article: ArticleUpdate


class ArticleResponse(CamelModel):
    slug: str
    title: str
    description: str
    body: str
    tag_list: list[str] = []
    created_at: datetime
    updated_at: datetime
    favorited: bool = False
    favorites_count: int = 0
    author: ProfileResponse


class ArticleEnvelope(BaseModel):
    article: ArticleResponse


class ArticleListResponse(CamelModel):
    articles: list[ArticleResponse]
    articles_count: int


# --- Comment ---

class CommentCreate(BaseModel):
    body: str = Field(min_length=1)


class CreateCommentRequest(BaseModel):
    comment: CommentCreate


class CommentResponse(CamelModel):
    id: str
    body: str
    created_at: datetime
    updated_at: datetime
    author: ProfileResponse


class CommentEnvelope(BaseModel):
    comment: CommentResponse


class CommentListResponse(BaseModel):
    comments: list[CommentResponse]


# --- Tag ---

class TagListResponse(BaseModel):
    tags: list[str]
