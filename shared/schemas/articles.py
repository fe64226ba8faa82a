from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.utils.ids import is_durable_id


class ArticleBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., description="Natural key of the article")
    title: str = Field("", description="Headline")
    summary: str = Field("", description="Short positive summary")
    source: str = Field("", description="Publisher name")
    date: str = Field("", description="Publication date as shown to the reader")
    category: Optional[str] = Field(None, description="Category label the article was fetched under")
    image_url: str = Field("", alias="imageUrl", description="Illustration URL, may be empty")
    audio_payload: str = Field("", alias="audioBase64", description="Base64 narration, may be empty")
    sentiment_score: float = Field(0.8, alias="sentimentScore", description="Positivity score 0-1")
    like_count: int = Field(0, alias="likeCount", ge=0)
    dislike_count: int = Field(0, alias="dislikeCount", ge=0)
    is_new: bool = Field(False, alias="isNew", description="Freshly generated in this refresh")


class TransientArticle(ArticleBase):
    """An article known only from a fetch result; it has no durable id yet."""

    kind: Literal["transient"] = "transient"

    @property
    def id(self) -> None:
        return None


class PersistedArticle(ArticleBase):
    """An article with a store-assigned durable id."""

    kind: Literal["persisted"] = "persisted"
    id: str = Field(..., description="Durable identifier")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v):
        if not is_durable_id(v):
            raise ValueError(f"not a durable article id: {v!r}")
        return v.lower()


Article = Annotated[Union[TransientArticle, PersistedArticle], Field(discriminator="kind")]


def parse_article(data: dict) -> Union[TransientArticle, PersistedArticle]:
    """Build the right variant from loose input: a durable-shaped id makes it persisted."""
    payload = dict(data)
    article_id = payload.pop("id", None)
    payload.pop("kind", None)
    if is_durable_id(article_id):
        return PersistedArticle(id=article_id, **payload)
    return TransientArticle(**payload)


class VoteState(str, Enum):
    NONE = "none"
    LIKED = "liked"
    DISLIKED = "disliked"


class BatchCounts(BaseModel):
    likes: Dict[str, int] = Field(default_factory=dict)
    dislikes: Dict[str, int] = Field(default_factory=dict)


class UserProfile(BaseModel):
    id: str = Field(..., description="Auth provider user id")
    username: str = Field(..., description="Display name")
    avatar: Optional[str] = Field(None, description="Avatar URL")


class CommentOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    article_id: str = Field(..., alias="articleId")
    user_id: str = Field(..., alias="userId")
    username: str
    text: str
    timestamp: int = Field(..., description="Milliseconds since epoch")

    @classmethod
    def from_row(cls, row) -> "CommentOut":
        created = row.created_at or datetime.now(timezone.utc)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return cls(
            id=row.id,
            article_id=row.article_id,
            user_id=row.user_id,
            username=row.username,
            text=row.text,
            timestamp=int(created.timestamp() * 1000),
        )


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    label: str
    value: str
    user_id: Optional[str] = Field(None, alias="userId")
