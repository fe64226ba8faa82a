import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, String, Text, Uuid, func

from shared.database.base import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Article(Base):
    __tablename__ = "articles"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    url = Column(Text, unique=True, nullable=False)
    # normalized deduplication key (host + path, lower-case)
    url_key = Column(Text, unique=True, nullable=False, index=True)
    title = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    source = Column(String, nullable=True)
    published_date = Column(String, nullable=True)
    category = Column(String, nullable=False, index=True)
    image_url = Column(Text, nullable=True)
    audio_base64 = Column(Text, nullable=True)
    sentiment_score = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<Article(id={self.id} url={self.url!r})>"
