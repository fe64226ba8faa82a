"""
Per-user engagement relations: likes, dislikes and favorites.

Each relation holds at most one row per (article, user) pair.
"""

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid, func

from shared.database.base import Base
from shared.database.models.article import new_id, utcnow


class Like(Base):
    __tablename__ = "likes"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    article_id = Column(Uuid(as_uuid=False), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("article_id", "user_id", name="uix_likes_article_user"),)


class Dislike(Base):
    __tablename__ = "dislikes"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    article_id = Column(Uuid(as_uuid=False), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("article_id", "user_id", name="uix_dislikes_article_user"),)


class Favorite(Base):
    __tablename__ = "favorites"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    article_id = Column(Uuid(as_uuid=False), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("article_id", "user_id", name="uix_favorites_article_user"),)
