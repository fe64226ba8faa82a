from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid, func

from shared.database.base import Base
from shared.database.models.article import new_id, utcnow


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    article_id = Column(Uuid(as_uuid=False), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    # author's display name at post time
    username = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
