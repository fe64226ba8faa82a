from sqlalchemy import Column, DateTime, String, Text, func

from shared.database.base import Base
from shared.database.models.article import utcnow


class User(Base):
    """Profile row for an authenticated user, keyed by the auth provider's id."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False)
    avatar = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
