from sqlalchemy import Column, DateTime, String, Text, Uuid, func

from shared.database.base import Base
from shared.database.models.article import new_id, utcnow


class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=new_id)
    label = Column(String, nullable=False)
    # query handed to the article generator
    value = Column(Text, nullable=False)
    # NULL for global categories
    user_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
