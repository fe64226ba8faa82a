"""
Comment ledger: per-article comments, newest first, deletable by their author only.
"""

from typing import List

from prometheus_client import Counter
from sqlalchemy import delete, select

from services.engagement.app.errors import ArticleNotSynchronizedError
from services.engagement.app.users import ensure_user_exists
from shared.app_logging.logger import get_logger
from shared.database.models.comment import Comment
from shared.database.session import session_scope
from shared.schemas.articles import CommentOut, UserProfile
from shared.utils.ids import is_durable_id

logger = get_logger("engagement.comments")

COMMENTS_WRITTEN = Counter(
    "engagement_comments_total",
    "Comment ledger writes",
    ["action"],
)


def list_comments(article_id: str) -> List[CommentOut]:
    if not is_durable_id(article_id):
        return []

    with session_scope() as session:
        rows = session.scalars(
            select(Comment)
            .where(Comment.article_id == article_id.lower())
            .order_by(Comment.created_at.desc())
        ).all()
    return [CommentOut.from_row(row) for row in rows]


def add_comment(article_id: str, user: UserProfile, text: str) -> CommentOut:
    """
    Append a comment authored by user.

    Raises ArticleNotSynchronizedError when the article has no durable id.
    The author's profile row is created first if missing. Store errors
    propagate to the caller.
    """
    if not is_durable_id(article_id):
        raise ArticleNotSynchronizedError(article_id)

    ensure_user_exists(user)
    with session_scope() as session:
        row = Comment(article_id=article_id.lower(), user_id=user.id, username=user.username, text=text)
        session.add(row)
        session.commit()
        comment = CommentOut.from_row(row)

    COMMENTS_WRITTEN.labels(action="add").inc()
    logger.info(f"💬 Comment {comment.id} added to {article_id} by {user.id}")
    return comment


def delete_comment(comment_id: str, user_id: str) -> None:
    """Delete comment_id if user_id wrote it; otherwise nothing happens."""
    if not is_durable_id(comment_id) or not user_id:
        return

    with session_scope() as session:
        result = session.execute(
            delete(Comment).where(Comment.id == comment_id.lower(), Comment.user_id == user_id)
        )
        session.commit()

    if result.rowcount:
        COMMENTS_WRITTEN.labels(action="delete").inc()
        logger.info(f"🗑️ Comment {comment_id} deleted by {user_id}")
    else:
        logger.debug(f"Comment {comment_id} not deleted: missing or not authored by {user_id}")
