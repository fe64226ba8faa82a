"""
Like/dislike engagement store.

A user holds at most one of {like, dislike} on an article. Toggles always
clear the opposite vote first, then flip their own.
"""

from typing import Dict, List, Optional, Type

from prometheus_client import Counter
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shared.app_logging.logger import get_logger
from shared.database.models.engagement import Dislike, Like
from shared.database.session import session_scope
from shared.schemas.articles import BatchCounts
from shared.utils.ids import is_durable_id

logger = get_logger("engagement.votes")

VOTES_TOGGLED = Counter(
    "engagement_votes_toggled_total",
    "Vote toggles by kind and resulting state",
    ["kind", "active"],
)

_ICONS = {"likes": "👍", "dislikes": "👎"}


def _toggle(model: Type, opposite: Type, article_id: str, user_id: str) -> bool:
    kind = model.__tablename__
    if not is_durable_id(article_id) or not user_id:
        logger.debug(f"Skipping {kind} toggle for non-durable article {article_id!r}")
        return False
    article_id = article_id.lower()

    with session_scope() as session:
        session.execute(
            delete(opposite).where(opposite.article_id == article_id, opposite.user_id == user_id)
        )
        session.commit()

        existing_id = session.scalar(
            select(model.id).where(model.article_id == article_id, model.user_id == user_id)
        )
        if existing_id is not None:
            session.execute(delete(model).where(model.id == existing_id))
            session.commit()
            VOTES_TOGGLED.labels(kind=kind, active="false").inc()
            logger.info(f"↩️ {kind} retracted on {article_id} by {user_id}")
            return False

        session.add(model(article_id=article_id, user_id=user_id))
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            # a concurrent request may have inserted the same vote; it is active either way
            raced = session.scalar(
                select(model.id).where(model.article_id == article_id, model.user_id == user_id)
            )
            if raced is None:
                logger.error(f"❌ {kind} insert rejected for {article_id}/{user_id}: {e.orig}")
                raise
            logger.warning(f"{kind} already present for {article_id}/{user_id}")

    VOTES_TOGGLED.labels(kind=kind, active="true").inc()
    logger.info(f"{_ICONS[kind]} {kind} recorded on {article_id} by {user_id}")
    return True


def toggle_like(article_id: str, user_id: str) -> bool:
    """Flip the user's like; any dislike is removed first. Returns whether a like is now active."""
    return _toggle(Like, Dislike, article_id, user_id)


def toggle_dislike(article_id: str, user_id: str) -> bool:
    """Mirror of toggle_like."""
    return _toggle(Dislike, Like, article_id, user_id)


def _count(model: Type, article_id: str) -> int:
    if not is_durable_id(article_id):
        return 0
    article_id = article_id.lower()
    try:
        with session_scope() as session:
            return session.scalar(
                select(func.count()).select_from(model).where(model.article_id == article_id)
            ) or 0
    except SQLAlchemyError as e:
        logger.error(f"❌ Counting {model.__tablename__} for {article_id} failed: {e}")
        return 0


def get_like_count(article_id: str) -> int:
    return _count(Like, article_id)


def get_dislike_count(article_id: str) -> int:
    return _count(Dislike, article_id)


def get_batch_counts(article_ids: List[str]) -> BatchCounts:
    """
    Like and dislike counts for many articles in two grouped queries.

    Ids without a vote are absent from the maps. Store errors propagate so
    callers can keep the counts they already have.
    """
    valid_ids = sorted({a.lower() for a in article_ids if is_durable_id(a)})
    if not valid_ids:
        return BatchCounts()

    logger.debug(f"📊 Fetching batch vote counts for {len(valid_ids)} articles")
    counts: Dict[str, Dict[str, int]] = {}
    with session_scope() as session:
        for name, model in (("likes", Like), ("dislikes", Dislike)):
            rows = session.execute(
                select(model.article_id, func.count())
                .where(model.article_id.in_(valid_ids))
                .group_by(model.article_id)
            ).all()
            counts[name] = {article_id: total for article_id, total in rows}

    return BatchCounts(likes=counts["likes"], dislikes=counts["dislikes"])


def _exists(model: Type, article_id: str, user_id: Optional[str]) -> bool:
    if not is_durable_id(article_id) or not user_id:
        return False
    article_id = article_id.lower()
    try:
        with session_scope() as session:
            return session.scalar(
                select(model.id).where(model.article_id == article_id, model.user_id == user_id)
            ) is not None
    except SQLAlchemyError as e:
        logger.error(f"❌ Vote lookup failed for {article_id}: {e}")
        return False


def has_user_liked(article_id: str, user_id: Optional[str]) -> bool:
    return _exists(Like, article_id, user_id)


def has_user_disliked(article_id: str, user_id: Optional[str]) -> bool:
    return _exists(Dislike, article_id, user_id)
