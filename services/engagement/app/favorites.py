from typing import List, Set

from prometheus_client import Counter
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from services.engagement.app.articles import row_to_article
from shared.app_logging.logger import get_logger
from shared.database.models.article import Article
from shared.database.models.engagement import Favorite
from shared.database.session import session_scope
from shared.schemas.articles import PersistedArticle
from shared.utils.ids import is_durable_id

logger = get_logger("engagement.favorites")

FAVORITES_TOGGLED = Counter(
    "engagement_favorites_toggled_total",
    "Favorite additions and removals",
    ["action"],
)


def is_favorite(article_id: str, user_id: str) -> bool:
    if not is_durable_id(article_id) or not user_id:
        return False
    try:
        with session_scope() as session:
            return session.scalar(
                select(Favorite.id).where(Favorite.article_id == article_id.lower(), Favorite.user_id == user_id)
            ) is not None
    except SQLAlchemyError as e:
        logger.error(f"❌ Favorite lookup failed: {e}")
        return False


def add_favorite(article_id: str, user_id: str) -> bool:
    """Add a favorite; an existing favorite for the pair counts as success."""
    if not is_durable_id(article_id) or not user_id:
        return False
    logger.info(f"❤️ Adding favorite: article {article_id} for user {user_id}")
    try:
        with session_scope() as session:
            session.add(Favorite(article_id=article_id.lower(), user_id=user_id))
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                if not is_favorite(article_id, user_id):
                    logger.error(f"❌ Favorite insert rejected: {e.orig}")
                    return False
                logger.info(f"Favorite already present for {article_id}/{user_id}")
    except SQLAlchemyError as e:
        logger.error(f"❌ Failed to add favorite: {e}")
        return False

    FAVORITES_TOGGLED.labels(action="add").inc()
    return True


def remove_favorite(article_id: str, user_id: str) -> bool:
    if not is_durable_id(article_id) or not user_id:
        return False
    logger.info(f"💔 Removing favorite: article {article_id} for user {user_id}")
    try:
        with session_scope() as session:
            session.execute(
                delete(Favorite).where(Favorite.article_id == article_id.lower(), Favorite.user_id == user_id)
            )
            session.commit()
    except SQLAlchemyError as e:
        logger.error(f"❌ Failed to remove favorite: {e}")
        return False

    FAVORITES_TOGGLED.labels(action="remove").inc()
    return True


def get_user_favorite_articles(user_id: str) -> List[PersistedArticle]:
    """The user's favorited articles, most recently favorited first, counts zeroed."""
    if not user_id:
        logger.warning("⚠️ get_user_favorite_articles called without a user id")
        return []

    try:
        with session_scope() as session:
            rows = session.scalars(
                select(Article)
                .join(Favorite, Favorite.article_id == Article.id)
                .where(Favorite.user_id == user_id)
                .order_by(Favorite.created_at.desc())
            ).all()
    except SQLAlchemyError as e:
        logger.error(f"❌ Favorite articles query failed: {e}")
        return []

    articles = [row_to_article(row) for row in rows]
    logger.info(f"✅ Loaded {len(articles)} favorite articles for {user_id}")
    return articles


def get_user_favorite_ids(user_id: str) -> Set[str]:
    if not user_id:
        return set()
    try:
        with session_scope() as session:
            ids = set(session.scalars(select(Favorite.article_id).where(Favorite.user_id == user_id)).all())
    except SQLAlchemyError as e:
        logger.error(f"❌ Favorite ids query failed: {e}")
        return set()

    logger.info(f"🔑 Synchronized {len(ids)} favorite ids")
    return ids
