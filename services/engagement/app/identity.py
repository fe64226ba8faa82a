"""
Article identity resolution.

An article starts out transient (fetched, never written) and becomes durable
the first time a vote, favorite or comment targets it. This module is the
only place where that transition happens.
"""

from typing import Optional, Union

from prometheus_client import Counter

from services.engagement.app import articles as article_gateway
from shared.app_logging.logger import get_logger, log_error_with_context
from shared.schemas.articles import PersistedArticle, TransientArticle
from shared.utils.ids import is_durable_id

logger = get_logger("engagement.identity")

ARTICLES_MATERIALIZED = Counter(
    "engagement_articles_materialized_total",
    "Transient articles persisted on first engagement",
)


def resolve(article: Union[TransientArticle, PersistedArticle]) -> Optional[str]:
    """
    Durable id for article, persisting it on first use.

    Returns None when the article could not be persisted; callers abort the
    action in that case.
    """
    if is_durable_id(article.id):
        return article.id

    existing = article_gateway.find_article_id(article.url)
    if existing:
        logger.debug(f"🔍 Found stored id {existing} for {article.url}")
        return existing

    logger.info(f"💾 Article not stored yet, persisting before engagement: {article.url}")
    try:
        saved = article_gateway.save_articles(article.category, [article])
    except Exception as e:
        log_error_with_context(logger, e, {"url": article.url, "category": article.category})
        return None

    if not saved:
        logger.warning(f"⚠️ Could not persist {article.url}; action aborted")
        return None

    ARTICLES_MATERIALIZED.inc()
    return saved[0].id

