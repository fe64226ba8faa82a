"""
Article cache gateway: category-scoped reads and writes of article batches.

Rows are deduplicated on the normalized URL key; writes are upserts on that
key so the store never holds two rows for the same logical article.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings
from shared.database.models.article import Article
from shared.database.models.comment import Comment
from shared.database.models.engagement import Dislike, Favorite, Like
from shared.database.session import session_scope
from shared.schemas.articles import ArticleBase, PersistedArticle
from shared.utils.url import normalize_url

logger = get_logger("engagement.articles")
settings = get_settings()

T = TypeVar("T")


def dedupe_by_url(items: Iterable[T], url_of: Callable[[T], Optional[str]]) -> List[T]:
    """Keep the first item for each normalized URL; items without a URL are dropped."""
    seen = set()
    unique = []
    for item in items:
        url = url_of(item)
        if not url:
            continue
        key = normalize_url(url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def clean_label(category_label: Optional[str]) -> str:
    label = (category_label or "").strip()
    return label or settings.service.default_category


def row_to_article(row: Article, like_count: int = 0, dislike_count: int = 0) -> PersistedArticle:
    return PersistedArticle(
        id=row.id,
        url=row.url,
        title=row.title or "",
        summary=row.summary or "",
        source=row.source or "",
        date=row.published_date or (row.created_at.strftime("%d/%m/%Y") if row.created_at else ""),
        category=row.category,
        image_url=row.image_url or "",
        audio_payload=row.audio_base64 or "",
        sentiment_score=row.sentiment_score if row.sentiment_score is not None else 0.8,
        like_count=like_count,
        dislike_count=dislike_count,
    )


def get_cached_articles(category_label: Optional[str]) -> List[PersistedArticle]:
    """Most recent articles of a category, newest first, one per normalized URL."""
    label = clean_label(category_label)
    try:
        with session_scope() as session:
            rows = session.scalars(
                select(Article)
                .where(Article.category == label)
                .order_by(Article.created_at.desc())
                .limit(settings.service.cache_window)
            ).all()
    except SQLAlchemyError as e:
        logger.error(f"❌ Cache query failed for category {label!r}: {e}")
        return []

    articles = [row_to_article(row) for row in dedupe_by_url(rows, lambda r: r.url)]
    logger.debug(f"Loaded {len(articles)} cached articles for {label!r}")
    return articles


def find_article_id(url: str) -> Optional[str]:
    """Durable id of the stored row matching url's normalized key, if any."""
    if not url:
        return None
    try:
        with session_scope() as session:
            return session.scalar(select(Article.id).where(Article.url_key == normalize_url(url)))
    except SQLAlchemyError as e:
        logger.error(f"❌ Lookup by URL failed for {url}: {e}")
        return None


def _insert_for(session):
    if session.get_bind().dialect.name == "postgresql":
        return postgresql_insert
    return sqlite_insert


def _upsert(session, category: str, article: ArticleBase):
    insert = _insert_for(session)
    values = {
        "url": article.url,
        "url_key": normalize_url(article.url),
        "category": article.category or category,
        "title": article.title,
        "summary": article.summary,
        "source": article.source,
        "published_date": article.date or None,
        "sentiment_score": article.sentiment_score,
        "image_url": article.image_url or None,
        "audio_base64": article.audio_payload or None,
    }
    stmt = insert(Article).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Article.url_key],
        set_={
            "title": stmt.excluded.title,
            "summary": stmt.excluded.summary,
            "source": stmt.excluded.source,
            "published_date": stmt.excluded.published_date,
            "category": stmt.excluded.category,
            "sentiment_score": stmt.excluded.sentiment_score,
            "image_url": func.coalesce(stmt.excluded.image_url, Article.image_url),
            "audio_base64": func.coalesce(stmt.excluded.audio_base64, Article.audio_base64),
        },
    ).returning(Article.id, Article.category, Article.audio_base64)
    return session.execute(stmt).one()


def save_articles(category_label: Optional[str], articles: List[ArticleBase]) -> List[PersistedArticle]:
    """
    Upsert a batch, one row per normalized URL (first occurrence wins).

    Returns the articles that were persisted, with their durable ids. An
    article whose write fails is left out of the result; the rest of the
    batch still goes through.
    """
    if not articles:
        return []

    category = clean_label(category_label)
    unique = dedupe_by_url(articles, lambda a: a.url)
    saved: List[PersistedArticle] = []

    with session_scope() as session:
        for article in unique:
            try:
                row = _upsert(session, category, article)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"❌ Failed to save article {article.title[:50]!r}: {e}")
                continue

            fields = article.model_dump(exclude={"kind", "id", "category", "audio_payload"})
            saved.append(
                PersistedArticle(
                    **fields,
                    id=row.id,
                    category=row.category,
                    audio_payload=row.audio_base64 or "",
                )
            )

    logger.info(f"💾 Saved {len(saved)}/{len(unique)} articles for category {category!r}")
    return saved


def _patch_by_url(url: str, **values) -> None:
    try:
        with session_scope() as session:
            session.execute(update(Article).where(Article.url_key == normalize_url(url)).values(**values))
            session.commit()
    except Exception as e:
        logger.warning(f"Best-effort patch of {list(values)} for {url} dropped: {e}")


def update_article_image(url: str, image_url: str) -> None:
    """Best-effort: attach a generated illustration. Failures are discarded."""
    _patch_by_url(url, image_url=image_url)


def update_article_audio(url: str, audio_base64: str) -> None:
    """Best-effort: attach narration audio. Failures are discarded."""
    _patch_by_url(url, audio_base64=audio_base64)


def cleanup_old_articles(retention_days: Optional[int] = None) -> int:
    """
    Delete articles older than the retention window that nobody has
    favorited, together with their votes and comments. Returns the number of
    articles removed; 0 when the store is unavailable.
    """
    days = retention_days or settings.service.article_retention_days
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)

    stale = (
        select(Article.id)
        .where(Article.created_at < cutoff)
        .where(~Article.id.in_(select(Favorite.article_id)))
    )
    try:
        with session_scope() as session:
            stale_ids = list(session.scalars(stale).all())
            if not stale_ids:
                return 0
            for model in (Like, Dislike, Comment):
                session.execute(delete(model).where(model.article_id.in_(stale_ids)))
            session.execute(delete(Article).where(Article.id.in_(stale_ids)))
            session.commit()
    except SQLAlchemyError as e:
        logger.error(f"❌ Cleanup of old articles failed: {e}")
        return 0

    logger.info(f"🧹 Removed {len(stale_ids)} articles older than {days} days")
    return len(stale_ids)
