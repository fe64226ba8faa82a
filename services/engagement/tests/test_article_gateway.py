from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from services.engagement.app import articles as gateway
from services.engagement.app import favorites, votes
from shared.database.models.article import Article
from shared.database.session import session_scope


def _row_count():
    with session_scope() as session:
        return session.scalar(select(func.count()).select_from(Article))


def test_save_collapses_scheme_and_slash_variants(db_engine, make_article):
    saved = gateway.save_articles("Generale", [
        make_article(url="https://x.com/a/", title="first"),
        make_article(url="http://x.com/a", title="second"),
    ])

    assert len(saved) == 1
    assert saved[0].title == "first"
    assert _row_count() == 1
    with session_scope() as session:
        assert session.scalar(select(Article.url_key)) == "x.com/a"


def test_save_upserts_existing_row(db_engine, make_article):
    first = gateway.save_articles("Generale", [make_article(url="https://x.com/b", title="old")])[0]
    second = gateway.save_articles("Generale", [make_article(url="http://x.com/b/", title="new")])[0]

    assert first.id == second.id
    assert _row_count() == 1
    assert gateway.get_cached_articles("Generale")[0].title == "new"


def test_save_keeps_existing_media_when_new_copy_has_none(db_engine, make_article):
    gateway.save_articles("Generale", [make_article(url="https://x.com/c", image_url="https://img/1.png")])
    saved = gateway.save_articles("Generale", [make_article(url="https://x.com/c")])

    assert len(saved) == 1
    assert gateway.get_cached_articles("Generale")[0].image_url == "https://img/1.png"


def test_save_returns_durable_ids_and_category(db_engine, make_article):
    saved = gateway.save_articles(None, [make_article(url="https://x.com/d", category=None)])

    assert saved[0].kind == "persisted"
    assert len(saved[0].id) == 36
    assert saved[0].category == "Generale"


def test_save_omits_failed_articles(db_engine, make_article):
    real_upsert = gateway._upsert

    def flaky(session, category, article):
        if article.url.endswith("/broken"):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return real_upsert(session, category, article)

    with patch.object(gateway, "_upsert", side_effect=flaky):
        saved = gateway.save_articles("Generale", [
            make_article(url="https://x.com/ok-1"),
            make_article(url="https://x.com/broken"),
            make_article(url="https://x.com/ok-2"),
        ])

    assert [a.url for a in saved] == ["https://x.com/ok-1", "https://x.com/ok-2"]
    assert _row_count() == 2


def test_save_empty_batch(db_engine):
    assert gateway.save_articles("Generale", []) == []


def test_cached_articles_are_newest_first_and_scoped(db_engine, make_article):
    gateway.save_articles("Generale", [make_article(url="https://x.com/1", title="one")])
    gateway.save_articles("Generale", [make_article(url="https://x.com/2", title="two")])
    gateway.save_articles("Scienza", [make_article(url="https://x.com/3", title="three", category="Scienza")])

    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    with session_scope() as session:
        for offset, key in enumerate(["x.com/1", "x.com/2"]):
            row = session.scalar(select(Article).where(Article.url_key == key))
            row.created_at = base + timedelta(minutes=offset)
        session.commit()

    cached = gateway.get_cached_articles("Generale")
    assert [a.title for a in cached] == ["two", "one"]
    assert [a.title for a in gateway.get_cached_articles("Scienza")] == ["three"]


def test_cached_articles_respect_window(db_engine, make_article):
    gateway.save_articles("Generale", [make_article(url=f"https://x.com/w{i}") for i in range(5)])

    with patch.object(gateway.settings.service, "cache_window", 3):
        assert len(gateway.get_cached_articles("Generale")) == 3


def test_blank_label_uses_default_category(db_engine, make_article):
    gateway.save_articles("  ", [make_article(url="https://x.com/e", category=None)])
    assert len(gateway.get_cached_articles("")) == 1


def test_cached_articles_empty_on_store_error(db_engine):
    with patch.object(gateway, "session_scope", side_effect=OperationalError("SELECT", {}, Exception("down"))):
        assert gateway.get_cached_articles("Generale") == []


def test_dedupe_by_url_first_wins():
    items = [("https://x.com/a", 1), ("http://x.com/a/", 2), (None, 3), ("https://x.com/b", 4)]
    assert gateway.dedupe_by_url(items, lambda i: i[0]) == [("https://x.com/a", 1), ("https://x.com/b", 4)]


def test_find_article_id_uses_normalized_key(db_engine, stored_article):
    assert gateway.find_article_id("http://NEWS.example.org/story/1/") == stored_article.id
    assert gateway.find_article_id("https://news.example.org/story/2") is None
    assert gateway.find_article_id("") is None


def test_update_image_and_audio(db_engine, stored_article):
    gateway.update_article_image(stored_article.url, "https://img/new.png")
    gateway.update_article_audio(stored_article.url, "UklGRg==")

    cached = gateway.get_cached_articles("Generale")[0]
    assert cached.image_url == "https://img/new.png"
    assert cached.audio_payload == "UklGRg=="


def test_update_image_swallows_failures(db_engine):
    with patch.object(gateway, "session_scope", side_effect=OperationalError("UPDATE", {}, Exception("down"))):
        gateway.update_article_image("https://x.com/a", "https://img/new.png")


def test_cleanup_keeps_recent_and_favorited_articles(db_engine, make_article, user):
    saved = gateway.save_articles("Generale", [
        make_article(url="https://x.com/old"),
        make_article(url="https://x.com/old-favorite"),
        make_article(url="https://x.com/recent"),
    ])
    old, old_favorite, recent = saved
    votes.toggle_like(old.id, user.id)
    favorites.add_favorite(old_favorite.id, user.id)

    stale = datetime.now(timezone.utc) - timedelta(days=30)
    with session_scope() as session:
        for article in (old, old_favorite):
            session.get(Article, article.id).created_at = stale
        session.commit()

    assert gateway.cleanup_old_articles(retention_days=7) == 1
    assert gateway.find_article_id(old.url) is None
    assert gateway.find_article_id(old_favorite.url) == old_favorite.id
    assert gateway.find_article_id(recent.url) == recent.id
    assert votes.get_like_count(old.id) == 0


def test_cleanup_with_nothing_to_remove(db_engine, stored_article):
    assert gateway.cleanup_old_articles() == 0
