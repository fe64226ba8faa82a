from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from services.engagement.app import comments
from services.engagement.app.errors import ArticleNotSynchronizedError
from shared.database.models.comment import Comment
from shared.database.models.user import User
from shared.database.session import session_scope


def test_add_comment_creates_author_profile(db_engine, stored_article, user):
    comment = comments.add_comment(stored_article.id, user, "Che bella notizia!")

    assert comment.article_id == stored_article.id
    assert comment.user_id == user.id
    assert comment.username == "Alice"
    assert comment.timestamp > 0
    with session_scope() as session:
        profile = session.get(User, user.id)
        assert profile.username == "Alice"


def test_add_comment_refreshes_profile(db_engine, stored_article, user):
    comments.add_comment(stored_article.id, user, "primo")
    renamed = user.model_copy(update={"username": "Alice B."})
    comments.add_comment(stored_article.id, renamed, "secondo")

    with session_scope() as session:
        assert session.get(User, user.id).username == "Alice B."


def test_add_comment_requires_durable_id(db_engine, user, statements):
    with pytest.raises(ArticleNotSynchronizedError) as exc:
        comments.add_comment("https://x.com/a", user, "ciao")

    assert "not been synchronized" in str(exc.value)
    assert statements == []


def test_list_comments_newest_first(db_engine, stored_article, user, other_user):
    first = comments.add_comment(stored_article.id, user, "primo")
    second = comments.add_comment(stored_article.id, other_user, "secondo")

    with session_scope() as session:
        session.get(Comment, first.id).created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        session.get(Comment, second.id).created_at = datetime(2024, 1, 2, tzinfo=timezone.utc)
        session.commit()

    listed = comments.list_comments(stored_article.id)
    assert [c.text for c in listed] == ["secondo", "primo"]
    assert listed[0].timestamp == int(datetime(2024, 1, 2, tzinfo=timezone.utc).timestamp() * 1000)


def test_list_comments_invalid_id_skips_store(db_engine, statements):
    assert comments.list_comments("") == []
    assert comments.list_comments("transient") == []
    assert statements == []


def test_non_author_delete_is_noop(db_engine, stored_article, user, other_user):
    comment = comments.add_comment(stored_article.id, user, "resta qui")
    before = comments.list_comments(stored_article.id)

    comments.delete_comment(comment.id, other_user.id)

    assert comments.list_comments(stored_article.id) == before


def test_author_can_delete(db_engine, stored_article, user):
    comment = comments.add_comment(stored_article.id, user, "da cancellare")

    comments.delete_comment(comment.id, user.id)

    assert comments.list_comments(stored_article.id) == []
    with session_scope() as session:
        assert session.scalar(select(Comment.id)) is None


def test_delete_with_invalid_id_is_noop(db_engine, statements, user):
    comments.delete_comment("nope", user.id)
    assert statements == []
