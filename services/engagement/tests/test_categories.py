from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from services.engagement.app import categories
from shared.database.session import DEFAULT_CATEGORIES, SessionLocal, seed_categories


@pytest.fixture
def seeded(db_engine):
    with SessionLocal() as session:
        seed_categories(session)


def test_seed_is_idempotent(db_engine):
    with SessionLocal() as session:
        assert seed_categories(session) == len(DEFAULT_CATEGORIES)
        assert seed_categories(session) == 0


def test_global_categories_for_anonymous(seeded):
    result = categories.get_categories()
    assert {c.label for c in result} == {label for label, _ in DEFAULT_CATEGORIES}
    assert all(c.user_id is None for c in result)


def test_user_categories_follow_globals(seeded, user, other_user):
    mine = categories.add_category("Sport", "Sport notizie positive", user.id)
    categories.add_category("Arte", "Arte notizie positive", other_user.id)

    result = categories.get_categories(user.id)

    assert result[-1].id == mine.id
    assert mine.user_id == user.id
    assert "Arte" not in [c.label for c in result]


def test_add_category_requires_label(db_engine, user):
    with pytest.raises(ValueError):
        categories.add_category("  ", "", user.id)


def test_only_owner_can_delete(seeded, user, other_user):
    mine = categories.add_category("Sport", "", user.id)
    assert mine.value == "Sport"

    assert categories.delete_category(mine.id, other_user.id) is False
    assert categories.delete_category(mine.id, user.id) is True
    assert mine.id not in [c.id for c in categories.get_categories(user.id)]


def test_global_category_cannot_be_deleted(seeded, user):
    general = categories.get_categories()[0]
    assert categories.delete_category(general.id, user.id) is False


def test_defaults_on_store_error(db_engine):
    with patch.object(categories, "session_scope", side_effect=OperationalError("SELECT", {}, Exception("down"))):
        result = categories.get_categories("user-1")

    assert [c.label for c in result] == [label for label, _ in DEFAULT_CATEGORIES]


def test_defaults_when_table_empty(db_engine):
    assert len(categories.get_categories()) == len(DEFAULT_CATEGORIES)
