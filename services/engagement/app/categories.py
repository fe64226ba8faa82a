from typing import List, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError

from shared.app_logging.logger import get_logger
from shared.database.models.category import Category
from shared.database.session import DEFAULT_CATEGORIES, session_scope
from shared.schemas.articles import CategoryOut
from shared.utils.ids import is_durable_id

logger = get_logger("engagement.categories")


def default_categories() -> List[CategoryOut]:
    return [
        CategoryOut(id=f"default-{i}", label=label, value=value)
        for i, (label, value) in enumerate(DEFAULT_CATEGORIES)
    ]


def get_categories(user_id: Optional[str] = None) -> List[CategoryOut]:
    """Global categories followed by the user's own, oldest first."""
    clause = Category.user_id.is_(None)
    if user_id:
        clause = or_(clause, Category.user_id == user_id)

    try:
        with session_scope() as session:
            rows = session.scalars(
                select(Category).where(clause).order_by(Category.user_id.is_not(None), Category.created_at)
            ).all()
            categories = [CategoryOut.model_validate(row) for row in rows]
    except SQLAlchemyError as e:
        logger.error(f"❌ Failed to load categories, using defaults: {e}")
        return default_categories()

    return categories or default_categories()


def add_category(label: str, value: str, user_id: str) -> CategoryOut:
    label = (label or "").strip()
    value = (value or "").strip() or label
    if not label:
        raise ValueError("Category label must not be empty")

    with session_scope() as session:
        row = Category(label=label, value=value, user_id=user_id)
        session.add(row)
        session.commit()
        category = CategoryOut.model_validate(row)

    logger.info(f"🏷️ Category {label!r} added by {user_id}")
    return category


def delete_category(category_id: str, user_id: str) -> bool:
    """Delete a category owned by user_id. Global categories cannot be deleted."""
    if not is_durable_id(category_id) or not user_id:
        return False

    with session_scope() as session:
        result = session.execute(
            delete(Category).where(Category.id == category_id.lower(), Category.user_id == user_id)
        )
        session.commit()

    deleted = bool(result.rowcount)
    if deleted:
        logger.info(f"🗑️ Category {category_id} deleted by {user_id}")
    return deleted
