from sqlalchemy import select

from shared.app_logging.logger import get_logger
from shared.database.models.user import User
from shared.database.session import session_scope
from shared.schemas.articles import UserProfile

logger = get_logger("engagement.users")


def ensure_user_exists(profile: UserProfile) -> None:
    """Create the profile row on first sight; refresh username and avatar otherwise."""
    with session_scope() as session:
        row = session.scalar(select(User).where(User.id == profile.id))
        if row is None:
            session.add(User(id=profile.id, username=profile.username, avatar=profile.avatar))
            logger.info(f"👤 Created profile row for {profile.id}")
        else:
            row.username = profile.username
            row.avatar = profile.avatar
        session.commit()
