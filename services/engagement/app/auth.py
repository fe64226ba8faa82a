"""
Authentication collaborator over Redis.

The signed-in profile is a JSON document under the session key; lifecycle
events are published on a stream and fanned out to subscribers by the
auth-event worker.
"""

import inspect
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError
from redis.exceptions import RedisError

from services.engagement.app.errors import SessionUnavailableError
from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings
from shared.schemas.articles import UserProfile
from shared.utils.redis_client import RedisClient, get_redis_client

logger = get_logger("engagement.auth")
settings = get_settings()


class AuthEventType(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    SIGNED_OUT = "SIGNED_OUT"


class AuthEvent(BaseModel):
    version: str = Field("1.0", description="Message schema version")
    event: AuthEventType
    user_id: Optional[str] = Field(None, description="Subject of the event, empty on sign-out")
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


AuthCallback = Callable[[AuthEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Handle returned by AuthClient.on_auth_state_change."""

    def __init__(self, client: "AuthClient", callback: AuthCallback):
        self._client = client
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._client._remove(self.callback)
            self.active = False


class AuthClient:
    def __init__(self, redis_client: Optional[RedisClient] = None):
        self.redis = redis_client or get_redis_client("engagement")
        self.session_key = settings.service.auth_session_key
        self.stream = settings.service.auth_stream
        self._callbacks: List[AuthCallback] = []

    def get_current_user(self) -> Optional[UserProfile]:
        """
        Profile of the signed-in user, or None when signed out.

        A malformed session document counts as signed out. Raises
        SessionUnavailableError when the session store cannot be read.
        """
        try:
            raw = self.redis.get(self.session_key, raise_on_error=True)
        except (RedisError, OSError) as e:
            raise SessionUnavailableError(f"Session store unavailable: {e}") from e
        if not raw:
            return None
        try:
            return UserProfile.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"⚠️ Ignoring malformed session document: {e}")
            return None

    def _publish(self, event: AuthEvent) -> str:
        payload = {
            "version": event.version,
            "event": event.event.value,
            "user_id": event.user_id or "",
            "emitted_at": event.emitted_at.isoformat(),
        }
        message_id = self.redis.xadd(self.stream, payload)
        logger.info(f"📤 Published {event.event.value}: {message_id}")
        return message_id

    def sign_in(self, profile: UserProfile) -> str:
        self.redis.set(self.session_key, profile.model_dump_json())
        return self._publish(AuthEvent(event=AuthEventType.SIGNED_IN, user_id=profile.id))

    def sign_out(self) -> str:
        try:
            user = self.get_current_user()
        except SessionUnavailableError as e:
            logger.warning(f"⚠️ Signing out an unknown user: {e}")
            user = None
        self.redis.delete(self.session_key)
        return self._publish(AuthEvent(event=AuthEventType.SIGNED_OUT, user_id=user.id if user else None))

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        self._callbacks.append(callback)
        return Subscription(self, callback)

    def _remove(self, callback: AuthCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def dispatch(self, event: AuthEvent) -> None:
        """Deliver event to every subscriber, awaiting coroutine callbacks."""
        for callback in list(self._callbacks):
            result = callback(event)
            if inspect.isawaitable(result):
                await result
