"""
Process-wide session state: the signed-in user and their favorite-id set.

start() subscribes to auth lifecycle events and loads the current session;
stop() unsubscribes. Listeners run after the state has been updated.
"""

import asyncio
import inspect
from typing import Awaitable, Callable, List, Optional, Set, Union

from services.engagement.app import favorites
from services.engagement.app.auth import AuthClient, AuthEvent, AuthEventType, Subscription
from services.engagement.app.errors import SessionUnavailableError
from shared.app_logging.logger import get_logger
from shared.schemas.articles import UserProfile

logger = get_logger("engagement.session")

SessionListener = Callable[[AuthEvent], Union[None, Awaitable[None]]]


class SessionState:
    def __init__(self, auth_client: AuthClient):
        self.auth = auth_client
        self.current_user: Optional[UserProfile] = None
        self.favorite_ids: Set[str] = set()
        self._subscription: Optional[Subscription] = None
        self._listeners: List[SessionListener] = []

    @property
    def started(self) -> bool:
        return self._subscription is not None

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.auth.on_auth_state_change(self._on_auth_event)
        await self._load_user()
        logger.info(f"🔐 Session started for {self.current_user.id if self.current_user else 'anonymous'}")

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        logger.info("Session state unsubscribed")

    async def _load_user(self) -> bool:
        """Reload the user and favorite ids; on a session store failure the previous state is kept."""
        try:
            user = await asyncio.to_thread(self.auth.get_current_user)
        except SessionUnavailableError as e:
            logger.warning(f"⚠️ Keeping session of {self.current_user.id if self.current_user else 'anonymous'}: {e}")
            return False

        ids = await asyncio.to_thread(favorites.get_user_favorite_ids, user.id) if user else set()
        self.current_user = user
        self.favorite_ids = ids
        return True

    def clear(self) -> None:
        self.current_user = None
        self.favorite_ids = set()

    async def _on_auth_event(self, event: AuthEvent) -> None:
        if event.event in (AuthEventType.SIGNED_IN, AuthEventType.TOKEN_REFRESHED):
            await self._load_user()
        elif event.event == AuthEventType.SIGNED_OUT:
            self.clear()
        logger.info(f"🔄 Session updated after {event.event.value}")

        for listener in list(self._listeners):
            result = listener(event)
            if inspect.isawaitable(result):
                await result

    async def sign_out(self) -> None:
        """Sign out and apply the resulting event locally without waiting for the stream."""
        await asyncio.to_thread(self.auth.sign_out)
        await self._on_auth_event(AuthEvent(event=AuthEventType.SIGNED_OUT))
