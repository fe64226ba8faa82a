"""
Engagement reconciliation layer.

Gestures translate into store calls, then into a snapshot pushed to every
in-memory holder of the affected article (list entries and the selected
article). This module is the only writer of the view state.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from services.engagement.app import articles as article_gateway
from services.engagement.app import categories, comments, favorites, identity, votes
from services.engagement.app.auth import AuthEvent, AuthEventType
from services.engagement.app.errors import (ArticleNotSynchronizedError, CommentPostError,
                                            GeneratorUnavailableError)
from services.engagement.app.generator import fetch_positive_news
from services.engagement.app.session_state import SessionState
from shared.app_logging.logger import CorrelationContext, get_logger
from shared.config.settings import get_settings
from shared.schemas.articles import (CategoryOut, CommentOut, PersistedArticle, TransientArticle,
                                     UserProfile, VoteState, parse_article)
from shared.utils.url import normalize_url

logger = get_logger("engagement.reconcile")
settings = get_settings()

AnyArticle = Union[TransientArticle, PersistedArticle]
Generator = Callable[[str, str], Awaitable[List[TransientArticle]]]


class GestureOutcome(str, Enum):
    OK = "ok"
    LOGIN_REQUIRED = "login_required"
    ABORTED = "aborted"


@dataclass
class Notification:
    message: str
    expires_at: datetime


def _merge(holder: AnyArticle, changes: Dict[str, Any]) -> AnyArticle:
    data = holder.model_dump(exclude={"kind"})
    data.update(changes)
    return parse_article(data)


@dataclass
class ViewState:
    articles: List[AnyArticle] = field(default_factory=list)
    selected: Optional[AnyArticle] = None
    comments: List[CommentOut] = field(default_factory=list)
    user_votes: Dict[str, VoteState] = field(default_factory=dict)
    categories: List[CategoryOut] = field(default_factory=list)
    active_category_id: Optional[str] = None
    search_term: str = ""
    show_login: bool = False
    show_favorites_only: bool = False
    notification: Optional[Notification] = None

    def notify(self, message: str, seconds: Optional[float] = None) -> None:
        duration = settings.service.notification_seconds if seconds is None else seconds
        self.notification = Notification(message, datetime.now(timezone.utc) + timedelta(seconds=duration))

    def current_notification(self, now: Optional[datetime] = None) -> Optional[str]:
        if self.notification is None:
            return None
        if (now or datetime.now(timezone.utc)) >= self.notification.expires_at:
            self.notification = None
            return None
        return self.notification.message

    def _matches(self, holder: AnyArticle, article_id: Optional[str], url_key: Optional[str]) -> bool:
        if article_id and holder.id == article_id:
            return True
        return bool(url_key) and normalize_url(holder.url) == url_key

    def broadcast(self, article_id: Optional[str], url: Optional[str], **changes) -> None:
        """Merge changes into every holder whose id or normalized url matches."""
        if article_id:
            changes["id"] = article_id
        url_key = normalize_url(url) if url else None
        self.articles = [
            _merge(a, changes) if self._matches(a, article_id, url_key) else a for a in self.articles
        ]
        if self.selected is not None and self._matches(self.selected, article_id, url_key):
            self.selected = _merge(self.selected, changes)

    @property
    def active_category(self) -> Optional[CategoryOut]:
        return next((c for c in self.categories if c.id == self.active_category_id), None)

    def next_article(self) -> Optional[AnyArticle]:
        if self.selected is None:
            return None
        for i, a in enumerate(self.articles):
            if a.url == self.selected.url:
                return self.articles[i + 1] if i + 1 < len(self.articles) else None
        return None

    def snapshot(self, session: SessionState) -> Dict[str, Any]:
        if self.search_term:
            label = f"Ricerca: {self.search_term}"
        else:
            label = self.active_category.label if self.active_category else None
        following = self.next_article()
        return {
            "currentUser": session.current_user.model_dump() if session.current_user else None,
            "articles": [a.model_dump(by_alias=True) for a in self.articles],
            "selected": self.selected.model_dump(by_alias=True) if self.selected else None,
            "nextArticle": following.model_dump(by_alias=True) if following else None,
            "comments": [c.model_dump(by_alias=True) for c in self.comments],
            "favoriteIds": sorted(session.favorite_ids),
            "userVotes": {k: v.value for k, v in self.user_votes.items()},
            "categories": [c.model_dump(by_alias=True) for c in self.categories],
            "activeCategoryId": self.active_category_id,
            "activeCategoryLabel": label,
            "showLogin": self.show_login,
            "showFavoritesOnly": self.show_favorites_only,
            "notification": self.current_notification(),
        }


class Reconciler:
    def __init__(self, session: SessionState, state: Optional[ViewState] = None, generator: Generator = fetch_positive_news):
        self.session = session
        self.state = state or ViewState()
        self.generator = generator
        session.add_listener(self._on_session_change)

    def _require_user(self) -> Optional[UserProfile]:
        user = self.session.current_user
        if user is None:
            self.state.show_login = True
            logger.info("🔒 Gesture requires login")
        return user

    async def _resolve(self, article: AnyArticle) -> Optional[str]:
        article_id = await asyncio.to_thread(identity.resolve, article)
        if article_id is None:
            logger.warning(f"⚠️ Could not resolve identity for {article.url}; gesture aborted")
            return None
        if article.id != article_id:
            self.state.broadcast(article_id, article.url)
        return article_id

    async def enrich_with_counts(self, items: List[AnyArticle]) -> List[AnyArticle]:
        """Overwrite counts from one batched lookup; on failure the list is returned untouched."""
        ids = [a.id for a in items if a.id]
        if not ids:
            return items

        logger.info(f"🔄 Enriching {len(items)} articles with vote counts")
        try:
            counts = await asyncio.to_thread(votes.get_batch_counts, ids)
        except SQLAlchemyError as e:
            logger.error(f"❌ Vote enrichment failed: {e}")
            return items

        return [
            a.model_copy(update={
                "like_count": counts.likes.get(a.id, 0) if a.id else 0,
                "dislike_count": counts.dislikes.get(a.id, 0) if a.id else 0,
            })
            for a in items
        ]

    async def _vote(self, article: AnyArticle, toggle: Callable[[str, str], bool], active: VoteState, message: str) -> GestureOutcome:
        with CorrelationContext():
            user = self._require_user()
            if user is None:
                return GestureOutcome.LOGIN_REQUIRED

            article_id = await self._resolve(article)
            if article_id is None:
                return GestureOutcome.ABORTED

            try:
                now_active = await asyncio.to_thread(toggle, article_id, user.id)
                like_count = await asyncio.to_thread(votes.get_like_count, article_id)
                dislike_count = await asyncio.to_thread(votes.get_dislike_count, article_id)
            except SQLAlchemyError as e:
                logger.error(f"❌ Vote on {article_id} failed: {e}")
                return GestureOutcome.ABORTED

            self.state.broadcast(article_id, article.url, like_count=like_count, dislike_count=dislike_count)
            self.state.user_votes[article_id] = active if now_active else VoteState.NONE
            self.state.notify(message)
            return GestureOutcome.OK

    async def like(self, article: AnyArticle) -> GestureOutcome:
        return await self._vote(article, votes.toggle_like, VoteState.LIKED, "Grazie per il tuo feedback positivo! ✨")

    async def dislike(self, article: AnyArticle) -> GestureOutcome:
        return await self._vote(article, votes.toggle_dislike, VoteState.DISLIKED, "Feedback ricevuto.")

    async def toggle_favorite(self, article: AnyArticle) -> GestureOutcome:
        with CorrelationContext():
            user = self._require_user()
            if user is None:
                return GestureOutcome.LOGIN_REQUIRED

            article_id = await self._resolve(article)
            if article_id is None:
                return GestureOutcome.ABORTED

            if article_id in self.session.favorite_ids:
                if not await asyncio.to_thread(favorites.remove_favorite, article_id, user.id):
                    return GestureOutcome.ABORTED
                self.session.favorite_ids = self.session.favorite_ids - {article_id}
                self.state.notify("Rimosso dai preferiti 💔")
            else:
                if not await asyncio.to_thread(favorites.add_favorite, article_id, user.id):
                    return GestureOutcome.ABORTED
                self.session.favorite_ids = self.session.favorite_ids | {article_id}
                self.state.notify("Aggiunto ai preferiti! ❤️")
            return GestureOutcome.OK

    async def open_article(self, article: AnyArticle) -> GestureOutcome:
        """Select article and load its counts, the user's votes and the comments."""
        with CorrelationContext():
            self.state.selected = article
            self.state.comments = []
            logger.info(f"👁️ Opening article {article.title[:50]!r}")

            article_id = article.id or await asyncio.to_thread(article_gateway.find_article_id, article.url)
            if not article_id:
                return GestureOutcome.OK

            like_count = await asyncio.to_thread(votes.get_like_count, article_id)
            dislike_count = await asyncio.to_thread(votes.get_dislike_count, article_id)
            self.state.broadcast(article_id, article.url, like_count=like_count, dislike_count=dislike_count)

            user = self.session.current_user
            if user is not None:
                if await asyncio.to_thread(votes.has_user_liked, article_id, user.id):
                    self.state.user_votes[article_id] = VoteState.LIKED
                elif await asyncio.to_thread(votes.has_user_disliked, article_id, user.id):
                    self.state.user_votes[article_id] = VoteState.DISLIKED
                else:
                    self.state.user_votes[article_id] = VoteState.NONE

            try:
                self.state.comments = await asyncio.to_thread(comments.list_comments, article_id)
            except SQLAlchemyError as e:
                logger.error(f"❌ Loading comments for {article_id} failed: {e}")
            return GestureOutcome.OK

    def close_article(self) -> None:
        self.state.selected = None
        self.state.comments = []

    async def post_comment(self, article: AnyArticle, text: str) -> GestureOutcome:
        """
        Post a comment on article.

        Raises CommentPostError with a user-facing message when the comment
        could not be stored.
        """
        with CorrelationContext():
            text = (text or "").strip()
            user = self._require_user()
            if user is None:
                return GestureOutcome.LOGIN_REQUIRED
            if not text:
                return GestureOutcome.ABORTED

            logger.info("📤 Posting comment")
            article_id = await self._resolve(article)
            if article_id is None:
                raise CommentPostError("ID articolo mancante.")

            try:
                added = await asyncio.to_thread(comments.add_comment, article_id, user, text)
            except ArticleNotSynchronizedError as e:
                raise CommentPostError(str(e)) from e
            except SQLAlchemyError as e:
                logger.error(f"❌ Comment on {article_id} failed: {e}")
                raise CommentPostError("Impossibile inviare il commento. Riprova.") from e

            selected = self.state.selected
            if selected is not None and selected.id == article_id:
                self.state.comments = [added] + self.state.comments
            return GestureOutcome.OK

    async def delete_comment(self, comment_id: str) -> GestureOutcome:
        """Delete a comment, then re-list the selected article's comments from the ledger."""
        with CorrelationContext():
            user = self._require_user()
            if user is None:
                return GestureOutcome.LOGIN_REQUIRED

            try:
                await asyncio.to_thread(comments.delete_comment, comment_id, user.id)
                if self.state.selected is not None and self.state.selected.id:
                    self.state.comments = await asyncio.to_thread(comments.list_comments, self.state.selected.id)
            except SQLAlchemyError as e:
                logger.error(f"❌ Deleting comment {comment_id} failed: {e}")
                return GestureOutcome.ABORTED
            return GestureOutcome.OK

    async def _fetch_news(self, query: str, label: str, force: bool) -> GestureOutcome:
        if not force:
            cached = await asyncio.to_thread(article_gateway.get_cached_articles, label)
            if cached:
                self.state.articles = await self.enrich_with_counts(cached)
                return GestureOutcome.OK

        try:
            generated = await self.generator(query, label)
        except GeneratorUnavailableError as e:
            logger.error(f"❌ Loading news for {label!r} failed: {e}")
            return GestureOutcome.ABORTED

        if generated:
            saved = await asyncio.to_thread(article_gateway.save_articles, label, generated)
            fresh = [a.model_copy(update={"is_new": True}) for a in (saved or generated)]
            self.state.articles = await self.enrich_with_counts(fresh)
        elif force:
            self.state.notify("Nessuna nuova notizia trovata ora.")
        return GestureOutcome.OK

    async def refresh_category(self, category_id: Optional[str] = None, force: bool = False) -> GestureOutcome:
        """Show a category: cached articles first, generated ones when the cache is empty or force is set."""
        with CorrelationContext():
            if category_id is not None:
                self.state.active_category_id = category_id
                self.state.search_term = ""
                self.state.show_favorites_only = False
            elif self.state.search_term:
                return await self._fetch_news(self.state.search_term, self.state.search_term, force)

            category = self.state.active_category
            if category is None:
                logger.warning(f"⚠️ Unknown category {self.state.active_category_id!r}")
                return GestureOutcome.ABORTED
            return await self._fetch_news(category.value, category.label, force)

    async def search(self, term: str, force: bool = False) -> GestureOutcome:
        with CorrelationContext():
            self.state.show_favorites_only = False
            self.state.active_category_id = None
            self.state.search_term = (term or "").strip()
            if not self.state.search_term:
                return GestureOutcome.ABORTED
            return await self._fetch_news(self.state.search_term, self.state.search_term, force)

    async def load_favorites_view(self) -> GestureOutcome:
        with CorrelationContext():
            user = self._require_user()
            if user is None:
                return GestureOutcome.LOGIN_REQUIRED

            self.state.show_favorites_only = True
            favs = await asyncio.to_thread(favorites.get_user_favorite_articles, user.id)
            enriched = await self.enrich_with_counts(favs)
            self.state.articles = enriched
            self.session.favorite_ids = {a.id for a in enriched if a.id}
            return GestureOutcome.OK

    def _apply_categories(self, loaded: List[CategoryOut]) -> None:
        self.state.categories = loaded
        known = {c.id for c in self.state.categories}
        if self.state.active_category_id not in known and not self.state.search_term and self.state.categories:
            self.state.active_category_id = self.state.categories[0].id

    def load_categories(self) -> None:
        user = self.session.current_user
        self._apply_categories(categories.get_categories(user.id if user else None))

    async def reload_categories(self) -> None:
        user = self.session.current_user
        self._apply_categories(await asyncio.to_thread(categories.get_categories, user.id if user else None))

    async def add_category(self, label: str) -> GestureOutcome:
        with CorrelationContext():
            user = self._require_user()
            if user is None:
                return GestureOutcome.LOGIN_REQUIRED

            label = (label or "").strip()
            try:
                category = await asyncio.to_thread(categories.add_category, label, f"{label} notizie positive", user.id)
            except (ValueError, SQLAlchemyError) as e:
                logger.error(f"❌ Adding category {label!r} failed: {e}")
                return GestureOutcome.ABORTED

            self.state.categories = self.state.categories + [category]
            self.state.active_category_id = category.id
            self.state.notify(f'Categoria "{label}" aggiunta! ✨')
            return GestureOutcome.OK

    async def delete_category(self, category_id: str) -> GestureOutcome:
        with CorrelationContext():
            user = self._require_user()
            if user is None:
                return GestureOutcome.LOGIN_REQUIRED

            try:
                deleted = await asyncio.to_thread(categories.delete_category, category_id, user.id)
            except SQLAlchemyError as e:
                logger.error(f"❌ Deleting category {category_id} failed: {e}")
                return GestureOutcome.ABORTED
            if not deleted:
                return GestureOutcome.ABORTED

            self.state.categories = [c for c in self.state.categories if c.id != category_id]
            if self.state.active_category_id == category_id:
                self.state.active_category_id = self.state.categories[0].id if self.state.categories else None
            return GestureOutcome.OK

    async def logout(self) -> GestureOutcome:
        await self.session.sign_out()
        return GestureOutcome.OK

    def on_image_generated(self, url: str, image_url: str) -> None:
        self.state.broadcast(None, url, image_url=image_url)
        article_gateway.update_article_image(url, image_url)

    def on_audio_generated(self, url: str, audio_base64: str) -> None:
        self.state.broadcast(None, url, audio_payload=audio_base64)
        article_gateway.update_article_audio(url, audio_base64)

    async def _on_session_change(self, event: AuthEvent) -> None:
        if event.event == AuthEventType.SIGNED_OUT:
            self.state.show_favorites_only = False
            self.state.user_votes = {}
        else:
            self.state.show_login = False
        await self.reload_categories()
