import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from services.engagement.app import articles as article_gateway
from services.engagement.app import comments
from services.engagement.app.auth import AuthClient
from services.engagement.app.errors import CommentPostError
from services.engagement.app.reconcile import GestureOutcome, Reconciler
from services.engagement.app.session_state import SessionState
from shared.app_logging.logger import setup_logging
from shared.config.settings import get_settings
from shared.database.session import init_db
from shared.schemas.articles import parse_article
from shared.utils.health import create_engagement_health_checker

# Setup logging
logger = setup_logging("engagement")

# Get configuration
settings = get_settings()

# Create health checker
health_checker = create_engagement_health_checker()


class CommentBody(BaseModel):
    article: Dict[str, Any]
    text: str


class CategoryBody(BaseModel):
    label: str


class RefreshBody(BaseModel):
    category_id: Optional[str] = Field(None, alias="categoryId")
    search: Optional[str] = None
    force: bool = False


class GeneratedMediaBody(BaseModel):
    url: str
    image_url: Optional[str] = Field(None, alias="imageUrl")
    audio_base64: Optional[str] = Field(None, alias="audioBase64")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from services.engagement.app.worker import consume_auth_events

    init_db()
    auth_client = AuthClient()
    session = SessionState(auth_client)
    reconciler = Reconciler(session)
    await session.start()
    await reconciler.reload_categories()
    app.state.reconciler = reconciler

    task = asyncio.create_task(consume_auth_events(auth_client))
    logger.info("Launched auth events consumer")
    try:
        yield
    finally:
        session.stop()
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("Engagement consumer shut down cleanly")

        # Cleanup Redis connections
        from shared.utils.redis_client import close_all_redis_clients

        close_all_redis_clients()
        logger.info("Redis connections closed")


app = FastAPI(lifespan=lifespan)


def _reconciler() -> Reconciler:
    return app.state.reconciler


def _article(payload: Dict[str, Any]):
    try:
        return parse_article(payload)
    except ValidationError as e:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(e))


def _respond(outcome: GestureOutcome) -> Dict[str, Any]:
    reconciler = _reconciler()
    if outcome == GestureOutcome.LOGIN_REQUIRED:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Login required")
    return {"outcome": outcome.value, "state": reconciler.state.snapshot(reconciler.session)}


@app.get("/engagement/health")
def health():
    """Comprehensive health check endpoint."""
    return health_checker.run_all_checks()


@app.get("/engagement/health/live")
def liveness_check():
    """Liveness check endpoint."""
    return {"status": "alive", "service": "engagement"}


@app.get("/engagement/health/ready")
def readiness_check():
    """Readiness check endpoint."""
    return health_checker.readiness()


@app.get("/engagement/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/state")
def get_state():
    reconciler = _reconciler()
    return reconciler.state.snapshot(reconciler.session)


@app.get("/categories")
def list_categories():
    reconciler = _reconciler()
    reconciler.load_categories()
    return [c.model_dump(by_alias=True) for c in reconciler.state.categories]


@app.post("/categories")
async def add_category(body: CategoryBody):
    return _respond(await _reconciler().add_category(body.label))


@app.delete("/categories/{category_id}")
async def delete_category(category_id: str):
    return _respond(await _reconciler().delete_category(category_id))


@app.post("/categories/refresh")
async def refresh_category(body: RefreshBody):
    reconciler = _reconciler()
    if body.search is not None:
        return _respond(await reconciler.search(body.search, force=body.force))
    return _respond(await reconciler.refresh_category(body.category_id, force=body.force))


@app.post("/favorites/view")
async def favorites_view():
    return _respond(await _reconciler().load_favorites_view())


@app.post("/articles/open")
async def open_article(payload: Dict[str, Any] = Body(...)):
    return _respond(await _reconciler().open_article(_article(payload)))


@app.post("/articles/close")
def close_article():
    reconciler = _reconciler()
    reconciler.close_article()
    return reconciler.state.snapshot(reconciler.session)


@app.post("/articles/like")
async def like(payload: Dict[str, Any] = Body(...)):
    return _respond(await _reconciler().like(_article(payload)))


@app.post("/articles/dislike")
async def dislike(payload: Dict[str, Any] = Body(...)):
    return _respond(await _reconciler().dislike(_article(payload)))


@app.post("/articles/favorite")
async def toggle_favorite(payload: Dict[str, Any] = Body(...)):
    return _respond(await _reconciler().toggle_favorite(_article(payload)))


@app.post("/articles/media")
def generated_media(body: GeneratedMediaBody):
    reconciler = _reconciler()
    if body.image_url:
        reconciler.on_image_generated(body.url, body.image_url)
    if body.audio_base64:
        reconciler.on_audio_generated(body.url, body.audio_base64)
    return reconciler.state.snapshot(reconciler.session)


@app.get("/articles/{article_id}/comments")
def list_comments(article_id: str):
    try:
        return [c.model_dump(by_alias=True) for c in comments.list_comments(article_id)]
    except SQLAlchemyError as e:
        logger.error(f"❌ Listing comments for {article_id} failed: {e}")
        return []


@app.post("/articles/comments")
async def post_comment(body: CommentBody):
    try:
        outcome = await _reconciler().post_comment(_article(body.article), body.text)
    except CommentPostError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))
    return _respond(outcome)


@app.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str):
    return _respond(await _reconciler().delete_comment(comment_id))


@app.post("/auth/logout")
async def logout():
    return _respond(await _reconciler().logout())


@app.post("/maintenance/cleanup")
def cleanup():
    """Delete stale, unfavorited articles."""
    removed = article_gateway.cleanup_old_articles()
    logger.info(f"Cleanup removed {removed} articles")
    return {"removed": removed}
