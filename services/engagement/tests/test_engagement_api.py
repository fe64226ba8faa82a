"""HTTP boundary tests for the engagement service."""
import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from services.engagement.app import articles as gateway
from services.engagement.app import comments


async def _idle_consumer(auth_client):
    return None


@pytest.fixture
def client(db_engine, fake_redis):
    from services.engagement.app.main import app

    with patch("services.engagement.app.worker.consume_auth_events", _idle_consumer):
        with TestClient(app) as test_client:
            yield test_client


@pytest.fixture
def logged_in(client, fake_redis, user):
    fake_redis.set("auth:session", user.model_dump_json())
    asyncio.run(client.app.state.reconciler.session._load_user())
    return client


def _article_payload(url="https://news.example.org/story/9"):
    return {"url": url, "title": "Festa nel quartiere", "summary": "Bello", "source": "Example", "category": "Generale"}


def test_liveness(client):
    response = client.get("/engagement/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive", "service": "engagement"}


def test_health_reports_checks(client):
    data = client.get("/engagement/health").json()
    names = {c["name"]: c["status"] for c in data["checks"]}

    assert names["database"] == "healthy"
    assert names["redis"] == "healthy"
    assert names["openai"] == "degraded"
    assert client.get("/engagement/health/ready").json()["status"] == "ready"


def test_metrics_exposed(client):
    response = client.get("/engagement/metrics")
    assert response.status_code == 200
    assert "engagement_votes_toggled_total" in response.text


def test_initial_state_has_default_categories(client):
    state = client.get("/state").json()

    assert state["currentUser"] is None
    assert len(state["categories"]) == 5
    assert state["activeCategoryId"] == state["categories"][0]["id"]


def test_like_requires_login(client):
    response = client.post("/articles/like", json=_article_payload())
    assert response.status_code == 401
    assert client.get("/state").json()["showLogin"] is True


def test_like_and_dislike_flow(logged_in, user):
    payload = _article_payload()

    liked = logged_in.post("/articles/like", json=payload).json()
    article_id = gateway.find_article_id(payload["url"])
    assert liked["outcome"] == "ok"
    assert liked["state"]["userVotes"] == {article_id: "liked"}

    disliked = logged_in.post("/articles/dislike", json={**payload, "id": article_id}).json()
    assert disliked["state"]["userVotes"] == {article_id: "disliked"}


def test_favorite_toggle(logged_in):
    payload = _article_payload()

    state = logged_in.post("/articles/favorite", json=payload).json()["state"]
    assert state["favoriteIds"] == [gateway.find_article_id(payload["url"])]
    assert state["notification"] == "Aggiunto ai preferiti! ❤️"

    view = logged_in.post("/favorites/view").json()["state"]
    assert view["showFavoritesOnly"] is True
    assert [a["url"] for a in view["articles"]] == [payload["url"]]


def test_invalid_article_payload(logged_in):
    assert logged_in.post("/articles/like", json={"title": "no url"}).status_code == 422


def test_comment_lifecycle(logged_in, user):
    payload = _article_payload()
    opened = logged_in.post("/articles/open", json=payload).json()
    assert opened["state"]["selected"]["url"] == payload["url"]

    posted = logged_in.post("/articles/comments", json={"article": payload, "text": "Evviva"}).json()
    article_id = gateway.find_article_id(payload["url"])
    assert posted["state"]["comments"][0]["text"] == "Evviva"
    assert posted["state"]["comments"][0]["userId"] == user.id

    listed = logged_in.get(f"/articles/{article_id}/comments").json()
    assert [c["text"] for c in listed] == ["Evviva"]

    deleted = logged_in.delete(f"/comments/{listed[0]['id']}").json()
    assert deleted["state"]["comments"] == []


def test_comment_error_is_bad_request(logged_in):
    with patch.object(gateway, "save_articles", return_value=[]):
        response = logged_in.post(
            "/articles/comments", json={"article": _article_payload("https://x.com/lost"), "text": "ciao"}
        )
    assert response.status_code == 400


def test_comments_for_transient_id_are_empty(client):
    assert client.get("/articles/not-saved/comments").json() == []


def test_category_endpoints(logged_in):
    added = logged_in.post("/categories", json={"label": "Sport"}).json()["state"]
    sport = next(c for c in added["categories"] if c["label"] == "Sport")
    assert added["activeCategoryId"] == sport["id"]

    listed = logged_in.get("/categories").json()
    assert sport["id"] in [c["id"] for c in listed]

    remaining = logged_in.delete(f"/categories/{sport['id']}").json()["state"]
    assert sport["id"] not in [c["id"] for c in remaining["categories"]]


def test_refresh_without_generator_key_aborts(client):
    state = client.get("/state").json()
    response = client.post("/categories/refresh", json={"categoryId": state["categories"][-1]["id"]})

    assert response.status_code == 200
    assert response.json()["outcome"] == "aborted"


def test_refresh_serves_cached_articles(client, make_article):
    saved = gateway.save_articles("Generale", [make_article(url="https://x.com/cached")])
    categories = client.get("/state").json()["categories"]
    general = next(c for c in categories if c["label"] == "Generale")

    body = client.post("/categories/refresh", json={"categoryId": general["id"]}).json()

    assert [a["id"] for a in body["state"]["articles"]] == [saved[0].id]


def test_generated_media_patch(client, make_article):
    saved = gateway.save_articles("Generale", [make_article(url="https://x.com/media")])

    client.post("/articles/media", json={"url": "https://x.com/media", "imageUrl": "https://img/1.png"})

    assert gateway.get_cached_articles("Generale")[0].image_url == "https://img/1.png"
    assert saved


def test_logout(logged_in, fake_redis):
    body = logged_in.post("/auth/logout").json()

    assert body["state"]["currentUser"] is None
    assert fake_redis.get("auth:session") is None


def test_cleanup_endpoint(client):
    assert client.post("/maintenance/cleanup").json() == {"removed": 0}


def test_comment_listing_store_error(client):
    from sqlalchemy.exc import OperationalError

    with patch.object(comments, "session_scope", side_effect=OperationalError("SELECT", {}, Exception("down"))):
        response = client.get("/articles/3f2b8f0e-6c1a-4b7e-9d2a-0c4e5f6a7b8c/comments")
    assert response.json() == []
