import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from services.engagement.app import generator
from services.engagement.app.errors import GeneratorUnavailableError


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_parse_generated_maps_to_transient_articles():
    content = json.dumps({"articles": [
        {"title": " Nuovo parco ", "summary": "Alberi", "source": "ANSA", "url": "https://x.com/parco",
         "date": "2024-05-01", "sentimentScore": 1.7},
        {"title": "senza url"},
        "garbage",
    ]})

    articles = generator.parse_generated(content, "Ambiente")

    assert len(articles) == 1
    article = articles[0]
    assert article.kind == "transient"
    assert article.id is None
    assert article.title == "Nuovo parco"
    assert article.category == "Ambiente"
    assert article.sentiment_score == 1.0
    assert article.like_count == 0


def test_parse_generated_accepts_bare_list_and_bad_scores():
    content = json.dumps([{"url": "https://x.com/a", "sentimentScore": "n/a"}])

    articles = generator.parse_generated(content, "Generale")

    assert articles[0].sentiment_score == 0.8
    assert articles[0].date


def test_parse_generated_invalid_json():
    assert generator.parse_generated("not json", "Generale") == []


@pytest.mark.asyncio
async def test_missing_api_key_is_unavailable():
    with patch.object(generator.settings.openai, "api_key", None):
        with pytest.raises(GeneratorUnavailableError):
            await generator.fetch_positive_news("notizie positive", "Generale")


@pytest.mark.asyncio
async def test_fetch_positive_news_calls_model():
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(
        return_value=_completion(json.dumps({"articles": [{"url": "https://x.com/a", "title": "Bella"}]}))
    ))))

    with patch.object(generator.settings.openai, "api_key", "sk-test"), \
            patch.object(generator, "_client", client):
        articles = await generator.fetch_positive_news("scienza", "Scienza")

    assert [a.title for a in articles] == ["Bella"]
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert "scienza" in kwargs["messages"][0]["content"]


@pytest.mark.asyncio
async def test_exhausted_retries_become_unavailable():
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(
        side_effect=RuntimeError("rate limited")
    ))))

    with patch.object(generator.settings.openai, "api_key", "sk-test"), \
            patch.object(generator, "_client", client), \
            patch.object(generator.settings.service, "retry_delay", 0.0):
        with pytest.raises(GeneratorUnavailableError):
            await generator.fetch_positive_news("scienza", "Scienza")

    assert client.chat.completions.create.await_count == generator.settings.service.max_retries + 1
