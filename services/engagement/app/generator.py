"""
Positive-news generator backed by an OpenAI chat model.

Results are transient articles: no durable id, no engagement counts.
"""

import json
from datetime import date
from typing import List, Optional

from openai import AsyncOpenAI

from services.engagement.app.errors import GeneratorUnavailableError
from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings
from shared.schemas.articles import TransientArticle
from shared.utils.retry import RetryError, async_retry

logger = get_logger("engagement.generator")

# Get configuration
settings = get_settings()
_client: Optional[AsyncOpenAI] = None

PROMPT = (
    "Trova {count} notizie reali, recenti e positive su: {query}. "
    "Rispondi solo con un oggetto JSON della forma "
    '{{"articles": [{{"title": str, "summary": str, "source": str, "url": str, '
    '"date": "YYYY-MM-DD", "sentimentScore": float tra 0 e 1}}]}}. '
    "Scrivi titolo e riassunto in italiano."
)


def _get_client() -> AsyncOpenAI:
    global _client
    if not settings.openai.api_key:
        raise GeneratorUnavailableError("OPENAI_API_KEY is not configured")
    if _client is None:
        _client = AsyncOpenAI(api_key=settings.openai.api_key, timeout=settings.service.http_timeout)
    return _client


def parse_generated(content: str, label: str) -> List[TransientArticle]:
    """Map the model's JSON answer to transient articles; entries without a URL are skipped."""
    try:
        data = json.loads(content or "{}")
    except json.JSONDecodeError as e:
        logger.warning(f"⚠️ Generator returned invalid JSON: {e}")
        return []

    items = data.get("articles", []) if isinstance(data, dict) else data
    articles = []
    for item in items or []:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        try:
            score = float(item.get("sentimentScore", 0.8))
        except (TypeError, ValueError):
            score = 0.8
        articles.append(
            TransientArticle(
                url=item["url"].strip(),
                title=(item.get("title") or "").strip(),
                summary=(item.get("summary") or "").strip(),
                source=(item.get("source") or "").strip(),
                date=item.get("date") or date.today().isoformat(),
                category=label,
                sentiment_score=min(max(score, 0.0), 1.0),
            )
        )
    return articles


@async_retry(retryable_exceptions=(Exception,))
async def _complete(query: str) -> str:
    client = _get_client()
    response = await client.chat.completions.create(
        model=settings.openai.model,
        messages=[{"role": "user", "content": PROMPT.format(count=8, query=query)}],
        max_tokens=settings.openai.max_tokens,
        temperature=settings.openai.temperature,
        response_format={"type": "json_object"},
    )
    return response.choices[0].message.content


async def fetch_positive_news(query: str, label: str) -> List[TransientArticle]:
    """Ask the model for positive stories about query, tagged with category label."""
    _get_client()
    logger.info(f"🤖 Generating positive news for {label!r}")
    try:
        content = await _complete(query)
    except RetryError as e:
        raise GeneratorUnavailableError(f"Generator failed for {label!r}") from e
    articles = parse_generated(content, label)
    logger.info(f"✅ Generator returned {len(articles)} articles for {label!r}")
    return articles
