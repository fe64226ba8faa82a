import asyncio
from typing import Any, Dict

from pydantic import ValidationError

from services.engagement.app.auth import AuthClient, AuthEvent
from shared.app_logging.logger import CorrelationContext, get_logger
from shared.config.settings import get_settings

logger = get_logger("engagement.worker")
settings = get_settings()


def _group() -> str:
    return f"{settings.service.consumer_group_prefix}-engagement"


async def handle_auth_message(auth_client: AuthClient, msg_id: str, payload: Dict[str, Any]) -> bool:
    """
    Dispatch one stream entry to the auth subscribers and acknowledge it.

    Malformed entries are acknowledged and dropped. Subscriber failures leave
    the entry pending; pending entries are reclaimed when the consumer starts.
    """
    stream = auth_client.stream
    with CorrelationContext():
        try:
            event = AuthEvent(**{k: v for k, v in payload.items() if v != ""})
        except ValidationError as e:
            logger.error(f"❌ Invalid auth event {msg_id}: {e}")
            auth_client.redis.xack(stream, _group(), msg_id)
            return False

        logger.info(f"📩 Received {event.event.value} ({msg_id})")
        try:
            await auth_client.dispatch(event)
        except Exception as e:
            logger.exception(f"❌ Failed handling auth event {msg_id}: {e}")
            return False

        auth_client.redis.xack(stream, _group(), msg_id)
        logger.info(f"✅ Acknowledged {msg_id}")
        return True


async def reclaim_pending(auth_client: AuthClient, group: str, count: int = 10) -> int:
    """Re-dispatch entries left unacknowledged by an earlier run. Returns how many were handled."""
    stream = auth_client.stream
    handled = 0
    pending = await asyncio.to_thread(auth_client.redis.xpending_range, stream, group, "-", "+", count)
    for entry in pending:
        msg_id = entry["message_id"]
        logger.warning(f"Found unacked auth event {msg_id}, reclaiming...")
        messages = await asyncio.to_thread(auth_client.redis.xrange, stream, msg_id, msg_id)
        if not messages:
            # trimmed from the stream, nothing left to deliver
            auth_client.redis.xack(stream, group, msg_id)
            continue
        for _, payload in messages:
            if await handle_auth_message(auth_client, msg_id, payload):
                handled += 1
    return handled


async def consume_auth_events(auth_client: AuthClient, consumer: str = "engagement-1") -> None:
    """Consume session lifecycle events until cancelled."""
    stream = auth_client.stream
    group = _group()
    # only events published after startup matter; the current session is loaded directly
    auth_client.redis.xgroup_create(stream, group, id="$", mkstream=True)
    await reclaim_pending(auth_client, group)
    logger.info(f"Starting auth events consumer on {stream} as {group}/{consumer}")

    while True:
        try:
            entries = await asyncio.to_thread(
                auth_client.redis.xreadgroup, group, consumer, {stream: ">"}, 10, 1000
            )
            for _, messages in entries or []:
                for msg_id, payload in messages:
                    await handle_auth_message(auth_client, msg_id, payload)
        except Exception as e:
            logger.error(f"Error in auth consumer loop: {e}")
            await asyncio.sleep(5)

        await asyncio.sleep(0.2)
