"""
Redis client used for the authentication collaborator: the current session
document and the stream of session lifecycle events.
"""

from typing import Any, Dict, List, Optional, Tuple

import redis

from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings

logger = get_logger("buonumore.redis")


class RedisClient:
    """Lazily connected Redis client with consistent error handling."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.settings = get_settings()
        self._client: Optional[redis.Redis] = None
        self._logger = get_logger(f"{service_name}.redis")

    def _serialize_value(self, value: Any) -> Any:
        """Convert values to Redis-compatible types."""
        if value is None:
            return ""
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (bytes, str, int, float)):
            return value
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            try:
                self._client = redis.from_url(
                    self.settings.redis.redis_url,
                    decode_responses=True,
                    socket_timeout=self.settings.service.redis_timeout,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
                self._client.ping()
                self._logger.info("✅ Connected to Redis successfully")
            except Exception as e:
                self._client = None
                self._logger.error(f"❌ Failed to connect to Redis: {e}")
                raise

        return self._client

    def ping(self) -> bool:
        try:
            return bool(self._get_client().ping())
        except Exception as e:
            self._logger.error(f"Redis ping failed: {e}")
            return False

    def get(self, key: str, raise_on_error: bool = False) -> Optional[str]:
        """Get value by key; None on error unless raise_on_error is set."""
        try:
            return self._get_client().get(key)
        except Exception as e:
            self._logger.error(f"Failed to get key {key}: {e}")
            if raise_on_error:
                raise
            return None

    def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        try:
            return bool(self._get_client().set(key, value, ex=ex))
        except Exception as e:
            self._logger.error(f"Failed to set key {key}: {e}")
            return False

    def delete(self, key: str) -> int:
        try:
            return self._get_client().delete(key)
        except Exception as e:
            self._logger.error(f"Failed to delete key {key}: {e}")
            return 0

    def xadd(self, stream: str, fields: Dict[str, Any], maxlen: Optional[int] = 1000) -> str:
        """Add message to a stream; raises on failure."""
        try:
            encoded_fields = {k: self._serialize_value(v) for k, v in fields.items()}
            return self._get_client().xadd(stream, encoded_fields, maxlen=maxlen, approximate=True)
        except Exception as e:
            self._logger.error(f"Failed to add to stream {stream}: {e}")
            raise

    def xreadgroup(
        self,
        group: str,
        consumer: str,
        streams: Dict[str, str],
        count: int = 10,
        block: int = 5000,
    ) -> List[Tuple[str, List[Tuple[str, Dict[str, Any]]]]]:
        try:
            return self._get_client().xreadgroup(group, consumer, streams, count=count, block=block)
        except Exception as e:
            self._logger.error(f"Failed to read from stream group {group}: {e}")
            return []

    def xgroup_create(self, stream: str, group: str, id: str = "0", mkstream: bool = True) -> bool:
        """Create consumer group; an existing group counts as success."""
        try:
            self._get_client().xgroup_create(stream, group, id=id, mkstream=mkstream)
            self._logger.info(f"Created consumer group {group} for stream {stream}")
            return True
        except redis.exceptions.ResponseError as e:
            if "BUSYGROUP" in str(e):
                self._logger.debug(f"Consumer group {group} already exists")
                return True
            self._logger.error(f"Failed to create consumer group {group}: {e}")
            return False
        except Exception as e:
            self._logger.error(f"Failed to create consumer group {group}: {e}")
            return False

    def xack(self, stream: str, group: str, message_id: str) -> int:
        try:
            return self._get_client().xack(stream, group, message_id)
        except Exception as e:
            self._logger.error(f"Failed to ack message {message_id}: {e}")
            return 0

    def xpending_range(
        self,
        stream: str,
        group: str,
        min_id: str = "-",
        max_id: str = "+",
        count: int = 10,
    ) -> List[Dict[str, Any]]:
        """Get pending messages in consumer group."""
        try:
            return self._get_client().xpending_range(stream, group, min_id, max_id, count)
        except Exception as e:
            self._logger.error(f"Failed to get pending messages: {e}")
            return []

    def xrange(
        self, stream: str, min_id: str = "-", max_id: str = "+", count: int = 10
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """Get messages from stream by ID range."""
        try:
            return self._get_client().xrange(stream, min=min_id, max=max_id, count=count)
        except Exception as e:
            self._logger.error(f"Failed to get messages from stream: {e}")
            return []

    def close(self):
        if self._client:
            self._client.close()
            self._client = None
            self._logger.info("Redis connection closed")


_redis_clients: Dict[str, RedisClient] = {}


def get_redis_client(service_name: str) -> RedisClient:
    """Get or create Redis client for a service."""
    if service_name not in _redis_clients:
        _redis_clients[service_name] = RedisClient(service_name)
    return _redis_clients[service_name]


def close_all_redis_clients():
    for client in _redis_clients.values():
        client.close()
    _redis_clients.clear()
