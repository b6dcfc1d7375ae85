"""
Distributed Redis Config Cache

Shares rollout configuration across processes so an operator update (or an
automatic disable) in one replica reaches the others within the TTL.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis


class RedisCache:
    """
    Redis-backed config cache for rolloutguard.

    Values are JSON records (no pickle). Every call carries a short socket
    timeout and swallows Redis errors, returning ``None`` / ``False`` so the
    flag store can fall back to its static defaults.

    Example:
        >>> cache = RedisCache(url="redis://localhost:6379/0", ttl=3600)
        >>> cache.set("canary:checkout:config", {"enabled": True, "percentage": 5})
        >>> record = cache.get("canary:checkout:config")
    """

    def __init__(
        self,
        url: Optional[str] = None,
        host: str = "localhost",
        port: int = 6379,
        password: Optional[str] = None,
        db: int = 0,
        ttl: int = 3600,
        prefix: str = "rolloutguard:",
        socket_timeout: float = 1.0,
        client: Any = None,
    ) -> None:
        """
        Initialize Redis cache.

        Args:
            url: Redis connection URL (takes precedence over host/port)
            host: Redis host
            port: Redis port
            password: Redis password (optional)
            db: Redis database number
            ttl: Default TTL in seconds
            prefix: Key prefix for namespacing
            socket_timeout: Connect and read timeout in seconds
            client: Pre-built client (tests, shared connection pools)
        """
        self.url = url
        self.host = host
        self.port = port
        self.db = db
        self.ttl = ttl
        self.prefix = prefix
        self.socket_timeout = socket_timeout
        self.logger = logging.getLogger(__name__)

        if client is not None:
            self._client = client
        elif url:
            self._client = redis.Redis.from_url(
                url,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
                decode_responses=False,
            )
        else:
            self._client = redis.Redis(
                host=host,
                port=port,
                password=password,
                db=db,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
                decode_responses=False,
            )

    def _make_key(self, key: str) -> str:
        """Create prefixed key."""
        return f"{self.prefix}{key}"

    @staticmethod
    def _serialize(value: Any) -> bytes:
        return json.dumps(value, sort_keys=True).encode("utf-8")

    @staticmethod
    def _deserialize(data: Any) -> Any:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)

    def ping(self) -> bool:
        """Check connectivity without raising."""
        try:
            return bool(self._client.ping())
        except Exception as e:
            self.logger.warning(f"Redis ping failed: {e}")
            return False

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Returns:
            Cached value or None if not found, undecodable or Redis is down
        """
        try:
            data = self._client.get(self._make_key(key))
            if data is None:
                return None
            return self._deserialize(data)
        except (redis.RedisError, OSError) as e:
            self.logger.error(f"Failed to get key {key}: {e}")
            return None
        except (ValueError, UnicodeDecodeError) as e:
            self.logger.error(f"Discarding undecodable value for key {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache with a TTL.

        Returns:
            True if successful
        """
        try:
            self._client.setex(self._make_key(key), ttl or self.ttl, self._serialize(value))
            return True
        except (redis.RedisError, OSError, TypeError) as e:
            self.logger.error(f"Failed to set key {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            self._client.delete(self._make_key(key))
            return True
        except (redis.RedisError, OSError) as e:
            self.logger.error(f"Failed to delete key {key}: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        """Get server-side keyspace statistics."""
        try:
            info = self._client.info("stats")
            hits = info.get("keyspace_hits", 0)
            misses = info.get("keyspace_misses", 0)
            return {
                "keyspace_hits": hits,
                "keyspace_misses": misses,
                "hit_rate": hits / max(hits + misses, 1),
            }
        except (redis.RedisError, OSError) as e:
            self.logger.error(f"Failed to get stats: {e}")
            return {}
