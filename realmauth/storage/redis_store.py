from __future__ import annotations

from typing import Any, Optional

from redis import Redis
from redis.exceptions import RedisError

from realmauth.errors import StoreUnavailable
from realmauth.logging import get_logger
from realmauth.storage.common import StoredValue, as_bytes

logger = get_logger(__name__)


class RedisBackend:
    """Redis-backed store keeping each namespace in one hash.

    Destroying a namespace deletes the hash, so every field written under a
    realm goes with it. Namespaces expire ``ttl_seconds`` after their last
    write. Redis failures surface as ``StoreUnavailable``.
    """

    DEFAULT_KEY_PREFIX = "auth:identity:"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        client: Any = None,
        ttl_seconds: Optional[int] = None,
        socket_timeout: float = 5.0,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        if client is None:
            if not redis_url:
                raise ValueError("redis_url or client is required")
            client = Redis.from_url(
                redis_url,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        self.redis_url = redis_url
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def namespace(self, name: str) -> "RedisNamespace":
        return RedisNamespace(self, name)

    def verify_connection(self) -> None:
        """Assert Redis connectivity before handing out namespaces."""
        try:
            self.client.ping()
        except RedisError as exc:
            raise StoreUnavailable(
                "redis ping failed", detail={"error": str(exc)}
            ) from exc

    def close(self) -> None:
        self.client.close()

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}{name}"


class RedisNamespace:
    """Realm-scoped view over a ``RedisBackend``."""

    def __init__(self, backend: RedisBackend, name: str) -> None:
        self.backend = backend
        self.name = name
        self._redis_key = backend._key(name)

    def _fail(self, op: str, exc: RedisError) -> StoreUnavailable:
        logger.error(
            "redis_store_operation_failed",
            op=op,
            namespace=self.name,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return StoreUnavailable(
            f"redis {op} failed", detail={"namespace": self.name, "error": str(exc)}
        )

    def has(self, key: str) -> bool:
        try:
            return bool(self.backend.client.hexists(self._redis_key, key))
        except RedisError as exc:
            raise self._fail("has", exc) from exc

    def get(self, key: str) -> Optional[bytes]:
        try:
            value = self.backend.client.hget(self._redis_key, key)
        except RedisError as exc:
            raise self._fail("get", exc) from exc
        if value is None:
            return None
        return as_bytes(value)

    def set(self, key: str, value: StoredValue) -> None:
        try:
            pipe = self.backend.client.pipeline(transaction=True)
            pipe.hset(self._redis_key, key, as_bytes(value))
            if self.backend.ttl_seconds:
                pipe.expire(self._redis_key, self.backend.ttl_seconds)
            pipe.execute()
        except RedisError as exc:
            raise self._fail("set", exc) from exc

    def destroy(self) -> None:
        try:
            self.backend.client.delete(self._redis_key)
        except RedisError as exc:
            raise self._fail("destroy", exc) from exc

    def replace(self, key: str, value: StoredValue) -> None:
        """Delete the namespace and write ``key`` in one MULTI/EXEC block."""
        try:
            pipe = self.backend.client.pipeline(transaction=True)
            pipe.delete(self._redis_key)
            pipe.hset(self._redis_key, key, as_bytes(value))
            if self.backend.ttl_seconds:
                pipe.expire(self._redis_key, self.backend.ttl_seconds)
            pipe.execute()
        except RedisError as exc:
            raise self._fail("replace", exc) from exc

    def __repr__(self) -> str:
        return f"RedisNamespace({self.name!r})"
