from __future__ import annotations

import threading
from typing import Callable, Optional, Union
from urllib.parse import urlparse, urlunparse

from realmauth.codec import IdentityCodec
from realmauth.config import Settings, StoreBackend, get_settings, reset_settings_cache
from realmauth.identifier import IdentityFactory, StorageIdentifier
from realmauth.logging import get_logger
from realmauth.storage.memory import MemoryBackend
from realmauth.storage.redis_store import RedisBackend

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password in a URL for safe logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


class Runtime:
    """Holds the configured backing store and hands out identifiers."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        backend: Union[MemoryBackend, RedisBackend, None] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.codec = IdentityCodec()
        self.backend = backend if backend is not None else self._build_backend()

    def _build_backend(self) -> Union[MemoryBackend, RedisBackend]:
        ttl = self.settings.session_ttl_seconds
        if self.settings.store_backend == StoreBackend.MEMORY:
            logger.info("runtime_store_initialized", store_type="memory")
            return MemoryBackend(ttl_seconds=ttl)

        redis_error: Exception | None = None
        if self.settings.redis_url:
            try:
                backend = RedisBackend(
                    self.settings.redis_url,
                    ttl_seconds=ttl,
                    socket_timeout=self.settings.redis_socket_timeout,
                )
                backend.verify_connection()
                logger.info(
                    "runtime_store_initialized",
                    store_type="redis",
                    redis_url=_mask_url_password(self.settings.redis_url),
                )
                return backend
            except Exception as exc:
                redis_error = exc

        if not self.settings.allow_store_fallback:
            raise RuntimeError(
                "Redis is required for identity storage; start Redis, set "
                "STORE_BACKEND=memory, or set ALLOW_STORE_FALLBACK=true."
            ) from redis_error

        logger.warning(
            "redis_disabled_fallback",
            redis_url=_mask_url_password(self.settings.redis_url),
            error=str(redis_error) if redis_error else "redis_url_missing",
            message="Running without Redis; signed-in identities are process-local.",
        )
        return MemoryBackend(ttl_seconds=ttl)

    def identifier_for(
        self,
        realm: Optional[str] = None,
        *,
        identity_factory: Optional[IdentityFactory] = None,
    ) -> StorageIdentifier:
        return StorageIdentifier(
            self.backend,
            realm,
            identity_factory=identity_factory,
            codec=self.codec,
            settings=self.settings,
        )

    def identifier_factory(
        self,
        realm: Optional[str] = None,
        *,
        identity_factory: Optional[IdentityFactory] = None,
    ) -> Callable[[], StorageIdentifier]:
        """Factory suitable for ``default_identifier_factory`` on authenticators."""

        def _factory() -> StorageIdentifier:
            return self.identifier_for(realm, identity_factory=identity_factory)

        return _factory


_runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton (double-checked locking)."""
    global _runtime
    if _runtime is not None:
        return _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = Runtime()
        return _runtime


def reset_runtime_for_tests() -> None:
    """Drop the cached runtime and settings so tests start from a clean slate."""

    global _runtime
    with _runtime_lock:
        if _runtime is not None and isinstance(_runtime.backend, RedisBackend):
            _runtime.backend.close()
        _runtime = None
    reset_settings_cache()
