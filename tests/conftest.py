import os
import sys
from pathlib import Path
from typing import Dict

# Environment defaults must be in place before realmauth modules read settings
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("DEFAULT_REALM", "default")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from realmauth.config import Settings  # noqa: E402
from realmauth.runtime import reset_runtime_for_tests  # noqa: E402
from realmauth.storage.memory import MemoryBackend  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def backend():
    return MemoryBackend()


class FakePipeline:
    def __init__(self, client: "FakeRedis") -> None:
        self.client = client
        self.ops = []

    def hset(self, name, key, value):
        self.ops.append(("hset", name, key, value))
        return self

    def expire(self, name, ttl):
        self.ops.append(("expire", name, ttl))
        return self

    def delete(self, name):
        self.ops.append(("delete", name))
        return self

    def execute(self):
        self.client._maybe_fail()
        results = []
        for op, *args in self.ops:
            results.append(getattr(self.client, op)(*args))
        self.client.executed_pipelines += 1
        self.ops = []
        return results


class FakeRedis:
    """Hash-only stand-in for a redis client."""

    def __init__(self) -> None:
        self.hashes: Dict[str, Dict[str, bytes]] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = False
        self.closed = False
        self.executed_pipelines = 0

    def _maybe_fail(self):
        if self.fail:
            raise RedisConnectionError("connection refused")

    def ping(self):
        self._maybe_fail()
        return True

    def hexists(self, name, key):
        self._maybe_fail()
        return key in self.hashes.get(name, {})

    def hget(self, name, key):
        self._maybe_fail()
        return self.hashes.get(name, {}).get(key)

    def hset(self, name, key, value):
        self._maybe_fail()
        self.hashes.setdefault(name, {})[key] = value
        return 1

    def expire(self, name, ttl):
        self._maybe_fail()
        self.ttls[name] = ttl
        return True

    def delete(self, name):
        self._maybe_fail()
        self.ttls.pop(name, None)
        return 1 if self.hashes.pop(name, None) is not None else 0

    def pipeline(self, transaction: bool = True):
        return FakePipeline(self)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_redis():
    return FakeRedis()

