"""
Storage configuration: which index store to build, and how to reach Redis.

Both dataclasses are frozen and validate on construction, so a config that
exists is a config the store factory can use.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from chronomesh.core import constants as C


class BackendType(Enum):
    IN_MEMORY = "in_memory"
    REDIS = "redis"


_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


class _Env:
    """Typed reads of `<PREFIX>_<KEY>` environment variables."""

    __slots__ = ("_prefix",)

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix

    def text(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return os.environ.get(f"{self._prefix}_{key}") or default

    def integer(self, key: str, default: int) -> int:
        raw = self.text(key)
        return default if raw is None else int(raw)

    def flag(self, key: str, default: bool) -> bool:
        raw = (self.text(key) or "").strip().lower()
        if raw in _TRUE:
            return True
        if raw in _FALSE:
            return False
        return default


# (field, check, requirement shown in the error)
_REDIS_CHECKS: tuple[tuple[str, Callable[[Any], bool], str], ...] = (
    ("host", bool, "non-empty"),
    ("port", lambda v: 1 <= v <= 65535, "in [1, 65535]"),
    ("db", lambda v: 0 <= v <= 15, "in [0, 15]"),
    ("max_connections", lambda v: v > 0, "> 0"),
    ("connect_timeout_ms", lambda v: v > 0, "> 0"),
    ("socket_timeout_ms", lambda v: v > 0, "> 0"),
    ("key_prefix", bool, "non-empty"),
    ("compression_threshold_bytes", lambda v: v >= 0, ">= 0"),
)


@dataclass(frozen=True, slots=True)
class RedisConfig:
    """
    Connection settings for RedisIndexStore.

    `key_prefix` namespaces every key the store writes. Payload blobs of at
    least `compression_threshold_bytes` are LZ4-compressed when
    `compression` is on.
    """
    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    db: int = 0
    max_connections: int = 50
    connect_timeout_ms: int = 2000
    socket_timeout_ms: int = 5000
    ssl: bool = False
    key_prefix: str = C.REDIS_KEY_PREFIX
    compression: bool = True
    compression_threshold_bytes: int = C.COMPRESSION_THRESHOLD_BYTES

    def __post_init__(self) -> None:
        for name, check, requirement in _REDIS_CHECKS:
            value = getattr(self, name)
            if not check(value):
                raise ValueError(f"{name} must be {requirement}, got {value!r}")

    @classmethod
    def from_env(cls, prefix: str = "REDIS") -> RedisConfig:
        """Read `<prefix>_HOST`, `<prefix>_PORT` and so on; unset keys keep defaults."""
        env = _Env(prefix)
        defaults = cls()
        return cls(
            host=env.text("HOST", defaults.host),
            port=env.integer("PORT", defaults.port),
            password=env.text("PASSWORD"),
            db=env.integer("DB", defaults.db),
            max_connections=env.integer("MAX_CONNECTIONS", defaults.max_connections),
            connect_timeout_ms=env.integer("CONNECT_TIMEOUT_MS", defaults.connect_timeout_ms),
            socket_timeout_ms=env.integer("SOCKET_TIMEOUT_MS", defaults.socket_timeout_ms),
            ssl=env.flag("SSL", defaults.ssl),
            key_prefix=env.text("KEY_PREFIX", defaults.key_prefix),
            compression=env.flag("COMPRESSION", defaults.compression),
            compression_threshold_bytes=env.integer(
                "COMPRESSION_THRESHOLD_BYTES", defaults.compression_threshold_bytes,
            ),
        )

    def get_connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for `redis.asyncio.Redis`."""
        kwargs: Dict[str, Any] = dict(
            host=self.host,
            port=self.port,
            db=self.db,
            ssl=self.ssl,
            max_connections=self.max_connections,
            socket_connect_timeout=self.connect_timeout_ms / 1000,
            socket_timeout=self.socket_timeout_ms / 1000,
            # Blobs are binary.
            decode_responses=False,
        )
        if self.password:
            kwargs["password"] = self.password
        return kwargs


@dataclass(frozen=True, slots=True)
class StorageConfig:
    backend: BackendType = BackendType.IN_MEMORY
    redis_config: Optional[RedisConfig] = None

    def __post_init__(self) -> None:
        if self.backend is BackendType.REDIS and self.redis_config is None:
            raise ValueError("the redis backend needs a redis_config")

    @classmethod
    def for_testing(cls, redis_config: Optional[RedisConfig] = None) -> StorageConfig:
        """In-memory unless a Redis config is supplied."""
        if redis_config is None:
            return cls()
        return cls(BackendType.REDIS, redis_config)

    @classmethod
    def from_env(cls) -> StorageConfig:
        """STORAGE_BACKEND picks the backend; REDIS_* is read only for redis."""
        name = os.environ.get("STORAGE_BACKEND", BackendType.IN_MEMORY.value).strip().lower()
        try:
            backend = BackendType(name)
        except ValueError:
            raise ValueError(f"Unknown STORAGE_BACKEND: {name!r}") from None
        if backend is BackendType.REDIS:
            return cls(backend, RedisConfig.from_env())
        return cls(backend)


__all__ = [
    "BackendType",
    "RedisConfig",
    "StorageConfig",
]
