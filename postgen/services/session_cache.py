"""
Session cache - TTL-scoped storage of GenerationSession keyed by session ID,
plus generic per-entry-TTL cache primitives.

Two backends share one async contract:
- InMemorySessionCache: dict + asyncio.Lock, lazy eviction, optional sweep.
- RedisSessionCache: one hash per session (one field per pass) mutated by
  atomic Lua scripts, so concurrent creates resolve to a single winner and
  disjoint pass writes never overwrite each other.

Backing-store outages surface as CacheUnavailable. Expired entries are
treated as absent, never returned stale.
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from postgen.errors import CacheUnavailable, ValidationError
from postgen.schemas.session import (
    PASS_RESULT_TYPES,
    GenerationSession,
    PassName,
    PassResult,
    SessionMetadata,
    pass_alias,
    pass_field,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
SessionUpdates = Mapping[Union[PassName, str], Union[PassResult, dict]]


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _resolve_pass_name(key: Union[PassName, str]) -> PassName:
    """Accept 'draft', 'draft_pass', 'draftPass' or PassName.DRAFT."""
    if isinstance(key, PassName):
        return key
    raw = str(key)
    for suffix in ("_pass", "Pass"):
        if raw.endswith(suffix):
            raw = raw[: -len(suffix)]
            break
    try:
        return PassName(raw)
    except ValueError:
        raise ValidationError(f"Unknown session field: {key}")


def normalize_updates(updates: SessionUpdates) -> dict[PassName, PassResult]:
    """Coerce a partial update into typed pass results keyed by pass name."""
    normalized: dict[PassName, PassResult] = {}
    for key, value in updates.items():
        name = _resolve_pass_name(key)
        model_cls = PASS_RESULT_TYPES[name]
        if isinstance(value, model_cls):
            normalized[name] = value
        else:
            normalized[name] = model_cls.model_validate(value)
    return normalized


def _metadata_fields(metadata: Optional[Mapping[str, Any]]) -> dict[str, Optional[str]]:
    metadata = metadata or {}
    return {
        "idea": metadata.get("idea"),
        "product_id": metadata.get("product_id", metadata.get("productId")),
    }


class SessionCache(ABC):
    """Uniform async contract over in-memory and distributed backends."""

    def __init__(self, session_ttl_seconds: int = 1800, default_ttl_seconds: int = 1800):
        self.session_ttl_seconds = session_ttl_seconds
        self.default_ttl_seconds = default_ttl_seconds

    # Generic cache primitives

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def has(self, key: str) -> bool:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Remove every generic entry. Sessions are not affected."""

    @abstractmethod
    async def size(self) -> int:
        """Number of unexpired generic entries."""

    # Worker heartbeats, stored apart from generic entries

    @abstractmethod
    async def record_heartbeat(self, worker: str, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def get_heartbeat(self, worker: str) -> Optional[str]:
        """ISO timestamp of the worker's last heartbeat, None once it expires."""

    # Sessions

    @abstractmethod
    async def get_or_create_session(
        self,
        session_id: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> GenerationSession:
        ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[GenerationSession]:
        """Read a session without creating it. None if absent or expired."""

    @abstractmethod
    async def update_session(
        self,
        session_id: str,
        updates: SessionUpdates,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[GenerationSession]:
        """
        Merge pass results onto an existing session.
        Returns None when the session is absent or expired.
        """

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        ...

    @abstractmethod
    async def get_active_sessions(self) -> list[str]:
        ...

    async def purge_expired(self) -> int:
        """Drop expired entries eagerly. Returns the number removed."""
        return 0

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


class InMemorySessionCache(SessionCache):
    def __init__(
        self,
        session_ttl_seconds: int = 1800,
        default_ttl_seconds: int = 1800,
        clock: Clock = time.time,
    ):
        super().__init__(session_ttl_seconds, default_ttl_seconds)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: dict[str, tuple[Any, float]] = {}
        self._sessions: dict[str, GenerationSession] = {}
        self._heartbeats: dict[str, tuple[str, float]] = {}

    def _now(self) -> float:
        return self._clock()

    def _live_entry(self, key: str) -> Optional[tuple[Any, float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._now() >= entry[1]:
            del self._entries[key]
            return None
        return entry

    def _live_session(self, session_id: str) -> Optional[GenerationSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._now() >= session.expires_at.timestamp():
            del self._sessions[session_id]
            logger.debug("Session expired", extra={"session_id": session_id})
            return None
        return session

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        async with self._lock:
            self._entries[key] = (value, self._now() + ttl)

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._live_entry(key)
            return entry[0] if entry else None

    async def has(self, key: str) -> bool:
        async with self._lock:
            return self._live_entry(key) is not None

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def size(self) -> int:
        async with self._lock:
            for key in list(self._entries):
                self._live_entry(key)
            return len(self._entries)

    async def record_heartbeat(self, worker: str, ttl_seconds: int) -> None:
        now = self._now()
        async with self._lock:
            self._heartbeats[worker] = (_to_datetime(now).isoformat(), now + ttl_seconds)

    async def get_heartbeat(self, worker: str) -> Optional[str]:
        async with self._lock:
            beat = self._heartbeats.get(worker)
            if beat is None:
                return None
            if self._now() >= beat[1]:
                del self._heartbeats[worker]
                return None
            return beat[0]

    async def get_or_create_session(
        self,
        session_id: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> GenerationSession:
        async with self._lock:
            existing = self._live_session(session_id)
            if existing is not None:
                return existing.model_copy(deep=True)

            now = self._now()
            session = GenerationSession(
                session_id=session_id,
                metadata=SessionMetadata(
                    **_metadata_fields(metadata),
                    started_at=_to_datetime(now),
                    last_updated_at=_to_datetime(now),
                ),
                expires_at=_to_datetime(now + self.session_ttl_seconds),
            )
            self._sessions[session_id] = session
            logger.info("Session created", extra={"session_id": session_id})
            return session.model_copy(deep=True)

    async def get_session(self, session_id: str) -> Optional[GenerationSession]:
        async with self._lock:
            session = self._live_session(session_id)
            return session.model_copy(deep=True) if session else None

    async def update_session(
        self,
        session_id: str,
        updates: SessionUpdates,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[GenerationSession]:
        normalized = normalize_updates(updates)
        async with self._lock:
            session = self._live_session(session_id)
            if session is None:
                return None

            for name, result in normalized.items():
                setattr(session, pass_field(name), result)
            if metadata is not None:
                for field_name, value in _metadata_fields(metadata).items():
                    setattr(session.metadata, field_name, value)

            # lastUpdatedAt never moves backwards, even if the clock does
            now = max(self._now(), session.metadata.last_updated_at.timestamp())
            session.metadata.last_updated_at = _to_datetime(now)
            session.expires_at = _to_datetime(now + self.session_ttl_seconds)
            return session.model_copy(deep=True)

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            existed = self._live_session(session_id) is not None
            self._sessions.pop(session_id, None)
            return existed

    async def get_active_sessions(self) -> list[str]:
        async with self._lock:
            return [sid for sid in list(self._sessions) if self._live_session(sid) is not None]

    async def purge_expired(self) -> int:
        async with self._lock:
            before = len(self._entries) + len(self._sessions)
            for key in list(self._entries):
                self._live_entry(key)
            for sid in list(self._sessions):
                self._live_session(sid)
            return before - (len(self._entries) + len(self._sessions))


# KEYS[1] = session hash; ARGV[1] = ttl ms; ARGV[2] = now; ARGV[3..] = field/value pairs.
# A hash past its logical TTL counts as absent. Creates only if absent, then
# returns the stored hash either way.
_CREATE_SESSION_LUA = """
local prev = redis.call('HGET', KEYS[1], 'lastUpdatedAt')
if prev and tonumber(prev) * 1000 + tonumber(ARGV[1]) <= tonumber(ARGV[2]) * 1000 then
    redis.call('DEL', KEYS[1])
end
if redis.call('EXISTS', KEYS[1]) == 0 then
    redis.call('HSET', KEYS[1], unpack(ARGV, 3))
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
return redis.call('HGETALL', KEYS[1])
"""

# KEYS[1] = session hash; ARGV[1] = ttl ms; ARGV[2] = now; ARGV[3..] = field/value pairs.
# Returns an empty list if the session is gone or past its logical TTL.
_UPDATE_SESSION_LUA = """
local prev = redis.call('HGET', KEYS[1], 'lastUpdatedAt')
if not prev then
    return {}
end
if tonumber(prev) * 1000 + tonumber(ARGV[1]) <= tonumber(ARGV[2]) * 1000 then
    redis.call('DEL', KEYS[1])
    return {}
end
local now = ARGV[2]
if tonumber(prev) > tonumber(now) then
    now = prev
end
redis.call('HSET', KEYS[1], 'lastUpdatedAt', now)
for i = 3, #ARGV, 2 do
    redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
end
redis.call('PEXPIRE', KEYS[1], ARGV[1])
return redis.call('HGETALL', KEYS[1])
"""


@contextmanager
def _redis_errors(operation: str):
    from redis.exceptions import RedisError

    try:
        yield
    except RedisError as e:
        logger.error("Redis %s failed: %s", operation, str(e))
        raise CacheUnavailable(f"Session cache unavailable during {operation}: {e}") from e


def _pairs_to_dict(flat: list) -> dict[str, str]:
    return {
        (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
        for k, v in zip(flat[::2], flat[1::2])
    }


class RedisSessionCache(SessionCache):
    def __init__(
        self,
        redis,
        key_prefix: str = "postgen",
        session_ttl_seconds: int = 1800,
        default_ttl_seconds: int = 1800,
        clock: Clock = time.time,
    ):
        super().__init__(session_ttl_seconds, default_ttl_seconds)
        self._redis = redis
        self._prefix = key_prefix
        self._clock = clock

    def _session_key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}"

    def _cache_key(self, key: str) -> str:
        return f"{self._prefix}:cache:{key}"

    def _heartbeat_key(self, worker: str) -> str:
        return f"{self._prefix}:worker_health:{worker}"

    @property
    def _ttl_ms(self) -> int:
        return int(self.session_ttl_seconds * 1000)

    def _decode_session(
        self,
        data: dict[str, str],
        now: Optional[float] = None,
    ) -> Optional[GenerationSession]:
        if not data or "sessionId" not in data:
            return None
        started = float(data["startedAt"])
        updated = float(data["lastUpdatedAt"])
        expires = updated + self.session_ttl_seconds
        if (self._clock() if now is None else now) >= expires:
            return None

        meta = json.loads(data.get("meta") or "{}")
        payload: dict[str, Any] = {
            "session_id": data["sessionId"],
            "metadata": SessionMetadata(
                **_metadata_fields(meta),
                started_at=_to_datetime(started),
                last_updated_at=_to_datetime(updated),
            ),
            "expires_at": _to_datetime(expires),
        }
        for name in PassName:
            raw = data.get(pass_alias(name))
            if raw:
                payload[pass_field(name)] = PASS_RESULT_TYPES[name].model_validate_json(raw)
        return GenerationSession(**payload)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        with _redis_errors("set"):
            await self._redis.set(self._cache_key(key), json.dumps(value), ex=ttl)

    async def get(self, key: str) -> Optional[Any]:
        with _redis_errors("get"):
            raw = await self._redis.get(self._cache_key(key))
        return json.loads(raw) if raw is not None else None

    async def has(self, key: str) -> bool:
        with _redis_errors("has"):
            return bool(await self._redis.exists(self._cache_key(key)))

    async def delete(self, key: str) -> bool:
        with _redis_errors("delete"):
            return bool(await self._redis.delete(self._cache_key(key)))

    async def _scan(self, pattern: str) -> list[str]:
        keys = []
        async for key in self._redis.scan_iter(match=pattern):
            keys.append(key.decode() if isinstance(key, bytes) else str(key))
        return keys

    async def clear(self) -> None:
        with _redis_errors("clear"):
            keys = await self._scan(self._cache_key("*"))
            if keys:
                await self._redis.delete(*keys)
        logger.info("Generic cache cleared (%d keys)", len(keys))

    async def size(self) -> int:
        with _redis_errors("size"):
            return len(await self._scan(self._cache_key("*")))

    async def record_heartbeat(self, worker: str, ttl_seconds: int) -> None:
        with _redis_errors("record_heartbeat"):
            await self._redis.set(
                self._heartbeat_key(worker),
                _to_datetime(self._clock()).isoformat(),
                ex=ttl_seconds,
            )

    async def get_heartbeat(self, worker: str) -> Optional[str]:
        with _redis_errors("get_heartbeat"):
            raw = await self._redis.get(self._heartbeat_key(worker))
        return raw.decode() if isinstance(raw, bytes) else raw

    async def get_or_create_session(
        self,
        session_id: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> GenerationSession:
        now = self._clock()
        fields = {
            "sessionId": session_id,
            "meta": json.dumps(_metadata_fields(metadata)),
            "startedAt": repr(now),
            "lastUpdatedAt": repr(now),
        }
        args: list[Any] = [self._ttl_ms, repr(now)]
        for k, v in fields.items():
            args.extend((k, v))

        with _redis_errors("get_or_create_session"):
            flat = await self._redis.eval(
                _CREATE_SESSION_LUA, 1, self._session_key(session_id), *args
            )
        session = self._decode_session(_pairs_to_dict(flat), now=now)
        if session is None:
            raise CacheUnavailable(f"Session {session_id} could not be created")
        return session

    async def get_session(self, session_id: str) -> Optional[GenerationSession]:
        with _redis_errors("get_session"):
            data = await self._redis.hgetall(self._session_key(session_id))
        if isinstance(data, list):
            data = _pairs_to_dict(data)
        return self._decode_session(data or {})

    async def update_session(
        self,
        session_id: str,
        updates: SessionUpdates,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[GenerationSession]:
        normalized = normalize_updates(updates)
        now = self._clock()
        args: list[Any] = [self._ttl_ms, repr(now)]
        for name, result in normalized.items():
            args.extend((pass_alias(name), result.model_dump_json(by_alias=True)))
        if metadata is not None:
            args.extend(("meta", json.dumps(_metadata_fields(metadata))))

        with _redis_errors("update_session"):
            flat = await self._redis.eval(
                _UPDATE_SESSION_LUA, 1, self._session_key(session_id), *args
            )
        if not flat:
            return None
        return self._decode_session(_pairs_to_dict(flat), now=now)

    async def delete_session(self, session_id: str) -> bool:
        with _redis_errors("delete_session"):
            return bool(await self._redis.delete(self._session_key(session_id)))

    async def get_active_sessions(self) -> list[str]:
        prefix = self._session_key("")
        with _redis_errors("get_active_sessions"):
            keys = await self._scan(f"{prefix}*")
        return [key[len(prefix):] for key in keys]

    async def ping(self) -> bool:
        with _redis_errors("ping"):
            return bool(await self._redis.ping())

    async def aclose(self) -> None:
        await self._redis.aclose()


def build_session_cache(settings, redis_client=None) -> SessionCache:
    if settings.session_backend == "redis":
        if redis_client is None:
            import redis.asyncio as aioredis
            redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
        logger.info("Using Redis session cache")
        return RedisSessionCache(
            redis_client,
            key_prefix=settings.cache_key_prefix,
            session_ttl_seconds=settings.session_ttl_seconds,
            default_ttl_seconds=settings.cache_default_ttl_seconds,
        )
    logger.info("Using in-memory session cache")
    return InMemorySessionCache(
        session_ttl_seconds=settings.session_ttl_seconds,
        default_ttl_seconds=settings.cache_default_ttl_seconds,
    )
