"""
Real Redis-backed correlator and scheduler storage, used when REDIS_URL is set.
Implements the same interfaces as delay_cover.database.redis (in-memory stub).

Check-and-write steps run as Lua scripts, so several API workers can share one
correlator map and one set of schedule buckets.
"""

from __future__ import annotations

import json
from typing import List, Optional

import redis

from delay_cover.core.models import OraclePhase, PendingRequest

_ADD_PENDING = """
if redis.call('HEXISTS', KEYS[1], ARGV[1]) == 1 then return 0 end
if redis.call('HEXISTS', KEYS[2], ARGV[2]) == 1 then return 0 end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[3])
redis.call('HSET', KEYS[2], ARGV[2], ARGV[1])
redis.call('HSET', KEYS[3], ARGV[1], ARGV[2])
return 1
"""

_TAKE_PENDING = """
local field = redis.call('HGET', KEYS[3], ARGV[1])
if not field then return false end
if ARGV[2] ~= '' then
  local suffix = ':' .. ARGV[2]
  if string.sub(field, -string.len(suffix)) ~= suffix then return false end
end
local raw = redis.call('HGET', KEYS[1], ARGV[1])
redis.call('HDEL', KEYS[1], ARGV[1])
redis.call('HDEL', KEYS[2], field)
redis.call('HDEL', KEYS[3], ARGV[1])
return raw
"""

_ADD_TO_BUCKET = """
if redis.call('HEXISTS', KEYS[1], ARGV[2]) == 1 then return 0 end
redis.call('HSET', KEYS[1], ARGV[2], ARGV[1])
redis.call('SADD', KEYS[2], ARGV[2])
redis.call('ZADD', KEYS[3], ARGV[1], ARGV[1])
return 1
"""

_POP_BUCKET = """
local ids = redis.call('SMEMBERS', KEYS[2])
for _, id in ipairs(ids) do redis.call('HDEL', KEYS[1], id) end
redis.call('DEL', KEYS[2])
redis.call('ZREM', KEYS[3], ARGV[1])
return ids
"""


def _client(url: Optional[str] = None, client=None):
    if client is not None:
        return client
    return redis.from_url(url, decode_responses=True)


class RedisCorrelationStore:
    """
    Redis-backed correlator map. Use when REDIS_URL is set in production.
    """

    def __init__(self, url: Optional[str] = None, prefix: str = "delay_cover", client=None) -> None:
        self._client = _client(url, client)
        self._pending_key = f"{prefix}:pending"
        self._by_risk_key = f"{prefix}:pending_by_risk"
        self._fields_key = f"{prefix}:pending_fields"
        self._add = self._client.register_script(_ADD_PENDING)
        self._take = self._client.register_script(_TAKE_PENDING)

    def add(self, pending: PendingRequest) -> bool:
        doc = json.dumps(
            {
                "request_id": pending.request_id,
                "risk_id": pending.risk_id,
                "phase": pending.phase.value,
                "created_at": pending.created_at,
            }
        )
        added = self._add(
            keys=[self._pending_key, self._by_risk_key, self._fields_key],
            args=[pending.request_id, self._risk_field(pending.risk_id, pending.phase), doc],
        )
        return bool(int(added))

    def get(self, request_id: str) -> Optional[PendingRequest]:
        return self._decode(self._client.hget(self._pending_key, request_id))

    def find(self, risk_id: str, phase: OraclePhase) -> Optional[str]:
        return self._client.hget(self._by_risk_key, self._risk_field(risk_id, phase))

    def take(self, request_id: str, phase: Optional[OraclePhase] = None) -> Optional[PendingRequest]:
        raw = self._take(
            keys=[self._pending_key, self._by_risk_key, self._fields_key],
            args=[request_id, phase.value if phase is not None else ""],
        )
        return self._decode(raw)

    def remove(self, request_id: str) -> Optional[PendingRequest]:
        return self.take(request_id)

    def all(self) -> List[PendingRequest]:
        items = [self._decode(raw) for raw in self._client.hvals(self._pending_key)]
        return sorted((p for p in items if p), key=lambda p: (p.created_at, p.request_id))

    @staticmethod
    def _risk_field(risk_id: str, phase: OraclePhase) -> str:
        return f"{risk_id}:{phase.value}"

    @staticmethod
    def _decode(raw) -> Optional[PendingRequest]:
        if not raw:
            return None
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return PendingRequest(
            request_id=doc["request_id"],
            risk_id=doc["risk_id"],
            phase=OraclePhase(doc["phase"]),
            created_at=int(doc["created_at"]),
        )


class RedisBucketStore:
    """
    Redis-backed schedule buckets: a set per bucket, a risk -> bucket index and
    a sorted set of non-empty buckets for backlog queries.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        prefix: str = "delay_cover",
        lock_timeout_seconds: int = 300,
        client=None,
    ) -> None:
        self._client = _client(url, client)
        self._prefix = prefix
        self._index_key = f"{prefix}:schedule:index"
        self._buckets_key = f"{prefix}:schedule:buckets"
        self._lock_timeout = lock_timeout_seconds
        self._add = self._client.register_script(_ADD_TO_BUCKET)
        self._pop = self._client.register_script(_POP_BUCKET)

    def _bucket_key(self, bucket: int) -> str:
        return f"{self._prefix}:schedule:bucket:{bucket}"

    def add(self, bucket: int, risk_id: str) -> bool:
        added = self._add(
            keys=[self._index_key, self._bucket_key(bucket), self._buckets_key],
            args=[bucket, risk_id],
        )
        return bool(int(added))

    def members(self, bucket: int) -> List[str]:
        return sorted(self._client.smembers(self._bucket_key(bucket)))

    def bucket_of(self, risk_id: str) -> Optional[int]:
        raw = self._client.hget(self._index_key, risk_id)
        return int(raw) if raw is not None else None

    def pop_bucket(self, bucket: int) -> List[str]:
        ids = self._pop(
            keys=[self._index_key, self._bucket_key(bucket), self._buckets_key],
            args=[bucket],
        )
        return sorted(ids or [])

    def buckets_before(self, bucket: int) -> List[int]:
        raw = self._client.zrangebyscore(self._buckets_key, "-inf", f"({bucket}")
        return [int(b) for b in raw]

    def lock(self, bucket: int):
        return self._client.lock(f"{self._prefix}:schedule:lock:{bucket}", timeout=self._lock_timeout)
