"""
Delayed-execution scheduler.

Holds risk ids that must not be dispatched before a target time, bucketed to
the keeper's polling interval. Pull based: the external keeper asks what is due
for the current bucket and then asks to execute that bucket.

Rounding:
- schedule_at() rounds the target UP to the next bucket boundary (never early)
- due_now() rounds the current time DOWN to the current bucket (never misses
  work that is already due)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from delay_cover.core.locks import KeyedLocks
from delay_cover.database.redis import InMemoryBucketStore
from delay_cover.errors import AlreadyScheduled

logger = logging.getLogger(__name__)


def round_down(timestamp: int, interval: int) -> int:
    if interval <= 0:
        raise ValueError(f"interval must be > 0; got {interval}")
    return timestamp - (timestamp % interval)


def round_up(timestamp: int, interval: int) -> int:
    aligned = round_down(timestamp, interval)
    return aligned if aligned == timestamp else aligned + interval


@dataclass(frozen=True)
class DueWork:
    bucket: int
    risk_ids: List[str] = field(default_factory=list)

    @property
    def is_due(self) -> bool:
        return bool(self.risk_ids)


class DelayedExecutionScheduler:
    def __init__(self, interval_seconds: int, store=None) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0; got {interval_seconds}")
        self.interval = interval_seconds
        self._store = store if store is not None else InMemoryBucketStore()
        self._bucket_locks = KeyedLocks()

    @property
    def store(self):
        return self._store

    def bucket_for_schedule(self, target_time: int) -> int:
        return round_up(target_time, self.interval)

    def bucket_for_poll(self, current_time: int) -> int:
        return round_down(current_time, self.interval)

    def schedule_at(self, target_time: int, risk_id: str) -> int:
        bucket = self.bucket_for_schedule(target_time)
        if not self._store.add(bucket, risk_id):
            raise AlreadyScheduled(
                f"Risk {risk_id} is already scheduled in bucket {self._store.bucket_of(risk_id)}.",
                context={"risk_id": risk_id, "requested_bucket": bucket},
            )
        logger.info("Scheduled risk %s for bucket %s", risk_id, bucket)
        return bucket

    def due_now(self, current_time: int) -> DueWork:
        bucket = self.bucket_for_poll(current_time)
        return DueWork(bucket=bucket, risk_ids=self._store.members(bucket))

    def ids_in(self, bucket: int) -> List[str]:
        return self._store.members(bucket)

    def consume(self, bucket: int) -> List[str]:
        consumed = self._store.pop_bucket(bucket)
        if consumed:
            logger.info("Consumed bucket %s (%d ids)", bucket, len(consumed))
        return consumed

    def backlog(self, current_time: int) -> List[int]:
        """Unconsumed buckets older than the current one, oldest first."""
        return self._store.buckets_before(self.bucket_for_poll(current_time))

    def scheduled_bucket(self, risk_id: str) -> Optional[int]:
        return self._store.bucket_of(risk_id)

    @contextmanager
    def bucket_lock(self, bucket: int) -> Iterator[None]:
        with self._bucket_locks.hold(("bucket", bucket)):
            # Shared stores also serialize pollers running in other processes.
            if hasattr(self._store, "lock"):
                with self._store.lock(bucket):
                    yield
            else:
                yield
