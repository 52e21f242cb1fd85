import pytest

from delay_cover.core.scheduler import DelayedExecutionScheduler, round_down, round_up
from delay_cover.errors import AlreadyScheduled


def test_round_down_and_up_on_the_bucket_grid():
    assert round_down(7200, 3600) == 7200
    assert round_down(7201, 3600) == 7200
    assert round_down(10799, 3600) == 7200
    assert round_up(7200, 3600) == 7200
    assert round_up(7201, 3600) == 10800


def test_round_down_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        round_down(100, 0)
    with pytest.raises(ValueError):
        DelayedExecutionScheduler(interval_seconds=-1)


def test_schedule_never_lands_before_target():
    scheduler = DelayedExecutionScheduler(3600)
    bucket = scheduler.schedule_at(7201, "r1")
    assert bucket == 10800
    assert scheduler.scheduled_bucket("r1") == 10800


def test_due_now_rounds_current_time_down():
    scheduler = DelayedExecutionScheduler(3600)
    scheduler.schedule_at(7200, "r1")
    scheduler.schedule_at(7200, "r2")

    early = scheduler.due_now(7199)
    assert early.bucket == 3600
    assert not early.is_due

    due = scheduler.due_now(7201)
    assert due.bucket == 7200
    assert due.risk_ids == ["r1", "r2"]


def test_same_risk_cannot_be_scheduled_twice():
    scheduler = DelayedExecutionScheduler(3600)
    scheduler.schedule_at(7200, "r1")
    with pytest.raises(AlreadyScheduled):
        scheduler.schedule_at(14400, "r1")


def test_consume_empties_bucket_and_index():
    scheduler = DelayedExecutionScheduler(3600)
    scheduler.schedule_at(7200, "r1")
    assert scheduler.consume(7200) == ["r1"]
    assert scheduler.ids_in(7200) == []
    assert scheduler.scheduled_bucket("r1") is None
    assert scheduler.consume(7200) == []


def test_backlog_lists_older_unconsumed_buckets():
    scheduler = DelayedExecutionScheduler(3600)
    scheduler.schedule_at(3600, "old")
    scheduler.schedule_at(7200, "older-but-newer")
    scheduler.schedule_at(14400, "current")

    assert scheduler.backlog(14401) == [3600, 7200]
    scheduler.consume(3600)
    assert scheduler.backlog(14401) == [7200]


def test_bucket_lock_uses_store_lock_when_available():
    entered = []

    class LockingStore:
        def add(self, bucket, risk_id):
            return True

        def lock(self, bucket):
            class _Lock:
                def __enter__(self):
                    entered.append(bucket)

                def __exit__(self, *exc):
                    return False

            return _Lock()

    scheduler = DelayedExecutionScheduler(3600, store=LockingStore())
    with scheduler.bucket_lock(7200):
        pass
    assert entered == [7200]
