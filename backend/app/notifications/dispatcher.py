"""
One dispatch run: claim a batch from the outbox, deliver each job, complete it.

Jobs are processed strictly one after another. Concurrency comes from running
several short batches, and the store's claim keeps overlapping runs apart.
Store errors abort the run; delivery problems never do.
"""
from __future__ import annotations

import math
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Protocol

from app.core.config import Settings
from app.core.logging import get_logger
from app.notifications.outbox import OutboxJob, OutboxStore, utc_now
from app.notifications.push_sender import NO_ACTIVE_SUBSCRIPTIONS, DeliveryResult

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 20
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 100
RUN_BUDGET_EXCEEDED = "run_budget_exceeded"


class Deliverer(Protocol):
    def deliver(self, job: OutboxJob) -> DeliveryResult: ...


@dataclass
class DispatchSummary:
    claimed: int = 0
    sent: int = 0
    failed: int = 0
    discarded: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff for failed deliveries.

    delay = min(max_delay, base_delay * 2**attempts_so_far). The defaults give
    a flat 60s. max_attempts=0 retries forever; otherwise the failure that
    reaches max_attempts discards the job.
    """

    base_delay_seconds: int = 60
    max_delay_seconds: int = 60
    max_attempts: int = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            base_delay_seconds=settings.DISPATCH_RETRY_BASE_SECONDS,
            max_delay_seconds=settings.DISPATCH_RETRY_MAX_SECONDS,
            max_attempts=settings.DISPATCH_MAX_ATTEMPTS,
        )

    def delay_for(self, attempts_so_far: int) -> int:
        exponent = min(max(attempts_so_far, 0), 30)
        delay = self.base_delay_seconds * (2 ** exponent)
        return max(0, min(self.max_delay_seconds, delay))

    def exhausted(self, attempts_so_far: int) -> bool:
        # attempts_so_far + 1 is the attempt being recorded now
        return self.max_attempts > 0 and attempts_so_far + 1 >= self.max_attempts


def resolve_batch_size(raw: Any, default: int = DEFAULT_BATCH_SIZE) -> int:
    """Clamp a requested batch size to [1, 100]; anything non-numeric gets the default."""
    if raw is None or isinstance(raw, bool):
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value):
        return default
    return int(max(MIN_BATCH_SIZE, min(MAX_BATCH_SIZE, value)))


def dispatch_once(
    store: OutboxStore,
    push_client: Deliverer,
    batch_size: Any = None,
    *,
    retry_policy: RetryPolicy | None = None,
    run_budget_seconds: float | None = None,
    clock: Callable[[], datetime] = utc_now,
    monotonic: Callable[[], float] = time.monotonic,
) -> DispatchSummary:
    retry_policy = retry_policy or RetryPolicy()
    size = resolve_batch_size(batch_size)
    started = monotonic()
    summary = DispatchSummary()

    jobs = store.claim_batch(size, now=clock())
    summary.claimed = len(jobs)
    logger.info("claim_batch returned %d jobs (batch_size=%d)", len(jobs), size)

    if not jobs:
        return summary

    for job in jobs:
        if run_budget_seconds is not None and monotonic() - started >= run_budget_seconds:
            # Hand the job back right away instead of waiting out the lease.
            store.complete_job(job.id, False, RUN_BUDGET_EXCEEDED, 0, False, now=clock())
            summary.failed += 1
            logger.warning("run budget exceeded; released id=%s", job.id)
            continue

        if not job.subscription_ids:
            store.complete_job(job.id, False, NO_ACTIVE_SUBSCRIPTIONS, 0, True, now=clock())
            summary.discarded += 1
            logger.info("outbox job discarded: id=%s event=%s reason=%s", job.id, job.event_type, NO_ACTIVE_SUBSCRIPTIONS)
            continue

        try:
            result = push_client.deliver(job)
        except Exception as e:
            logger.exception("push delivery raised: id=%s", job.id)
            result = DeliveryResult(ok=False, error=f"delivery_exception:{e}")

        if result.ok:
            store.complete_job(job.id, True, None, 0, False, now=clock())
            summary.sent += 1
            logger.info("outbox job sent: id=%s event=%s", job.id, job.event_type)
            continue

        error = result.error or "delivery_failed"
        if retry_policy.exhausted(job.attempts):
            store.complete_job(job.id, False, f"max_attempts_exceeded:{error}", 0, True, now=clock())
            summary.discarded += 1
            logger.warning("outbox job discarded after %d attempts: id=%s err=%s", job.attempts + 1, job.id, error)
            continue

        delay = retry_policy.delay_for(job.attempts)
        store.complete_job(job.id, False, error, delay, False, now=clock())
        summary.failed += 1
        logger.warning("push send failed (will retry in %ds): id=%s err=%s", delay, job.id, error)

    logger.info(
        "dispatch run complete: claimed=%d sent=%d failed=%d discarded=%d",
        summary.claimed,
        summary.sent,
        summary.failed,
        summary.discarded,
    )
    return summary


def dispatch_with_settings(
    store: OutboxStore,
    push_client: Deliverer,
    settings: Settings,
    batch_size: Any = None,
) -> DispatchSummary:
    """dispatch_once with the retry policy and run budget taken from settings."""
    return dispatch_once(
        store,
        push_client,
        resolve_batch_size(batch_size, default=settings.DISPATCH_DEFAULT_BATCH_SIZE),
        retry_policy=RetryPolicy.from_settings(settings),
        run_budget_seconds=settings.DISPATCH_RUN_BUDGET_SECONDS,
    )
