"""Retry policy for save_url submissions.

Only lock contention is retried. The wait grows linearly (``delay_step`` times
the retry number) and the job's ``retry_count`` is carried across attempts, so
a job that reaches ``max_retries`` fails with :class:`RetriesExhaustedError`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from picbox.core.backoff import linear_delay
from picbox.domain.exceptions import RetriesExhaustedError, TransientLockError

if TYPE_CHECKING:
    from picbox.application.protocols import SaveUrlSubmitter
    from picbox.core.backoff import Sleeper
    from picbox.domain.models import JobPending, SyncJob

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 0.3  # seconds


async def submit_with_retry(
    client: SaveUrlSubmitter,
    job: SyncJob,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    delay_step: float = DEFAULT_RETRY_DELAY,
    sleep: Sleeper = asyncio.sleep,
) -> JobPending:
    """Submit ``job`` until it is accepted, retrying only on lock contention.

    Args:
        client: Anything with an async ``save_url(job)``.
        job: The job; ``job.retry_count`` is incremented on every retry.
        max_retries: Retry count at which the job is abandoned.
        delay_step: Seconds added to the wait per retry.
        sleep: Awaitable sleep, replaceable in tests.

    Raises:
        RetriesExhaustedError: ``job.retry_count`` reached ``max_retries``.
        PermanentError, MalformedResponseError, InvalidJobError: Raised by the
            client and never retried.
    """
    while True:
        try:
            result = await client.save_url(job)
        except TransientLockError as exc:
            job.retry_count += 1
            if job.retry_count >= max_retries:
                logger.warning(
                    "dropbox_save_url_retries_exhausted",
                    extra={"path": job.path, "attempts": job.retry_count, "error": exc.message},
                )
                raise RetriesExhaustedError(
                    "Retries failed",
                    attempts=job.retry_count,
                    details={"path": job.path, "last_error": exc.message},
                ) from exc

            delay = linear_delay(job.retry_count, delay_step)
            logger.debug(
                "dropbox_save_url_retrying",
                extra={
                    "path": job.path,
                    "retry": job.retry_count,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 3),
                },
            )
            await sleep(delay)
            continue

        if job.retry_count > 0:
            logger.info(
                "dropbox_save_url_completed_after_retries",
                extra={"path": job.path, "retries": job.retry_count, "job_id": result.job_id},
            )
        return result
