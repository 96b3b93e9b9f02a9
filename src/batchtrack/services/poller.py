"""One polling pass over stored batches that still need work.

Pollers sample random batches instead of leasing them, so several pollers can
run side by side; the same batch may occasionally be read by two of them.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from batchtrack.exceptions import ProviderError
from batchtrack.infra.batchers.base import Batcher, OnError, OnValue
from batchtrack.infra.storage import Storage
from batchtrack.models import BatchStatus

logger = logging.getLogger(__name__)

DEFAULT_STATUSES = (BatchStatus.IN_PROGRESS, BatchStatus.CANCELING)


@dataclass
class PollReport:
    """Outcome of one poll_batches() call."""

    polled: list[str] = field(default_factory=list)
    ended: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def poll_batches(
    storage: Storage,
    batcher: Batcher,
    limit: int,
    on_value: OnValue,
    on_error: OnError,
    statuses: Sequence[BatchStatus] = DEFAULT_STATUSES,
) -> PollReport:
    """Read up to ``limit`` random batches that still need work.

    Batches in each of ``statuses`` are sampled first, in order. Remaining
    capacity goes to ended batches that still have created messages, which is
    what a read that failed during reconciliation leaves behind.

    A ProviderError on one batch is logged and recorded in the report; the
    remaining batches are still polled. PersistenceError propagates.
    """
    report = PollReport()

    def _poll(batch_id: str) -> None:
        report.polled.append(batch_id)
        try:
            batcher.read(batch_id, on_value, on_error)
        except ProviderError as e:
            logger.warning("Polling batch %s failed: %s", batch_id, e)
            report.failed[batch_id] = str(e)
            return

        record = storage.get_batch(batch_id)
        if record is not None and record.status.is_terminal:
            report.ended.append(batch_id)

    for status in statuses:
        remaining = limit - len(report.polled)
        if remaining <= 0:
            break
        for batch_id in storage.random_batches(remaining, status):
            _poll(batch_id)

    remaining = limit - len(report.polled)
    if remaining > 0:
        for batch_id in storage.random_unreconciled_batches(remaining):
            # Already read in this pass
            if batch_id in report.polled:
                continue
            logger.info("Resuming reconciliation of batch %s", batch_id)
            _poll(batch_id)

    logger.info(
        "Polled %d batches: %d ended, %d failed",
        len(report.polled),
        len(report.ended),
        len(report.failed),
    )
    return report
