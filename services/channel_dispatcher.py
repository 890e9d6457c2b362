"""
Channel update dispatcher.

Applies items to one channel through a bounded worker pool. Every item
ends as an UpdateOutcome keyed by SKU; no single failure stops the rest.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Optional
import time
import structlog

from config import settings
from models.sync import UpdateOutcome, FailureReason, ChannelSummary
from exceptions import ChannelUpdateError
from services.channel_adapters import ChannelAdapter, DispatchItem

logger = structlog.get_logger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ChannelDispatcher:
    """
    Per-item isolated channel updates.

    Args:
        max_workers: Concurrent updates per channel
        verify: Read the quantity before and after each write
    """

    def __init__(self, max_workers: Optional[int] = None, verify: Optional[bool] = None):
        self.max_workers = max_workers or settings.sync_dispatch_workers
        self.verify = settings.sync_verify_updates if verify is None else verify

    def apply(self, adapter: ChannelAdapter, items: list[DispatchItem]) -> dict[str, UpdateOutcome]:
        """
        Apply items to a channel.

        Items without an identifier fail with missing_identifier and are
        never sent.

        Returns:
            sku -> UpdateOutcome
        """
        channel = adapter.channel.value
        outcomes: dict[str, UpdateOutcome] = {}
        sendable = []

        for item in items:
            if not item.identifier:
                outcomes[item.sku] = UpdateOutcome(
                    success=False,
                    new_quantity=item.quantity,
                    reason=FailureReason.MISSING_IDENTIFIER,
                    error=f"No {channel} identifier mapped for {item.sku}",
                )
            else:
                sendable.append(item)

        if sendable:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    item.sku: executor.submit(self._apply_one, adapter, item)
                    for item in sendable
                }
                for sku, future in futures.items():
                    outcomes[sku] = future.result()

        failed = sum(1 for o in outcomes.values() if not o.success)
        logger.info(
            "channel_updates_applied",
            channel=channel,
            total=len(outcomes),
            failed=failed
        )
        return outcomes

    def _apply_one(self, adapter: ChannelAdapter, item: DispatchItem) -> UpdateOutcome:
        channel = adapter.channel.value
        verify = self.verify and adapter.supports_read_back
        started = time.perf_counter()
        previous = None

        try:
            if verify:
                previous = self._read(adapter, item)

            adapter.write(item)

            verified = None
            if verify:
                verified = self._read(adapter, item) == item.quantity
                if not verified:
                    logger.warning("channel_update_not_verified", channel=channel, sku=item.sku)

            return UpdateOutcome(
                success=True,
                previous_quantity=previous,
                new_quantity=item.quantity,
                latency_ms=_elapsed_ms(started),
                verified=verified,
                detail=item.location,
            )

        except ChannelUpdateError as e:
            logger.warning(
                "channel_update_failed",
                channel=channel,
                sku=item.sku,
                reason=e.reason,
                error=e.message
            )
            return UpdateOutcome(
                success=False,
                previous_quantity=previous,
                new_quantity=item.quantity,
                error=e.message,
                reason=FailureReason(e.reason),
                latency_ms=_elapsed_ms(started),
                detail=item.location,
            )

        except Exception as e:
            logger.error(
                "channel_update_error",
                channel=channel,
                sku=item.sku,
                error=str(e),
                error_type=type(e).__name__
            )
            return UpdateOutcome(
                success=False,
                previous_quantity=previous,
                new_quantity=item.quantity,
                error=str(e),
                reason=FailureReason.UPSTREAM,
                latency_ms=_elapsed_ms(started),
                detail=item.location,
            )

    def _read(self, adapter: ChannelAdapter, item: DispatchItem) -> Optional[int]:
        """Read-back for observability; a failed read is not a failed update."""
        try:
            return adapter.read(item)
        except ChannelUpdateError as e:
            logger.debug("channel_read_failed", channel=adapter.channel.value, sku=item.sku, error=e.message)
            return None


def summarize(channel: str, outcomes: dict[str, UpdateOutcome]) -> ChannelSummary:
    """
    Aggregate outcomes of one channel.

    changed/unchanged only count outcomes with a known previous quantity.
    """
    total = len(outcomes)
    succeeded = sum(1 for o in outcomes.values() if o.success)
    changed = sum(1 for o in outcomes.values() if o.success and o.changed is True)
    unchanged = sum(1 for o in outcomes.values() if o.success and o.changed is False)
    total_ms = sum(o.latency_ms for o in outcomes.values())

    return ChannelSummary(
        channel=channel,
        total=total,
        succeeded=succeeded,
        failed=total - succeeded,
        changed=changed,
        unchanged=unchanged,
        success_rate=round(succeeded / total * 100, 1) if total else 0.0,
        total_ms=total_ms,
        average_ms=round(total_ms / total, 1) if total else 0.0,
    )
