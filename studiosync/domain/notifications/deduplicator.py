"""
Best-effort dedup for calendar change notifications.

The provider delivers notifications at least once and sometimes
concurrently. Each webhook key (resource + state + channel) has two
records: an in-flight marker set when processing starts, and the
timestamp of the last completed run. Individual event ids carry their
own cooldown, since one event shows up in several deliveries.

This only avoids wasted work. Duplicate bookings are prevented by the
unique index behind BookingUpsertGuard, never by this class.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from ...cache import ExpiringStore, MemoryExpiringStore, build_dedup_store
from ...config import EVENT_COOLDOWN_SECONDS, PROCESSING_TIMEOUT_SECONDS, WEBHOOK_COOLDOWN_SECONDS

logger = logging.getLogger(__name__)


class DedupDecision(str, Enum):
    PROCEED = "proceed"
    RATE_LIMITED = "rate_limited"
    ALREADY_IN_FLIGHT = "already_in_flight"


def webhook_key(resource_id: str, resource_state: str, channel_id: str) -> str:
    return f"{resource_id}_{resource_state}_{channel_id}"


class NotificationDeduplicator:
    """
    Gate for notification processing.

    Usage::

        decision = dedup.begin(resource_id, state, channel_id)
        if decision is DedupDecision.PROCEED:
            try:
                ...
            finally:
                dedup.complete(resource_id, state, channel_id)

    ``begin`` holds no lock across awaits; the check-and-mark on the
    in-flight record is a single store ``add`` so two handlers suspended
    mid-request still see each other's marker.
    """

    def __init__(
        self,
        store: Optional[ExpiringStore] = None,
        webhook_cooldown: float = WEBHOOK_COOLDOWN_SECONDS,
        event_cooldown: float = EVENT_COOLDOWN_SECONDS,
        processing_timeout: float = PROCESSING_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else MemoryExpiringStore()
        self.webhook_cooldown = webhook_cooldown
        self.event_cooldown = event_cooldown
        self.processing_timeout = processing_timeout
        self.clock = clock

    @property
    def retention(self) -> float:
        """How long any record is kept before it may be purged"""
        return max(self.webhook_cooldown, self.event_cooldown, self.processing_timeout)

    def _read_timestamp(self, key: str) -> Optional[float]:
        value = self.store.get(key)
        return float(value) if value is not None else None

    def begin(
        self,
        resource_id: str,
        resource_state: str,
        channel_id: str,
        now: Optional[float] = None,
    ) -> DedupDecision:
        """Decide whether this delivery is new work, and mark it in flight if so"""
        now = self.clock() if now is None else now
        key = webhook_key(resource_id, resource_state, channel_id)
        processing_key = f"processing:{key}"

        started = self._read_timestamp(processing_key)
        if started is not None:
            if now - started < self.processing_timeout:
                logger.info(f"⏭️ Notification {key} already in flight ({now - started:.1f}s)")
                return DedupDecision.ALREADY_IN_FLIGHT
            logger.warning(f"⚠️ Clearing stale in-flight marker for {key} after {now - started:.1f}s")
            self.store.delete(processing_key)

        last_completed = self._read_timestamp(f"webhook:{key}")
        if last_completed is not None and now - last_completed < self.webhook_cooldown:
            logger.info(f"🚫 Notification {key} rate limited ({now - last_completed:.1f}s since last run)")
            return DedupDecision.RATE_LIMITED

        if not self.store.add(processing_key, now, self.retention):
            logger.info(f"⏭️ Notification {key} claimed by a concurrent delivery")
            return DedupDecision.ALREADY_IN_FLIGHT

        return DedupDecision.PROCEED

    def complete(
        self,
        resource_id: str,
        resource_state: str,
        channel_id: str,
        now: Optional[float] = None,
    ) -> None:
        """Clear the in-flight marker and start the cooldown; call on success and on failure"""
        now = self.clock() if now is None else now
        key = webhook_key(resource_id, resource_state, channel_id)
        self.store.delete(f"processing:{key}")
        self.store.set(f"webhook:{key}", now, self.retention)

    def claim_event(self, event_id: str, now: Optional[float] = None) -> bool:
        """True if the event has not been handled within the event cooldown"""
        now = self.clock() if now is None else now
        key = f"event:{event_id}"

        last_seen = self._read_timestamp(key)
        if last_seen is not None and now - last_seen < self.event_cooldown:
            logger.info(f"⏭️ Event {event_id} handled {now - last_seen:.1f}s ago, skipping")
            return False

        self.store.set(key, now, self.retention)
        return True

    def release_event(self, event_id: str) -> None:
        """Forget an event claim so a later delivery can retry it"""
        self.store.delete(f"event:{event_id}")

    def sweep(self) -> int:
        removed = self.store.sweep()
        if removed:
            logger.debug(f"🧹 Purged {removed} expired dedup records")
        return removed


_deduplicator: Optional[NotificationDeduplicator] = None


def get_deduplicator() -> NotificationDeduplicator:
    """Process-wide deduplicator on the configured store"""
    global _deduplicator
    if _deduplicator is None:
        _deduplicator = NotificationDeduplicator(store=build_dedup_store())
    return _deduplicator
