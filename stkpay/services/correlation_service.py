"""
Correlation Tracker
Matches asynchronous M-Pesa results to the STK Push requests that caused them.

Entry lifecycle, keyed by CheckoutRequestID:

    pending -> resolved -> (purged after retention)
    pending -> expired  -> (purged after retention)

Resolved and expired entries are kept as tombstones for the retention window
so duplicate and late callbacks are recognised instead of looking unsolicited.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Union

from stkpay.errors import DuplicateCorrelationError, UnknownCorrelationError
from stkpay.models import (
    CorrelationState,
    NotificationResult,
    PaymentIntent,
    PendingCorrelation,
    ResolvedOutcome,
)
from stkpay.utils.clock import utcnow
from stkpay.utils.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[[ResolvedOutcome], None]


class CorrelationTracker:
    """In-memory correlation map shared by the initiation and callback paths"""

    DEFAULT_EXPIRY_SECONDS = 180
    DEFAULT_RETENTION_SECONDS = 3600

    def __init__(
        self,
        expiry_seconds: int = DEFAULT_EXPIRY_SECONDS,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.expiry_window = timedelta(seconds=expiry_seconds)
        self.retention_window = timedelta(seconds=retention_seconds)
        self._clock = clock

        self._entries: Dict[str, PendingCorrelation] = {}
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    def add_listener(self, listener: Listener) -> None:
        """Register a callback for every resolved or expired entry"""
        with self._lock:
            self._listeners.append(listener)

    def open(self, merchant_request_id: str, checkout_request_id: str, intent: PaymentIntent) -> ResolvedOutcome:
        """
        Register a pending entry for an acknowledged STK Push

        Raises:
            DuplicateCorrelationError: checkout_request_id is already pending
        """
        with self._lock:
            expired = self._sweep_locked(self._clock())

            existing = self._entries.get(checkout_request_id)
            if existing is not None and existing.state == CorrelationState.PENDING:
                logger.error(f'Duplicate correlation for checkout request {checkout_request_id}')
                raise DuplicateCorrelationError(checkout_request_id)

            entry = PendingCorrelation(
                merchant_request_id=merchant_request_id,
                checkout_request_id=checkout_request_id,
                intent=intent,
                created_at=self._clock(),
            )
            self._entries[checkout_request_id] = entry
            snapshot = entry.snapshot()

        self._notify(expired)
        logger.info(f'Correlation opened: {checkout_request_id} (merchant request {merchant_request_id})')
        return snapshot

    def resolve(self, notification: NotificationResult) -> Union[ResolvedOutcome, UnknownCorrelationError]:
        """
        Apply an asynchronous result to its pending entry

        Never raises for anomalies. Returns:
            ResolvedOutcome for a first resolution
            ResolvedOutcome with duplicate=True when the entry was already resolved
            UnknownCorrelationError when the entry expired or was never opened
        """
        checkout_id = notification.checkout_request_id
        resolved = None

        with self._lock:
            now = self._clock()
            expired = self._sweep_locked(now)
            entry = self._entries.get(checkout_id)

            if entry is None:
                result = UnknownCorrelationError(checkout_id)
            elif entry.state == CorrelationState.EXPIRED:
                result = UnknownCorrelationError(checkout_id, reason=UnknownCorrelationError.REASON_EXPIRED)
            elif entry.state == CorrelationState.RESOLVED:
                result = entry.snapshot(duplicate=True)
            else:
                entry.state = CorrelationState.RESOLVED
                entry.closed_at = now
                entry.notification = notification
                resolved = entry.snapshot()
                result = resolved

        self._notify(expired)

        if isinstance(result, UnknownCorrelationError):
            logger.warning(
                f'Notification for {checkout_id} has no pending entry ({result.reason}); '
                f'result code {notification.result_code}'
            )
        elif result.duplicate:
            logger.info(f'Duplicate notification for {checkout_id} ignored')
        else:
            logger.info(f'Correlation resolved: {checkout_id} -> {notification.outcome.value}')
            self._notify([resolved])

        return result

    def get(self, checkout_request_id: str) -> Optional[ResolvedOutcome]:
        with self._lock:
            expired = self._sweep_locked(self._clock())
            entry = self._entries.get(checkout_request_id)
            snapshot = entry.snapshot() if entry else None

        self._notify(expired)
        return snapshot

    def sweep(self, now: Optional[datetime] = None) -> List[ResolvedOutcome]:
        """
        Expire stale pending entries and purge old tombstones

        Returns:
            Entries that moved to expired during this sweep
        """
        with self._lock:
            expired = self._sweep_locked(now or self._clock())

        self._notify(expired)
        return expired

    def stats(self) -> Dict[str, int]:
        with self._lock:
            expired = self._sweep_locked(self._clock())
            counts = {state.value: 0 for state in CorrelationState}
            for entry in self._entries.values():
                counts[entry.state.value] += 1

        self._notify(expired)
        return counts

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def _sweep_locked(self, now: datetime) -> List[ResolvedOutcome]:
        expired = []
        purge = []

        for checkout_id, entry in self._entries.items():
            if entry.state == CorrelationState.PENDING:
                if now - entry.created_at >= self.expiry_window:
                    entry.state = CorrelationState.EXPIRED
                    entry.closed_at = now
                    expired.append(entry.snapshot())
            elif now - entry.closed_at >= self.retention_window:
                purge.append(checkout_id)

        for checkout_id in purge:
            del self._entries[checkout_id]

        for snapshot in expired:
            logger.warning(f'Correlation expired without a result: {snapshot.checkout_request_id}')

        return expired

    def _notify(self, outcomes: List[ResolvedOutcome]) -> None:
        if not outcomes:
            return

        with self._lock:
            listeners = list(self._listeners)

        for outcome in outcomes:
            for listener in listeners:
                try:
                    listener(outcome)
                except Exception as e:
                    logger.error(f'Correlation listener failed for {outcome.checkout_request_id}: {str(e)}')


class CorrelationSweeper(threading.Thread):
    """Daemon thread that sweeps a tracker on a fixed interval"""

    def __init__(self, tracker: CorrelationTracker, interval: float):
        super().__init__(name='correlation-sweeper', daemon=True)
        self.tracker = tracker
        self.interval = interval
        self._stopped = threading.Event()

    def run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.tracker.sweep()
            except Exception as e:
                logger.error(f'Correlation sweep failed: {str(e)}')

    def stop(self, timeout: float = 2) -> None:
        self._stopped.set()
        if self.is_alive():
            self.join(timeout=timeout)
