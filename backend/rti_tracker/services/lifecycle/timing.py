"""
Timing Telemetry

Duration breakdown (content store vs ledger vs total) for each lifecycle
transition. Append-only, written as the final step of a successful
transition, and never read by the state machine.
"""
import logging
import statistics
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from ...models.domain import TimingKind, TimingRecord, utcnow
from ..mirror.base import MirrorStore

logger = logging.getLogger(__name__)


class TransitionTimer:
    """
    Collects start/end marks for one transition.

    Usage:
        timer = TransitionTimer()
        with timer.span("content"):
            cid = await content_store.put(blob)
        with timer.span("ledger"):
            receipt = await ledger.submit(call, key)
        record = timer.finish(request_id, actor_id, receipt.transaction_id, cid)
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self.start_time = clock()
        self._spans: Dict[str, Tuple[datetime, Optional[datetime]]] = {}

    @contextmanager
    def span(self, name: str) -> Iterator[None]:
        started = self._clock()
        self._spans[name] = (started, None)
        yield
        self._spans[name] = (started, self._clock())

    def _bounds(self, name: str) -> Tuple[Optional[datetime], Optional[datetime]]:
        return self._spans.get(name, (None, None))

    def finish(
        self,
        request_id: str,
        actor_user_id: str,
        ledger_tx_id: str,
        content_id: Optional[str] = None,
    ) -> TimingRecord:
        content_start, content_end = self._bounds("content")
        ledger_start, ledger_end = self._bounds("ledger")
        return TimingRecord(
            request_id=str(request_id),
            actor_user_id=actor_user_id,
            start_time=self.start_time,
            content_start=content_start,
            content_end=content_end,
            ledger_start=ledger_start,
            ledger_end=ledger_end,
            end_time=self._clock(),
            content_id=content_id,
            ledger_tx_id=ledger_tx_id,
        )


class TimingTelemetry:
    """Appends timing records to the mirror and summarizes them."""

    def __init__(self, store: MirrorStore) -> None:
        self.store = store

    def record(self, kind: TimingKind, record: TimingRecord) -> bool:
        """
        Append a timing record.

        The transition it measures has already committed, so a failure here
        is logged and reported through the return value rather than raised.
        """
        try:
            self.store.append_timing(kind, record)
        except Exception:
            logger.exception(
                f"Failed to append {TimingKind(kind).value} timing for request {record.request_id}"
            )
            return False
        return True

    def summary(self, kind: TimingKind) -> Dict[str, Any]:
        """Count and mean/median/max of each duration for one collection."""
        records = self.store.list_timings(kind)
        result: Dict[str, Any] = {"kind": TimingKind(kind).value, "count": len(records)}
        for metric in ("content_ms", "ledger_ms", "total_ms"):
            values = [getattr(r, metric) for r in records if getattr(r, metric) is not None]
            if not values:
                result[metric] = None
                continue
            result[metric] = {
                "mean": round(statistics.fmean(values), 3),
                "median": round(statistics.median(values), 3),
                "max": round(max(values), 3),
            }
        return result
