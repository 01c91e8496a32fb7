#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Batched, bounded-concurrency probing of domain candidates.

Flow per batch:
  - one probe task per candidate (at most batch_size in flight)
  - finished probes push their ProbeResult onto a results queue
  - a single aggregator task drains the queue: updates the run statistics,
    writes available domains to the sink, keeps the last 3 hits, and calls the
    progress reporter every N checks
  - the scheduler joins the whole batch (successes and failures) and waits for
    the queue to drain before starting the next batch

Statistics are owned by the aggregator; probe tasks never touch them.

cancel() stops launching batches and lets the current one drain (each probe
is still bounded by its own timeout). abort() also cancels the probes in flight;
aborted probes are not counted.
"""

from __future__ import annotations

import asyncio
import collections
import logging
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TextIO, Tuple

from dns_probe import Outcome, ProbeResult, probe

log = logging.getLogger("batch_scan")

RECENT_HITS_CAPACITY = 3
DEFAULT_BATCH_SIZE = 10
DEFAULT_TIMEOUT_S = 5.0
DEFAULT_PROGRESS_EVERY = 5


# ---------------------------
# Statistics
# ---------------------------

@dataclass(frozen=True)
class StatsSnapshot:
    total: int
    checked: int
    available: int
    unavailable: int
    errors: int
    sink_failures: int
    started_at: float
    elapsed_s: float
    finished: bool = False
    cancelled: bool = False

    @property
    def not_available(self) -> int:
        return self.checked - self.available

    @property
    def rate(self) -> float:
        if self.elapsed_s <= 0:
            return 0.0
        return self.checked / self.elapsed_s

    @property
    def eta_s(self) -> Optional[float]:
        rate = self.rate
        if rate <= 0:
            return None
        return (self.total - self.checked) / rate

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return self.checked * 100.0 / self.total

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d.update(rate=self.rate, eta_s=self.eta_s, percent=self.percent)
        return d


class RecentHits:
    """Newest-first list of the last few available domains."""

    def __init__(self, capacity: int = RECENT_HITS_CAPACITY):
        self._items: "collections.deque[str]" = collections.deque(maxlen=capacity)

    def push(self, domain: str) -> None:
        self._items.appendleft(domain)

    def items(self) -> Tuple[str, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)


# ---------------------------
# Result sink
# ---------------------------

class ResultSink:
    """
    Line-oriented writer for available domains.

    Each domain is written as one complete "domain\\n" record under a lock and
    flushed right away. Write failures are logged and counted, never raised.
    """

    def __init__(self, stream: TextIO, path: Optional[Path] = None):
        self._stream = stream
        self._lock = threading.Lock()
        self.path = path
        self.lines_written = 0

    @classmethod
    def open(cls, path: Path) -> "ResultSink":
        path.parent.mkdir(parents=True, exist_ok=True)
        # overwrite: each run starts a fresh result file
        return cls(path.open("w", encoding="utf-8", newline="\n"), path=path)

    def write_line(self, domain: str) -> bool:
        with self._lock:
            try:
                self._stream.write(domain + "\n")
                self._stream.flush()
            except (OSError, ValueError) as e:
                log.error("Failed to write available domain %s to %s: %s",
                          domain, self.path or "sink", e)
                return False
            self.lines_written += 1
            return True

    def flush(self) -> None:
        with self._lock:
            try:
                self._stream.flush()
            except (OSError, ValueError) as e:
                log.error("Failed to flush %s: %s", self.path or "sink", e)

    def close(self) -> None:
        with self._lock:
            try:
                self._stream.close()
            except OSError as e:
                log.error("Failed to close %s: %s", self.path or "sink", e)

    def __enter__(self) -> "ResultSink":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ---------------------------
# Aggregator
# ---------------------------

class StatsAggregator:
    def __init__(self,
                 total: int,
                 sink: ResultSink,
                 reporter=None,
                 progress_every: int = DEFAULT_PROGRESS_EVERY,
                 clock: Callable[[], float] = time.monotonic):
        self.total = total
        self.sink = sink
        self.reporter = reporter
        self.progress_every = max(1, progress_every)
        self._clock = clock

        self.checked = 0
        self.available = 0
        self.unavailable = 0
        self.errors = 0
        self.sink_failures = 0
        self.started_at = time.time()
        self._started_mono = clock()
        self._finished_mono: Optional[float] = None
        self.cancelled = False

        self.recent_hits = RecentHits()
        self.currently_probing = ""
        self._lock = threading.Lock()

    def note_probing(self, domain: str) -> None:
        self.currently_probing = domain

    def apply(self, result: ProbeResult) -> None:
        with self._lock:
            self.checked += 1
            if result.outcome is Outcome.AVAILABLE:
                self.available += 1
                if not self.sink.write_line(result.domain):
                    self.sink_failures += 1
                self.recent_hits.push(result.domain)
            elif result.outcome is Outcome.ERROR:
                self.errors += 1
            else:
                self.unavailable += 1
            checked = self.checked

        if checked % self.progress_every == 0 or checked == self.total:
            self.report()

    def finish(self, cancelled: bool) -> None:
        with self._lock:
            self._finished_mono = self._clock()
            self.cancelled = cancelled

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            end = self._finished_mono if self._finished_mono is not None else self._clock()
            return StatsSnapshot(
                total=self.total,
                checked=self.checked,
                available=self.available,
                unavailable=self.unavailable,
                errors=self.errors,
                sink_failures=self.sink_failures,
                started_at=self.started_at,
                elapsed_s=max(end - self._started_mono, 0.0),
                finished=self._finished_mono is not None,
                cancelled=self.cancelled,
            )

    def report(self, final: bool = False) -> None:
        if self.reporter is None:
            return
        try:
            self.reporter.render(self.snapshot(), self.recent_hits.items(),
                                 self.currently_probing, final=final)
        except Exception:
            # display is gone (e.g. closed pipe): keep scanning without it
            log.exception("Progress reporter failed; disabling progress output")
            self.reporter = None


# ---------------------------
# Scheduler
# ---------------------------

def chunked(items: Sequence[str], size: int) -> Iterator[List[str]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


class BatchScanner:
    def __init__(self,
                 resolver,
                 *,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 timeout_s: float = DEFAULT_TIMEOUT_S,
                 progress_every: int = DEFAULT_PROGRESS_EVERY,
                 reporter=None,
                 probe_fn=probe,
                 clock: Callable[[], float] = time.monotonic):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self.resolver = resolver
        self.batch_size = batch_size
        self.timeout_s = timeout_s
        self.progress_every = progress_every
        self.reporter = reporter
        self.probe_fn = probe_fn
        self._clock = clock

        self.aggregator: Optional[StatsAggregator] = None
        self._cancel_requested = False
        self._in_flight: List[asyncio.Task] = []

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """Stop after the current batch drains."""
        if not self._cancel_requested:
            log.info("Cancellation requested; draining current batch")
        self._cancel_requested = True

    def abort(self) -> None:
        """Stop now: cancel probes still in flight."""
        self._cancel_requested = True
        pending = [t for t in self._in_flight if not t.done()]
        if pending:
            log.warning("Aborting %s in-flight probes", len(pending))
        for t in pending:
            t.cancel()

    async def _probe_one(self, domain: str, results: "asyncio.Queue[Optional[ProbeResult]]") -> ProbeResult:
        assert self.aggregator is not None
        self.aggregator.note_probing(domain)
        r = await self.probe_fn(domain, self.timeout_s, self.resolver)
        await results.put(r)
        return r

    async def _consume(self, results: "asyncio.Queue[Optional[ProbeResult]]") -> None:
        assert self.aggregator is not None
        while True:
            r = await results.get()
            try:
                if r is None:
                    return
                self.aggregator.apply(r)
            except Exception:
                log.exception("Failed to record result for %s", r.domain)
            finally:
                results.task_done()

    async def run(self, candidates: Sequence[str], sink: ResultSink) -> StatsSnapshot:
        self.aggregator = StatsAggregator(
            total=len(candidates),
            sink=sink,
            reporter=self.reporter,
            progress_every=self.progress_every,
            clock=self._clock,
        )
        results: "asyncio.Queue[Optional[ProbeResult]]" = asyncio.Queue()
        consumer = asyncio.create_task(self._consume(results))

        batches = 0
        try:
            for batch in chunked(candidates, self.batch_size):
                if self._cancel_requested:
                    break
                self._in_flight = [asyncio.create_task(self._probe_one(d, results)) for d in batch]
                outcomes = await asyncio.gather(*self._in_flight, return_exceptions=True)
                self._in_flight = []

                for domain, r in zip(batch, outcomes):
                    if isinstance(r, asyncio.CancelledError):
                        continue
                    if isinstance(r, BaseException):
                        log.warning("probe %s crashed: %s: %s", domain, type(r).__name__, r)
                        await results.put(ProbeResult(domain, Outcome.ERROR, error=f"{type(r).__name__}: {r}"))

                await results.join()
                batches += 1
                self.aggregator.report()
        finally:
            await results.put(None)
            await consumer
            sink.flush()
            self.aggregator.finish(cancelled=self._cancel_requested)

        snap = self.aggregator.snapshot()
        if snap.cancelled:
            log.warning("Stopped after %s batches: checked=%s/%s", batches, snap.checked, snap.total)
        else:
            log.info("Finished %s batches: checked=%s available=%s errors=%s",
                     batches, snap.checked, snap.available, snap.errors)
        self.aggregator.report(final=True)
        return snap
