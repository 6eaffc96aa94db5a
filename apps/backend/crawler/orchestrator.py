"""
Fetch orchestrator - runs a batch of targets through fetch, extract and score.

Work fans out over a fixed-size thread pool. Every worker passes through the
one shared RateGate before it fetches. A failing target becomes a TargetError
and never stops its siblings; a batch that overruns its timeout returns what it
has so far.
"""

import time
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import metrics
from core.data_quality import DataQualityScorer
from core.models import Record, Target
from core.net import FetchClient, FetchError, HttpStatusError
from core.rate_gate import RateGate
from pipeline.extractor import ExtractionEngine

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_BATCH_TIMEOUT = 30 * 60.0


class ErrorKind:
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    EMPTY_BODY = "empty_body"
    EXTRACTION_EMPTY = "extraction_empty"
    UNEXPECTED = "unexpected"
    BATCH_TIMEOUT = "batch_timeout"
    INVALID_TARGET = "invalid_target"


@dataclass(frozen=True)
class TargetError:
    """Why one target produced no records."""
    target: Target
    kind: str
    message: str
    status_code: Optional[int] = None

    @property
    def is_blocked(self) -> bool:
        return self.status_code in HttpStatusError.BLOCKING_STATUSES


@dataclass
class BatchResult:
    records: List[Record] = field(default_factory=list)
    errors: List[TargetError] = field(default_factory=list)
    total_targets: int = 0
    timed_out: bool = False
    duration_ms: int = 0

    @property
    def succeeded_targets(self) -> int:
        return self.total_targets - len(self.errors)

    @property
    def success_rate(self) -> float:
        """Share of targets that yielded records, as a percentage."""
        if self.total_targets == 0:
            return 0.0
        return round(self.succeeded_targets * 100.0 / self.total_targets, 2)

    @property
    def empty_targets(self) -> List[Target]:
        return [e.target for e in self.errors if e.kind == ErrorKind.EXTRACTION_EMPTY]

    @property
    def blocked_errors(self) -> List[TargetError]:
        return [e for e in self.errors if e.is_blocked]

    def merge(self, other: "BatchResult") -> "BatchResult":
        """Combined result of two batches run one after the other."""
        return BatchResult(
            records=self.records + other.records,
            errors=self.errors + other.errors,
            total_targets=self.total_targets + other.total_targets,
            timed_out=self.timed_out or other.timed_out,
            duration_ms=self.duration_ms + other.duration_ms,
        )


# What one worker hands back for one target
Outcome = Tuple[List[Record], Optional[TargetError]]


class FetchOrchestrator:
    """
    Bounded-concurrency batch runner.

    Collaborators are shared across workers: the RateGate is the only
    state written by more than one thread, the fetch client wraps a
    thread-safe connection pool, and the engine and scorer are stateless.
    """

    def __init__(self, rate_gate: RateGate, fetch_client: FetchClient,
                 engine: ExtractionEngine, scorer: DataQualityScorer,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 batch_timeout: float = DEFAULT_BATCH_TIMEOUT):
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency!r}")
        if batch_timeout is not None and batch_timeout <= 0:
            raise ValueError(f"batch_timeout must be positive, got {batch_timeout!r}")
        self.rate_gate = rate_gate
        self.fetch_client = fetch_client
        self.engine = engine
        self.scorer = scorer
        self.concurrency = concurrency
        self.batch_timeout = batch_timeout

    def run(self, targets: Sequence[Target], concurrency: Optional[int] = None,
            batch_timeout: Optional[float] = None) -> BatchResult:
        """
        Process every target and merge the outcomes.

        Args:
            targets: Pages to fetch
            concurrency: Worker ceiling for this batch (default: constructor value)
            batch_timeout: Seconds before the batch is abandoned (default: constructor value)

        Returns:
            BatchResult with records from every successful target and one
            TargetError per failed or unfinished target
        """
        concurrency = concurrency if concurrency is not None else self.concurrency
        batch_timeout = batch_timeout if batch_timeout is not None else self.batch_timeout
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency!r}")

        targets = list(targets)
        start = time.monotonic()
        if not targets:
            return BatchResult()

        logger.info(
            f"[orchestrator] Starting batch of {len(targets)} targets "
            f"(workers={min(concurrency, len(targets))}, timeout={batch_timeout}s)"
        )

        cancel = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=min(concurrency, len(targets)), thread_name_prefix="fetch-worker"
        )
        futures: Dict[Future, Target] = {
            executor.submit(self._process, target, cancel): target for target in targets
        }

        records: List[Record] = []
        errors: List[TargetError] = []
        collected = set()
        timed_out = False

        try:
            for future in as_completed(futures, timeout=batch_timeout):
                collected.add(future)
                self._collect(future, futures[future], records, errors)
        except FuturesTimeoutError:
            timed_out = True
            cancel.set()
            for future, target in futures.items():
                if future in collected:
                    continue
                if future.done() and not future.cancelled():
                    self._collect(future, target, records, errors)
                    continue
                future.cancel()
                errors.append(TargetError(
                    target, ErrorKind.BATCH_TIMEOUT, f"Batch timed out after {batch_timeout}s"
                ))
            logger.warning(
                f"[orchestrator] Batch timed out after {batch_timeout}s; "
                f"returning partial results ({len(records)} records)"
            )
        finally:
            # In-flight fetches are abandoned, not waited for, once the batch times out
            executor.shutdown(wait=not timed_out, cancel_futures=True)

        for error in errors:
            metrics.incr_failed(error.kind)

        result = BatchResult(
            records=records,
            errors=errors,
            total_targets=len(targets),
            timed_out=timed_out,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        logger.info(
            f"[orchestrator] Batch done: {len(records)} records, {len(errors)} failed targets, "
            f"success rate {result.success_rate:.1f}%, {result.duration_ms}ms"
        )
        if result.blocked_errors:
            logger.warning(
                f"[orchestrator] {len(result.blocked_errors)} targets were refused with "
                f"blocking statuses; consider lowering the request rate"
            )
        return result

    @staticmethod
    def _collect(future: Future, target: Target, records: List[Record],
                 errors: List[TargetError]):
        try:
            found, error = future.result()
        except Exception as e:
            logger.error(f"[orchestrator] Worker crashed on {target.url}: {e}", exc_info=True)
            errors.append(TargetError(target, ErrorKind.UNEXPECTED, str(e) or e.__class__.__name__))
            return
        records.extend(found)
        if error is not None:
            errors.append(error)

    def _process(self, target: Target, cancel: threading.Event) -> Outcome:
        """Fetch, extract and score one target. Runs on a worker thread."""
        if cancel.is_set():
            return [], TargetError(target, ErrorKind.BATCH_TIMEOUT, "Cancelled before fetch")

        self.rate_gate.acquire()
        if cancel.is_set():
            return [], TargetError(target, ErrorKind.BATCH_TIMEOUT, "Cancelled before fetch")

        try:
            page = self.fetch_client.fetch(target.url)
        except HttpStatusError as e:
            return [], TargetError(target, e.kind, e.message, status_code=e.status_code)
        except FetchError as e:
            return [], TargetError(target, e.kind, e.message)

        if cancel.is_set():
            return [], TargetError(target, ErrorKind.BATCH_TIMEOUT, "Cancelled after fetch")

        found, strategy = self.engine.extract_with_strategy(page, target.extraction_context)
        del page

        if not found:
            logger.info(f"[orchestrator] Nothing extracted from {target.label()}")
            return [], TargetError(target, ErrorKind.EXTRACTION_EMPTY, "No records extracted")

        metrics.incr_extracted(found[0].entity, strategy, len(found))
        return [self.scorer.score_record(record) for record in found], None
