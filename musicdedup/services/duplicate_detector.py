"""
Pairwise duplicate detection.

Run lifecycle: IDLE -> RUNNING -> COMPLETED | CANCELLED | FAILED

Pipeline stages:
1. Validate the config snapshot (rejects the run before any comparison)
2. Clear the similarity cache, skip malformed records
3. Shard the outer comparison index across a thread pool; each shard
   walks its (i, j > i) pairs in fixed-size batches
4. Per pair: consult the cache, score every field, emit duplicates
5. Between batches: report progress (non-blocking) and check cancellation
"""

import itertools
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import (
    Callable,
    Dict,
    Generator,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

from musicdedup.models.concurrency import WorkerPoolConfig, WorkerStats
from musicdedup.models.config import FuzzyMatchConfig
from musicdedup.models.dedup import (
    DetectionResult,
    DetectionStats,
    DetectionStatus,
    DuplicatePair,
    MalformedRecordWarning,
    ProgressUpdate,
)
from musicdedup.models.record import MusicRecord, RecordKey, sort_key
from musicdedup.observability.context import new_run_id, run_id_context
from musicdedup.observability.logging import get_logger
from musicdedup.observability.metrics import (
    ACTIVE_WORKERS,
    COMPARISONS_TOTAL,
    DETECTION_DURATION,
    DETECTION_RUNS,
    RECORDS_SKIPPED,
)
from musicdedup.services.conflict_resolver import DirectoryConflictResolver
from musicdedup.services.field_comparators import (
    PreparedRecord,
    evaluate_prepared,
    prepare,
)
from musicdedup.services.group_builder import DuplicateGroupBuilder
from musicdedup.services.similarity_cache import SimilarityCache
from musicdedup.services.similarity_scorer import SimilarityScorer
from musicdedup.utils.cancellation import CancelToken
from musicdedup.utils.exceptions import (
    DetectionAlreadyRunningError,
    DetectionFailedError,
    InternalScoringError,
)
from musicdedup.utils.progress import ProgressCallback, ProgressReporter

logger = get_logger("duplicate_detector")

_SHARD_DONE = object()


class DuplicateDetector:
    """Finds duplicate pairs in a record snapshot.

    Owns (or is handed) one SimilarityCache; at most one run may be
    active per detector.
    """

    def __init__(
        self,
        config: FuzzyMatchConfig,
        cache: Optional[SimilarityCache] = None,
        pool: Optional[WorkerPoolConfig] = None,
        scorer: Optional[SimilarityScorer] = None,
    ):
        """
        Initialize duplicate detector.

        Args:
            config: Matching configuration snapshot used for every run
            cache: Similarity cache to populate (a private one if None)
            pool: Worker pool settings
            scorer: Field similarity scorer
        """
        self.config = config
        self.cache = cache if cache is not None else SimilarityCache()
        self.pool = pool or WorkerPoolConfig()
        self.scorer = scorer or SimilarityScorer()

        self.run_id: Optional[str] = None
        self.stats = DetectionStats()
        self.warnings: List[MalformedRecordWarning] = []
        self.worker_stats: List[WorkerStats] = []

        self._state = DetectionStatus.IDLE
        self._state_lock = threading.Lock()
        self._stats_lock = threading.Lock()

    @property
    def state(self) -> DetectionStatus:
        with self._state_lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state == DetectionStatus.RUNNING

    # ==================== Public API ====================

    def stream(
        self,
        records: Sequence[MusicRecord],
        progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        run_id: Optional[str] = None,
    ) -> "DetectionStream":
        """
        Start a run and stream duplicate pairs as shards find them.

        Config validation and the "already running" check happen here,
        before the iterator is returned. Closing (or dropping) the stream
        early cancels the run, whether or not it has started.

        Args:
            records: Snapshot of records to compare
            progress: Callback receiving ProgressUpdate (called off-thread)
            cancel_token: Token checked between batches
            run_id: Run identifier (generated if None)

        Returns:
            Iterator of duplicate pairs in no particular order

        Raises:
            ConfigurationError: Config fails validation
            DetectionAlreadyRunningError: A run is already active
        """
        self.config.validate_config()

        with self._state_lock:
            if self._state == DetectionStatus.RUNNING:
                raise DetectionAlreadyRunningError(
                    "Detection run already active", run_id=self.run_id
                )
            self._state = DetectionStatus.RUNNING
            self.run_id = run_id or new_run_id()
            self.stats = DetectionStats()
            self.warnings = []
            self.worker_stats = []

        return DetectionStream(
            self, self._run(list(records), progress, cancel_token or CancelToken())
        )

    def detect(
        self,
        records: Sequence[MusicRecord],
        progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        run_id: Optional[str] = None,
    ) -> DetectionResult:
        """
        Run detection to completion (or cancellation) and group the results.

        Args:
            records: Snapshot of records to compare
            progress: Callback receiving ProgressUpdate
            cancel_token: Token checked between batches
            run_id: Run identifier (generated if None)

        Returns:
            DetectionResult; status CANCELLED marks a partial result

        Raises:
            ConfigurationError: Config fails validation
            DetectionAlreadyRunningError: A run is already active
            DetectionFailedError: Resource exhaustion during the run
        """
        pairs = list(self.stream(records, progress, cancel_token, run_id))
        pairs.sort(key=lambda p: (sort_key(p.first_id), sort_key(p.second_id)))

        # First occurrence wins, matching which record was compared
        by_key: Dict[RecordKey, MusicRecord] = {}
        for record in records:
            if record.key is not None and record.file_path and record.file_path.strip():
                by_key.setdefault(record.key, record)

        result = DetectionResult(
            run_id=self.run_id or "",
            status=self.state,
            pairs=pairs,
            warnings=list(self.warnings),
            stats=self.stats.model_copy(),
        )

        with run_id_context(result.run_id):
            try:
                result.groups = DuplicateGroupBuilder().build(pairs)
                result.conflicts = DirectoryConflictResolver().resolve(
                    result.groups,
                    path_of=lambda key: by_key[key].file_path if key in by_key else None,
                    record_of=by_key.get,
                )
            except MemoryError as e:
                self._finish(DetectionStatus.FAILED, None)
                logger.error("grouping_failed", error="out of memory")
                raise DetectionFailedError(
                    "Out of memory while grouping duplicates", run_id=result.run_id
                ) from e

            if result.incomplete:
                logger.warning(
                    "detection_result_incomplete",
                    pairs=len(pairs),
                    groups=len(result.groups),
                )
        return result

    # ==================== Run ====================

    def _run(
        self,
        records: List[MusicRecord],
        progress: Optional[ProgressCallback],
        cancel_token: CancelToken,
    ) -> Iterator[DuplicatePair]:
        run_id = self.run_id or new_run_id()
        started = time.monotonic()
        abandoned = threading.Event()
        finished_normally = False

        def should_stop() -> bool:
            return cancel_token.cancelled or abandoned.is_set()

        # No yield inside this block: the consumer's context must not
        # carry this run's ID between iterations
        with run_id_context(run_id):
            self.cache.clear()
            try:
                prepared = self._prepare(records)
            except Exception:
                self._finish(DetectionStatus.FAILED, started)
                raise

            n = len(prepared)
            with self._stats_lock:
                self.stats.total_records = len(records)
                self.stats.records_skipped = len(self.warnings)
                self.stats.comparisons_total = n * (n - 1) // 2

            workers = max(1, min(self.pool.max_workers, n - 1))
            logger.info(
                "detection_started",
                records=len(records),
                comparable=n,
                comparisons=self.stats.comparisons_total,
                workers=workers,
                batch_size=self.pool.batch_size,
                config=self.config.name,
            )

        reporter = ProgressReporter(progress, self.pool.progress_queue_size).start()
        results: "queue.Queue[object]" = queue.Queue()
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dedup-shard")
        try:
            futures = [
                executor.submit(
                    self._run_shard,
                    worker_id,
                    workers,
                    prepared,
                    should_stop,
                    results,
                    reporter,
                    run_id,
                )
                for worker_id in range(workers)
            ]

            done = 0
            while done < workers:
                item = results.get()
                if item is _SHARD_DONE:
                    done += 1
                    continue
                yield item  # type: ignore[misc]

            for future in futures:
                future.result()
            finished_normally = True

        except MemoryError as e:
            abandoned.set()
            self._finish(DetectionStatus.FAILED, started)
            logger.error("detection_failed", run_id=run_id, error="out of memory")
            raise DetectionFailedError(
                "Out of memory during pairwise comparison", run_id=run_id
            ) from e

        except Exception as e:
            abandoned.set()
            self._finish(DetectionStatus.FAILED, started)
            logger.error(
                "detection_failed",
                run_id=run_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        finally:
            if not finished_normally:
                # Consumer closed the stream early, or a shard failed
                abandoned.set()
            executor.shutdown(wait=True)
            reporter.report_final(self._progress_update(run_id))
            reporter.close()

            if self.state == DetectionStatus.RUNNING:
                if finished_normally and not cancel_token.cancelled:
                    self._finish(DetectionStatus.COMPLETED, started)
                else:
                    self._finish(DetectionStatus.CANCELLED, started)

    def _cancel_unstarted(self) -> None:
        """Release a run whose stream was closed before its first pair."""
        logger.info("detection_stream_closed_unstarted", run_id=self.run_id)
        self._finish(DetectionStatus.CANCELLED, None)

    def _finish(self, status: DetectionStatus, started: Optional[float]) -> None:
        if started is None:
            duration = self.stats.duration_seconds
        else:
            duration = time.monotonic() - started
        with self._state_lock:
            if self._state.is_terminal and status != DetectionStatus.FAILED:
                return
            self._state = status
        with self._stats_lock:
            self.stats.duration_seconds = duration

        DETECTION_RUNS.labels(status=status.value).inc()
        DETECTION_DURATION.observe(duration)

        log = logger.warning if status == DetectionStatus.CANCELLED else logger.info
        log(
            "detection_finished",
            run_id=self.run_id,
            status=status.value,
            pairs_found=self.stats.pairs_found,
            comparisons_completed=self.stats.comparisons_completed,
            comparisons_total=self.stats.comparisons_total,
            cache_hits=self.stats.cache_hits,
            scoring_errors=self.stats.scoring_errors,
            records_skipped=self.stats.records_skipped,
            duration_seconds=round(duration, 3),
        )

    def _prepare(self, records: List[MusicRecord]) -> List[PreparedRecord]:
        """Normalize comparable records once; record warnings for the rest."""
        prepared: List[PreparedRecord] = []
        seen: set = set()

        for index, record in enumerate(records):
            if not record.file_path or not record.file_path.strip():
                self._skip(index, record.key, "missing file path", "missing_path")
                continue
            if record.key in seen:
                self._skip(index, record.key, "duplicate record key", "duplicate_key")
                continue
            seen.add(record.key)
            prepared.append(prepare(record, self.config))

        if self.warnings:
            logger.warning(
                "records_skipped",
                count=len(self.warnings),
                summary=f"{len(self.warnings)} records skipped due to missing data",
            )
        return prepared

    def _skip(self, index: int, key: Optional[RecordKey], reason: str, label: str) -> None:
        self.warnings.append(
            MalformedRecordWarning(index=index, record_key=key, reason=reason)
        )
        RECORDS_SKIPPED.labels(reason=label).inc()
        logger.debug("malformed_record_skipped", index=index, record_key=key, reason=reason)

    # ==================== Shards ====================

    def _run_shard(
        self,
        worker_id: int,
        workers: int,
        prepared: List[PreparedRecord],
        should_stop: Callable[[], bool],
        results: "queue.Queue[object]",
        reporter: ProgressReporter,
        run_id: str,
    ) -> WorkerStats:
        """Compare every pair whose outer index belongs to this shard."""
        stats = WorkerStats(worker_id=worker_id)
        ACTIVE_WORKERS.inc()
        started = time.monotonic()
        try:
            with run_id_context(run_id):
                pairs = _shard_pairs(len(prepared), worker_id, workers)
                while True:
                    # Cancellation is only observed between batches
                    if should_stop():
                        logger.debug("shard_stopping", worker_id=worker_id)
                        break
                    batch = list(itertools.islice(pairs, self.pool.batch_size))
                    if not batch:
                        break

                    found = self._compare_batch(batch, prepared)
                    for pair in found:
                        results.put(pair)

                    stats.batches_completed += 1
                    stats.comparisons_completed += len(batch)
                    stats.pairs_found += len(found)
                    with self._stats_lock:
                        self.stats.comparisons_completed += len(batch)
                        self.stats.pairs_found += len(found)
                    reporter.report(self._progress_update(run_id))
            return stats
        finally:
            stats.total_duration_seconds = time.monotonic() - started
            with self._stats_lock:
                self.worker_stats.append(stats)
            ACTIVE_WORKERS.dec()
            results.put(_SHARD_DONE)

    def _compare_batch(
        self, batch: List[Tuple[int, int]], prepared: List[PreparedRecord]
    ) -> List[DuplicatePair]:
        found = []
        for i, j in batch:
            pair = self._compare_pair(prepared[i], prepared[j])
            if pair is not None:
                found.append(pair)
        return found

    def _compare_pair(
        self, a: PreparedRecord, b: PreparedRecord
    ) -> Optional[DuplicatePair]:
        key_a, key_b = a.record.key, b.record.key
        if key_a == key_b:
            return None

        # Relation already known this run: no recomputation, no re-emission
        if self.cache.contains(key_a, key_b):
            COMPARISONS_TOTAL.labels(outcome="cache_hit").inc()
            with self._stats_lock:
                self.stats.cache_hits += 1
            return None

        try:
            pair = evaluate_prepared(a, b, self.config, self.scorer)
        except MemoryError:
            raise
        except Exception as e:
            error = InternalScoringError(str(e) or type(e).__name__, key_a, key_b)
            logger.error(
                "pair_scoring_failed",
                first_key=key_a,
                second_key=key_b,
                error=str(error),
                error_type=type(e).__name__,
            )
            COMPARISONS_TOTAL.labels(outcome="error").inc()
            with self._stats_lock:
                self.stats.scoring_errors += 1
            return None

        if not pair.is_duplicate:
            COMPARISONS_TOTAL.labels(outcome="distinct").inc()
            return None

        self.cache.put(key_a, key_b)
        COMPARISONS_TOTAL.labels(outcome="duplicate").inc()
        logger.debug(
            "duplicate_detected",
            first_key=pair.first_id,
            second_key=pair.second_id,
            matching_fields=pair.matching_fields,
        )
        return pair

    def _progress_update(self, run_id: str) -> ProgressUpdate:
        with self._stats_lock:
            return ProgressUpdate(
                run_id=run_id,
                comparisons_completed=self.stats.comparisons_completed,
                comparisons_total=self.stats.comparisons_total,
                pairs_found=self.stats.pairs_found,
            )


class DetectionStream:
    """Iterator over the duplicate pairs of one run.

    The run body only starts on the first next(). Closing an unstarted
    stream moves the reserved run straight to CANCELLED.
    """

    def __init__(
        self,
        detector: DuplicateDetector,
        pairs: Generator[DuplicatePair, None, None],
    ):
        self._detector = detector
        self._pairs = pairs
        self._started = False
        self._closed = False

    def __iter__(self) -> "DetectionStream":
        return self

    def __next__(self) -> DuplicatePair:
        if self._closed:
            raise StopIteration
        self._started = True
        return next(self._pairs)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pairs.close()
        if not self._started:
            self._detector._cancel_unstarted()

    def __enter__(self) -> "DetectionStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()


def _shard_pairs(n: int, worker_id: int, workers: int) -> Iterator[Tuple[int, int]]:
    """Pairs (i, j > i) for every outer index i owned by this shard.

    Outer indices are dealt round-robin so shards get similar amounts of
    the triangular workload.
    """
    for i in range(worker_id, n, workers):
        for j in range(i + 1, n):
            yield (i, j)
