"""
Background duplicate scans.

One scan at a time per service. A scan runs on a single background
thread (which itself fans out to the detector's shard pool); callers poll
get_status(), cancel_scan() or block on wait(). Only the most recent
max_history finished scans stay known; older run IDs read as unknown.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from musicdedup.models.concurrency import WorkerPoolConfig
from musicdedup.models.config import FuzzyMatchConfig
from musicdedup.models.dedup import (
    DetectionResult,
    DetectionStatus,
    DuplicatePair,
    ScanStatus,
)
from musicdedup.models.record import MusicRecord, RecordKey
from musicdedup.observability.context import new_run_id
from musicdedup.observability.logging import bind_context, clear_context
from musicdedup.services.duplicate_detector import DuplicateDetector
from musicdedup.services.field_comparators import breakdown, evaluate_pair
from musicdedup.services.similarity_cache import SimilarityCache
from musicdedup.services.similarity_scorer import SimilarityScorer
from musicdedup.utils.cancellation import CancelToken
from musicdedup.utils.exceptions import DetectionAlreadyRunningError
from musicdedup.utils.progress import ProgressCallback

logger = structlog.get_logger()


@dataclass
class _ScanSession:
    run_id: str
    detector: DuplicateDetector
    cancel_token: CancelToken
    started_at: datetime
    future: Optional["Future[DetectionResult]"] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    result: Optional[DetectionResult] = field(default=None, repr=False)


class DuplicateDetectionService:
    """Runs detections in the background and answers cache lookups."""

    def __init__(
        self,
        config: Optional[FuzzyMatchConfig] = None,
        pool: Optional[WorkerPoolConfig] = None,
        max_history: int = 10,
    ):
        """
        Args:
            config: Default matching config for scans
            pool: Worker pool settings for every scan
            max_history: Finished scans kept for get_status()/wait()
        """
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.config = config or FuzzyMatchConfig.balanced()
        self.max_history = max_history
        self.pool = pool or WorkerPoolConfig()
        self.cache = SimilarityCache()
        self.scorer = SimilarityScorer()

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dedup-scan")
        self._lock = threading.Lock()
        self._sessions: Dict[str, _ScanSession] = {}
        self._active_run: Optional[str] = None
        self._latest: Optional[DetectionResult] = None

    def start_scan(
        self,
        records: Sequence[MusicRecord],
        config: Optional[FuzzyMatchConfig] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Start a background scan over a record snapshot.

        Args:
            records: Records to scan (copied before the scan starts)
            config: Matching config for this scan (service default if None)
            progress: Optional progress callback

        Returns:
            Run ID of the new scan

        Raises:
            ConfigurationError: Config fails validation
            DetectionAlreadyRunningError: Another scan is still active
        """
        match_config = (config or self.config).validate_config()

        with self._lock:
            if self._active_run is not None:
                raise DetectionAlreadyRunningError(
                    "A duplicate scan is already running", run_id=self._active_run
                )
            run_id = new_run_id()
            session = _ScanSession(
                run_id=run_id,
                detector=DuplicateDetector(
                    match_config, cache=self.cache, pool=self.pool, scorer=self.scorer
                ),
                cancel_token=CancelToken(),
                started_at=datetime.now(timezone.utc),
            )
            self._sessions[run_id] = session
            self._active_run = run_id
            self._prune_sessions()
            session.future = self._executor.submit(
                self._execute, session, list(records), progress
            )

        logger.info(
            "scan_started", run_id=run_id, records=len(records), config=match_config.name
        )
        return run_id

    def _prune_sessions(self) -> None:
        """Forget the oldest finished scans beyond max_history. Caller holds _lock."""
        finished = [run_id for run_id in self._sessions if run_id != self._active_run]
        for run_id in finished[: max(0, len(finished) - self.max_history)]:
            del self._sessions[run_id]
            logger.debug("scan_session_pruned", run_id=run_id)

    def _execute(
        self,
        session: _ScanSession,
        records: List[MusicRecord],
        progress: Optional[ProgressCallback],
    ) -> DetectionResult:
        try:
            bind_context(scan_records=len(records), scan_config=session.detector.config.name)
            result = session.detector.detect(
                records,
                progress=progress,
                cancel_token=session.cancel_token,
                run_id=session.run_id,
            )
            session.result = result
            with self._lock:
                self._latest = result
            return result
        except Exception as e:
            session.error = str(e)
            logger.error("scan_failed", run_id=session.run_id, error=str(e))
            raise
        finally:
            session.finished_at = datetime.now(timezone.utc)
            clear_context()
            with self._lock:
                if self._active_run == session.run_id:
                    self._active_run = None
                self._prune_sessions()

    def _session(self, run_id: str) -> Optional[_ScanSession]:
        with self._lock:
            return self._sessions.get(run_id)

    def is_scan_active(self) -> bool:
        with self._lock:
            return self._active_run is not None

    def get_status(self, run_id: str) -> Optional[ScanStatus]:
        """Current status of a scan, or None for an unknown run ID."""
        session = self._session(run_id)
        if session is None:
            return None

        detector = session.detector
        status = detector.state
        if status == DetectionStatus.IDLE:
            # Submitted but the background thread has not picked it up yet
            status = DetectionStatus.RUNNING
        stats = detector.stats
        return ScanStatus(
            run_id=run_id,
            status=status,
            comparisons_completed=stats.comparisons_completed,
            comparisons_total=stats.comparisons_total,
            pairs_found=stats.pairs_found,
            records_skipped=stats.records_skipped,
            started_at=session.started_at,
            finished_at=session.finished_at,
            error=session.error,
        )

    def cancel_scan(self, run_id: str) -> bool:
        """Request cancellation; False if the run is unknown or already finished."""
        session = self._session(run_id)
        if session is None or session.detector.state.is_terminal:
            return False
        session.cancel_token.cancel("cancelled by user")
        logger.info("scan_cancel_requested", run_id=run_id)
        return True

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Optional[DetectionResult]:
        """
        Block until a scan finishes.

        Raises:
            DetectionFailedError: The scan failed
            TimeoutError: The scan did not finish within timeout
        """
        session = self._session(run_id)
        if session is None or session.future is None:
            return None
        return session.future.result(timeout=timeout)

    def latest_result(self) -> Optional[DetectionResult]:
        with self._lock:
            return self._latest

    def find_similar(self, record_key: RecordKey) -> List[RecordKey]:
        """Records the last scan found similar to record_key (no rescan)."""
        return self.cache.get(record_key)

    def compare(
        self,
        a: MusicRecord,
        b: MusicRecord,
        config: Optional[FuzzyMatchConfig] = None,
    ) -> Tuple[DuplicatePair, str]:
        """Compare two records directly; returns the pair and a text breakdown."""
        match_config = (config or self.config).validate_config()
        pair = evaluate_pair(a, b, match_config, self.scorer)
        return pair, breakdown(a, b, match_config, self.scorer)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            active = self._sessions.get(self._active_run) if self._active_run else None
        if active is not None:
            active.cancel_token.cancel("service shutting down")
        self._executor.shutdown(wait=wait)
        logger.info("detection_service_shutdown")

    def __enter__(self) -> "DuplicateDetectionService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
