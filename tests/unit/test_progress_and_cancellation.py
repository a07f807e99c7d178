"""Tests for progress delivery and cancellation tokens."""

import threading

from musicdedup.models.dedup import ProgressUpdate
from musicdedup.utils.cancellation import CancelToken
from musicdedup.utils.exceptions import (
    ConfigValidationError,
    ConfigurationError,
    DedupError,
    DetectionAlreadyRunningError,
    DetectionFailedError,
    InternalScoringError,
)
from musicdedup.utils.progress import ProgressReporter


def _update(done, total=10):
    return ProgressUpdate(
        run_id="run", comparisons_completed=done, comparisons_total=total, pairs_found=0
    )


class TestProgressReporter:
    def test_delivers_updates_in_order(self):
        received = []
        with ProgressReporter(received.append) as reporter:
            for done in range(5):
                reporter.report(_update(done))

        assert [u.comparisons_completed for u in received] == [0, 1, 2, 3, 4]

    def test_no_callback_is_noop(self):
        reporter = ProgressReporter(None).start()
        reporter.report(_update(1))
        reporter.close()
        assert reporter.dropped == 0

    def test_callback_errors_are_swallowed(self):
        calls = []

        def flaky(update):
            calls.append(update)
            if len(calls) == 1:
                raise RuntimeError("ui closed")

        with ProgressReporter(flaky) as reporter:
            reporter.report(_update(1))
            reporter.report(_update(2))

        assert len(calls) == 2

    def test_full_queue_drops_instead_of_blocking(self):
        release = threading.Event()
        received = []

        def slow(update):
            release.wait(timeout=5)
            received.append(update)

        reporter = ProgressReporter(slow, maxsize=1).start()
        for done in range(3):
            reporter.report(_update(done))
        assert reporter.dropped >= 1

        release.set()
        reporter.close()
        assert len(received) == 3 - reporter.dropped

    def test_final_update_delivered_last_even_when_queue_full(self):
        release = threading.Event()
        received = []

        def slow(update):
            release.wait(timeout=5)
            received.append(update)

        reporter = ProgressReporter(slow, maxsize=1).start()
        for done in range(5):
            reporter.report(_update(done))
        reporter.report_final(_update(10))

        release.set()
        reporter.close()
        assert reporter.dropped >= 1
        assert received[-1].comparisons_completed == 10
        assert received[-1].percent_complete == 100

    def test_final_without_callback_is_noop(self):
        reporter = ProgressReporter(None).start()
        reporter.report_final(_update(10))
        reporter.close()

    def test_dropped_count_is_thread_safe(self):
        block = threading.Event()
        reporter = ProgressReporter(lambda u: block.wait(timeout=5), maxsize=1).start()

        def flood():
            for done in range(200):
                reporter.report(_update(done, total=200))

        threads = [threading.Thread(target=flood) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        block.set()
        reporter.close()
        # At most the slot plus the update in the callback got through
        assert reporter.dropped >= 800 - 2


class TestCancelToken:
    def test_initial_state(self):
        token = CancelToken()
        assert not token.cancelled
        assert token.reason is None
        assert token.wait(timeout=0) is False

    def test_cancel_keeps_first_reason(self):
        token = CancelToken()
        token.cancel("user pressed stop")
        token.cancel("shutdown")
        assert token.cancelled
        assert token.reason == "user pressed stop"
        assert token.wait(timeout=0) is True

    def test_cancel_from_other_thread(self):
        token = CancelToken()
        threading.Timer(0.01, token.cancel).start()
        assert token.wait(timeout=5)
        assert token.reason == "cancelled by caller"


class TestExceptions:
    def test_hierarchy(self):
        assert issubclass(ConfigurationError, DedupError)
        assert issubclass(ConfigValidationError, ConfigurationError)
        assert issubclass(DetectionAlreadyRunningError, DedupError)
        assert issubclass(DetectionFailedError, DedupError)
        assert issubclass(InternalScoringError, DedupError)

    def test_run_id_attached(self):
        assert DetectionAlreadyRunningError("busy", run_id="abc").run_id == "abc"
        assert DetectionFailedError("oom").run_id is None

    def test_scoring_error_names_pair(self):
        error = InternalScoringError("bad input", 1, "/a.mp3")
        assert error.first_key == 1
        assert error.second_key == "/a.mp3"
        assert "bad input" in str(error)
        assert "'/a.mp3'" in str(error)
