"""Tests for run ID context management."""

import threading

from musicdedup.observability.context import (
    clear_run_id,
    get_run_id,
    new_run_id,
    run_id_context,
    set_run_id,
)


class TestRunId:
    def teardown_method(self):
        clear_run_id()

    def test_new_run_id_format(self):
        run_id = new_run_id()
        assert len(run_id) == 12
        assert run_id != new_run_id()

    def test_set_and_get(self):
        assert set_run_id("abc") == "abc"
        assert get_run_id() == "abc"

    def test_set_generates_when_missing(self):
        run_id = set_run_id()
        assert run_id
        assert get_run_id() == run_id

    def test_clear(self):
        set_run_id("abc")
        clear_run_id()
        assert get_run_id() is None


class TestRunIdContext:
    def test_scopes_and_restores(self):
        set_run_id("outer")
        with run_id_context("inner") as run_id:
            assert run_id == "inner"
            assert get_run_id() == "inner"
        assert get_run_id() == "outer"
        clear_run_id()

    def test_generates_id(self):
        with run_id_context() as run_id:
            assert get_run_id() == run_id
        assert get_run_id() is None

    def test_restores_on_exception(self):
        try:
            with run_id_context("failing"):
                raise ValueError("boom")
        except ValueError:
            pass
        assert get_run_id() is None

    def test_not_inherited_by_new_threads(self):
        seen = []
        with run_id_context("main-run"):
            thread = threading.Thread(target=lambda: seen.append(get_run_id()))
            thread.start()
            thread.join()
        assert seen == [None]
