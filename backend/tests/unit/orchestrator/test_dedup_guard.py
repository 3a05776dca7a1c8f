"""
Unit Tests for the Dedup Guard
Tests for: admission, rejection, release ownership, thread safety
"""
import threading

from promptsite.modules.orchestrator.dedup_guard import DedupGuard, dedup_guard, get_dedup_guard, project_key
from promptsite.schemas.pipeline import RunKind


class TestAdmission:
    """Test admit/release"""

    def test_first_run_is_admitted(self, guard):
        admission = guard.admit(42, RunKind.GENERATE)

        assert admission.admitted
        assert admission.run.project_key == "42"
        assert admission.run.kind == RunKind.GENERATE
        assert guard.active(42) is admission.run

    def test_second_run_on_same_project_is_rejected(self, guard):
        guard.admit(42, RunKind.GENERATE)
        admission = guard.admit("42", RunKind.GENERATE)

        assert not admission.admitted
        assert admission.run is None
        assert admission.active_kind == RunKind.GENERATE
        assert admission.is_identical(RunKind.GENERATE)
        assert "42" in admission.reason

    def test_rejection_by_other_kind_is_not_identical(self, guard):
        guard.admit(42, RunKind.GENERATE)
        admission = guard.admit(42, RunKind.MODIFY)

        assert not admission.admitted
        assert not admission.is_identical(RunKind.MODIFY)
        assert admission.active_kind == RunKind.GENERATE

    def test_different_projects_do_not_block_each_other(self, guard):
        assert guard.admit(1, RunKind.GENERATE).admitted
        assert guard.admit(2, RunKind.GENERATE).admitted
        assert sorted(guard.active_keys()) == ["1", "2"]

    def test_release_frees_the_slot(self, guard):
        run = guard.admit(42, RunKind.GENERATE).run

        assert guard.release(run)
        assert guard.active(42) is None
        assert guard.admit(42, RunKind.MODIFY).admitted

    def test_release_by_stale_run_keeps_current_entry(self, guard):
        first = guard.admit(42, RunKind.GENERATE).run
        guard.release(first)
        second = guard.admit(42, RunKind.GENERATE).run

        assert not guard.release(first)
        assert guard.active(42) is second

    def test_double_release_is_harmless(self, guard):
        run = guard.admit(42, RunKind.GENERATE).run
        assert guard.release(run)
        assert not guard.release(run)


class TestConcurrency:
    """Test the guard under concurrent admission"""

    def test_only_one_thread_is_admitted(self, guard):
        barrier = threading.Barrier(16)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            admission = guard.admit("shared", RunKind.GENERATE)
            with lock:
                results.append(admission.admitted)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 15


class TestHelpers:
    def test_project_key_normalizes_ids(self):
        assert project_key(42) == project_key("42") == project_key(" 42 ")

    def test_global_guard_is_shared(self):
        assert get_dedup_guard() is dedup_guard
        assert isinstance(dedup_guard, DedupGuard)

    def test_clear(self, guard):
        guard.admit(1, RunKind.GENERATE)
        guard.clear()
        assert guard.active_keys() == []
