from __future__ import annotations

import pytest
from conftest import FakeVM

from ovirtagent.core.exceptions import (
    AddressNotFoundError,
    ImageLockTimeoutError,
    ShutdownTimeoutError,
    SnapshotNotFoundError,
    StartupTimeoutError,
)
from ovirtagent.orchestrator import VMLifecycleOrchestrator
from ovirtagent.types import Snapshot, VmState

DOWN, POWERING_UP, UP, LOCKED = VmState.DOWN, VmState.POWERING_UP, VmState.UP, VmState.IMAGE_LOCKED


def _orchestrator(vm, task_log, sleeps, *, max_retries=5, lock_timeout=None):
    return VMLifecycleOrchestrator(
        vm,
        task_log,
        poll_interval=10.0,
        max_retries=max_retries,
        lock_timeout=lock_timeout,
        sleep=sleeps,
    )


class TestEnsureUp:
    def test_already_up_is_a_noop(self, task_log, sleeps):
        vm = FakeVM(states=[UP])
        _orchestrator(vm, task_log, sleeps).ensure_up()
        assert vm.count("start") == 0
        assert vm.count("state") == 1
        assert sleeps.calls == []

    def test_starts_and_polls_until_up(self, task_log, sleeps):
        vm = FakeVM(states=[DOWN, DOWN, POWERING_UP, UP])
        _orchestrator(vm, task_log, sleeps).ensure_up()
        assert vm.count("start") == 1
        # one initial check, then three polls
        assert vm.count("state") == 4
        assert sleeps.calls == [10.0, 10.0, 10.0]

    def test_times_out_after_max_retries_polls(self, task_log, sleeps):
        vm = FakeVM(states=[DOWN])
        with pytest.raises(StartupTimeoutError) as exc_info:
            _orchestrator(vm, task_log, sleeps, max_retries=3).ensure_up()
        assert exc_info.value.polls == 3
        assert exc_info.value.last is DOWN
        assert vm.count("state") == 4
        assert vm.count("start") == 1

    def test_rejects_non_positive_retries(self, task_log, sleeps):
        with pytest.raises(ValueError):
            _orchestrator(FakeVM(), task_log, sleeps, max_retries=0)


class TestEnsureDown:
    def test_already_down_is_a_noop(self, task_log, sleeps):
        vm = FakeVM(states=[DOWN])
        _orchestrator(vm, task_log, sleeps).ensure_down()
        assert vm.count("shutdown") == 0

    def test_shuts_down_and_polls(self, task_log, sleeps):
        vm = FakeVM(states=[UP, UP, DOWN])
        _orchestrator(vm, task_log, sleeps).ensure_down()
        assert vm.count("shutdown") == 1
        assert vm.count("state") == 3

    def test_times_out_after_max_retries_polls(self, task_log, sleeps):
        vm = FakeVM(states=[UP])
        with pytest.raises(ShutdownTimeoutError) as exc_info:
            _orchestrator(vm, task_log, sleeps, max_retries=2).ensure_down()
        assert exc_info.value.polls == 2
        assert "not down after 2 polls" in str(exc_info.value)


class TestSnapshots:
    def test_missing_snapshot_fails_before_start(self, task_log, sleeps):
        vm = FakeVM(states=[UP, DOWN], snapshots=[Snapshot("s1", "other")])
        with pytest.raises(SnapshotNotFoundError):
            _orchestrator(vm, task_log, sleeps).bring_up("clean")
        assert vm.count("start") == 0
        assert vm.count("revert_to") == 0

    def test_snapshot_is_looked_up_every_time(self, task_log, sleeps):
        vm = FakeVM(snapshots=[Snapshot("old-id", "clean")])
        orchestrator = _orchestrator(vm, task_log, sleeps)
        assert orchestrator.find_snapshot("clean").id == "old-id"

        vm.snapshot_list = [Snapshot("new-id", "clean")]
        assert orchestrator.find_snapshot("clean").id == "new-id"
        assert vm.count("snapshots") == 2

    def test_bring_up_from_snapshot_runs_steps_in_order(self, task_log, sleeps):
        vm = FakeVM(
            states=[UP, DOWN, LOCKED, LOCKED, DOWN, DOWN, UP],
            snapshots=[Snapshot("s1", "clean")],
        )
        _orchestrator(vm, task_log, sleeps).bring_up("clean")

        actions = [c for c in vm.calls if c in ("shutdown", "revert_to", "start")]
        assert actions == ["shutdown", "revert_to", "start"]
        assert vm.reverted == [Snapshot("s1", "clean")]

    def test_bring_up_without_snapshot_skips_shutdown(self, task_log, sleeps):
        vm = FakeVM(states=[DOWN, UP])
        _orchestrator(vm, task_log, sleeps).bring_up(None)
        assert vm.count("shutdown") == 0
        assert vm.count("snapshots") == 0
        assert vm.count("start") == 1


class TestWaitUnlocked:
    def test_waits_without_poll_bound(self, task_log, sleeps):
        vm = FakeVM(states=[LOCKED] * 50 + [DOWN])
        _orchestrator(vm, task_log, sleeps, max_retries=2).wait_unlocked()
        assert vm.count("state") == 51

    def test_lock_timeout_caps_the_wait(self, task_log, console, sleeps):
        vm = FakeVM(states=[LOCKED])
        with pytest.raises(ImageLockTimeoutError):
            _orchestrator(vm, task_log, sleeps, lock_timeout=0.0).wait_unlocked()
        assert "Image of VM builder01 still locked after 0s" in console.getvalue()

    def test_unlock_within_lock_timeout(self, task_log, console, sleeps):
        vm = FakeVM(states=[LOCKED, LOCKED, DOWN])
        _orchestrator(vm, task_log, sleeps, lock_timeout=600.0).wait_unlocked()
        assert vm.count("state") == 3
        assert "still locked" not in console.getvalue()


class TestResolveAddress:
    def test_returns_first_reported_address(self, task_log, console, sleeps):
        vm = FakeVM(addresses=[[], [], ["10.0.0.7", "fe80::1"]])
        address = _orchestrator(vm, task_log, sleeps).resolve_address(5, 2.0)
        assert address == "10.0.0.7"
        assert sleeps.calls == [2.0, 2.0]
        assert "IP of VM obtained! 10.0.0.7" in console.getvalue()

    def test_gives_up_after_attempts(self, task_log, sleeps):
        vm = FakeVM(addresses=[[]])
        with pytest.raises(AddressNotFoundError) as exc_info:
            _orchestrator(vm, task_log, sleeps).resolve_address(3, 1.0)
        assert exc_info.value.attempts == 3
        assert vm.count("addresses") == 3
