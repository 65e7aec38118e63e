from __future__ import annotations

import io
from collections.abc import Iterable, Sequence

import pytest

from ovirtagent.logging import TaskLog
from ovirtagent.types import Snapshot, VmState


class FakeVM:
    """Scripted VirtualMachine.

    ``state()`` pops from the scripted sequence and repeats the last entry
    once the script runs out; ``addresses()`` does the same.
    """

    def __init__(
        self,
        name: str = "builder01",
        states: Iterable[VmState] = (VmState.UP,),
        snapshots: Sequence[Snapshot] = (),
        addresses: Iterable[Sequence[str]] = (("10.0.0.5",),),
    ) -> None:
        self.name = name
        self._states = list(states)
        self.snapshot_list = list(snapshots)
        self._addresses = [list(a) for a in addresses]
        self.calls: list[str] = []
        self.reverted: list[Snapshot] = []

    def state(self) -> VmState:
        self.calls.append("state")
        if len(self._states) > 1:
            return self._states.pop(0)
        return self._states[0]

    def snapshots(self) -> list[Snapshot]:
        self.calls.append("snapshots")
        return list(self.snapshot_list)

    def addresses(self) -> list[str]:
        self.calls.append("addresses")
        if len(self._addresses) > 1:
            return self._addresses.pop(0)
        return self._addresses[0]

    def start(self) -> None:
        self.calls.append("start")

    def shutdown(self) -> None:
        self.calls.append("shutdown")

    def revert_to(self, snapshot: Snapshot) -> None:
        self.calls.append("revert_to")
        self.reverted.append(snapshot)

    def count(self, call: str) -> int:
        return self.calls.count(call)


class FakeProvider:
    def __init__(self, description: str, vms: Sequence[FakeVM] = ()) -> None:
        self.description = description
        self.vms = list(vms)
        self.closed = False

    def list_vms(self) -> list[FakeVM]:
        return list(self.vms)

    def get_vm(self, name: str) -> FakeVM | None:
        return next((vm for vm in self.vms if vm.name == name), None)

    def close(self) -> None:
        self.closed = True


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def console() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def task_log(console: io.StringIO) -> TaskLog:
    return TaskLog("builder01", console)
