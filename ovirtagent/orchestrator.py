"""VM lifecycle orchestration: drive a VM to "up", optionally from a snapshot.

The engine applies power and snapshot actions asynchronously, so every step
issues its request and then polls until the VM reports the expected state.
Order within one bring-up is strict:

    ensure down -> revert snapshot -> wait for image unlock -> ensure up

The first two steps only run when a snapshot is requested. Otherwise the VM
is started from whatever state it is in (a no-op when already up).

Waiting for the image lock after a snapshot commit has no poll bound by
default: commits legitimately take a long and variable time. Set
``lock_timeout`` to cap it.
"""

from __future__ import annotations

import time

from loguru import logger

from ovirtagent.core.exceptions import (
    AddressNotFoundError,
    ImageLockTimeoutError,
    ShutdownTimeoutError,
    SnapshotNotFoundError,
    StartupTimeoutError,
)
from ovirtagent.logging import TaskLog
from ovirtagent.providers.base import VirtualMachine
from ovirtagent.types import Snapshot, VmState
from ovirtagent.wait import Sleep, poll_until

log = logger.bind(component="orchestrator")


class VMLifecycleOrchestrator:
    """Brings one VM to a running state.

    Args:
        vm: Live handle to the VM.
        task_log: Progress sink for the operator.
        poll_interval: Seconds between power-state polls.
        max_retries: Maximum power-state polls per transition.
        lock_timeout: Cap on the image-unlock wait. None waits indefinitely.
        sleep: Sleep implementation (injectable for cancellation and tests).
    """

    def __init__(
        self,
        vm: VirtualMachine,
        task_log: TaskLog,
        *,
        poll_interval: float,
        max_retries: int,
        lock_timeout: float | None = None,
        sleep: Sleep = time.sleep,
    ) -> None:
        if max_retries <= 0:
            raise ValueError("max_retries must be positive")
        self._vm = vm
        self._log = task_log
        self._interval = poll_interval
        self._max_retries = max_retries
        self._lock_timeout = lock_timeout
        self._sleep = sleep

    @property
    def vm(self) -> VirtualMachine:
        return self._vm

    def bring_up(self, snapshot: str | None = None) -> None:
        """Run every power/snapshot step needed before the VM can be bootstrapped."""
        if snapshot:
            self.ensure_down()
            self.revert_snapshot(snapshot)
        self.ensure_up()

    def ensure_down(self) -> None:
        name = self._vm.name
        if self._vm.state() is VmState.DOWN:
            self._log.println(f"VM {name} is already down")
            return

        self._log.println(f"Shutting down VM {name}")
        self._vm.shutdown()
        outcome = poll_until(
            self._vm.state,
            lambda state: state is VmState.DOWN,
            interval=self._interval,
            max_polls=self._max_retries,
            sleep=self._sleep,
        )
        if not outcome.ready:
            self._log.error(f"VM {name} did not shut down after {outcome.polls} checks")
            raise ShutdownTimeoutError(name, outcome.polls, outcome.value)
        self._log.println(f"VM {name} is down")

    def find_snapshot(self, description: str) -> Snapshot:
        """Look the snapshot up by description on the engine, right now.

        Snapshots can be deleted and recreated under the same description,
        so a previously found id must never be reused.
        """
        for snapshot in self._vm.snapshots():
            if snapshot.description == description:
                return snapshot
        raise SnapshotNotFoundError(self._vm.name, description)

    def revert_snapshot(self, description: str) -> None:
        name = self._vm.name
        snapshot = self.find_snapshot(description)
        self._log.println(f"Reverting VM {name} to snapshot '{description}'")
        self._vm.revert_to(snapshot)
        self.wait_unlocked()
        self._log.println(f"VM {name} reverted to snapshot '{description}'")

    def wait_unlocked(self) -> None:
        name = self._vm.name
        self._log.println(f"Waiting for the image of VM {name} to be unlocked")
        outcome = poll_until(
            self._vm.state,
            lambda state: state is not VmState.IMAGE_LOCKED,
            interval=self._interval,
            timeout=self._lock_timeout,
            sleep=self._sleep,
            sleep_first=False,
        )
        if not outcome.ready and self._lock_timeout is not None:
            self._log.error(f"Image of VM {name} still locked after {self._lock_timeout:g}s")
            raise ImageLockTimeoutError(name, self._lock_timeout)
        log.debug("Image of {name} unlocked after {polls} checks", name=name, polls=outcome.polls)

    def ensure_up(self) -> None:
        name = self._vm.name
        if self._vm.state() is VmState.UP:
            self._log.println(f"VM {name} is already up")
            return

        self._log.println(f"Starting VM {name}")
        self._vm.start()
        outcome = poll_until(
            self._vm.state,
            lambda state: state is VmState.UP,
            interval=self._interval,
            max_polls=self._max_retries,
            sleep=self._sleep,
        )
        if not outcome.ready:
            self._log.error(f"VM {name} did not come up after {outcome.polls} checks")
            raise StartupTimeoutError(name, outcome.polls, outcome.value)
        self._log.println(f"VM {name} is up")

    def resolve_address(self, attempts: int, retry_wait: float) -> str:
        """First IP the guest reports, polled until one shows up."""
        name = self._vm.name
        outcome = poll_until(
            self._vm.addresses,
            lambda addresses: len(addresses) > 0,
            interval=retry_wait,
            max_polls=max(attempts, 1),
            sleep=self._sleep,
            sleep_first=False,
        )
        if not outcome.ready:
            self._log.error(f"Couldn't find IP address of VM {name}. Abandoning...")
            raise AddressNotFoundError(name, outcome.polls)
        address = outcome.value[0]
        self._log.println(f"IP of VM obtained! {address}")
        return address
