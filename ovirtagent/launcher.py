"""Launchers: how an agent is brought online.

VMLauncher powers the VM up through the orchestrator, then hands the VM's
address to a delegate Bootstrapper. SSHLauncher is the bootstrapper that
copies and starts the agent jar over SSH, bounded by a launch timeout.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

from loguru import logger

from ovirtagent.bootstrap import AgentComputer, AgentSession, RemoteBootstrap
from ovirtagent.connections import ConnectionRegistry
from ovirtagent.core.exceptions import (
    BootstrapFailedError,
    LaunchInterruptedError,
    LaunchTimeoutError,
    VMNotFoundError,
)
from ovirtagent.logging import TaskLog
from ovirtagent.orchestrator import VMLifecycleOrchestrator
from ovirtagent.providers.registry import HypervisorRegistry
from ovirtagent.spec import AgentLaunchSpec, SSHSettings
from ovirtagent.ssh import SSHConnection
from ovirtagent.wait import Sleep, interruptible_sleep

log = logger.bind(component="launcher")


class Launcher(Protocol):
    def launch(self, computer: AgentComputer, task_log: TaskLog) -> AgentSession: ...


class Bootstrapper(Protocol):
    """Final launch stage, run once the VM is reachable at ``address``."""

    def bootstrap(
        self,
        address: str,
        computer: AgentComputer,
        working_directory: str,
        task_log: TaskLog,
    ) -> AgentSession: ...

    def abort(self) -> None:
        """Close whatever connection an in-flight bootstrap holds."""
        ...

    def reset(self) -> None:
        """Forget an earlier abort. Called at the start of each launch attempt."""
        ...


class SSHLauncher:
    """Bootstraps the agent over SSH on a dedicated worker thread.

    The whole SSH bring-up runs under ``settings.launch_timeout``; when it
    expires the connection is closed, which unblocks the worker.
    """

    def __init__(
        self,
        settings: SSHSettings,
        payload: bytes,
        registry: ConnectionRegistry,
        *,
        connection_factory: Callable[[str, int], SSHConnection] = SSHConnection,
        sleep: Sleep | None = None,
    ) -> None:
        self._settings = settings
        self._aborted = threading.Event()
        self._bootstrap = RemoteBootstrap(
            settings, payload, registry, sleep=sleep or interruptible_sleep(self._aborted)
        )
        self._connection_factory = connection_factory
        self._lock = threading.Lock()
        self._active: SSHConnection | None = None

    @property
    def settings(self) -> SSHSettings:
        return self._settings

    def bootstrap(
        self,
        address: str,
        computer: AgentComputer,
        working_directory: str,
        task_log: TaskLog,
    ) -> AgentSession:
        connection = self._connection_factory(address, self._settings.port)
        # abort() sets the event before reading _active
        with self._lock:
            if self._aborted.is_set():
                raise LaunchInterruptedError(f"Launch of {computer.name} aborted before connecting")
            self._active = connection

        executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=f"SSHLauncher.launch for '{computer.name}' node",
        )
        started = time.monotonic()
        try:
            future = executor.submit(
                self._bootstrap.run, connection, computer, working_directory, task_log
            )
            timeout = self._settings.launch_timeout or None
            try:
                session = future.result(timeout=timeout)
            except TimeoutError as e:
                if future.done():
                    # socket timeouts raised by the bootstrap itself
                    raise
                task_log.println("Launch timed out - cleaning up connection")
                connection.close()
                future.add_done_callback(_close_late_session)
                raise LaunchTimeoutError(address, self._settings.launch_timeout) from e
            except BaseException:
                if not future.done():
                    # interrupted while the worker is still connecting or copying
                    task_log.println("Launch interrupted - cleaning up connection")
                    connection.close()
                    future.add_done_callback(_close_late_session)
                raise
        finally:
            executor.shutdown(wait=False)
            with self._lock:
                self._active = None

        log.info(
            "Launch of {name} completed in {secs:.1f}s",
            name=computer.name, secs=time.monotonic() - started,
        )
        return session

    def abort(self) -> None:
        self._aborted.set()
        with self._lock:
            connection = self._active
        if connection is not None:
            connection.close()

    def reset(self) -> None:
        self._aborted.clear()


def _close_late_session(future: Future[AgentSession]) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    future.result().close()


class VMLauncher:
    """Brings the agent's VM up, then delegates to a Bootstrapper.

    One instance per agent definition; ``launch`` may be called again after a
    failed attempt. ``cancel`` aborts an attempt from another thread.
    """

    def __init__(
        self,
        spec: AgentLaunchSpec,
        hypervisors: HypervisorRegistry,
        delegate: Bootstrapper,
        *,
        sleep: Sleep | None = None,
    ) -> None:
        self._spec = spec
        self._hypervisors = hypervisors
        self._delegate = delegate
        self._cancel = threading.Event()
        self._sleep = sleep or interruptible_sleep(self._cancel)

    @property
    def spec(self) -> AgentLaunchSpec:
        return self._spec

    @property
    def delegate(self) -> Bootstrapper:
        return self._delegate

    def launch(self, computer: AgentComputer, task_log: TaskLog) -> AgentSession:
        spec = self._spec
        self._cancel.clear()
        self._delegate.reset()
        task_log.println(f"Launching agent {spec.name} on VM {spec.vm} ({spec.hypervisor})")

        hypervisor = self._hypervisors.resolve(spec.hypervisor)
        vm = hypervisor.get_vm(spec.vm)
        if vm is None:
            task_log.error(f"VM {spec.vm} not found on {spec.hypervisor}")
            raise VMNotFoundError(spec.vm)

        orchestrator = VMLifecycleOrchestrator(
            vm,
            task_log,
            poll_interval=spec.wait_sec,
            max_retries=spec.retries,
            lock_timeout=spec.lock_timeout,
            sleep=self._sleep,
        )
        orchestrator.bring_up(spec.snapshot if spec.snapshot_requested else None)
        address = orchestrator.resolve_address(
            spec.ssh.max_retries, spec.ssh.retry_wait_sec
        )

        if self._cancel.is_set():
            raise LaunchInterruptedError(f"Launch of {spec.name} cancelled before bootstrap")

        try:
            session = self._delegate.bootstrap(address, computer, spec.working_directory, task_log)
        except LaunchInterruptedError:
            raise
        except Exception as e:
            task_log.error(f"Bootstrap of {spec.name} failed: {e}")
            raise BootstrapFailedError(f"Bootstrap of {spec.name} at {address} failed: {e}") from e
        task_log.println(f"Agent {spec.name} is online")
        return session

    def cancel(self) -> None:
        self._cancel.set()
        self._delegate.abort()
