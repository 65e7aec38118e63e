"""Remote bootstrap: copy the agent jar to a running VM and start it over SSH.

Sequence for one attempt:

1. connect (retried with a fixed backoff)
2. authenticate with username/password (never retried)
3. run ``true`` and require empty output, since banners or MOTD text would
   corrupt the binary protocol later spoken over the same session
4. log the remote environment
5. upload the jar over SFTP, or SCP when the SFTP subsystem is missing
6. start ``java -jar`` in a fresh session and hand its stdio to the caller
7. register the connection so the runtime can force-close it at shutdown

Any failure closes the connection before propagating.
"""

from __future__ import annotations

import io
import shlex
import stat
import threading
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Protocol

import paramiko
from loguru import logger
from scp import SCPException
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from ovirtagent.connections import ConnectionRegistry
from ovirtagent.core.exceptions import (
    AuthenticationFailedError,
    ChannelSetupError,
    LaunchInterruptedError,
    PayloadTransferError,
    UnexpectedSessionOutputError,
)
from ovirtagent.logging import NoCloseWriter, TaskLog
from ovirtagent.spec import CHANNEL_WINDOW_MB, SSHSettings
from ovirtagent.ssh import SSHConnection
from ovirtagent.wait import Sleep

log = logger.bind(component="bootstrap")

CHANNEL_WINDOW_SIZE = CHANNEL_WINDOW_MB * 1024 * 1024
EXIT_STATUS_WAIT = 3.0
REMOTE_DIR_MODE = 0o700


class AgentComputer(Protocol):
    """The host-side node that talks to the agent once it runs."""

    @property
    def name(self) -> str: ...

    def set_channel(self, stdout: BinaryIO, stdin: BinaryIO, log: TaskLog) -> None:
        """Take over the agent's stdout/stdin. Raising aborts the launch."""
        ...


@dataclass
class AgentSession:
    """A running agent process and the connection that carries it."""

    connection: SSHConnection
    channel: paramiko.Channel
    registry: ConnectionRegistry = field(repr=False)

    def wait(self) -> int:
        """Block until the agent process exits; return its exit status."""
        return self.channel.recv_exit_status()

    def close(self) -> None:
        self.registry.unregister(self.connection)
        self.channel.close()
        self.connection.close()


def session_outcome(channel: paramiko.Channel, connection_lost: bool = False) -> tuple[str, int | None]:
    """Describe how the remote process ended, waiting briefly for its exit status."""
    channel.status_event.wait(EXIT_STATUS_WAIT)
    if channel.exit_status_ready():
        code = channel.exit_status
        return f"Agent process has terminated. Exit code={code}", code
    if connection_lost:
        return "Agent process has not reported exit code before the socket was lost", None
    return "Agent process has not reported exit code. Is it still running?", None


def _is_transient(connection: SSHConnection):
    def predicate(e: BaseException) -> bool:
        if connection.closed:
            return False
        if isinstance(e, paramiko.AuthenticationException):
            return False
        return isinstance(e, (OSError, paramiko.SSHException, EOFError))

    return predicate


class RemoteBootstrap:
    """Runs the bootstrap sequence once per call. Retrying whole attempts is the caller's job."""

    def __init__(
        self,
        settings: SSHSettings,
        payload: bytes,
        registry: ConnectionRegistry,
        *,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._settings = settings
        self._payload = payload
        self._registry = registry
        self._sleep = sleep

    @property
    def settings(self) -> SSHSettings:
        return self._settings

    def run(
        self,
        connection: SSHConnection,
        computer: AgentComputer,
        working_directory: str,
        task_log: TaskLog,
    ) -> AgentSession:
        try:
            self.open_connection(connection, task_log)
            self.verify_no_header_junk(connection, task_log)
            self.report_environment(connection, task_log)
            self.copy_payload(connection, working_directory, task_log)
            channel = self.start_agent(connection, computer, working_directory, task_log)
        except BaseException:
            task_log.println("Launch failed - cleaning up connection")
            connection.close()
            task_log.println("Connection closed")
            raise
        self._registry.register(connection)
        return AgentSession(connection=connection, channel=channel, registry=self._registry)

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def open_connection(self, connection: SSHConnection, task_log: TaskLog) -> None:
        settings = self._settings
        attempts = settings.max_retries + 1

        def before_sleep(state: Any) -> None:
            error = state.outcome.exception()
            remaining = attempts - state.attempt_number
            task_log.println(
                f'SSH Connection failed with {type(error).__name__}: "{error}", '
                f"retrying in {settings.retry_wait_sec:g} seconds.  "
                f"There are {remaining} more retries left."
            )

        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(settings.retry_wait_sec),
            retry=retry_if_exception(_is_transient(connection)),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            retrying(connection.connect)
        except (OSError, paramiko.SSHException, EOFError) as e:
            task_log.println(f'SSH Connection failed with {type(e).__name__}: "{e}".')
            raise

        if not connection.authenticate(settings.username, settings.password):
            task_log.println("Authentication failed")
            raise AuthenticationFailedError(connection.hostname, settings.username)
        task_log.println("Authentication successful")

    def verify_no_header_junk(self, connection: SSHConnection, task_log: TaskLog) -> None:
        _, output = connection.exec("true")
        text = output.decode(errors="replace")
        if text:
            task_log.println("SSH header junk detected")
            task_log.println(text)
            raise UnexpectedSessionOutputError(text)

    def report_environment(self, connection: SSHConnection, task_log: TaskLog) -> None:
        task_log.println("Environment:")
        _, output = connection.exec("set")
        for line in output.decode(errors="replace").splitlines():
            task_log.println(line)

    # -------------------------------------------------------------------------
    # Payload transfer
    # -------------------------------------------------------------------------

    def copy_payload(self, connection: SSHConnection, working_directory: str, task_log: TaskLog) -> None:
        task_log.println("Starting sftp client")
        try:
            sftp = connection.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            # No SFTP service on the VM; fall back to scp.
            task_log.error(f"Starting sftp client: {e}")
            self._copy_with_scp(connection, working_directory, task_log)
            return

        try:
            self._copy_with_sftp(sftp, working_directory, task_log)
        finally:
            sftp.close()

    def _copy_with_sftp(self, sftp: paramiko.SFTPClient, working_directory: str, task_log: TaskLog) -> None:
        remote_path = f"{working_directory}/{self._settings.jar}"
        try:
            try:
                attrs = sftp.stat(working_directory)
            except FileNotFoundError:
                attrs = None

            if attrs is None:
                task_log.println("Remote FS doesn't exist")
                _sftp_makedirs(sftp, working_directory, REMOTE_DIR_MODE)
            elif attrs.st_mode is not None and stat.S_ISREG(attrs.st_mode):
                raise PayloadTransferError(f"Remote FS {working_directory} is a file")

            # A shorter jar written over a longer one would leave trailing garbage.
            with suppress(OSError):
                sftp.remove(remote_path)

            task_log.println("Copying agent jar")
            with sftp.open(remote_path, "wb") as f:
                f.write(self._payload)
            task_log.println(f"Copied {len(self._payload)} bytes")
        except PayloadTransferError:
            raise
        except (OSError, paramiko.SSHException) as e:
            raise PayloadTransferError("Error copying agent jar") from e

    def _copy_with_scp(self, connection: SSHConnection, working_directory: str, task_log: TaskLog) -> None:
        directory = shlex.quote(working_directory)
        remote_path = f"{working_directory}/{self._settings.jar}"
        try:
            code, _ = connection.exec(f"test -d {directory}")
            if code != 0:
                task_log.println("Remote filesystem doesn't exist")
                code, output = connection.exec(f"mkdir -p {directory}")
                if code != 0:
                    task_log.println(f"Failed to create {working_directory}: {output.decode(errors='replace')}")

            connection.exec(f"rm -f {shlex.quote(remote_path)}")

            task_log.println("Copying agent jar")
            with connection.open_scp() as scp:
                scp.putfo(io.BytesIO(self._payload), remote_path, mode="0644")
            task_log.println(f"Copied {len(self._payload)} bytes")
        except (OSError, paramiko.SSHException, SCPException) as e:
            raise PayloadTransferError("Error copying agent jar") from e

    # -------------------------------------------------------------------------
    # Agent process
    # -------------------------------------------------------------------------

    def agent_command(self, working_directory: str) -> str:
        settings = self._settings
        return (
            f"cd {shlex.quote(working_directory)} && "
            f"{settings.java} -jar {shlex.quote(settings.jar)}"
        )

    def start_agent(
        self,
        connection: SSHConnection,
        computer: AgentComputer,
        working_directory: str,
        task_log: TaskLog,
    ) -> paramiko.Channel:
        channel = connection.open_session(window_size=CHANNEL_WINDOW_SIZE)
        task_log.println(f"Expanded the channel window size to {CHANNEL_WINDOW_MB}MB")

        command = self.agent_command(working_directory)
        task_log.println(f"Starting agent process {command}")
        channel.exec_command(command)
        _pipe_stderr(channel, NoCloseWriter(task_log), computer.name)

        try:
            computer.set_channel(channel.makefile("rb"), channel.makefile_stdin("wb"), task_log)
        except LaunchInterruptedError as e:
            channel.close()
            raise ChannelSetupError("Aborted during connection open") from e
        except Exception as e:
            # An error this early usually means the JVM died; report how.
            message, code = session_outcome(channel)
            channel.close()
            raise ChannelSetupError(message, exit_status=code) from e
        return channel


def _sftp_makedirs(sftp: paramiko.SFTPClient, path: str, mode: int) -> None:
    current = "/" if path.startswith("/") else ""
    for part in (p for p in path.split("/") if p):
        current = f"{current}{part}" if current in ("", "/") else f"{current}/{part}"
        try:
            sftp.stat(current)
        except FileNotFoundError:
            sftp.mkdir(current, mode)


def _pipe_stderr(channel: paramiko.Channel, sink: NoCloseWriter, name: str) -> threading.Thread:
    def pump() -> None:
        try:
            while data := channel.recv_stderr(4096):
                sink.write(data)
        except (OSError, EOFError) as e:
            log.debug("stderr pipe for {name} ended: {err}", name=name, err=e)
        finally:
            sink.close()

    thread = threading.Thread(target=pump, daemon=True, name=f"stderr {name}")
    thread.start()
    return thread
