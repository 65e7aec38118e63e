"""Agent definitions and their validation.

An AgentLaunchSpec is everything needed for one provisioning attempt of one
configured agent: which VM on which hypervisor, which snapshot to pin it to,
how patiently to poll, and how to bootstrap the agent process over SSH.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum

from ovirtagent.core.exceptions import ConfigurationError

NAME_PATTERN = "[._a-z0-9]+"
_NAME_RE = re.compile(NAME_PATTERN, re.IGNORECASE)

DEFAULT_JAR = "agent.jar"
SSH_PORT = 22
CHANNEL_WINDOW_MB = 4


@dataclass(frozen=True, slots=True)
class SSHSettings:
    """How to reach the VM and start the agent process on it.

    Attributes:
        username: SSH user on the VM.
        password: SSH password.
        jar: Remote file name of the agent jar.
        jar_path: Local path of the agent jar to upload.
        java: Java executable used on the VM.
        port: SSH port.
        max_retries: Extra connection attempts after the first one fails.
        retry_wait_sec: Fixed wait between connection attempts, also used when
            waiting for the VM to report an IP address.
        launch_timeout: Bound in seconds on the whole SSH bring-up
            (connect, authenticate, copy, start). 0 disables it.
    """

    username: str
    password: str = field(repr=False)
    jar: str = DEFAULT_JAR
    jar_path: str | None = None
    java: str = "java"
    port: int = SSH_PORT
    max_retries: int = 5
    retry_wait_sec: float = 30.0
    launch_timeout: float = 300.0

    def __post_init__(self) -> None:
        if not self.username:
            raise ConfigurationError("SSH username is required")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")
        if self.retry_wait_sec < 0:
            raise ConfigurationError("retry_wait_sec must not be negative")
        if "/" in self.jar:
            raise ConfigurationError(f"jar must be a file name, got '{self.jar}'")


@dataclass(frozen=True, slots=True)
class AgentLaunchSpec:
    """One configured agent.

    Attributes:
        name: Agent name.
        hypervisor: Description ("<name> <url>") of the hypervisor endpoint.
        vm: VM name on that hypervisor.
        ssh: Bootstrap settings.
        remote_fs: Working directory of the agent on the VM.
        snapshot: Snapshot description to revert to before each launch.
        wait_sec: Seconds between power-state polls.
        retries: Maximum number of power-state polls per transition.
        lock_timeout: Cap in seconds on waiting for a snapshot commit to
            release the image lock. None waits indefinitely.
    """

    name: str
    hypervisor: str
    vm: str
    ssh: SSHSettings
    remote_fs: str = "/home/jenkins"
    snapshot: str | None = None
    wait_sec: float = 10.0
    retries: int = 30
    lock_timeout: float | None = None

    def __post_init__(self) -> None:
        if not check_name(self.name).ok:
            raise ConfigurationError(f"Agent name '{self.name}' allows only: {NAME_PATTERN}")
        if not self.vm:
            raise ConfigurationError(f"Agent '{self.name}' has no VM name")
        if self.retries <= 0:
            raise ConfigurationError(f"Agent '{self.name}': retries must be positive")
        if self.wait_sec < 0:
            raise ConfigurationError(f"Agent '{self.name}': wait_sec must not be negative")

    @property
    def working_directory(self) -> str:
        return normalize_remote_fs(self.remote_fs)

    @property
    def snapshot_requested(self) -> bool:
        return bool(self.snapshot and self.snapshot.strip())


def normalize_remote_fs(path: str) -> str:
    """Strip trailing slashes, keeping a bare root intact."""
    stripped = path.rstrip("/")
    return stripped or ("/" if path.startswith("/") else stripped)


# =============================================================================
# Validation
# =============================================================================


class Severity(StrEnum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ValidationResult:
    severity: Severity
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.severity is not Severity.ERROR

    @classmethod
    def success(cls, message: str = "") -> ValidationResult:
        return cls(Severity.OK, message)

    @classmethod
    def warning(cls, message: str) -> ValidationResult:
        return cls(Severity.WARNING, message)

    @classmethod
    def error(cls, message: str) -> ValidationResult:
        return cls(Severity.ERROR, message)


def check_name(name: str) -> ValidationResult:
    """Hypervisor and agent names: letters, digits, dot and underscore."""
    if _NAME_RE.fullmatch(name or ""):
        return ValidationResult.success()
    return ValidationResult.error(f"Name allows only: {NAME_PATTERN}")


def check_wait_sec(value: str | int | float) -> ValidationResult:
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return ValidationResult.error("Not a number..")
    if seconds < 0:
        return ValidationResult.error("Negative value..")
    if seconds == 0:
        return ValidationResult.warning(
            "You declared this virtual machine to be ready right away. "
            "It probably needs a couple of seconds before it is ready to process jobs!"
        )
    return ValidationResult.success()
