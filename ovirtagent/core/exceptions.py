"""Exception hierarchy for ovirtagent.

All ovirtagent-specific exceptions inherit from OVirtAgentError, so callers
can catch every failure of a launch attempt with a single except clause.
"""

from __future__ import annotations


class OVirtAgentError(Exception):
    """Base exception for all ovirtagent errors."""


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(OVirtAgentError):
    """Raised for invalid configuration or missing required settings."""


class HypervisorNotFoundError(ConfigurationError):
    """Raised when no registered hypervisor matches a description. Never retried."""

    def __init__(self, description: str) -> None:
        self.description = description
        super().__init__(f"Could not find hypervisor '{description}'")


# =============================================================================
# Hypervisor
# =============================================================================


class HypervisorUnavailableError(OVirtAgentError):
    """Raised when the engine cannot be asked (transport or auth failure).

    Distinguishes "couldn't ask" from an empty VM list.
    """


# =============================================================================
# Launch attempt
# =============================================================================


class LaunchError(OVirtAgentError):
    """Raised when one launch attempt fails. The caller may retry the whole attempt."""


class VMNotFoundError(LaunchError):
    def __init__(self, vm_name: str) -> None:
        self.vm_name = vm_name
        super().__init__(f"VM '{vm_name}' not found on hypervisor")


class SnapshotNotFoundError(LaunchError):
    def __init__(self, vm_name: str, snapshot: str) -> None:
        self.vm_name = vm_name
        self.snapshot = snapshot
        super().__init__(f"No snapshot '{snapshot}' on VM '{vm_name}'")


class PowerStateTimeoutError(LaunchError):
    """Raised when a VM did not reach a power state within the poll bound."""

    def __init__(self, vm_name: str, expected: str, polls: int, last: object) -> None:
        self.vm_name = vm_name
        self.expected = expected
        self.polls = polls
        self.last = last
        super().__init__(
            f"VM '{vm_name}' not {expected} after {polls} polls (last state: {last})"
        )


class ShutdownTimeoutError(PowerStateTimeoutError):
    def __init__(self, vm_name: str, polls: int, last: object) -> None:
        super().__init__(vm_name, "down", polls, last)


class StartupTimeoutError(PowerStateTimeoutError):
    def __init__(self, vm_name: str, polls: int, last: object) -> None:
        super().__init__(vm_name, "up", polls, last)


class ImageLockTimeoutError(LaunchError):
    def __init__(self, vm_name: str, timeout: float) -> None:
        self.vm_name = vm_name
        self.timeout = timeout
        super().__init__(f"VM '{vm_name}' image still locked after {timeout:.0f}s")


class AddressNotFoundError(LaunchError):
    def __init__(self, vm_name: str, attempts: int) -> None:
        self.vm_name = vm_name
        self.attempts = attempts
        super().__init__(
            f"Couldn't find IP address of VM '{vm_name}' after {attempts} attempts"
        )


class BootstrapFailedError(LaunchError):
    """Wraps any failure raised by the delegated bootstrap step."""


class LaunchInterruptedError(LaunchError):
    """Raised when a launch is cancelled while waiting between polls."""


# =============================================================================
# Remote bootstrap
# =============================================================================


class BootstrapError(OVirtAgentError):
    """Raised by the SSH bootstrap sequence."""


class AuthenticationFailedError(BootstrapError):
    def __init__(self, host: str, username: str) -> None:
        self.host = host
        self.username = username
        super().__init__(f"Authentication failed for {username}@{host}")


class UnexpectedSessionOutputError(BootstrapError):
    """Raised when a no-op command produces output (banners, MOTD)."""

    def __init__(self, output: str) -> None:
        self.output = output
        super().__init__(f"SSH header junk detected: {output!r}")


class PayloadTransferError(BootstrapError):
    """Raised when the agent jar cannot be copied to the VM."""


class ChannelSetupError(BootstrapError):
    """Raised when the agent process could not be wired to the caller."""

    def __init__(self, message: str, exit_status: int | None = None) -> None:
        self.exit_status = exit_status
        super().__init__(message)


class LaunchTimeoutError(BootstrapError):
    """Raised when the SSH bring-up exceeds the launch timeout."""

    def __init__(self, host: str, timeout: float) -> None:
        self.host = host
        self.timeout = timeout
        super().__init__(f"Bootstrap of {host} did not finish within {timeout:g}s")
