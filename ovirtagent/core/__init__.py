from ovirtagent.core.exceptions import (
    AddressNotFoundError,
    AuthenticationFailedError,
    BootstrapError,
    BootstrapFailedError,
    ChannelSetupError,
    ConfigurationError,
    HypervisorNotFoundError,
    HypervisorUnavailableError,
    ImageLockTimeoutError,
    LaunchError,
    LaunchInterruptedError,
    LaunchTimeoutError,
    OVirtAgentError,
    PayloadTransferError,
    PowerStateTimeoutError,
    ShutdownTimeoutError,
    SnapshotNotFoundError,
    StartupTimeoutError,
    UnexpectedSessionOutputError,
    VMNotFoundError,
)

__all__ = [
    "AddressNotFoundError",
    "AuthenticationFailedError",
    "BootstrapError",
    "BootstrapFailedError",
    "ChannelSetupError",
    "ConfigurationError",
    "HypervisorNotFoundError",
    "HypervisorUnavailableError",
    "ImageLockTimeoutError",
    "LaunchError",
    "LaunchInterruptedError",
    "LaunchTimeoutError",
    "OVirtAgentError",
    "PayloadTransferError",
    "PowerStateTimeoutError",
    "ShutdownTimeoutError",
    "SnapshotNotFoundError",
    "StartupTimeoutError",
    "UnexpectedSessionOutputError",
    "VMNotFoundError",
]
