"""ovirtagent - Run build agents on oVirt virtual machines.

Example:

    from ovirtagent import AgentRuntime, TaskLog, load_config

    with AgentRuntime.from_config(load_config()) as runtime:
        launcher = runtime.launcher("builder01")
        session = launcher.launch(computer, TaskLog("builder01"))
        session.wait()

A launch powers the agent's VM up (reverting it to a snapshot first when one
is configured), waits for the guest to report an address, then copies the
agent jar over SSH and starts it.
"""

from ovirtagent.bootstrap import AgentComputer, AgentSession, RemoteBootstrap
from ovirtagent.config import load_config, resolve_agent
from ovirtagent.connections import ConnectionRegistry
from ovirtagent.core import *  # noqa: F403
from ovirtagent.core import __all__ as _core_all
from ovirtagent.launcher import Bootstrapper, Launcher, SSHLauncher, VMLauncher
from ovirtagent.logging import LogConfig, TaskLog, setup_logging, teardown_logging
from ovirtagent.orchestrator import VMLifecycleOrchestrator
from ovirtagent.providers import HypervisorRegistry, VirtualMachine, VMProvider
from ovirtagent.runtime import AgentRuntime
from ovirtagent.spec import AgentLaunchSpec, SSHSettings, check_name, check_wait_sec
from ovirtagent.types import Snapshot, VmState

__version__ = "0.1.0"

__all__ = [
    "AgentComputer",
    "AgentLaunchSpec",
    "AgentRuntime",
    "AgentSession",
    "Bootstrapper",
    "ConnectionRegistry",
    "HypervisorRegistry",
    "Launcher",
    "LogConfig",
    "RemoteBootstrap",
    "SSHLauncher",
    "SSHSettings",
    "Snapshot",
    "TaskLog",
    "VMLauncher",
    "VMLifecycleOrchestrator",
    "VMProvider",
    "VirtualMachine",
    "VmState",
    "check_name",
    "check_wait_sec",
    "load_config",
    "resolve_agent",
    "setup_logging",
    "teardown_logging",
    *_core_all,
]
