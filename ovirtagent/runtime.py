"""Process-level runtime: the hypervisor and connection registries and their lifecycle.

    with AgentRuntime.from_config(load_config()) as runtime:
        launcher = runtime.launcher("builder01")
        session = launcher.launch(computer, TaskLog("builder01"))

Leaving the block force-closes every agent connection still registered and
the cached engine connections.
"""

from __future__ import annotations

from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING

from loguru import logger

from ovirtagent.config import RawConfig, build_agent, build_hypervisor, load_payload
from ovirtagent.connections import ConnectionRegistry
from ovirtagent.launcher import SSHLauncher, VMLauncher
from ovirtagent.providers.registry import HypervisorRegistry
from ovirtagent.spec import AgentLaunchSpec

if TYPE_CHECKING:
    from ovirtagent.providers.ovirt import ConnectionFactory

log = logger.bind(component="runtime")


class AgentRuntime:
    def __init__(
        self,
        hypervisors: HypervisorRegistry | None = None,
        connections: ConnectionRegistry | None = None,
        *,
        base_dir: Path | None = None,
    ) -> None:
        self.hypervisors = hypervisors or HypervisorRegistry()
        self.connections = connections or ConnectionRegistry()
        self.agents: dict[str, AgentLaunchSpec] = {}
        self._base_dir = base_dir
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: RawConfig,
        *,
        base_dir: Path | None = None,
        connect: ConnectionFactory | None = None,
    ) -> AgentRuntime:
        runtime = cls(base_dir=base_dir)
        hypervisors = config.get("hypervisors", {})
        for name, raw in hypervisors.items():
            runtime.hypervisors.register(build_hypervisor(name, raw, connect=connect))
        for name, raw in config.get("agents", {}).items():
            runtime.agents[name] = build_agent(name, raw, hypervisors)
        return runtime

    def start(self) -> None:
        log.debug(
            "Starting ovirtagent runtime ({n} hypervisors, {m} agents)",
            n=len(self.hypervisors), m=len(self.agents),
        )
        self._started = True

    def stop(self) -> None:
        log.debug("Stopping ovirtagent runtime")
        closed = self.connections.close_all()
        if closed:
            log.info("Force-closed {n} agent connections", n=closed)
        self.hypervisors.close_all()
        self._started = False

    def launcher(self, agent: str | AgentLaunchSpec, payload: bytes | None = None) -> VMLauncher:
        spec = agent if isinstance(agent, AgentLaunchSpec) else self._agent(agent)
        if payload is None:
            payload = load_payload(spec.ssh, self._base_dir)
        delegate = SSHLauncher(spec.ssh, payload, self.connections)
        return VMLauncher(spec, self.hypervisors, delegate)

    def _agent(self, name: str) -> AgentLaunchSpec:
        if name not in self.agents:
            raise KeyError(f"Agent '{name}' not found. Available: {', '.join(self.agents) or 'none'}")
        return self.agents[name]

    def __enter__(self) -> AgentRuntime:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
