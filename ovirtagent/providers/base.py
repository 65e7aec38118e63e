"""Provider protocols.

A VMProvider is one configured virtualization endpoint; a VirtualMachine is a
live handle onto one of its VMs. Every read on a VirtualMachine re-queries the
engine: power state and snapshots are changed by people and other tools, so
nothing here is cached.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from ovirtagent.types import Snapshot, VmState

__all__ = ["VirtualMachine", "VMProvider"]


@runtime_checkable
class VirtualMachine(Protocol):
    @property
    def name(self) -> str: ...

    def state(self) -> VmState:
        """Current power state, fetched from the engine."""
        ...

    def snapshots(self) -> Sequence[Snapshot]:
        """Current snapshot list, fetched from the engine."""
        ...

    def addresses(self) -> Sequence[str]:
        """IP addresses reported by the guest agent, in reported order."""
        ...

    def start(self) -> None: ...

    def shutdown(self) -> None: ...

    def revert_to(self, snapshot: Snapshot) -> None:
        """Preview then commit a snapshot. Returns once the engine accepted both."""
        ...


@runtime_checkable
class VMProvider(Protocol):
    @property
    def description(self) -> str:
        """Identity string the registry resolves endpoints by."""
        ...

    def list_vms(self) -> Sequence[VirtualMachine]:
        """All VMs in scope.

        Raises:
            HypervisorUnavailableError: if the endpoint could not be queried.
        """
        ...

    def get_vm(self, name: str) -> VirtualMachine | None: ...

    def close(self) -> None: ...
