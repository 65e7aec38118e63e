"""oVirt / RHEV endpoint backed by ovirtsdk4."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import ovirtsdk4 as sdk
import ovirtsdk4.types as types
from loguru import logger

from ovirtagent.core.exceptions import ConfigurationError, HypervisorUnavailableError
from ovirtagent.internal.once import OnceCell
from ovirtagent.internal.rethrow import rethrow
from ovirtagent.types import Snapshot, VmState

log = logger.bind(component="ovirt")

type ConnectionFactory = Callable[..., Any]

_unavailable = rethrow((sdk.Error, OSError), HypervisorUnavailableError)


class OVirtVM:
    """Handle onto one VM. Each accessor issues a fresh engine request."""

    __slots__ = ("_name", "_service")

    def __init__(self, name: str, service: Any) -> None:
        self._name = name
        self._service = service

    @property
    def name(self) -> str:
        return self._name

    @_unavailable
    def state(self) -> VmState:
        return VmState.parse(self._service.get().status)

    @_unavailable
    def snapshots(self) -> list[Snapshot]:
        return [
            Snapshot(id=s.id, description=s.description or "")
            for s in self._service.snapshots_service().list()
        ]

    @_unavailable
    def addresses(self) -> list[str]:
        result: list[str] = []
        for device in self._service.reported_devices_service().list():
            for ip in device.ips or ():
                if ip.address:
                    result.append(ip.address)
        return result

    @_unavailable
    def start(self) -> None:
        log.debug("Starting VM {name}", name=self._name)
        self._service.start()

    @_unavailable
    def shutdown(self) -> None:
        log.debug("Shutting down VM {name}", name=self._name)
        self._service.shutdown()

    @_unavailable
    def revert_to(self, snapshot: Snapshot) -> None:
        log.debug(
            "Previewing snapshot {desc} ({id}) on {name}",
            desc=snapshot.description, id=snapshot.id, name=self._name,
        )
        self._service.preview_snapshot(
            snapshot=types.Snapshot(id=snapshot.id),
            restore_memory=False,
            async_=False,
        )
        log.debug("Committing snapshot {desc} on {name}", desc=snapshot.description, name=self._name)
        self._service.commit_snapshot(async_=False)

    def __repr__(self) -> str:
        return f"OVirtVM({self._name!r})"


class OVirtHypervisor:
    """A configured oVirt engine.

    Identity is ``"<name> <url>"``. The SDK connection and the cluster filter
    are resolved once, on first use, and shared by every launch against this
    endpoint.

    Args:
        name: Display name of the endpoint.
        url: Engine API URL, e.g. https://engine/ovirt-engine/api.
        username: Engine user, e.g. admin@internal.
        password: Engine password.
        cluster: Only consider VMs of this cluster. Empty means all VMs.
        ca_file: PEM bundle used to verify the engine certificate.
        connect: Connection factory, defaults to ``ovirtsdk4.Connection``.
    """

    def __init__(
        self,
        name: str,
        url: str,
        username: str,
        password: str,
        cluster: str = "",
        ca_file: str = "",
        *,
        connect: ConnectionFactory = sdk.Connection,
    ) -> None:
        self.name = name.strip()
        self.url = url.strip()
        self.username = username.strip()
        self.password = password.strip()
        self.cluster_name = (cluster or "").strip()
        self.ca_file = (ca_file or "").strip()
        self._connect = connect
        self._connection: OnceCell[Any] = OnceCell(self._open_connection)
        self._cluster: OnceCell[Any] = OnceCell(self._find_cluster)

    @property
    def description(self) -> str:
        return f"{self.name} {self.url}"

    @property
    def cluster_specified(self) -> bool:
        return bool(self.cluster_name)

    def _connection_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "url": self.url,
            "username": self.username,
            "password": self.password,
        }
        if self.ca_file:
            kwargs["ca_file"] = self.ca_file
        return kwargs

    def _open_connection(self) -> Any:
        log.info("Connecting to oVirt engine {url} as {user}", url=self.url, user=self.username)
        return self._connect(**self._connection_kwargs())

    @_unavailable
    def connection(self) -> Any:
        return self._connection.get()

    def _find_cluster(self) -> Any:
        clusters = self.connection().system_service().clusters_service()
        found = clusters.list(search=f"name={self.cluster_name}")
        if not found:
            raise ConfigurationError(
                f"Cluster '{self.cluster_name}' not found on {self.description}"
            )
        return found[0]

    @_unavailable
    def resolve_cluster(self) -> Any | None:
        """The configured cluster, or None when no cluster filter is set."""
        if not self.cluster_specified:
            return None
        return self._cluster.get()

    @_unavailable
    def list_vms(self) -> list[OVirtVM]:
        vms_service = self.connection().system_service().vms_service()
        vms = vms_service.list()
        cluster = self.resolve_cluster()
        if cluster is not None:
            vms = [vm for vm in vms if vm.cluster is not None and vm.cluster.id == cluster.id]
        return [OVirtVM(vm.name, vms_service.vm_service(vm.id)) for vm in vms]

    def get_vm(self, name: str) -> OVirtVM | None:
        for vm in self.list_vms():
            if vm.name == name:
                return vm
        return None

    def vm_names(self) -> list[str]:
        return [vm.name for vm in self.list_vms()]

    def snapshot_names(self, vm_name: str) -> list[str]:
        vm = self.get_vm(vm_name)
        if vm is None:
            return []
        return [s.description for s in vm.snapshots()]

    def test_connection(self) -> tuple[bool, str]:
        """Open a throwaway connection and check the credentials are accepted."""
        try:
            conn = self._connect(**self._connection_kwargs())
            try:
                conn.test(raise_exception=True)
            finally:
                conn.close()
        except (sdk.Error, OSError) as e:
            return False, str(e)
        return True, "Test succeeded!"

    def close(self) -> None:
        self._cluster.reset()
        conn = self._connection.reset()
        if conn is not None:
            log.debug("Closing connection to {url}", url=self.url)
            conn.close()

    def __repr__(self) -> str:
        return f"OVirtHypervisor({self.description!r})"
