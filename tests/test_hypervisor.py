from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import ovirtsdk4 as sdk
import ovirtsdk4.types as otypes
import pytest

from ovirtagent.core.exceptions import ConfigurationError, HypervisorUnavailableError
from ovirtagent.providers.ovirt import OVirtHypervisor, OVirtVM
from ovirtagent.types import Snapshot, VmState


def _vm(vm_id: str, name: str, cluster_id: str) -> SimpleNamespace:
    return SimpleNamespace(id=vm_id, name=name, cluster=SimpleNamespace(id=cluster_id))


@pytest.fixture
def engine():
    connection = MagicMock()
    system = connection.system_service.return_value
    system.vms_service.return_value.list.return_value = [
        _vm("1", "builder01", "c1"),
        _vm("2", "builder02", "c1"),
        _vm("3", "elsewhere", "c2"),
    ]
    system.clusters_service.return_value.list.return_value = [SimpleNamespace(id="c1", name="Default")]
    return connection


def _hypervisor(engine, **kwargs) -> tuple[OVirtHypervisor, MagicMock]:
    connect = MagicMock(return_value=engine)
    params = {"name": " lab ", "url": " https://engine/ovirt-engine/api ", "username": "admin@internal", "password": "pw"}
    params.update(kwargs)
    return OVirtHypervisor(**params, connect=connect), connect


class TestOVirtHypervisor:
    def test_description_is_trimmed_name_and_url(self, engine):
        hypervisor, _ = _hypervisor(engine)
        assert hypervisor.description == "lab https://engine/ovirt-engine/api"

    def test_lists_all_vms_without_cluster(self, engine):
        hypervisor, _ = _hypervisor(engine)
        assert hypervisor.vm_names() == ["builder01", "builder02", "elsewhere"]

    def test_cluster_filters_vms(self, engine):
        hypervisor, _ = _hypervisor(engine, cluster="Default")
        assert hypervisor.vm_names() == ["builder01", "builder02"]
        engine.system_service.return_value.clusters_service.return_value.list.assert_called_once_with(
            search="name=Default"
        )

    def test_missing_cluster_is_a_configuration_error(self, engine):
        engine.system_service.return_value.clusters_service.return_value.list.return_value = []
        hypervisor, _ = _hypervisor(engine, cluster="Nope")
        with pytest.raises(ConfigurationError, match="Nope"):
            hypervisor.list_vms()

    def test_get_vm_unknown_returns_none(self, engine):
        hypervisor, _ = _hypervisor(engine)
        assert hypervisor.get_vm("missing") is None
        assert hypervisor.get_vm("builder02").name == "builder02"

    def test_connection_is_opened_once(self, engine):
        hypervisor, connect = _hypervisor(engine, ca_file="/etc/pki/ca.pem")
        hypervisor.vm_names()
        hypervisor.vm_names()
        connect.assert_called_once_with(
            url="https://engine/ovirt-engine/api",
            username="admin@internal",
            password="pw",
            ca_file="/etc/pki/ca.pem",
        )

    def test_close_drops_the_cached_connection(self, engine):
        hypervisor, connect = _hypervisor(engine)
        hypervisor.vm_names()
        hypervisor.close()
        engine.close.assert_called_once()
        hypervisor.vm_names()
        assert connect.call_count == 2

    def test_engine_errors_become_unavailable(self, engine):
        hypervisor, connect = _hypervisor(engine)
        connect.side_effect = sdk.Error("connection refused")
        with pytest.raises(HypervisorUnavailableError, match="connection refused"):
            hypervisor.list_vms()

    def test_snapshot_names_of_missing_vm_is_empty(self, engine):
        hypervisor, _ = _hypervisor(engine)
        assert hypervisor.snapshot_names("missing") == []

    def test_connection_test_success(self, engine):
        hypervisor, _ = _hypervisor(engine)
        assert hypervisor.test_connection() == (True, "Test succeeded!")
        engine.test.assert_called_once_with(raise_exception=True)
        engine.close.assert_called_once()

    def test_connection_test_failure(self, engine):
        hypervisor, _ = _hypervisor(engine)
        engine.test.side_effect = sdk.AuthError("bad credentials")
        ok, message = hypervisor.test_connection()
        assert ok is False
        assert "bad credentials" in message


class TestOVirtVM:
    def test_state_is_parsed_from_engine_status(self):
        service = MagicMock()
        service.get.return_value = SimpleNamespace(status=otypes.VmStatus.IMAGE_LOCKED)
        assert OVirtVM("vm", service).state() is VmState.IMAGE_LOCKED

        service.get.return_value = SimpleNamespace(status=otypes.VmStatus.SUSPENDED)
        assert OVirtVM("vm", service).state() is VmState.OTHER

    def test_addresses_in_reported_order(self):
        service = MagicMock()
        service.reported_devices_service.return_value.list.return_value = [
            SimpleNamespace(ips=None),
            SimpleNamespace(ips=[SimpleNamespace(address="10.0.0.5"), SimpleNamespace(address="fe80::1")]),
        ]
        assert OVirtVM("vm", service).addresses() == ["10.0.0.5", "fe80::1"]

    def test_snapshots_are_listed_fresh(self):
        service = MagicMock()
        listing = service.snapshots_service.return_value.list
        listing.return_value = [SimpleNamespace(id="s1", description="clean")]
        vm = OVirtVM("vm", service)
        assert vm.snapshots() == [Snapshot("s1", "clean")]
        vm.snapshots()
        assert listing.call_count == 2

    def test_revert_previews_then_commits(self):
        service = MagicMock()
        OVirtVM("vm", service).revert_to(Snapshot("s1", "clean"))
        names = [c[0] for c in service.method_calls]
        assert names == ["preview_snapshot", "commit_snapshot"]
        preview = service.preview_snapshot.call_args.kwargs
        assert preview["snapshot"].id == "s1"
        assert preview["restore_memory"] is False

    def test_engine_errors_become_unavailable(self):
        service = MagicMock()
        service.start.side_effect = sdk.Error("timeout")
        with pytest.raises(HypervisorUnavailableError):
            OVirtVM("vm", service).start()
