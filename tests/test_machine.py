"""Tests for the instance lifecycle manager.

The VPC client is a MagicMock and secrets live in memory, so these run
without any cloud account.
"""

from __future__ import annotations

from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

from skcluster.config import OrchestratorConfig, ProviderIDFormat
from skcluster.errors import (
    BootstrapDataUnavailableError,
    ConfigurationError,
    InvalidReferenceError,
    InvalidSpecError,
    NotFoundError,
    ProviderError,
)
from skcluster.machine import MachineManager
from skcluster.models import (
    InstancePrototype,
    MachinePhase,
    MachineSpec,
    MachineStatus,
    NamedResource,
    NetworkStatusCache,
    ObservedInstance,
    Page,
    ResourceStatus,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_spec(**overrides: Any) -> MachineSpec:
    """Build a machine spec with explicit image and key IDs."""
    data: Dict[str, Any] = {
        "name": "foo-machine",
        "profile": "bx2-4x16",
        "image": {"id": "foo-image-id"},
        "ssh_keys": [{"id": "foo-ssh-key-id"}],
        "network": {"subnet": "subnet-name"},
        "zone": "us-south-1",
        "bootstrap_data_secret": "foo-machine-bootstrap",
    }
    data.update(overrides)
    return MachineSpec.model_validate(data)


def _instance(name: str = "foo-machine", **kwargs: Any) -> ObservedInstance:
    return ObservedInstance(id=kwargs.pop("id", f"{name}-id"), name=name, **kwargs)


@pytest.fixture()
def manager(mock_vpc, secrets) -> MachineManager:
    mock_vpc.get_subnet_by_name.return_value = NamedResource(id="subnet-id", name="subnet-name")
    mock_vpc.create_instance.side_effect = lambda proto: _instance(proto.name, status="pending")
    return MachineManager(mock_vpc, secrets)


def _prototype(mock_vpc: MagicMock) -> InstancePrototype:
    return mock_vpc.create_instance.call_args[0][0]


# ---------------------------------------------------------------------------
# create_machine
# ---------------------------------------------------------------------------


class TestCreateMachine:
    """Tests for MachineManager.create_machine()."""

    def test_creates_machine(self, manager, mock_vpc):
        out = manager.create_machine(_make_spec())
        assert out.name == "foo-machine"
        mock_vpc.create_instance.assert_called_once()
        proto = _prototype(mock_vpc)
        assert proto.image_id == "foo-image-id"
        assert proto.key_ids == ["foo-ssh-key-id"]
        assert proto.subnet_id == "subnet-id"
        assert proto.profile == "bx2-4x16"
        assert proto.zone == "us-south-1"
        assert proto.user_data == "#cloud-config\n"

    def test_returns_existing_machine(self, manager, mock_vpc):
        existing = _instance("foo-machine", id="foo-instance-id", status="running")
        mock_vpc.list_instances.return_value = Page(items=[existing])
        out = manager.create_machine(_make_spec())
        assert out == existing
        mock_vpc.create_instance.assert_not_called()
        mock_vpc.get_subnet_by_name.assert_not_called()

    def test_existing_machine_skips_spec_validation(self, manager, mock_vpc):
        existing = _instance("foo-machine")
        mock_vpc.list_instances.return_value = Page(items=[existing])
        out = manager.create_machine(_make_spec(profile="", bootstrap_data_secret=None))
        assert out == existing

    def test_list_filters_by_name(self, manager, mock_vpc):
        manager.create_machine(_make_spec())
        assert mock_vpc.list_instances.call_args.kwargs["name"] == "foo-machine"

    def test_ignores_instances_with_other_names(self, manager, mock_vpc):
        mock_vpc.list_instances.return_value = Page(items=[_instance("foo-machine-1")])
        manager.create_machine(_make_spec())
        mock_vpc.create_instance.assert_called_once()

    def test_second_call_does_not_create_again(self, manager, mock_vpc):
        created = []

        def list_instances(name=None, start=None):
            return Page(items=list(created))

        def create_instance(proto):
            inst = _instance(proto.name, id="foo-instance-id")
            created.append(inst)
            return inst

        mock_vpc.list_instances.side_effect = list_instances
        mock_vpc.create_instance.side_effect = create_instance

        first = manager.create_machine(_make_spec())
        second = manager.create_machine(_make_spec())
        assert first == second
        assert mock_vpc.create_instance.call_count == 1

    def test_error_when_listing_instances(self, manager, mock_vpc):
        mock_vpc.list_instances.side_effect = RuntimeError("Error when listing instances")
        with pytest.raises(ProviderError, match="Error when listing instances"):
            manager.create_machine(_make_spec())

    def test_error_when_profile_empty(self, manager, mock_vpc):
        with pytest.raises(InvalidSpecError):
            manager.create_machine(_make_spec(profile=""))
        mock_vpc.create_instance.assert_not_called()

    def test_error_when_create_fails(self, manager, mock_vpc):
        failure = ProviderError("Failed when creating instance", status_code=500)
        mock_vpc.create_instance.side_effect = failure
        with pytest.raises(ProviderError) as exc_info:
            manager.create_machine(_make_spec())
        assert exc_info.value is failure

    def test_foreign_create_error_wrapped(self, manager, mock_vpc):
        mock_vpc.create_instance.side_effect = ConnectionError("reset")
        with pytest.raises(ProviderError, match="reset"):
            manager.create_machine(_make_spec())


class TestCreateMachineBootstrap:
    """Bootstrap data retrieval during create."""

    def test_error_when_secret_name_missing(self, manager):
        with pytest.raises(BootstrapDataUnavailableError):
            manager.create_machine(_make_spec(bootstrap_data_secret=None))

    def test_error_when_secret_missing(self, manager):
        with pytest.raises(BootstrapDataUnavailableError):
            manager.create_machine(_make_spec(bootstrap_data_secret="foo-secret-temp"))

    def test_error_when_value_key_missing(self, manager, secrets, mock_vpc):
        secrets.put("default", "foo-machine-bootstrap", {"other": b"x"})
        with pytest.raises(BootstrapDataUnavailableError, match="'value'"):
            manager.create_machine(_make_spec())
        mock_vpc.create_instance.assert_not_called()

    def test_secret_namespace_used(self, manager, secrets, mock_vpc):
        secrets.put("kube-system", "boot", {"value": b"ns-data"})
        manager.create_machine(_make_spec(namespace="kube-system", bootstrap_data_secret="boot"))
        assert _prototype(mock_vpc).user_data == "ns-data"


class TestCreateMachineReferences:
    """Image, key and network resolution during create."""

    def test_scenario_names_resolved(self, manager, mock_vpc):
        mock_vpc.list_images.return_value = Page(items=[NamedResource(id="img-1", name="ubuntu")])
        mock_vpc.list_keys.return_value = Page(items=[NamedResource(id="key-1", name="k1")])
        mock_vpc.get_subnet_by_name.return_value = NamedResource(id="subnet-1")
        manager.create_machine(_make_spec(image={"name": "ubuntu"}, ssh_keys=[{"name": "k1"}]))
        proto = _prototype(mock_vpc)
        assert proto.image_id == "img-1"
        assert proto.key_ids == ["key-1"]
        assert proto.subnet_id == "subnet-1"

    def test_image_id_skips_listing(self, manager, mock_vpc):
        manager.create_machine(_make_spec(image={"id": "foo-image-id", "name": "foo-image"}))
        mock_vpc.list_images.assert_not_called()
        assert _prototype(mock_vpc).image_id == "foo-image-id"

    def test_key_id_takes_precedence(self, manager, mock_vpc):
        manager.create_machine(_make_spec(ssh_keys=[{"id": "foo-ssh-key-id", "name": "foo-ssh-key"}]))
        mock_vpc.list_keys.assert_not_called()

    def test_error_when_image_empty(self, manager, mock_vpc):
        with pytest.raises(InvalidReferenceError):
            manager.create_machine(_make_spec(image=None))
        mock_vpc.create_instance.assert_not_called()

    def test_error_when_image_not_found(self, manager, mock_vpc):
        mock_vpc.list_images.return_value = Page(items=[NamedResource(id="x", name="foo-image-1")])
        with pytest.raises(NotFoundError):
            manager.create_machine(_make_spec(image={"name": "foo-image"}))

    def test_error_when_listing_keys(self, manager, mock_vpc):
        mock_vpc.list_keys.side_effect = RuntimeError("Failed when listing keys")
        with pytest.raises(ProviderError):
            manager.create_machine(_make_spec(ssh_keys=[{"name": "foo-ssh-key"}]))
        mock_vpc.create_instance.assert_not_called()

    def test_error_when_key_reference_empty(self, manager, mock_vpc):
        with pytest.raises(InvalidReferenceError):
            manager.create_machine(_make_spec(ssh_keys=[{}]))
        mock_vpc.create_instance.assert_not_called()

    def test_error_when_key_not_found(self, manager, mock_vpc):
        mock_vpc.list_keys.return_value = Page(items=[NamedResource(id="k", name="foo-ssh-key-1")])
        with pytest.raises(NotFoundError):
            manager.create_machine(_make_spec(ssh_keys=[{"id": "ok"}, {"name": "foo-ssh-key"}]))
        mock_vpc.create_instance.assert_not_called()

    def test_uses_network_status(self, manager, mock_vpc):
        network = NetworkStatusCache(
            vpc=ResourceStatus(id="network-vpc-id"),
            resource_group=ResourceStatus(id="resource-group-id"),
            subnets={"subnet-name": ResourceStatus(id="cached-subnet-id")},
            security_groups={"security-group-1": ResourceStatus(id="security-group-id-1")},
        )
        spec = _make_spec(network={"subnet": "subnet-name", "security_groups": ["security-group-1"]})
        manager.create_machine(spec, network)
        proto = _prototype(mock_vpc)
        assert proto.subnet_id == "cached-subnet-id"
        assert proto.security_group_ids == ["security-group-id-1"]
        assert proto.vpc_id == "network-vpc-id"
        assert proto.resource_group_id == "resource-group-id"
        mock_vpc.get_subnet_by_name.assert_not_called()
        mock_vpc.get_security_group_by_name.assert_not_called()

    def test_security_group_by_id(self, manager, mock_vpc):
        mock_vpc.get_security_group.return_value = NamedResource(id="security-group-id-1")
        spec = _make_spec(network={"subnet": "subnet-name", "security_groups": [{"id": "security-group-id-1"}]})
        manager.create_machine(spec)
        assert _prototype(mock_vpc).security_group_ids == ["security-group-id-1"]


# ---------------------------------------------------------------------------
# delete_machine
# ---------------------------------------------------------------------------


class TestDeleteMachine:
    """Tests for MachineManager.delete_machine()."""

    def test_deletes_recorded_instance(self, manager, mock_vpc):
        manager.delete_machine(MachineStatus(instance_id="foo-instance-id"))
        mock_vpc.delete_instance.assert_called_once_with("foo-instance-id")

    def test_error_when_delete_fails(self, manager, mock_vpc):
        mock_vpc.delete_instance.side_effect = RuntimeError("Failed instance deletion")
        with pytest.raises(ProviderError, match="Failed instance deletion"):
            manager.delete_machine(MachineStatus(instance_id="foo-instance-id"))

    def test_empty_instance_id(self, manager, mock_vpc):
        manager.delete_machine(MachineStatus(instance_id=""))
        manager.delete_machine(MachineStatus())
        mock_vpc.delete_instance.assert_not_called()


# ---------------------------------------------------------------------------
# Provider IDs and phases
# ---------------------------------------------------------------------------


class TestProviderID:
    """Tests for provider ID formatting."""

    def test_v1_format_rejected(self, mock_vpc, secrets):
        config = OrchestratorConfig(provider_id_format=ProviderIDFormat.V1)
        manager = MachineManager(mock_vpc, secrets, config, account_id_lookup=lambda: "acct")
        with pytest.raises(ConfigurationError):
            manager.provider_id("foo-cluster", "foo-provider-id")

    def test_v2_format(self, mock_vpc, secrets):
        manager = MachineManager(mock_vpc, secrets, account_id_lookup=lambda: "dummy-account-id")
        assert manager.provider_id("foo-cluster", "foo-provider-id") == (
            "ibm://dummy-account-id///foo-cluster/foo-provider-id"
        )

    def test_account_lookup_error(self, mock_vpc, secrets):
        def fail():
            raise RuntimeError("error getting accountID")

        manager = MachineManager(mock_vpc, secrets, account_id_lookup=fail)
        with pytest.raises(ProviderError, match="error getting accountID"):
            manager.provider_id("foo-cluster", "foo-provider-id")

    def test_account_from_config(self, mock_vpc, secrets):
        manager = MachineManager(mock_vpc, secrets, OrchestratorConfig(account_id="cfg-acct"))
        assert manager.provider_id("c", "i") == "ibm://cfg-acct///c/i"

    def test_no_account_id(self, mock_vpc, secrets):
        manager = MachineManager(mock_vpc, secrets)
        with pytest.raises(ConfigurationError):
            manager.provider_id("c", "i")

    def test_set_provider_id_returns_copy(self, mock_vpc, secrets):
        manager = MachineManager(mock_vpc, secrets, account_id_lookup=lambda: "acct")
        status = MachineStatus()
        updated = manager.set_provider_id(status, "c", "inst-1")
        assert updated.instance_id == "inst-1"
        assert updated.provider_id == "ibm://acct///c/inst-1"
        assert status.provider_id is None


class TestMachinePhase:
    """Tests for MachineManager.phase()."""

    def test_not_created(self):
        assert MachineManager.phase(MachineStatus()) is MachinePhase.NOT_CREATED

    def test_deleted_when_recorded_instance_gone(self):
        status = MachineStatus(instance_id="i-1")
        assert MachineManager.phase(status) is MachinePhase.DELETED

    @pytest.mark.parametrize("state, phase", [
        ("pending", MachinePhase.CREATING),
        ("starting", MachinePhase.CREATING),
        ("running", MachinePhase.PROVISIONED),
        ("stopped", MachinePhase.PROVISIONED),
        ("deleting", MachinePhase.DELETING),
    ])
    def test_live_states(self, state, phase):
        assert MachineManager.phase(MachineStatus(), _instance(status=state)) is phase
