"""
Instance Lifecycle Manager — create and delete VPC machines idempotently.

The reconciler calls create_machine() on every tick until the machine
exists, and delete_machine() until it is gone. Neither waits for the
cloud to finish: "created" means the request was accepted, and the next
tick finds the instance by name and returns it unchanged.

Lifecycle per machine:
    NotCreated -> Creating -> Provisioned -> Deleting -> Deleted
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .config import OrchestratorConfig, ProviderIDFormat
from .errors import (
    BootstrapDataUnavailableError,
    ConfigurationError,
    InvalidSpecError,
    call_provider,
)
from .models import (
    InstancePrototype,
    MachinePhase,
    MachineSpec,
    MachineStatus,
    NetworkStatusCache,
    ObservedInstance,
)
from .pagination import iter_items
from .providers.base import SecretStore, VPCClient
from .resolver import ReferenceResolver

logger = logging.getLogger(__name__)

_CREATING_STATES = frozenset({"pending", "starting"})
_DELETING_STATES = frozenset({"deleting"})


class MachineManager:
    """Drives one VPC instance per machine spec.

    Args:
        client: VPC API client.
        secrets: Store holding the bootstrap data secrets.
        config: Orchestrator configuration (defaults if omitted).
        account_id_lookup: Returns the cloud account ID for v2 provider
            IDs. Falls back to ``config.account_id`` when omitted.
    """

    def __init__(
        self,
        client: VPCClient,
        secrets: SecretStore,
        config: Optional[OrchestratorConfig] = None,
        account_id_lookup: Optional[Callable[[], str]] = None,
    ) -> None:
        self._client = client
        self._secrets = secrets
        self._config = config or OrchestratorConfig()
        self._account_id_lookup = account_id_lookup
        self._resolver = ReferenceResolver(client)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_machine(
        self,
        spec: MachineSpec,
        network: Optional[NetworkStatusCache] = None,
    ) -> ObservedInstance:
        """Create the instance for *spec*, or return it if it already exists.

        An existing instance is returned as-is; its configuration is not
        compared against *spec*.

        Args:
            spec: Desired machine state.
            network: Cluster network status from earlier reconciliations.

        Returns:
            The existing or newly created instance.

        Raises:
            ProviderError: If listing or creating instances fails.
            InvalidSpecError: If the profile is empty.
            BootstrapDataUnavailableError: If the bootstrap data cannot be read.
            InvalidReferenceError: If the image or a key has neither ID nor name.
            NotFoundError: If a referenced resource does not exist.
        """
        existing = self._find_instance(spec.name)
        if existing is not None:
            logger.debug("Instance %s already exists (%s)", spec.name, existing.id)
            return existing

        if not spec.profile:
            raise InvalidSpecError(f"machine {spec.name} has no profile")

        user_data = self._bootstrap_data(spec)

        image_id = self._resolver.resolve_image(spec.image)
        key_ids = self._resolver.resolve_ssh_keys(spec.ssh_keys)
        subnet_id = self._resolver.resolve_subnet(spec.network.subnet, network)
        security_group_ids = self._resolver.resolve_security_groups(
            spec.network.security_groups, network,
        )

        prototype = InstancePrototype(
            name=spec.name,
            profile=spec.profile,
            image_id=image_id,
            key_ids=key_ids,
            subnet_id=subnet_id,
            security_group_ids=security_group_ids,
            zone=spec.zone,
            vpc_id=network.vpc_id if network else None,
            resource_group_id=network.resource_group_id if network else None,
            user_data=user_data,
        )

        logger.info(
            "Creating instance %s (profile=%s, image=%s, subnet=%s)",
            spec.name, spec.profile, image_id, subnet_id,
        )
        return call_provider(
            f"creating instance {spec.name}",
            self._client.create_instance, prototype,
        )

    def _find_instance(self, name: str) -> Optional[ObservedInstance]:
        def fetch(start: Optional[str]):
            return self._client.list_instances(name=name, start=start)

        def first_match() -> Optional[ObservedInstance]:
            for instance in iter_items(fetch):
                if instance.name == name:
                    return instance
            return None

        return call_provider(f"listing instances named {name}", first_match)

    def _bootstrap_data(self, spec: MachineSpec) -> str:
        """Read the bootstrap user data named by *spec*.

        Raises:
            BootstrapDataUnavailableError: If the secret name is unset, the
                secret cannot be fetched, or it lacks the data key.
        """
        if not spec.bootstrap_data_secret:
            raise BootstrapDataUnavailableError(
                f"machine {spec.name} has no bootstrap data secret"
            )

        try:
            data = self._secrets.get_secret(spec.namespace, spec.bootstrap_data_secret)
        except Exception as exc:
            raise BootstrapDataUnavailableError(
                f"failed to retrieve bootstrap data secret "
                f"{spec.namespace}/{spec.bootstrap_data_secret}: {exc}"
            ) from exc

        key = self._secrets.bootstrap_data_key()
        value = data.get(key)
        if value is None:
            raise BootstrapDataUnavailableError(
                f"bootstrap data secret {spec.namespace}/{spec.bootstrap_data_secret} "
                f"has no '{key}' key"
            )
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_machine(self, status: MachineStatus) -> None:
        """Request deletion of the recorded instance.

        Succeeds without a call when no instance ID was ever recorded.

        Args:
            status: Recorded machine status.

        Raises:
            ProviderError: If the delete request fails.
        """
        if not status.instance_id:
            logger.debug("No instance recorded, nothing to delete")
            return

        logger.info("Deleting instance %s", status.instance_id)
        call_provider(
            f"deleting instance {status.instance_id}",
            self._client.delete_instance, status.instance_id,
        )

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------

    def provider_id(self, cluster_name: str, instance_id: str) -> str:
        """Format the node provider ID for an instance.

        Args:
            cluster_name: Owning cluster.
            instance_id: Cloud instance ID.

        Returns:
            ``ibm://<account-id>///<cluster-name>/<instance-id>``

        Raises:
            ConfigurationError: If the configured format is not v2, or no
                account ID is available.
            ProviderError: If the account ID lookup fails.
        """
        if self._config.provider_id_format is not ProviderIDFormat.V2:
            raise ConfigurationError(
                f"invalid value for provider ID format: "
                f"{self._config.provider_id_format.value}"
            )

        if self._account_id_lookup is not None:
            account_id = call_provider("looking up account ID", self._account_id_lookup)
        else:
            account_id = self._config.account_id
        if not account_id:
            raise ConfigurationError("no account ID available for provider ID")

        return f"ibm://{account_id}///{cluster_name}/{instance_id}"

    def set_provider_id(
        self, status: MachineStatus, cluster_name: str, instance_id: str,
    ) -> MachineStatus:
        """Return a copy of *status* carrying the instance and provider IDs."""
        return status.model_copy(update={
            "instance_id": instance_id,
            "provider_id": self.provider_id(cluster_name, instance_id),
        })

    @staticmethod
    def phase(
        status: MachineStatus, instance: Optional[ObservedInstance] = None,
    ) -> MachinePhase:
        """Work out where a machine sits in its lifecycle.

        Args:
            status: Recorded machine status.
            instance: Live instance record, if one was found.

        Returns:
            The matching MachinePhase.
        """
        if instance is None:
            if status.instance_id:
                return MachinePhase.DELETED
            return MachinePhase.NOT_CREATED
        if instance.status in _DELETING_STATES:
            return MachinePhase.DELETING
        if instance.status in _CREATING_STATES:
            return MachinePhase.CREATING
        return MachinePhase.PROVISIONED
