"""
Collaborator interfaces the orchestrator drives.

The managers only ever talk to a VPCClient and a SecretStore. Adapters
for a concrete cloud or secret backend subclass these and fill in the
methods; anything they raise that is not a ClusterError is wrapped in a
ProviderError by the caller.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from ..models import (
    InstancePrototype,
    LoadBalancer,
    NamedResource,
    ObservedInstance,
    Page,
    PoolMember,
)


class VPCClient:
    """Abstract VPC API client.

    Listing methods take a ``start`` cursor and return one Page; walk
    them with :mod:`skcluster.pagination`.
    """

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def list_instances(
        self, name: Optional[str] = None, start: Optional[str] = None,
    ) -> Page:
        """List instances, optionally filtered to an exact name.

        Args:
            name: Only return instances with this name.
            start: Cursor of the page to fetch.

        Returns:
            Page of ObservedInstance.
        """
        raise NotImplementedError

    def create_instance(self, prototype: InstancePrototype) -> ObservedInstance:
        """Submit a create-instance request.

        Args:
            prototype: Fully resolved request.

        Returns:
            The instance record the cloud accepted.
        """
        raise NotImplementedError

    def get_instance(self, instance_id: str) -> ObservedInstance:
        """Fetch one instance by ID."""
        raise NotImplementedError

    def delete_instance(self, instance_id: str) -> None:
        """Request deletion of an instance. Does not wait for it to go away."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Reference lookups
    # ------------------------------------------------------------------

    def list_images(self, start: Optional[str] = None) -> Page:
        """List images visible to the account (Page of NamedResource)."""
        raise NotImplementedError

    def list_keys(self, start: Optional[str] = None) -> Page:
        """List SSH keys (Page of NamedResource)."""
        raise NotImplementedError

    def get_subnet_by_name(self, name: str) -> Optional[NamedResource]:
        """Find a subnet by exact name, or None."""
        raise NotImplementedError

    def get_security_group_by_name(self, name: str) -> Optional[NamedResource]:
        """Find a security group by exact name, or None."""
        raise NotImplementedError

    def get_security_group(self, security_group_id: str) -> NamedResource:
        """Fetch a security group by ID."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Load balancers
    # ------------------------------------------------------------------

    def get_load_balancer(self, load_balancer_id: str) -> LoadBalancer:
        """Fetch a load balancer with its pools."""
        raise NotImplementedError

    def list_load_balancer_pool_members(
        self, load_balancer_id: str, pool_id: str,
    ) -> List[PoolMember]:
        """List the members of one pool.

        The pool members API is not paginated, so this returns a plain list
        rather than a Page.
        """
        raise NotImplementedError

    def create_load_balancer_pool_member(
        self, load_balancer_id: str, pool_id: str, address: str, port: int,
    ) -> PoolMember:
        """Add ``address:port`` to a pool.

        Args:
            load_balancer_id: Owning load balancer.
            pool_id: Target pool.
            address: Member target address.
            port: Member port.

        Returns:
            The created member.
        """
        raise NotImplementedError

    def delete_load_balancer_pool_member(
        self, load_balancer_id: str, pool_id: str, member_id: str,
    ) -> None:
        """Remove one member from a pool."""
        raise NotImplementedError


class SecretStore:
    """Abstract store for bootstrap data secrets."""

    def get_secret(self, namespace: str, name: str) -> Dict[str, bytes]:
        """Fetch a secret's data.

        Args:
            namespace: Secret namespace.
            name: Secret name.

        Returns:
            Mapping of data key to raw bytes.

        Raises:
            KeyError: If the secret does not exist.
        """
        raise NotImplementedError

    def bootstrap_data_key(self) -> str:
        """Key inside the bootstrap secret that holds the user data."""
        return "value"
