"""
Load-Balancer Membership Manager — keep a machine in its API server pool.

Members are matched on target address only. A machine owns at most one
member of the load balancer's first pool, whatever port it was added on.
Pool membership is never touched unless the load balancer is ``active``.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .config import OrchestratorConfig
from .errors import LoadBalancerNotActiveError, NoPoolConfiguredError, call_provider
from .models import LoadBalancer, PoolMember
from .providers.base import VPCClient

logger = logging.getLogger(__name__)


def _member_for_address(members: List[PoolMember], address: str) -> Optional[PoolMember]:
    for member in members:
        if member.address == address:
            return member
    return None


class LoadBalancerManager:
    """Adds and removes machine members on a VPC load balancer.

    Args:
        client: VPC API client.
        config: Orchestrator configuration (defaults if omitted).
    """

    def __init__(
        self,
        client: VPCClient,
        config: Optional[OrchestratorConfig] = None,
    ) -> None:
        self._client = client
        self._config = config or OrchestratorConfig()

    def _get_load_balancer(self, load_balancer_id: str) -> LoadBalancer:
        return call_provider(
            f"fetching load balancer {load_balancer_id}",
            self._client.get_load_balancer, load_balancer_id,
        )

    def _list_members(self, load_balancer_id: str, pool_id: str) -> List[PoolMember]:
        members = call_provider(
            f"listing members of pool {pool_id}",
            self._client.list_load_balancer_pool_members, load_balancer_id, pool_id,
        )
        return list(members or [])

    def ensure_member(
        self,
        load_balancer_id: str,
        address: str,
        port: Optional[int] = None,
    ) -> PoolMember:
        """Make sure *address* is a member of the load balancer's first pool.

        If a member with the same address exists it is returned untouched,
        even when its port differs.

        Args:
            load_balancer_id: Load balancer to update.
            address: Machine address to add.
            port: Member port (defaults to the configured API server port).

        Returns:
            The existing or newly created member.

        Raises:
            ValueError: If *port* is outside 1..65535.
            ProviderError: If any API call fails.
            NoPoolConfiguredError: If the load balancer has no pools.
            LoadBalancerNotActiveError: If the load balancer is not active.
        """
        if port is None:
            port = self._config.api_server_port
        if not 1 <= port <= 65535:
            raise ValueError(f"member port must be between 1 and 65535, got {port}")
        lb = self._get_load_balancer(load_balancer_id)

        pool = lb.target_pool
        if pool is None:
            raise NoPoolConfiguredError(
                f"load balancer {load_balancer_id} has no pools"
            )
        if not lb.is_active:
            raise LoadBalancerNotActiveError(load_balancer_id, lb.provisioning_status)

        existing = _member_for_address(self._list_members(load_balancer_id, pool.id), address)
        if existing is not None:
            logger.debug(
                "Address %s already in pool %s (member %s)", address, pool.id, existing.id,
            )
            return existing

        logger.info(
            "Adding %s:%d to pool %s of load balancer %s",
            address, port, pool.id, load_balancer_id,
        )
        return call_provider(
            f"creating member {address}:{port} in pool {pool.id}",
            self._client.create_load_balancer_pool_member,
            load_balancer_id, pool.id, address, port,
        )

    def delete_member(self, load_balancer_id: str, instance_id: str) -> None:
        """Remove the instance's member from the load balancer's first pool.

        The instance address is read from the live instance record rather
        than from recorded status. Missing pools, an empty pool, or no
        member for the address all count as already removed.

        Args:
            load_balancer_id: Load balancer to update.
            instance_id: Instance whose member should go.

        Raises:
            ProviderError: If any API call fails.
            LoadBalancerNotActiveError: If the load balancer is not active.
        """
        lb = self._get_load_balancer(load_balancer_id)

        pool = lb.target_pool
        if pool is None:
            logger.debug("Load balancer %s has no pools, nothing to remove", load_balancer_id)
            return

        instance = call_provider(
            f"fetching instance {instance_id}",
            self._client.get_instance, instance_id,
        )

        if not lb.is_active:
            raise LoadBalancerNotActiveError(load_balancer_id, lb.provisioning_status)

        members = self._list_members(load_balancer_id, pool.id)
        if not members:
            logger.debug("Pool %s has no members, nothing to remove", pool.id)
            return

        member = None
        if instance.primary_address:
            member = _member_for_address(members, instance.primary_address)
        if member is None:
            logger.debug(
                "No member of pool %s for instance %s (%s)",
                pool.id, instance_id, instance.primary_address,
            )
            return

        logger.info(
            "Removing member %s (%s) from pool %s of load balancer %s",
            member.id, member.address, pool.id, load_balancer_id,
        )
        call_provider(
            f"deleting member {member.id} from pool {pool.id}",
            self._client.delete_load_balancer_pool_member, load_balancer_id, pool.id, member.id,
        )
