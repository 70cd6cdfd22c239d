"""
Reference Resolver — turn named references into cloud resource IDs.

Resolution is layered:

1. An explicit ID is trusted as-is (security groups excepted, see below).
2. Subnets and security groups are looked up in the cached network status
   recorded by earlier reconciliations.
3. Otherwise the live API is searched by exact name, page by page; the
   first exact match wins.

Security groups keep the cluster's cached entry ahead of an explicit ID,
and an explicit ID is confirmed with the API before it is used.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .errors import InvalidReferenceError, NotFoundError, call_provider
from .models import NetworkStatusCache, ResourceKind, ResourceReference
from .pagination import find_by_name
from .providers.base import VPCClient

logger = logging.getLogger(__name__)


class ReferenceResolver:
    """Resolves resource references against a VPC client.

    Args:
        client: VPC API client used for live lookups.
    """

    def __init__(self, client: VPCClient) -> None:
        self._client = client

    def resolve(
        self,
        ref: Optional[ResourceReference],
        kind: ResourceKind,
        cache: Optional[NetworkStatusCache] = None,
    ) -> str:
        """Resolve one reference to a cloud ID.

        Args:
            ref: The reference to resolve.
            kind: What sort of resource it points at.
            cache: Cached network status (consulted for subnets and
                security groups).

        Returns:
            The resource ID.

        Raises:
            InvalidReferenceError: If the reference has neither ID nor name.
            NotFoundError: If a name lookup finds nothing.
            ProviderError: If a live lookup fails.
        """
        if ref is None or not ref.is_set:
            raise InvalidReferenceError(f"{kind.value} reference has neither id nor name")

        if kind is ResourceKind.SECURITY_GROUP:
            return self._resolve_security_group(ref, cache)

        if ref.id:
            return ref.id

        if kind is ResourceKind.SUBNET:
            cached = cache.subnet_id(ref.name) if cache else None
            if cached:
                logger.debug("Subnet %s resolved from network status: %s", ref.name, cached)
                return cached
            subnet = call_provider(
                f"looking up subnet {ref.name}",
                self._client.get_subnet_by_name, ref.name,
            )
            if subnet is None:
                raise NotFoundError(kind.value, ref.name)
            return subnet.id

        if kind is ResourceKind.IMAGE:
            fetch = self._client.list_images
        elif kind is ResourceKind.SSH_KEY:
            fetch = self._client.list_keys
        else:
            raise InvalidReferenceError(f"cannot resolve {kind.value} references")

        found = call_provider(
            f"listing {kind.value}s", find_by_name, fetch, ref.name,
        )
        if found is None:
            raise NotFoundError(kind.value, ref.name)
        logger.debug("Resolved %s %s to %s", kind.value, ref.name, found.id)
        return found.id

    def _resolve_security_group(
        self,
        ref: ResourceReference,
        cache: Optional[NetworkStatusCache],
    ) -> str:
        cached = cache.security_group_id(ref.name) if cache else None
        if cached:
            logger.debug(
                "Security group %s resolved from network status: %s", ref.name, cached,
            )
            return cached

        if ref.id:
            group = call_provider(
                f"fetching security group {ref.id}",
                self._client.get_security_group, ref.id,
            )
            if group is None:
                raise NotFoundError(ResourceKind.SECURITY_GROUP.value, ref.id)
            return group.id

        group = call_provider(
            f"looking up security group {ref.name}",
            self._client.get_security_group_by_name, ref.name,
        )
        if group is None:
            raise NotFoundError(ResourceKind.SECURITY_GROUP.value, ref.name)
        return group.id

    # ------------------------------------------------------------------
    # Convenience wrappers used by the machine manager
    # ------------------------------------------------------------------

    def resolve_image(self, ref: Optional[ResourceReference]) -> str:
        return self.resolve(ref, ResourceKind.IMAGE)

    def resolve_ssh_keys(self, refs: List[ResourceReference]) -> List[str]:
        """Resolve every key; the first failure aborts the whole list."""
        return [self.resolve(ref, ResourceKind.SSH_KEY) for ref in refs]

    def resolve_subnet(
        self,
        ref: Optional[ResourceReference],
        cache: Optional[NetworkStatusCache] = None,
    ) -> str:
        return self.resolve(ref, ResourceKind.SUBNET, cache)

    def resolve_security_groups(
        self,
        refs: List[ResourceReference],
        cache: Optional[NetworkStatusCache] = None,
    ) -> List[str]:
        return [self.resolve(ref, ResourceKind.SECURITY_GROUP, cache) for ref in refs]
