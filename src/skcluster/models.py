"""
Pydantic models for machine specs, cached status, and cloud records.

Desired state (MachineSpec) comes from the cluster API objects, observed
state (NetworkStatusCache, MachineStatus) from earlier reconciliations.
Cloud records (ObservedInstance, LoadBalancer, PoolMember, ...) are what
the VPC client hands back. None of these are kept between calls.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")

LOAD_BALANCER_ACTIVE = "active"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ResourceKind(str, Enum):
    """Kinds of cloud resources a reference can point at."""

    IMAGE = "image"
    SSH_KEY = "ssh_key"
    SUBNET = "subnet"
    SECURITY_GROUP = "security_group"


class MachinePhase(str, Enum):
    """Lifecycle phase of a single machine."""

    NOT_CREATED = "not_created"
    CREATING = "creating"
    PROVISIONED = "provisioned"
    DELETING = "deleting"
    DELETED = "deleted"


# ---------------------------------------------------------------------------
# Desired state
# ---------------------------------------------------------------------------

class ResourceReference(BaseModel):
    """Points at a cloud resource by ID, by name, or both.

    When both are set the ID wins and the name is ignored.
    """

    id: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_set(self) -> bool:
        """True when the reference carries an ID or a name."""
        return bool(self.id or self.name)

    def __str__(self) -> str:
        return self.id or self.name or "<empty>"


def _coerce_reference(value: Any) -> Any:
    """Read a bare string as a by-name reference."""
    if isinstance(value, str):
        return {"name": value}
    return value


class NetworkPlacement(BaseModel):
    """Where the machine's primary network interface lands."""

    subnet: ResourceReference = Field(default_factory=ResourceReference)
    security_groups: List[ResourceReference] = Field(default_factory=list)

    @field_validator("subnet", mode="before")
    @classmethod
    def _subnet_from_name(cls, v: Any) -> Any:
        return _coerce_reference(v)

    @field_validator("security_groups", mode="before")
    @classmethod
    def _security_groups_from_names(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_coerce_reference(item) for item in v]
        return v


class MachineSpec(BaseModel):
    """Desired state of one VPC machine.

    Required fields are checked when the machine is created rather than
    here, so that an incomplete spec still finds an instance that already
    exists.
    """

    name: str = Field(description="Instance name, unique per machine")
    profile: str = Field(default="", description="Instance profile (e.g. 'bx2-4x16')")
    image: Optional[ResourceReference] = None
    ssh_keys: List[ResourceReference] = Field(default_factory=list)
    network: NetworkPlacement = Field(default_factory=NetworkPlacement)
    zone: Optional[str] = Field(default=None, description="Availability zone")
    namespace: str = Field(default="default", description="Namespace of the bootstrap secret")
    bootstrap_data_secret: Optional[str] = Field(
        default=None,
        description="Name of the secret holding the bootstrap user data",
    )

    @field_validator("image", mode="before")
    @classmethod
    def _image_from_name(cls, v: Any) -> Any:
        return _coerce_reference(v)

    @field_validator("ssh_keys", mode="before")
    @classmethod
    def _keys_from_names(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_coerce_reference(item) for item in v]
        return v


# ---------------------------------------------------------------------------
# Observed state supplied by the caller
# ---------------------------------------------------------------------------

class ResourceStatus(BaseModel):
    """A resource already resolved by an earlier reconciliation."""

    id: str
    name: Optional[str] = None
    ready: bool = False


class NetworkStatusCache(BaseModel):
    """Cluster network status recorded by earlier reconciliations.

    Subnets and security groups are keyed by name.
    """

    vpc: Optional[ResourceStatus] = None
    resource_group: Optional[ResourceStatus] = None
    subnets: Dict[str, ResourceStatus] = Field(default_factory=dict)
    security_groups: Dict[str, ResourceStatus] = Field(default_factory=dict)

    def subnet_id(self, name: Optional[str]) -> Optional[str]:
        status = self.subnets.get(name) if name else None
        return status.id if status else None

    def security_group_id(self, name: Optional[str]) -> Optional[str]:
        status = self.security_groups.get(name) if name else None
        return status.id if status else None

    @property
    def vpc_id(self) -> Optional[str]:
        return self.vpc.id if self.vpc else None

    @property
    def resource_group_id(self) -> Optional[str]:
        return self.resource_group.id if self.resource_group else None


class MachineStatus(BaseModel):
    """What the caller recorded about a machine so far."""

    instance_id: Optional[str] = None
    addresses: List[str] = Field(default_factory=list)
    provider_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Cloud records
# ---------------------------------------------------------------------------

class NamedResource(BaseModel):
    """Any cloud resource returned by a listing call (image, key, ...)."""

    id: str
    name: Optional[str] = None


class ObservedInstance(BaseModel):
    """A VPC instance as the cloud reports it."""

    id: str
    name: str
    status: Optional[str] = None
    primary_address: Optional[str] = None
    zone: Optional[str] = None
    profile: Optional[str] = None


class InstancePrototype(BaseModel):
    """A fully resolved create-instance request."""

    name: str
    profile: str
    image_id: str
    key_ids: List[str] = Field(default_factory=list)
    subnet_id: Optional[str] = None
    security_group_ids: List[str] = Field(default_factory=list)
    zone: Optional[str] = None
    vpc_id: Optional[str] = None
    resource_group_id: Optional[str] = None
    user_data: Optional[str] = None


class PoolReference(BaseModel):
    """A pool attached to a load balancer."""

    id: str
    name: Optional[str] = None


class LoadBalancer(BaseModel):
    """A VPC load balancer and its pools."""

    id: str
    name: Optional[str] = None
    provisioning_status: Optional[str] = None
    pools: List[PoolReference] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        """Pool membership may only change while this is True."""
        return self.provisioning_status == LOAD_BALANCER_ACTIVE

    @property
    def target_pool(self) -> Optional[PoolReference]:
        """The first pool, which receives machine members."""
        return self.pools[0] if self.pools else None


class PoolMember(BaseModel):
    """A member of a load balancer pool."""

    id: str
    address: Optional[str] = None
    port: Optional[int] = None
    health: Optional[str] = None


class Page(BaseModel, Generic[T]):
    """One page of a cursor-paginated listing.

    ``next_start`` is the cursor for the following page, or None when
    this is the last one.
    """

    items: List[T] = Field(default_factory=list)
    next_start: Optional[str] = None
