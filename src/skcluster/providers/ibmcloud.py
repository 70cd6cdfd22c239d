"""
IBM Cloud VPC adapter — the VPCClient over the VPC REST API.

One ``_api_call`` helper, one method per collaborator
call, and small parsers that turn API JSON into skcluster models.
Session setup is someone else's job; the adapter takes a ready IAM
bearer token (or IBMCLOUD_IAM_TOKEN from the environment).

Listing endpoints return ``next.href`` links; the ``start`` query value
of that link is the cursor handed back in Page.next_start.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import requests

from ..config import OrchestratorConfig
from ..errors import ProviderError
from ..models import (
    InstancePrototype,
    LoadBalancer,
    NamedResource,
    ObservedInstance,
    Page,
    PoolMember,
    PoolReference,
)
from ..pagination import find_by_name
from .base import VPCClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response parsers
# ---------------------------------------------------------------------------

def _next_start(body: Dict[str, Any]) -> Optional[str]:
    """Extract the ``start`` cursor from a collection's ``next.href``."""
    href = (body.get("next") or {}).get("href")
    if not href:
        return None
    values = parse_qs(urlparse(href).query).get("start")
    return values[0] if values else None


def _to_named(data: Dict[str, Any]) -> NamedResource:
    return NamedResource(id=data["id"], name=data.get("name"))


def _to_instance(data: Dict[str, Any]) -> ObservedInstance:
    nic = data.get("primary_network_interface") or {}
    address = (nic.get("primary_ip") or {}).get("address")
    return ObservedInstance(
        id=data["id"],
        name=data.get("name", ""),
        status=data.get("status"),
        primary_address=address,
        zone=(data.get("zone") or {}).get("name"),
        profile=(data.get("profile") or {}).get("name"),
    )


def _to_load_balancer(data: Dict[str, Any]) -> LoadBalancer:
    return LoadBalancer(
        id=data["id"],
        name=data.get("name"),
        provisioning_status=data.get("provisioning_status"),
        pools=[
            PoolReference(id=p["id"], name=p.get("name"))
            for p in data.get("pools") or []
        ],
    )


def _to_member(data: Dict[str, Any]) -> PoolMember:
    return PoolMember(
        id=data["id"],
        address=(data.get("target") or {}).get("address"),
        port=data.get("port"),
        health=data.get("health"),
    )


def _instance_body(prototype: InstancePrototype) -> Dict[str, Any]:
    """Build the POST /instances request body."""
    nic: Dict[str, Any] = {"subnet": {"id": prototype.subnet_id}}
    if prototype.security_group_ids:
        nic["security_groups"] = [{"id": sg} for sg in prototype.security_group_ids]

    body: Dict[str, Any] = {
        "name": prototype.name,
        "profile": {"name": prototype.profile},
        "image": {"id": prototype.image_id},
        "keys": [{"id": key} for key in prototype.key_ids],
        "primary_network_interface": nic,
    }
    if prototype.zone:
        body["zone"] = {"name": prototype.zone}
    if prototype.vpc_id:
        body["vpc"] = {"id": prototype.vpc_id}
    if prototype.resource_group_id:
        body["resource_group"] = {"id": prototype.resource_group_id}
    if prototype.user_data:
        body["user_data"] = prototype.user_data
    return body


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class IBMCloudVPCClient(VPCClient):
    """VPC API client for IBM Cloud.

    Args:
        config: Orchestrator configuration (region and API version).
        token: IAM bearer token. Falls back to IBMCLOUD_IAM_TOKEN.
        endpoint: Override the regional API endpoint.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        token: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: int = 30,
    ) -> None:
        self._config = config or OrchestratorConfig()
        self._token = token or os.environ.get("IBMCLOUD_IAM_TOKEN", "")
        self._endpoint = (
            endpoint or f"https://{self._config.region}.iaas.cloud.ibm.com/v1"
        ).rstrip("/")
        self._timeout = timeout

    def _api_call(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated VPC API call.

        Args:
            method: HTTP method.
            path: Path below the API root (e.g. '/instances').
            params: Extra query parameters.
            data: JSON request body.

        Returns:
            Parsed JSON response ({} for empty replies).

        Raises:
            ProviderError: On transport failure or an HTTP error reply.
        """
        if not self._token:
            raise ProviderError("IBM Cloud VPC not configured. Set IBMCLOUD_IAM_TOKEN.")

        query: Dict[str, Any] = {"version": self._config.api_version, "generation": 2}
        query.update({k: v for k, v in (params or {}).items() if v is not None})
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }

        try:
            resp = requests.request(
                method, f"{self._endpoint}{path}",
                headers=headers, params=query, json=data, timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(f"VPC API {method} {path}: {exc}") from exc

        if resp.status_code >= 400:
            raise ProviderError(
                f"VPC API {method} {path}: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
            )

        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    def _list(self, path: str, field: str, start: Optional[str]) -> Page:
        body = self._api_call("GET", path, params={"start": start})
        return Page(
            items=[_to_named(item) for item in body.get(field) or []],
            next_start=_next_start(body),
        )

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def list_instances(
        self, name: Optional[str] = None, start: Optional[str] = None,
    ) -> Page:
        body = self._api_call("GET", "/instances", params={"name": name, "start": start})
        return Page(
            items=[_to_instance(item) for item in body.get("instances") or []],
            next_start=_next_start(body),
        )

    def create_instance(self, prototype: InstancePrototype) -> ObservedInstance:
        body = self._api_call("POST", "/instances", data=_instance_body(prototype))
        logger.debug("VPC accepted instance %s as %s", prototype.name, body.get("id"))
        return _to_instance(body)

    def get_instance(self, instance_id: str) -> ObservedInstance:
        return _to_instance(self._api_call("GET", f"/instances/{instance_id}"))

    def delete_instance(self, instance_id: str) -> None:
        self._api_call("DELETE", f"/instances/{instance_id}")

    # ------------------------------------------------------------------
    # Reference lookups
    # ------------------------------------------------------------------

    def list_images(self, start: Optional[str] = None) -> Page:
        return self._list("/images", "images", start)

    def list_keys(self, start: Optional[str] = None) -> Page:
        return self._list("/keys", "keys", start)

    def get_subnet_by_name(self, name: str) -> Optional[NamedResource]:
        return find_by_name(lambda start: self._list("/subnets", "subnets", start), name)

    def get_security_group_by_name(self, name: str) -> Optional[NamedResource]:
        return find_by_name(
            lambda start: self._list("/security_groups", "security_groups", start), name,
        )

    def get_security_group(self, security_group_id: str) -> NamedResource:
        return _to_named(self._api_call("GET", f"/security_groups/{security_group_id}"))

    # ------------------------------------------------------------------
    # Load balancers
    # ------------------------------------------------------------------

    def get_load_balancer(self, load_balancer_id: str) -> LoadBalancer:
        return _to_load_balancer(
            self._api_call("GET", f"/load_balancers/{load_balancer_id}")
        )

    def list_load_balancer_pool_members(
        self, load_balancer_id: str, pool_id: str,
    ) -> List[PoolMember]:
        body = self._api_call(
            "GET", f"/load_balancers/{load_balancer_id}/pools/{pool_id}/members",
        )
        return [_to_member(item) for item in body.get("members") or []]

    def create_load_balancer_pool_member(
        self, load_balancer_id: str, pool_id: str, address: str, port: int,
    ) -> PoolMember:
        body = self._api_call(
            "POST", f"/load_balancers/{load_balancer_id}/pools/{pool_id}/members",
            data={"port": port, "target": {"address": address}},
        )
        return _to_member(body)

    def delete_load_balancer_pool_member(
        self, load_balancer_id: str, pool_id: str, member_id: str,
    ) -> None:
        self._api_call(
            "DELETE",
            f"/load_balancers/{load_balancer_id}/pools/{pool_id}/members/{member_id}",
        )
