"""
VPC and secret collaborators — what the managers drive.

VPCClient and SecretStore define the calls the orchestrator makes;
the IBM Cloud adapter and the secret stores implement them.
"""

from .base import SecretStore, VPCClient
from .ibmcloud import IBMCloudVPCClient
from .secrets import FileSecretStore, InMemorySecretStore

__all__ = [
    "VPCClient",
    "SecretStore",
    "IBMCloudVPCClient",
    "FileSecretStore",
    "InMemorySecretStore",
]
