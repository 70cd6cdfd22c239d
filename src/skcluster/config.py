"""
Orchestrator configuration.

Settings that the reconciler used to read from process-wide flags live
here and are handed to each manager explicitly. Loaded from
``<home>/config/config.yaml`` when present:

.. code-block:: yaml

    provider_id_format: v2
    api_server_port: 6443
    region: us-south
    account_id: 0123456789abcdef
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from . import CLUSTER_HOME

logger = logging.getLogger(__name__)

DEFAULT_API_SERVER_PORT = 6443
DEFAULT_API_VERSION = "2024-04-30"


class ProviderIDFormat(str, Enum):
    """Node provider ID layouts.

    v1 is no longer accepted; v2 embeds the account ID.
    """

    V1 = "v1"
    V2 = "v2"


class OrchestratorConfig(BaseModel):
    """Configuration passed into the machine and load balancer managers."""

    provider_id_format: ProviderIDFormat = Field(
        default=ProviderIDFormat.V2,
        description="Layout used when formatting node provider IDs",
    )
    api_server_port: int = Field(
        default=DEFAULT_API_SERVER_PORT, ge=1, le=65535,
        description="Default port for load balancer pool members",
    )
    region: str = Field(default="us-south", description="VPC region")
    api_version: str = Field(
        default=DEFAULT_API_VERSION,
        description="VPC API version date sent with every request",
    )
    account_id: Optional[str] = Field(
        default=None,
        description="Cloud account ID used in v2 provider IDs",
    )

    @classmethod
    def from_file(cls, path: Path) -> "OrchestratorConfig":
        """Load configuration from a YAML file.

        Args:
            path: Filesystem path to the YAML file.

        Returns:
            The validated configuration.

        Raises:
            FileNotFoundError: If *path* does not exist.
            ValueError: If the content is not a valid configuration.
        """
        raw: Any = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return cls.model_validate(raw)


def load_config(home: Optional[Path] = None) -> OrchestratorConfig:
    """Load configuration from the cluster home, or defaults.

    Args:
        home: Override home directory. Defaults to ~/.skcluster/.

    Returns:
        OrchestratorConfig from config.yaml, or defaults when the file is
        missing or invalid.
    """
    home = (home or Path(CLUSTER_HOME)).expanduser()
    config_file = home / "config" / "config.yaml"
    if config_file.exists():
        try:
            return OrchestratorConfig.from_file(config_file)
        except (yaml.YAMLError, ValueError) as exc:
            logger.warning("Failed to load config: %s, using defaults", exc)
    return OrchestratorConfig()
