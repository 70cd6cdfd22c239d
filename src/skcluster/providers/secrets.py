"""
Bootstrap secret stores.

The machine manager reads the bootstrap user data from a secret named
in the machine spec. In a cluster that secret lives in the API server;
these stores cover tests and standalone use:

- InMemorySecretStore: a dict, filled by the caller.
- FileSecretStore: YAML files under ``<home>/secrets/<namespace>/<name>.yaml``.

A secret file looks like:

.. code-block:: yaml

    encoding: base64      # optional; values are plain text otherwise
    data:
      value: I2Nsb3VkLWNvbmZpZw==
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from .. import CLUSTER_HOME
from .base import SecretStore

logger = logging.getLogger(__name__)


class InMemorySecretStore(SecretStore):
    """Secret store backed by a dict keyed on ``(namespace, name)``.

    Args:
        secrets: Initial secrets.
        data_key: Key holding the bootstrap data.
    """

    def __init__(
        self,
        secrets: Optional[Dict[Tuple[str, str], Dict[str, bytes]]] = None,
        data_key: str = "value",
    ) -> None:
        self._secrets = dict(secrets or {})
        self._data_key = data_key

    def put(self, namespace: str, name: str, data: Dict[str, bytes]) -> None:
        """Add or replace a secret."""
        self._secrets[(namespace, name)] = dict(data)

    def get_secret(self, namespace: str, name: str) -> Dict[str, bytes]:
        try:
            return dict(self._secrets[(namespace, name)])
        except KeyError:
            raise KeyError(f"secret {namespace}/{name} not found") from None

    def bootstrap_data_key(self) -> str:
        return self._data_key


class FileSecretStore(SecretStore):
    """Secret store reading YAML files from the cluster home.

    Args:
        home: Cluster home directory (default ~/.skcluster).
        data_key: Key holding the bootstrap data.
    """

    def __init__(self, home: Optional[Path] = None, data_key: str = "value") -> None:
        self._home = (home or Path(CLUSTER_HOME)).expanduser()
        self._data_key = data_key

    def _secret_path(self, namespace: str, name: str) -> Path:
        return self._home / "secrets" / namespace / f"{name}.yaml"

    def get_secret(self, namespace: str, name: str) -> Dict[str, bytes]:
        """Read a secret file.

        Raises:
            KeyError: If the file does not exist.
            ValueError: If the file is not a valid secret document.
        """
        path = self._secret_path(namespace, name)
        if not path.exists():
            raise KeyError(f"secret {namespace}/{name} not found")

        try:
            doc = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"secret {path} is not valid YAML: {exc}") from exc

        data = doc.get("data") if isinstance(doc, dict) else None
        if not isinstance(data, dict):
            raise ValueError(f"secret {path} has no 'data' mapping")

        encoded = doc.get("encoding") == "base64"
        result: Dict[str, bytes] = {}
        for key, value in data.items():
            text = str(value)
            if encoded:
                try:
                    result[str(key)] = base64.b64decode(text, validate=True)
                except binascii.Error as exc:
                    raise ValueError(
                        f"secret {path} key '{key}' is not valid base64"
                    ) from exc
            else:
                result[str(key)] = text.encode("utf-8")

        logger.debug("Loaded secret %s/%s (%d keys)", namespace, name, len(result))
        return result

    def bootstrap_data_key(self) -> str:
        return self._data_key
