"""
Error taxonomy for the machine lifecycle orchestrator.

Every failure surfaces as a ClusterError subclass. ProviderError marks
transport/API failures the reconciler should retry; the others need
their inputs corrected before a retry can succeed.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar

R = TypeVar("R")


class ClusterError(Exception):
    """Base class for all orchestrator errors."""


class InvalidSpecError(ClusterError):
    """Raised when a required machine spec field is missing."""


class InvalidReferenceError(ClusterError):
    """Raised when a resource reference has neither an ID nor a name."""


class NotFoundError(ClusterError):
    """Raised when a name lookup finds no matching cloud resource.

    Args:
        kind: Resource kind that was looked up (e.g. 'image').
        name: The name that had no match.
    """

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.kind = kind
        self.name = name


class BootstrapDataUnavailableError(ClusterError):
    """Raised when the bootstrap data secret is missing or malformed."""


class LoadBalancerNotActiveError(ClusterError):
    """Raised when pool membership would change on a non-active load balancer.

    Args:
        load_balancer_id: The load balancer that was inspected.
        status: Its provisioning status at the time.
    """

    def __init__(self, load_balancer_id: str, status: Optional[str]) -> None:
        super().__init__(
            f"load balancer {load_balancer_id} is not active (status={status})"
        )
        self.load_balancer_id = load_balancer_id
        self.status = status


class NoPoolConfiguredError(ClusterError):
    """Raised when a load balancer has no pools to add members to."""


class ConfigurationError(ClusterError):
    """Raised when orchestrator configuration is unusable."""


class ProviderError(ClusterError):
    """Raised when a cloud API or transport call fails.

    Args:
        message: What failed.
        status_code: HTTP status code, when the failure came from an API reply.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def call_provider(description: str, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
    """Run a collaborator call, wrapping foreign failures in ProviderError.

    ClusterErrors raised by the collaborator pass through unchanged.

    Args:
        description: What the call does, for the error message.
        fn: Collaborator method to call.

    Returns:
        Whatever *fn* returns.

    Raises:
        ProviderError: If *fn* raised anything that is not a ClusterError.
    """
    try:
        return fn(*args, **kwargs)
    except ClusterError:
        raise
    except Exception as exc:
        raise ProviderError(f"{description}: {exc}") from exc
