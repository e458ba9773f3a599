"""
Error taxonomy for the reconciliation engine.

Errors are scoped to a single request's reconciliation; the engine converts
them into status updates and requeue decisions rather than letting them reach
the worker pool.

Categories:
- Transient: strategy store unreachable, provider timeouts, status write
  conflicts. No phase change, requeue.
- Recoverable: provider call failed. Phase becomes Failed, retried on the
  next trigger.
- Terminal configuration: no provider supports the resolved strategy.
- Precondition: a snapshot requested while its primary cannot be snapshotted.
"""

from __future__ import annotations

from typing import Any


class CloudResourceError(Exception):
    """Base exception for cloudres errors."""

    transient: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(CloudResourceError):
    """Raised for configuration-related errors."""


class StrategyResolutionError(ConfigurationError):
    """Raised when the strategy configuration record cannot be used."""

    transient = True


class ConfigUnavailableError(StrategyResolutionError):
    """Raised when the shared strategy configuration record is missing or unreadable."""


class MalformedStrategyError(StrategyResolutionError):
    """Raised when a strategy entry does not match the expected shape."""


class UnsupportedStrategyError(ConfigurationError):
    """Raised when no registered provider supports the resolved strategy."""


class ProviderError(CloudResourceError):
    """Raised when an external provider/service fails."""


class ProvisioningError(ProviderError):
    """A provider call failed; the request is marked Failed and retried later."""


class TransientProviderError(ProviderError):
    """A provider call timed out or was throttled; no phase change."""

    transient = True


class OutputPublishError(CloudResourceError):
    """Raised when connection data could not be written to the output sink."""


class StatusConflictError(CloudResourceError):
    """Raised when a conditional status write loses against a concurrent update."""

    transient = True


class FinalizerPendingError(CloudResourceError):
    """Raised when removing a record whose external cleanup is still owed."""


class PrimaryResourceError(CloudResourceError):
    """Raised when a snapshot's primary resource is missing or being deleted."""

