"""Provider utilities and built-in registrations."""

# Import built-in providers for side effects (registration); order decides selection
from cloudres.providers import aws as _aws  # noqa: F401
from cloudres.providers import local as _local  # noqa: F401
from cloudres.providers.registry import (
    ProviderSet,
    create_provider,
    create_providers,
    list_providers,
    register_provider,
)

__all__ = [
    "ProviderSet",
    "create_provider",
    "create_providers",
    "list_providers",
    "register_provider",
]
