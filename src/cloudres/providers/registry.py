from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, TypeVar

from cloudres.domain.models import ResourceKind
from cloudres.providers.base import Provider

ProviderFactory = Callable[..., Any]
P = TypeVar("P", bound=Provider)


@dataclass(frozen=True)
class ProviderSpec:
    """Metadata describing a registered provider."""

    name: str
    factory: ProviderFactory
    kinds: frozenset[ResourceKind]
    description: str | None = None


class ProviderSet(Generic[P]):
    """Statically ordered providers for one resource kind.

    Selection walks the providers in order and binds the first one that
    supports the strategy. Once bound, a request looks its provider up by name.
    """

    def __init__(self, kind: ResourceKind, providers: Iterable[P]) -> None:
        self.kind = kind
        self._providers: List[P] = list(providers)

    def select(self, strategy: str) -> P | None:
        for provider in self._providers:
            if provider.supports_strategy(strategy):
                return provider
        return None

    def get(self, name: str) -> P | None:
        for provider in self._providers:
            if provider.name == name:
                return provider
        return None

    def names(self) -> List[str]:
        return [provider.name for provider in self._providers]

    def __len__(self) -> int:
        return len(self._providers)


class ProviderRegistry:
    """Simple in-memory registry of provider factories, kept in registration order."""

    def __init__(self) -> None:
        self._providers: Dict[str, ProviderSpec] = {}

    def register(
        self,
        name: str,
        factory: ProviderFactory,
        *,
        kinds: Iterable[ResourceKind],
        description: str | None = None,
    ) -> None:
        if not name:
            raise ValueError("Provider name is required")
        kind_set = frozenset(kinds)
        if not kind_set:
            raise ValueError(f"Provider '{name}' must declare at least one resource kind")
        self._providers[name] = ProviderSpec(
            name=name,
            factory=factory,
            kinds=kind_set,
            description=description,
        )

    def create(self, name: str, **kwargs: Any) -> Any:
        spec = self._providers.get(name)
        if spec is None:
            raise KeyError(f"Provider '{name}' is not registered")
        return spec.factory(**kwargs)

    def create_for_kind(self, kind: ResourceKind, **kwargs: Any) -> ProviderSet[Any]:
        """Instantiate every provider serving ``kind``, preserving registration order."""
        providers = [
            spec.factory(kind=kind, **kwargs)
            for spec in self._providers.values()
            if kind in spec.kinds
        ]
        return ProviderSet(kind, providers)

    def list(self) -> List[ProviderSpec]:
        return list(self._providers.values())


provider_registry = ProviderRegistry()


def register_provider(
    name: str,
    factory: ProviderFactory,
    *,
    kinds: Iterable[ResourceKind],
    description: str | None = None,
) -> None:
    provider_registry.register(name, factory, kinds=kinds, description=description)


def create_provider(name: str, **kwargs: Any) -> Any:
    return provider_registry.create(name, **kwargs)


def create_providers(kind: ResourceKind, **kwargs: Any) -> ProviderSet[Any]:
    return provider_registry.create_for_kind(kind, **kwargs)


def list_providers() -> List[ProviderSpec]:
    return provider_registry.list()
