"""Provider adapter registry."""

from __future__ import annotations

from typing import Callable, Mapping

from inbox.core.errors import UnsupportedActionError
from inbox.db.enums import IntegrationProviderKind
from inbox.integrations.base import ProviderAdapter
from inbox.integrations.github import GithubService
from inbox.integrations.ticktick import TickTickService

AdapterFactory = Callable[[], ProviderAdapter]

ADAPTER_FACTORIES: Mapping[IntegrationProviderKind, AdapterFactory] = {
    IntegrationProviderKind.GITHUB: GithubService,
    IntegrationProviderKind.TICKTICK: TickTickService,
}


def resolve_adapter(provider_kind: IntegrationProviderKind | str) -> ProviderAdapter:
    kind = IntegrationProviderKind(provider_kind)
    factory = ADAPTER_FACTORIES.get(kind)
    if not factory:
        raise UnsupportedActionError(f"No adapter registered for provider {kind.value}")
    return factory()


def adapters_by_item_kind() -> dict[str, ProviderAdapter]:
    """Adapters keyed by the third-party item kind they produce."""
    adapters = (factory() for factory in ADAPTER_FACTORIES.values())
    return {adapter.item_kind.value: adapter for adapter in adapters}
