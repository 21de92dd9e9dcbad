"""Provider routing: which team member's calendar serves a request."""

from __future__ import annotations

from abc import ABC, abstractmethod

from telehealth.config import ProviderProfile
from telehealth.errors import BookingValidationError


class ProviderRouter(ABC):
    def __init__(self, providers: list[ProviderProfile]) -> None:
        if not providers:
            raise ValueError("At least one provider must be configured.")
        self._providers = providers

    @property
    def providers(self) -> list[ProviderProfile]:
        return list(self._providers)

    @property
    def primary(self) -> ProviderProfile:
        return self._providers[0]

    def get(self, provider_id: str) -> ProviderProfile:
        """Look up an explicitly requested provider."""
        for provider in self._providers:
            if provider.id == provider_id:
                return provider
        raise BookingValidationError(f"Unknown provider id: {provider_id!r}")

    def route(self, service_name: str, provider_id: str = "") -> ProviderProfile:
        if provider_id:
            return self.get(provider_id)
        return self._select(service_name)

    @abstractmethod
    def _select(self, service_name: str) -> ProviderProfile:
        """Pick a provider when the caller did not name one."""


class SingleProviderRouter(ProviderRouter):
    def _select(self, service_name: str) -> ProviderProfile:
        return self.primary


class KeywordProviderRouter(ProviderRouter):
    """Route to the first provider whose keyword appears in the service name."""

    def _select(self, service_name: str) -> ProviderProfile:
        lowered = service_name.lower()
        for provider in self._providers:
            if provider.keyword and provider.keyword.lower() in lowered:
                return provider
        return self.primary


def build_router(providers: list[ProviderProfile], mode: str) -> ProviderRouter:
    if mode == "keyword":
        return KeywordProviderRouter(providers)
    return SingleProviderRouter(providers)
