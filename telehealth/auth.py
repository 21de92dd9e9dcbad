"""Provider authentication.

Two authenticators:
  - StaticSecretAuthenticator: each provider has one configured password
  - OpenAuthenticator: no credential check (local development)

Login compares the submitted password byte-for-byte with each provider's
secret.  On success the provider receives a stateless token::

    <provider id>.<hex HMAC-SHA256 of the provider id, keyed by the password>

Protected routes recompute the HMAC.  There is no session store, expiry
or revocation; changing a provider's password invalidates its tokens.

Behavior matrix for ``require_provider()``:
  valid token                     → provider profile
  wrong/missing token (static)    → 401 Unauthorized
  any token (open)                → named provider, else primary
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from telehealth.config import ProviderProfile
from telehealth.errors import AuthenticationError

log = logging.getLogger("telehealth.auth")

_bearer_scheme = HTTPBearer(auto_error=False)


class Authenticator(ABC):
    def __init__(self, providers: list[ProviderProfile]) -> None:
        self._providers = providers

    @abstractmethod
    def authenticate(self, password: str) -> ProviderProfile | None:
        """Return the provider owning ``password``, or None."""

    @abstractmethod
    def issue_token(self, provider: ProviderProfile) -> str:
        """Bearer token for a successfully authenticated provider."""

    @abstractmethod
    def verify_token(self, token: str) -> ProviderProfile | None:
        """Return the provider a token belongs to, or None."""


class StaticSecretAuthenticator(Authenticator):
    @staticmethod
    def _sign(provider: ProviderProfile) -> str:
        return hmac.new(
            provider.password.encode("utf-8"),
            provider.id.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def authenticate(self, password: str) -> ProviderProfile | None:
        supplied = password.encode("utf-8")
        match = None
        # Compare against every secret so timing doesn't reveal which matched
        for provider in self._providers:
            if not provider.password:
                continue
            if hmac.compare_digest(supplied, provider.password.encode("utf-8")):
                match = match or provider
        return match

    def issue_token(self, provider: ProviderProfile) -> str:
        return f"{provider.id}.{self._sign(provider)}"

    def verify_token(self, token: str) -> ProviderProfile | None:
        provider_id, sep, signature = token.rpartition(".")
        if not sep:
            return None
        for provider in self._providers:
            if provider.id == provider_id and provider.password:
                if hmac.compare_digest(signature.encode("utf-8"), self._sign(provider).encode("utf-8")):
                    return provider
        return None


class OpenAuthenticator(Authenticator):
    """Accepts everyone. Only for local development."""

    def authenticate(self, password: str) -> ProviderProfile | None:
        return self._providers[0]

    def issue_token(self, provider: ProviderProfile) -> str:
        return f"{provider.id}.open"

    def verify_token(self, token: str) -> ProviderProfile | None:
        provider_id = token.rpartition(".")[0]
        for provider in self._providers:
            if provider.id == provider_id:
                return provider
        return self._providers[0]


def build_authenticator(providers: list[ProviderProfile], mode: str) -> Authenticator:
    if mode == "none":
        return OpenAuthenticator(providers)
    return StaticSecretAuthenticator(providers)


async def require_provider(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> ProviderProfile:
    """FastAPI dependency that protects provider endpoints with a bearer token."""
    authenticator: Authenticator = request.app.state.authenticator
    token = credentials.credentials if credentials else ""

    provider = authenticator.verify_token(token)
    if provider is None:
        log.warning("Rejected provider request with invalid or missing token")
        raise AuthenticationError("Invalid or missing provider token.")
    return provider
