"""
WorkloadIdentityCredential: exchanges a platform-injected federated token for an access token.
Identity and token source are resolved once at construction; each get_token() goes through the
single-flight cache, and only a refresh consults the token source and the exchange endpoint.
"""
import logging
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

import httpx

from workload_identity.cache import TokenCache
from workload_identity.config import WorkloadIdentitySettings, load_settings, normalize_authority_host
from workload_identity.errors import ConfigurationError, TokenExchangeError
from workload_identity.exchange import TokenExchangeClient
from workload_identity.models import AccessToken, CredentialIdentity
from workload_identity.token_source import TokenSource, load_token_source

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenCredential(Protocol):
    """What a data-plane client needs from a credential."""

    async def get_token(self, *scopes: str) -> AccessToken: ...

    async def clear_cache(self) -> None: ...


class WorkloadIdentityCredential:
    def __init__(
        self,
        identity: CredentialIdentity,
        token_source: TokenSource,
        exchange_client: TokenExchangeClient | None = None,
        cache: TokenCache | None = None,
    ):
        if not identity.tenant_id:
            raise ConfigurationError("workload identity credential requires a tenant id")
        if not identity.client_id:
            raise ConfigurationError("workload identity credential requires a client id")
        self._identity = CredentialIdentity(
            tenant_id=identity.tenant_id,
            client_id=identity.client_id,
            authority_host=normalize_authority_host(identity.authority_host),
        )
        self._token_source = token_source
        self._exchange_client = exchange_client if exchange_client is not None else TokenExchangeClient()
        self._cache = cache if cache is not None else TokenCache()

    @classmethod
    def from_settings(
        cls,
        settings: WorkloadIdentitySettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "WorkloadIdentityCredential":
        identity = CredentialIdentity(
            tenant_id=settings.tenant_id,
            client_id=settings.client_id,
            authority_host=settings.authority_host,
        )
        token_source = load_token_source(settings)
        logger.info(
            "Workload identity credential configured: tenant_id=%s client_id=%s authority=%s source=%s",
            identity.tenant_id,
            identity.client_id,
            identity.authority_host,
            type(token_source).__name__,
        )
        return cls(
            identity,
            token_source,
            exchange_client=TokenExchangeClient(http_client, timeout=settings.request_timeout_seconds),
            cache=TokenCache(refresh_margin_seconds=settings.refresh_margin_seconds),
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "WorkloadIdentityCredential":
        """Build from AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_FEDERATED_TOKEN[_FILE]."""
        return cls.from_settings(load_settings(environ), http_client=http_client)

    @property
    def identity(self) -> CredentialIdentity:
        return self._identity

    async def get_token(self, *scopes: str) -> AccessToken:
        """
        Return a valid access token for scopes, exchanging the federated token if the cached one
        is missing or stale. Raises TokenFileError or TokenExchangeError naming the failed stage.
        """
        if not scopes:
            raise ValueError("get_token requires at least one scope")

        async def refresh() -> AccessToken:
            federated = await self._token_source.current()
            try:
                return await self._exchange_client.exchange(self._identity, federated.value, scopes)
            except TokenExchangeError:
                # Pick up a rotated file on the caller's next attempt
                self._token_source.invalidate()
                raise

        return await self._cache.get_token(scopes, refresh)

    async def clear_cache(self) -> None:
        await self._cache.clear()

    async def close(self) -> None:
        await self._exchange_client.aclose()

    async def __aenter__(self) -> "WorkloadIdentityCredential":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
