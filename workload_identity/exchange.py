"""
Federated credential exchange against the Microsoft identity platform token endpoint.
client_credentials grant with the federated token as a jwt-bearer client assertion.
One request per call; retries belong to the transport.
"""
import logging
from collections.abc import Sequence
from datetime import timedelta

import httpx

from workload_identity.config import DEFAULT_REQUEST_TIMEOUT_SECONDS
from workload_identity.errors import TokenExchangeError
from workload_identity.models import AccessToken, CredentialIdentity, utcnow

logger = logging.getLogger(__name__)

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
GRANT_TYPE = "client_credentials"


def _parse_expires_in(value) -> int | None:
    """expires_in is an int in v2.0 responses; some endpoints send a numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return None


class TokenExchangeClient:
    """Exchanges a federated token for an access token. Owns its AsyncClient unless one is passed in."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ):
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.AsyncClient()
        self._timeout = timeout

    async def exchange(
        self,
        identity: CredentialIdentity,
        federated_token: str,
        scopes: Sequence[str],
    ) -> AccessToken:
        """
        POST the client assertion to the tenant's token endpoint and return the access token.
        expires_at is completion time + expires_in; the access token itself is opaque.
        Raises TokenExchangeError on transport errors, non-200 responses or malformed bodies.
        """
        data = {
            "client_id": identity.client_id,
            "scope": " ".join(scopes),
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": federated_token,
            "grant_type": GRANT_TYPE,
        }
        try:
            r = await self._client.post(
                identity.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Token exchange request failed for tenant_id=%s client_id=%s: %s",
                identity.tenant_id,
                identity.client_id,
                e,
            )
            raise TokenExchangeError(
                f"token exchange request failed: {e}",
                tenant_id=identity.tenant_id,
                client_id=identity.client_id,
            ) from e

        try:
            body = r.json()
        except ValueError:
            body = None

        if r.status_code != 200:
            err = body if isinstance(body, dict) else {}
            logger.warning(
                "Token exchange rejected for tenant_id=%s client_id=%s: status=%s error=%s",
                identity.tenant_id,
                identity.client_id,
                r.status_code,
                err.get("error"),
            )
            raise TokenExchangeError(
                "token exchange rejected",
                tenant_id=identity.tenant_id,
                client_id=identity.client_id,
                status_code=r.status_code,
                error=err.get("error"),
                error_description=err.get("error_description"),
                error_codes=err.get("error_codes"),
                correlation_id=err.get("correlation_id"),
            )

        if not isinstance(body, dict):
            raise TokenExchangeError(
                "token exchange response is not a JSON object",
                tenant_id=identity.tenant_id,
                client_id=identity.client_id,
                status_code=r.status_code,
            )
        access_token = body.get("access_token")
        expires_in = _parse_expires_in(body.get("expires_in"))
        if not isinstance(access_token, str) or not access_token or expires_in is None:
            raise TokenExchangeError(
                "token exchange response is missing access_token or expires_in",
                tenant_id=identity.tenant_id,
                client_id=identity.client_id,
                status_code=r.status_code,
            )

        issued_at = utcnow()
        try:
            expires_at = issued_at + timedelta(seconds=expires_in)
        except OverflowError as e:
            raise TokenExchangeError(
                "token exchange response is missing access_token or expires_in",
                tenant_id=identity.tenant_id,
                client_id=identity.client_id,
                status_code=r.status_code,
            ) from e
        token = AccessToken(value=access_token, expires_at=expires_at, issued_at=issued_at)
        logger.info(
            "Access token issued for tenant_id=%s client_id=%s scope=%s (expires_in=%ss)",
            identity.tenant_id,
            identity.client_id,
            data["scope"],
            expires_in,
        )
        return token

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TokenExchangeClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
