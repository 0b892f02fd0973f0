"""
Workload identity configuration. Variable names follow the Azure workload identity webhook.
The environment is read once by load_settings(); the credential only sees the frozen result.
"""
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass

from workload_identity.errors import ConfigurationError

AZURE_TENANT_ID = "AZURE_TENANT_ID"
AZURE_CLIENT_ID = "AZURE_CLIENT_ID"
AZURE_FEDERATED_TOKEN = "AZURE_FEDERATED_TOKEN"
AZURE_FEDERATED_TOKEN_FILE = "AZURE_FEDERATED_TOKEN_FILE"
AZURE_AUTHORITY_HOST = "AZURE_AUTHORITY_HOST"
AZURE_TOKEN_REFRESH_MARGIN_SECONDS = "AZURE_TOKEN_REFRESH_MARGIN_SECONDS"
AZURE_TOKEN_REQUEST_TIMEOUT_SECONDS = "AZURE_TOKEN_REQUEST_TIMEOUT_SECONDS"

# Public cloud authority
DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"

# Cached access tokens are treated as stale this many seconds before literal expiry
DEFAULT_REFRESH_MARGIN_SECONDS = 30

# Timeout for the token exchange request
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class WorkloadIdentitySettings:
    tenant_id: str
    client_id: str
    authority_host: str = DEFAULT_AUTHORITY_HOST
    federated_token: str | None = None
    federated_token_file: str | None = None
    refresh_margin_seconds: int = DEFAULT_REFRESH_MARGIN_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS


def _get(environ: Mapping[str, str], name: str) -> str | None:
    """Environment value with surrounding whitespace removed; empty counts as unset."""
    value = environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require(environ: Mapping[str, str], name: str) -> str:
    value = _get(environ, name)
    if value is None:
        raise ConfigurationError(f"workload identity credential requires {name} environment variable")
    return value


def _number(environ: Mapping[str, str], name: str, default, cast):
    raw = _get(environ, name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(f"{name} must be a finite non-negative number, got {raw!r}")
    return value


def normalize_authority_host(authority_host: str) -> str:
    """Return the authority host without a trailing slash. Only https URLs are accepted."""
    host = authority_host.strip().rstrip("/")
    if not host.startswith("https://") or host == "https://":
        raise ConfigurationError(f"authority host must be an https URL, got {authority_host!r}")
    return host


def load_settings(environ: Mapping[str, str] | None = None) -> WorkloadIdentitySettings:
    """
    Read tenant, client, authority and token source from the environment (os.environ by default).
    Raises ConfigurationError when tenant or client is missing, or when neither
    AZURE_FEDERATED_TOKEN nor AZURE_FEDERATED_TOKEN_FILE is set.
    """
    if environ is None:
        environ = os.environ
    tenant_id = _require(environ, AZURE_TENANT_ID)
    client_id = _require(environ, AZURE_CLIENT_ID)
    federated_token = _get(environ, AZURE_FEDERATED_TOKEN)
    federated_token_file = _get(environ, AZURE_FEDERATED_TOKEN_FILE)
    if federated_token is None and federated_token_file is None:
        raise ConfigurationError(
            f"workload identity credential requires {AZURE_FEDERATED_TOKEN} "
            f"or {AZURE_FEDERATED_TOKEN_FILE} environment variables"
        )
    authority_host = normalize_authority_host(_get(environ, AZURE_AUTHORITY_HOST) or DEFAULT_AUTHORITY_HOST)
    return WorkloadIdentitySettings(
        tenant_id=tenant_id,
        client_id=client_id,
        authority_host=authority_host,
        federated_token=federated_token,
        federated_token_file=federated_token_file,
        refresh_margin_seconds=_number(
            environ, AZURE_TOKEN_REFRESH_MARGIN_SECONDS, DEFAULT_REFRESH_MARGIN_SECONDS, int
        ),
        request_timeout_seconds=_number(
            environ, AZURE_TOKEN_REQUEST_TIMEOUT_SECONDS, DEFAULT_REQUEST_TIMEOUT_SECONDS, float
        ),
    )
