"""
Error types for the workload identity credential.
Each error names the stage that failed: configuration, file_read, or exchange.
Expiry parse failures are not errors; parse_expiration returns None instead.
"""

STAGE_CONFIGURATION = "configuration"
STAGE_FILE_READ = "file_read"
STAGE_EXCHANGE = "exchange"


class WorkloadIdentityError(Exception):
    """Base class for every failure surfaced by the credential."""

    stage = "unknown"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(WorkloadIdentityError):
    """Required identity fields or a usable token source are missing. Not retryable."""

    stage = STAGE_CONFIGURATION


class TokenFileError(WorkloadIdentityError):
    """The federated token file could not be read."""

    stage = STAGE_FILE_READ

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class TokenExchangeError(WorkloadIdentityError):
    """
    The remote token exchange failed (network, rejection, malformed response).
    OAuth error fields from the endpoint are kept when the response carried them.
    """

    stage = STAGE_EXCHANGE

    def __init__(
        self,
        message: str,
        *,
        tenant_id: str,
        client_id: str,
        status_code: int | None = None,
        error: str | None = None,
        error_description: str | None = None,
        error_codes: list[int] | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.status_code = status_code
        self.error = error
        self.error_description = error_description
        self.error_codes = error_codes or []
        self.correlation_id = correlation_id

    def __str__(self) -> str:
        parts = [f"{self.message} (tenant_id={self.tenant_id}, client_id={self.client_id})"]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.error:
            parts.append(f"error={self.error}")
        if self.error_description:
            parts.append(self.error_description)
        return ": ".join(parts)
