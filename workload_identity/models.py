"""
Immutable value types shared by the credential, the token source and the cache.
Secret values are kept out of repr so they never end up in logs or tracebacks.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AccessToken:
    value: str = field(repr=False)
    expires_at: datetime
    # When the exchange completed; None if unknown
    issued_at: datetime | None = None

    def expires_within(self, margin_seconds: float, now: datetime | None = None) -> bool:
        """
        True if the token has expired or expires within margin_seconds (for proactive refresh).
        When the issued lifetime is not longer than margin_seconds, only True once actually expired.
        """
        if now is None:
            now = utcnow()
        if self.expires_at <= now:
            return True
        if self.issued_at is not None and self.expires_at - self.issued_at <= timedelta(seconds=margin_seconds):
            return False
        return self.expires_at <= now + timedelta(seconds=margin_seconds)


@dataclass(frozen=True)
class FederatedToken:
    value: str = field(repr=False)
    # None when the token carries no readable exp claim
    expires_at: datetime | None = None

    def expired(self, now: datetime | None = None) -> bool:
        """True only when the expiry is known and already in the past."""
        if self.expires_at is None:
            return False
        if now is None:
            now = utcnow()
        return self.expires_at < now


@dataclass(frozen=True)
class CredentialIdentity:
    tenant_id: str
    client_id: str
    authority_host: str

    @property
    def token_endpoint(self) -> str:
        """Microsoft identity platform v2.0 token endpoint for this tenant."""
        return f"{self.authority_host.rstrip('/')}/{self.tenant_id}/oauth2/v2.0/token"
