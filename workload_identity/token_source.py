"""
Federated token sources.
EnvTokenSource holds a fixed token taken from AZURE_FEDERATED_TOKEN.
FileTokenSource holds the last token read from AZURE_FEDERATED_TOKEN_FILE and re-reads the file
only when that token's exp claim is known and has passed, or after invalidate().
"""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from workload_identity.config import WorkloadIdentitySettings
from workload_identity.errors import ConfigurationError, TokenFileError
from workload_identity.expiry import parse_expiration
from workload_identity.models import FederatedToken

logger = logging.getLogger(__name__)


def _read_token_file(path: Path) -> FederatedToken:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TokenFileError(f"failed to read federated token from file {path}: {e}", str(path)) from e
    value = text.strip()
    if not value:
        raise TokenFileError(f"federated token file {path} is empty", str(path))
    return FederatedToken(value=value, expires_at=parse_expiration(value))


@dataclass(frozen=True)
class EnvTokenSource:
    """Fixed federated token. Never re-read."""

    token: FederatedToken

    @classmethod
    def from_value(cls, value: str) -> "EnvTokenSource":
        return cls(FederatedToken(value=value, expires_at=parse_expiration(value)))

    async def current(self) -> FederatedToken:
        return self.token

    def invalidate(self) -> None:
        """Nothing to reload."""


class FileTokenSource:
    """
    Federated token backed by a file the platform rotates (e.g. a projected service account token).
    State is replaced under an asyncio.Lock held only for the read-and-update.
    """

    def __init__(self, path: Path, token: FederatedToken):
        self._path = path
        self._token = token
        self._stale = False
        self._lock = asyncio.Lock()

    @classmethod
    def load(cls, path: str | Path) -> "FileTokenSource":
        """Read the file once up front. Raises TokenFileError if it can't be read."""
        path = Path(path)
        token = _read_token_file(path)
        logger.debug("Loaded federated token from %s (expires_at=%s)", path, token.expires_at)
        return cls(path, token)

    @property
    def path(self) -> Path:
        return self._path

    async def current(self) -> FederatedToken:
        """
        Return the recorded token, reloading it first if its known expiry has passed or the
        source was invalidated. An unknown expiry never triggers a reload by itself.
        On a read error the recorded token is kept and TokenFileError propagates.
        """
        async with self._lock:
            if self._stale or self._token.expired():
                reason = "invalidated" if self._stale else "expired"
                logger.info("Reloading federated token from %s (%s)", self._path, reason)
                self._token = await asyncio.to_thread(_read_token_file, self._path)
                self._stale = False
                logger.debug("Federated token reloaded (expires_at=%s)", self._token.expires_at)
            return self._token

    def invalidate(self) -> None:
        """Force the next current() call to re-read the file."""
        self._stale = True


TokenSource = EnvTokenSource | FileTokenSource


def load_token_source(settings: WorkloadIdentitySettings) -> TokenSource:
    """Pick the token source from settings. A direct token takes precedence over a file."""
    if settings.federated_token:
        return EnvTokenSource.from_value(settings.federated_token)
    if settings.federated_token_file:
        return FileTokenSource.load(settings.federated_token_file)
    raise ConfigurationError("workload identity credential requires a federated token or token file")
