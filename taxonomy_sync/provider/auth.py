"""Application-password authentication for the provider API."""

import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass, field

import structlog

from taxonomy_sync.models.config import ProviderUser

log = structlog.stdlib.get_logger()

APP_PASSWORD_LENGTH = 24
_APP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def generate_application_password(length: int = APP_PASSWORD_LENGTH) -> str:
    """Generate a random application password."""
    return "".join(secrets.choice(_APP_PASSWORD_ALPHABET) for _ in range(length))


def hash_application_password(password: str) -> str:
    """Return the SHA-256 hex digest stored in place of an application password."""
    # Whitespace is tolerated the way users paste grouped passwords ("abcd efgh ...").
    normalized = "".join(password.split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Principal:
    """An authenticated API caller."""

    username: str
    capabilities: frozenset[str] = field(default_factory=frozenset)

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


class ApplicationPasswordAuthenticator:
    """Verifies HTTP Basic credentials against issued application passwords."""

    def __init__(self, users: list[ProviderUser] | None = None):
        self._password_hashes: dict[str, list[str]] = {}
        self._capabilities: dict[str, frozenset[str]] = {}
        for user in users or []:
            self._password_hashes[user.username] = list(user.password_hashes)
            self._capabilities[user.username] = frozenset(user.capabilities)

        log.info("authenticator_initialized", user_count=len(self._password_hashes))

    def add_user(self, username: str, capabilities: list[str] | None = None) -> None:
        self._password_hashes.setdefault(username, [])
        self._capabilities[username] = frozenset(capabilities or [])

    def issue_password(self, username: str) -> str:
        """Generate a new application password for a known user and return it in clear."""
        if username not in self._password_hashes:
            raise KeyError(f"Unknown user: {username}")

        password = generate_application_password()
        self._password_hashes[username].append(hash_application_password(password))
        log.info("application_password_issued", username=username)
        return password

    def authenticate(self, username: str, password: str) -> Principal | None:
        """
        Check a username and application password.

        Returns:
            The authenticated principal, or None if the credentials are invalid
        """
        hashes = self._password_hashes.get(username)
        if not hashes:
            log.warning("authentication_failed", username=username, reason="unknown_user")
            return None

        candidate = hash_application_password(password)
        if not any(hmac.compare_digest(candidate, stored) for stored in hashes):
            log.warning("authentication_failed", username=username, reason="bad_password")
            return None

        return Principal(username=username, capabilities=self._capabilities.get(username, frozenset()))
