"""Credential broker port for key vault authorization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from azure.core.credentials import AccessToken


@dataclass(frozen=True, slots=True)
class SigningCredentials:
    """Caller-supplied credentials for the key vault.

    A non-blank ``access_token`` always wins over the client id/secret pair.
    """

    access_token: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    authority_url: str | None = None
    resource_url: str | None = None

    def has_access_token(self) -> bool:
        return bool(self.access_token and self.access_token.strip())

    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def is_usable(self) -> bool:
        return self.has_access_token() or self.has_client_credentials()

    def __repr__(self) -> str:
        return (
            "SigningCredentials("
            f"access_token={'***' if self.has_access_token() else None}, "
            f"client_id={self.client_id!r}, "
            f"client_secret={'***' if self.client_secret else None}, "
            f"authority_url={self.authority_url!r}, "
            f"resource_url={self.resource_url!r})"
        )


class CredentialBrokerPort(Protocol):
    """Port interface for obtaining bearer tokens.

    Implementations double as an ``azure.core`` token credential so the key
    vault SDK clients can call back into them when the vault challenges.

    Side effects: May call an OAuth2 token endpoint (online).
    """

    def get_token(self, *scopes: str, **kwargs: Any) -> "AccessToken":
        """Return a token for ``scopes``; ``tenant_id`` comes from the vault challenge."""
        ...

    def authenticate(self, authority: str, resource: str, scope: str | None = None) -> str:
        """Return a bearer token valid for ``resource``.

        Args:
            authority: Token authority advertised by the key vault challenge
            resource: Resource (audience) the token is requested for
            scope: Optional scope from the challenge

        Returns:
            Access token string

        Raises:
            AuthenticationError: If no token could be obtained
        """
        ...
