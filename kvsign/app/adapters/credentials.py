"""Credential broker adapter backed by ``azure-identity``."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

from azure.core.credentials import AccessToken, TokenCredential
from azure.core.exceptions import AzureError
from azure.identity import AzureAuthorityHosts, ClientSecretCredential

from kvsign.app.ports import CredentialBrokerPort, SigningCredentials
from kvsign.errors import AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY_HOST = f"https://{AzureAuthorityHosts.AZURE_PUBLIC_CLOUD}"

# Lifetime reported for caller-supplied tokens, whose real expiry is unknown.
SUPPLIED_TOKEN_LIFETIME_SECONDS = 3600

# Cached tokens this close to expiry are refreshed.
TOKEN_REFRESH_MARGIN_SECONDS = 300

CredentialFactory = Callable[..., TokenCredential]


def _client_secret_credential(
    tenant_id: str, client_id: str, client_secret: str, *, authority: str
) -> TokenCredential:
    return ClientSecretCredential(tenant_id, client_id, client_secret, authority=authority)


def split_authority(authority: str) -> tuple[str, str]:
    """Split ``https://login.example/<tenant>`` into its host and tenant parts."""
    parts = urlsplit(authority)
    tenant = parts.path.strip("/").split("/", 1)[0]
    if not parts.scheme or not parts.netloc or not tenant:
        raise AuthenticationError(f"Authentication to Azure failed: unusable authority {authority!r}")
    return f"{parts.scheme}://{parts.netloc}", tenant


class KeyVaultCredentialBroker(CredentialBrokerPort):
    """Hand out bearer tokens for the key vault.

    A non-blank access token is returned as-is. Otherwise the client id and
    secret are exchanged through ``ClientSecretCredential`` for the tenant the
    vault advertises in its challenge, and each token is reused until it nears
    expiry. One broker is created per signing invocation; ``validated_token``
    holds the most recent token it handed out.
    """

    def __init__(
        self,
        credentials: SigningCredentials,
        *,
        authority_host: str = DEFAULT_AUTHORITY_HOST,
        credential_factory: CredentialFactory | None = None,
    ) -> None:
        self._credentials = credentials
        self._authority_host = authority_host.rstrip("/")
        self._credential_factory = credential_factory or _client_secret_credential
        self._delegates: dict[tuple[str, str], TokenCredential] = {}
        self._tokens: dict[tuple[str, str, str], AccessToken] = {}
        self.validated_token: str | None = None

    def authenticate(self, authority: str, resource: str, scope: str | None = None) -> str:
        return self._acquire(authority, resource, scope).token

    def get_token(
        self,
        *scopes: str,
        claims: str | None = None,
        tenant_id: str | None = None,
        **kwargs: Any,
    ) -> AccessToken:
        scope = scopes[0] if scopes else ""
        authority = f"{self._authority_host}/{tenant_id}" if tenant_id else ""
        return self._acquire(authority, scope.removesuffix("/.default"), scope or None)

    def _acquire(self, authority: str, resource: str, scope: str | None) -> AccessToken:
        if self._credentials.has_access_token():
            token = self._credentials.access_token
            assert token is not None
            self.validated_token = token
            return AccessToken(token, int(time.time()) + SUPPLIED_TOKEN_LIFETIME_SECONDS)

        if not self._credentials.has_client_credentials():
            raise AuthenticationError(
                "No key vault credentials supplied. Provide an access token or a client id and secret."
            )

        token_authority = self._credentials.authority_url or authority
        if not token_authority:
            raise AuthenticationError("Authentication to Azure failed: no authority known.")
        host, tenant = split_authority(token_authority)

        if self._credentials.resource_url:
            token_scope = f"{self._credentials.resource_url.rstrip('/')}/.default"
        elif scope:
            token_scope = scope
        elif resource:
            token_scope = f"{resource.rstrip('/')}/.default"
        else:
            raise AuthenticationError("Authentication to Azure failed: no resource known.")

        cached = self._tokens.get((host, tenant, token_scope))
        if cached is not None and cached.expires_on - TOKEN_REFRESH_MARGIN_SECONDS > time.time():
            self.validated_token = cached.token
            return cached

        delegate = self._delegates.get((host, tenant))
        if delegate is None:
            assert self._credentials.client_id and self._credentials.client_secret
            delegate = self._credential_factory(
                tenant,
                self._credentials.client_id,
                self._credentials.client_secret,
                authority=host,
            )
            self._delegates[(host, tenant)] = delegate

        logger.debug("Requesting client-credential token from %s/%s for %s", host, tenant, token_scope)
        try:
            access = delegate.get_token(token_scope)
        except AzureError as exc:
            raise AuthenticationError(f"Authentication to Azure failed: {exc}") from exc

        if not access.token:
            raise AuthenticationError("Authentication to Azure failed.")
        self._tokens[(host, tenant, token_scope)] = access
        self.validated_token = access.token
        return access
