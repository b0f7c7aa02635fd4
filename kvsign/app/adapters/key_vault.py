"""Azure Key Vault adapter: certificate lookup and remote digest signing."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from azure.core.exceptions import AzureError, ClientAuthenticationError, ResourceNotFoundError
from azure.keyvault.certificates import CertificateClient
from azure.keyvault.keys.crypto import CryptographyClient, SignatureAlgorithm
from cryptography.hazmat.primitives.asymmetric import rsa

from kvsign.app.ports import (
    CredentialBrokerPort,
    HashAlgorithmName,
    SigningHandlePort,
    SigningIdentity,
)
from kvsign.errors import AuthenticationError, SigningServiceError
from kvsign.utils.crypto import load_der_certificate

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "7.4"

CertificateClientFactory = Callable[..., Any]
CryptographyClientFactory = Callable[..., Any]


class KeyVaultClient:
    """Key vault access through the Azure SDK, authorized by a credential broker.

    The broker is handed to the SDK clients as their token credential, so the
    vault's bearer challenge drives which tenant and scope a token is requested
    for. Client factories are injectable; they default to ``CertificateClient``
    and ``CryptographyClient``.
    """

    def __init__(
        self,
        broker: CredentialBrokerPort,
        *,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30.0,
        certificate_client_factory: CertificateClientFactory | None = None,
        cryptography_client_factory: CryptographyClientFactory | None = None,
    ) -> None:
        self._broker = broker
        self._client_options: dict[str, Any] = {
            "api_version": api_version,
            "connection_timeout": timeout,
            "read_timeout": timeout,
        }
        self._certificate_client_factory = certificate_client_factory or CertificateClient
        self._cryptography_client_factory = cryptography_client_factory or CryptographyClient
        self._crypto_clients: dict[str, Any] = {}

    def get_certificate(self, vault_url: str, certificate_name: str) -> Any:
        """Fetch the certificate named ``certificate_name`` (latest version)."""
        client = self._certificate_client_factory(vault_url, self._broker, **self._client_options)
        try:
            return client.get_certificate(certificate_name)
        except ClientAuthenticationError as exc:
            raise AuthenticationError(f"Key vault rejected the access token for {vault_url}: {exc}") from exc
        except ResourceNotFoundError as exc:
            raise SigningServiceError(
                f"Certificate '{certificate_name}' was not found in {vault_url}"
            ) from exc
        except AzureError as exc:
            raise SigningServiceError(f"Key vault request failed for {vault_url}: {exc}") from exc

    def sign(self, key_id: str, algorithm: str, digest: bytes) -> bytes:
        """Ask the vault to sign ``digest`` with the key ``key_id``."""
        client = self._crypto_clients.get(key_id)
        if client is None:
            client = self._cryptography_client_factory(key_id, self._broker, **self._client_options)
            self._crypto_clients[key_id] = client
        try:
            result = client.sign(SignatureAlgorithm(algorithm), digest)
        except ClientAuthenticationError as exc:
            raise AuthenticationError(f"Key vault rejected the access token for {key_id}: {exc}") from exc
        except AzureError as exc:
            raise SigningServiceError(f"Key vault signing failed for {key_id}: {exc}") from exc

        if not result.signature:
            raise SigningServiceError(f"Key vault returned no signature for {key_id}")
        return bytes(result.signature)

    def create_signing_identity(self, vault_url: str, certificate_name: str) -> SigningIdentity:
        """Resolve ``certificate_name`` into a certificate plus a remote signing handle.

        The lookup also validates the supplied credentials: a bad token, vault URL
        or certificate name fails here rather than mid-signing.

        Raises:
            AuthenticationError: If the broker cannot produce a token
            SigningServiceError: If the certificate cannot be fetched or used
        """
        bundle = self.get_certificate(vault_url, certificate_name)

        encoded_cert = bundle.cer
        key_id = bundle.key_id
        if not encoded_cert or not key_id:
            raise SigningServiceError(
                f"Certificate '{certificate_name}' in {vault_url} has no certificate or key identifier"
            )

        try:
            certificate = load_der_certificate(bytes(encoded_cert))
        except ValueError as exc:
            raise SigningServiceError(
                f"Certificate '{certificate_name}' could not be decoded: {exc}"
            ) from exc

        if not isinstance(certificate.public_key(), rsa.RSAPublicKey):
            raise SigningServiceError(f"Certificate '{certificate_name}' does not use an RSA key")

        logger.debug("Resolved certificate %s (key %s)", certificate.subject.rfc4514_string(), key_id)
        return SigningIdentity(
            public_certificate=certificate,
            key_handle=KeyVaultSigningHandle(self, key_id),
        )


class KeyVaultSigningHandle(SigningHandlePort):
    """RSA signing capability bound to one vault key; exposes no key material."""

    def __init__(self, client: KeyVaultClient, key_id: str) -> None:
        self._client = client
        self._key_id = key_id

    @property
    def key_id(self) -> str:
        return self._key_id

    def sign(self, digest: bytes, hash_algorithm: HashAlgorithmName) -> bytes:
        if len(digest) != hash_algorithm.digest_size:
            raise SigningServiceError(
                f"Digest length {len(digest)} does not match {hash_algorithm.value} "
                f"({hash_algorithm.digest_size} bytes)"
            )
        return self._client.sign(self._key_id, hash_algorithm.key_vault_algorithm, digest)

    def __repr__(self) -> str:
        return f"KeyVaultSigningHandle(key_id={self._key_id!r})"
