"""Application bootstrap wiring ports, adapters, and services."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import requests

from kvsign.app import PackageSigningService
from kvsign.app.adapters import (
    FileSystemStorageAdapter,
    KeyVaultClient,
    KeyVaultCredentialBroker,
    Rfc3161TimestampClient,
    ZipPackageSigningEngine,
)
from kvsign.app.adapters.credentials import CredentialFactory
from kvsign.app.adapters.key_vault import CertificateClientFactory, CryptographyClientFactory
from kvsign.app.ports import (
    CredentialBrokerPort,
    PackageSigningEnginePort,
    SigningCredentials,
    SigningIdentity,
    StoragePort,
    TimestampPort,
)
from kvsign.config import Settings, get_settings


@dataclass(slots=True)
class ApplicationContainer:
    """Aggregates wired services and adapters for the CLI layer."""

    settings: Settings
    storage_port: StoragePort
    engine: PackageSigningEnginePort
    signing_service: PackageSigningService


def bootstrap_application(
    settings: Settings | None = None,
    *,
    session: requests.Session | None = None,
    temp_dir: Path | None = None,
    credential_factory: CredentialFactory | None = None,
    certificate_client_factory: CertificateClientFactory | None = None,
    cryptography_client_factory: CryptographyClientFactory | None = None,
) -> ApplicationContainer:
    """Wire the signing service against real adapters.

    Every signing invocation gets its own broker and SDK clients, so no token or
    connection outlives the call that created it.

    Args:
        settings: Settings to use (defaults to the global instance)
        session: HTTP session for the timestamp client (defaults to one request per call)
        temp_dir: Directory for working copies (defaults to the system temp dir)
        credential_factory: Builds the client-secret credential (defaults to azure-identity)
        certificate_client_factory: Builds the vault certificate client
        cryptography_client_factory: Builds the vault cryptography client
    """
    active_settings = settings or get_settings()
    timeout = active_settings.http_timeout_seconds

    def create_broker(credentials: SigningCredentials) -> CredentialBrokerPort:
        return KeyVaultCredentialBroker(credentials, credential_factory=credential_factory)

    def create_identity(
        broker: CredentialBrokerPort, key_vault_url: str, certificate_name: str
    ) -> SigningIdentity:
        client = KeyVaultClient(
            broker,
            api_version=active_settings.key_vault_api_version,
            timeout=timeout,
            certificate_client_factory=certificate_client_factory,
            cryptography_client_factory=cryptography_client_factory,
        )
        return client.create_signing_identity(key_vault_url, certificate_name)

    def create_timestamper(url: str) -> TimestampPort:
        return Rfc3161TimestampClient(url, session=session, timeout=timeout)

    storage_port = FileSystemStorageAdapter(temp_dir)
    engine = ZipPackageSigningEngine()

    return ApplicationContainer(
        settings=active_settings,
        storage_port=storage_port,
        engine=engine,
        signing_service=PackageSigningService(
            storage=storage_port,
            engine=engine,
            timestamp_factory=create_timestamper,
            broker_factory=create_broker,
            identity_factory=create_identity,
        ),
    )
