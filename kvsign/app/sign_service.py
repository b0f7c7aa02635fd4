"""Package signing orchestration.

Chains credential exchange, certificate lookup and remote signing around a
local working copy of the package. Every failure is logged and reported as a
``False`` result; exceptions never escape to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from kvsign.app.ports import (
    CredentialBrokerPort,
    PackageSigningEnginePort,
    SignatureOptions,
    SigningCredentials,
    SigningIdentity,
    StoragePort,
    TimestampPort,
    build_signing_request,
)
from kvsign.app.signature_provider import RemoteSignatureProvider
from kvsign.app.working_copy import working_copy

logger = logging.getLogger(__name__)

BrokerFactory = Callable[[SigningCredentials], CredentialBrokerPort]
IdentityFactory = Callable[[CredentialBrokerPort, str, str], SigningIdentity]
TimestampFactory = Callable[[str], TimestampPort]


class PackageLogger(logging.LoggerAdapter):
    """Prefix engine log messages with the package file name."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        return f"[{self.extra['package']}] {msg}", kwargs


@dataclass(slots=True)
class SignResult:
    """Outcome of signing one package in a batch."""

    package_path: Path
    output_path: Path
    success: bool


class PackageSigningService:
    """Orchestrates signing of package archives with a key held in a vault.

    All I/O is delegated to the storage port, the signing engine and the
    remote-facing factories.
    """

    def __init__(
        self,
        *,
        storage: StoragePort,
        engine: PackageSigningEnginePort,
        timestamp_factory: TimestampFactory,
        broker_factory: BrokerFactory | None = None,
        identity_factory: IdentityFactory | None = None,
    ) -> None:
        """Initialize the signing service.

        Args:
            storage: Working copy operations port
            engine: Package signing engine
            timestamp_factory: Builds a timestamp client bound to a URL
            broker_factory: Builds a credential broker for one invocation
            identity_factory: Resolves a certificate name into a signing identity
        """
        self.storage = storage
        self.engine = engine
        self.timestamp_factory = timestamp_factory
        self.broker_factory = broker_factory
        self.identity_factory = identity_factory

    def sign_with_key_vault(
        self,
        package_path: Path,
        output_path: Path,
        *,
        timestamp_url: str,
        signature_hash_algorithm: Any,
        timestamp_hash_algorithm: Any,
        signature_type: Any,
        overwrite: bool,
        key_vault_url: str,
        certificate_name: str,
        credentials: SigningCredentials,
        v3_service_index_url: str | None = None,
        package_owners: Sequence[str] | None = None,
    ) -> bool:
        """Authenticate, resolve the signing certificate, then sign ``package_path``.

        Options are validated before any credential exchange takes place.
        """
        results = self.sign_many(
            [(Path(package_path), Path(output_path))],
            timestamp_url=timestamp_url,
            signature_hash_algorithm=signature_hash_algorithm,
            timestamp_hash_algorithm=timestamp_hash_algorithm,
            signature_type=signature_type,
            overwrite=overwrite,
            key_vault_url=key_vault_url,
            certificate_name=certificate_name,
            credentials=credentials,
            v3_service_index_url=v3_service_index_url,
            package_owners=package_owners,
        )
        return bool(results) and results[0].success

    def sign_many(
        self,
        packages: Sequence[tuple[Path, Path]],
        *,
        timestamp_url: str,
        signature_hash_algorithm: Any,
        timestamp_hash_algorithm: Any,
        signature_type: Any,
        overwrite: bool,
        key_vault_url: str,
        certificate_name: str,
        credentials: SigningCredentials,
        v3_service_index_url: str | None = None,
        package_owners: Sequence[str] | None = None,
    ) -> list[SignResult]:
        """Sign several ``(package, output)`` pairs with a single vault identity."""
        failed = [SignResult(Path(src), Path(dst), False) for src, dst in packages]

        try:
            options = SignatureOptions.create(
                signature_type,
                signature_hash_algorithm,
                timestamp_hash_algorithm,
                v3_service_index_url=v3_service_index_url,
                package_owners=package_owners,
            )
        except Exception as exc:  # noqa: BLE001 - invalid options fail the whole batch
            logger.error("Invalid signing options: %s", exc)
            return failed

        if self.broker_factory is None or self.identity_factory is None:
            logger.error("Key vault signing is not configured for this service.")
            return failed
        if not credentials.is_usable():
            logger.error(
                "Key vault credentials missing: supply an access token or a client id and secret."
            )
            return failed

        try:
            broker = self.broker_factory(credentials)
            identity = self.identity_factory(broker, key_vault_url, certificate_name)
        except Exception as exc:  # noqa: BLE001 - reported as a failed invocation
            logger.error(
                "Failed to load certificate '%s' from %s: %s",
                certificate_name,
                key_vault_url,
                exc,
                exc_info=True,
            )
            return failed

        results: list[SignResult] = []
        for src, dst in packages:
            success = self.sign(
                Path(src),
                Path(dst),
                timestamp_url=timestamp_url,
                signature_hash_algorithm=options.signature_hash_algorithm,
                timestamp_hash_algorithm=options.timestamp_hash_algorithm,
                signature_type=options.signature_type,
                overwrite=overwrite,
                identity=identity,
                v3_service_index_url=options.v3_service_index_url,
                package_owners=options.package_owners,
            )
            results.append(SignResult(Path(src), Path(dst), success))
        return results

    def sign(
        self,
        package_path: Path,
        output_path: Path,
        *,
        timestamp_url: str,
        signature_hash_algorithm: Any,
        timestamp_hash_algorithm: Any,
        signature_type: Any,
        overwrite: bool,
        identity: SigningIdentity,
        v3_service_index_url: str | None = None,
        package_owners: Sequence[str] | None = None,
    ) -> bool:
        """Sign ``package_path`` into ``output_path`` with ``identity``.

        Steps: build the request, stage a working copy, hand it to the engine,
        and always delete the working copy afterwards.

        Returns:
            True if the signed package was written, False otherwise
        """
        package_path = Path(package_path)
        output_path = Path(output_path)
        file_name = package_path.name

        try:
            options = SignatureOptions.create(
                signature_type,
                signature_hash_algorithm,
                timestamp_hash_algorithm,
                v3_service_index_url=v3_service_index_url,
                package_owners=package_owners,
            )
            request = build_signing_request(options, identity.public_certificate)
        except Exception as exc:  # noqa: BLE001 - invalid options are reported as False
            logger.error("sign [%s]: %s", file_name, exc)
            return False

        logger.info("sign [%s]: Begin signing %s", file_name, package_path)
        try:
            with working_copy(self.storage, package_path) as copy:
                staged = copy.stage()
                provider = RemoteSignatureProvider(
                    handle=identity.key_handle,
                    timestamper=self.timestamp_factory(timestamp_url),
                )
                self.engine.sign(
                    staged,
                    output_path,
                    overwrite=overwrite,
                    request=request,
                    signature_provider=provider,
                    logger=PackageLogger(logger, {"package": file_name}),
                )
        except Exception as exc:  # noqa: BLE001 - any failure is reported as False
            logger.error("sign [%s]: %s", file_name, exc, exc_info=True)
            return False
        finally:
            logger.info("sign [%s]: End signing %s", file_name, package_path)

        return True
