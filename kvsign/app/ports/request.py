"""Signing request model shared by the orchestrator and the signing engine."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from kvsign.errors import ArgumentError


class SignatureType(str, Enum):
    """Package signature flavours."""

    AUTHOR = "author"
    REPOSITORY = "repository"


class HashAlgorithmName(str, Enum):
    """Hash algorithms accepted for file digests and timestamps."""

    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"

    @classmethod
    def parse(cls, value: "str | HashAlgorithmName") -> "HashAlgorithmName":
        """Parse ``value`` case-insensitively (``SHA256``, ``sha-256`` and ``sha256`` are equal)."""
        if isinstance(value, HashAlgorithmName):
            return value
        normalized = str(value).strip().lower().replace("-", "")
        try:
            return cls(normalized)
        except ValueError as exc:
            supported = ", ".join(member.value for member in cls)
            raise ArgumentError(
                f"Unsupported hash algorithm: {value}. Supported: {supported}"
            ) from exc

    @property
    def oid(self) -> str:
        return _HASH_OIDS[self]

    @property
    def digest_size(self) -> int:
        return self.hash_algorithm().digest_size

    @property
    def key_vault_algorithm(self) -> str:
        """RSA PKCS#1 v1.5 algorithm name understood by the key vault sign API."""
        return _KEY_VAULT_ALGORITHMS[self]

    def hash_algorithm(self) -> hashes.HashAlgorithm:
        return _HASH_FACTORIES[self]()


_HASH_OIDS = {
    HashAlgorithmName.SHA256: "2.16.840.1.101.3.4.2.1",
    HashAlgorithmName.SHA384: "2.16.840.1.101.3.4.2.2",
    HashAlgorithmName.SHA512: "2.16.840.1.101.3.4.2.3",
}

_KEY_VAULT_ALGORITHMS = {
    HashAlgorithmName.SHA256: "RS256",
    HashAlgorithmName.SHA384: "RS384",
    HashAlgorithmName.SHA512: "RS512",
}

_HASH_FACTORIES: dict[HashAlgorithmName, Any] = {
    HashAlgorithmName.SHA256: hashes.SHA256,
    HashAlgorithmName.SHA384: hashes.SHA384,
    HashAlgorithmName.SHA512: hashes.SHA512,
}


@dataclass(frozen=True, slots=True)
class SignatureOptions:
    """Mode-specific signing inputs, validated before any network traffic."""

    signature_type: SignatureType
    signature_hash_algorithm: HashAlgorithmName = HashAlgorithmName.SHA256
    timestamp_hash_algorithm: HashAlgorithmName = HashAlgorithmName.SHA256
    v3_service_index_url: str | None = None
    package_owners: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def create(
        cls,
        signature_type: Any,
        signature_hash_algorithm: Any = HashAlgorithmName.SHA256,
        timestamp_hash_algorithm: Any = HashAlgorithmName.SHA256,
        v3_service_index_url: str | None = None,
        package_owners: Sequence[str] | None = None,
    ) -> "SignatureOptions":
        """Validate raw inputs and return immutable options.

        Raises:
            ArgumentError: Unknown signature type, unsupported hash algorithm, or
                a repository signature without a service index or owners.
        """
        resolved_type = _parse_signature_type(signature_type)
        owners = _normalize_owners(package_owners)
        if v3_service_index_url is not None and not isinstance(v3_service_index_url, str):
            raise ArgumentError(
                f"The v3 service index URL must be text, got {type(v3_service_index_url).__name__}."
            )

        if resolved_type is SignatureType.REPOSITORY:
            if not v3_service_index_url or not v3_service_index_url.strip():
                raise ArgumentError("Repository signatures require a v3 service index URL.")
            if not owners:
                raise ArgumentError("Repository signatures require at least one package owner.")
            service_index = v3_service_index_url.strip()
        else:
            service_index = None
            owners = ()

        return cls(
            signature_type=resolved_type,
            signature_hash_algorithm=HashAlgorithmName.parse(signature_hash_algorithm),
            timestamp_hash_algorithm=HashAlgorithmName.parse(timestamp_hash_algorithm),
            v3_service_index_url=service_index,
            package_owners=owners,
        )


@dataclass(frozen=True, slots=True)
class SigningRequest:
    """Immutable request handed to the package signing engine."""

    signature_type: SignatureType
    certificate: x509.Certificate
    signature_hash_algorithm: HashAlgorithmName
    timestamp_hash_algorithm: HashAlgorithmName
    v3_service_index_url: str | None = None
    package_owners: tuple[str, ...] = ()


def build_signing_request(options: SignatureOptions, certificate: x509.Certificate) -> SigningRequest:
    """Bind validated ``options`` to the signer ``certificate``."""
    if options.signature_type is SignatureType.AUTHOR:
        return SigningRequest(
            signature_type=SignatureType.AUTHOR,
            certificate=certificate,
            signature_hash_algorithm=options.signature_hash_algorithm,
            timestamp_hash_algorithm=options.timestamp_hash_algorithm,
        )
    if options.signature_type is SignatureType.REPOSITORY:
        return SigningRequest(
            signature_type=SignatureType.REPOSITORY,
            certificate=certificate,
            signature_hash_algorithm=options.signature_hash_algorithm,
            timestamp_hash_algorithm=options.timestamp_hash_algorithm,
            v3_service_index_url=options.v3_service_index_url,
            package_owners=options.package_owners,
        )
    raise ArgumentError(f"Unsupported signature type: {options.signature_type!r}")


def _parse_signature_type(value: Any) -> SignatureType:
    if isinstance(value, SignatureType):
        return value
    if isinstance(value, str):
        try:
            return SignatureType(value.strip().lower())
        except ValueError:
            pass
    raise ArgumentError(f"Unsupported signature type: {value!r} (expected 'author' or 'repository')")


def _normalize_owners(package_owners: Any) -> tuple[str, ...]:
    """Strip owner names and drop blanks; a bare string is not a list of owners."""
    if package_owners is None:
        return ()
    if isinstance(package_owners, (str, bytes)):
        raise ArgumentError("Package owners must be a list of names, not a single string.")
    try:
        candidates = list(package_owners)
    except TypeError as exc:
        raise ArgumentError(f"Package owners must be a list of names, got {package_owners!r}.") from exc
    owners: list[str] = []
    for owner in candidates:
        if not isinstance(owner, str):
            raise ArgumentError(f"Package owner names must be text, got {owner!r}.")
        if owner.strip():
            owners.append(owner.strip())
    return tuple(owners)
