"""Signature provider ports backed by remote key custody."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from cryptography import x509

if TYPE_CHECKING:  # pragma: no cover
    from asn1crypto import cms

    from kvsign.app.ports.request import HashAlgorithmName


class SigningHandlePort(Protocol):
    """Capability to sign a digest with a key that never leaves the vault.

    Side effects: One remote round-trip per call (online).
    """

    @property
    def key_id(self) -> str:
        """Opaque identifier of the remote key."""
        ...

    def sign(self, digest: bytes, hash_algorithm: "HashAlgorithmName") -> bytes:
        """Sign a precomputed ``digest`` and return the raw signature bytes."""
        ...


class SignatureProviderPort(Protocol):
    """What the package signing engine calls back into while signing."""

    def sign_digest(self, digest: bytes, hash_algorithm: "HashAlgorithmName") -> bytes:
        """Return a signature over ``digest``."""
        ...

    def timestamp(self, data: bytes, hash_algorithm: "HashAlgorithmName") -> "cms.ContentInfo":
        """Hash ``data`` with ``hash_algorithm`` and return a timestamp token over the digest."""
        ...


@dataclass(frozen=True, slots=True)
class SigningIdentity:
    """Public certificate plus a handle to the matching private key in the vault."""

    public_certificate: x509.Certificate
    key_handle: SigningHandlePort
