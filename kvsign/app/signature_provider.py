"""Signature provider combining a remote signing handle with a timestamp authority."""

from __future__ import annotations

from dataclasses import dataclass

from asn1crypto import cms

from kvsign.app.ports import HashAlgorithmName, SigningHandlePort, TimestampPort
from kvsign.utils.hashing import compute_digest


@dataclass(slots=True)
class RemoteSignatureProvider:
    """Route engine callbacks to the key vault and the timestamp authority."""

    handle: SigningHandlePort
    timestamper: TimestampPort

    def sign_digest(self, digest: bytes, hash_algorithm: HashAlgorithmName) -> bytes:
        return self.handle.sign(digest, hash_algorithm)

    def timestamp(self, data: bytes, hash_algorithm: HashAlgorithmName) -> cms.ContentInfo:
        return self.timestamper.request_timestamp(compute_digest(data, hash_algorithm), hash_algorithm)
