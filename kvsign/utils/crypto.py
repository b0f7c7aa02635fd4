"""Certificate and signature helpers."""

from __future__ import annotations

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils

from kvsign.app.ports.request import HashAlgorithmName


def load_der_certificate(der: bytes) -> x509.Certificate:
    """Load a certificate from the DER ``cer`` bytes of a vault certificate."""
    return x509.load_der_x509_certificate(der)


def certificate_der(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.DER)


def verify_digest_signature(
    certificate: x509.Certificate,
    signature: bytes,
    digest: bytes,
    hash_algorithm: HashAlgorithmName,
) -> None:
    """Check an RSA PKCS#1 v1.5 ``signature`` over a precomputed ``digest``.

    Raises:
        cryptography.exceptions.InvalidSignature: If the signature does not match
        TypeError: If the certificate does not carry an RSA key
    """
    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise TypeError(f"Unsupported certificate key type: {type(public_key).__name__}")
    public_key.verify(
        signature,
        digest,
        padding.PKCS1v15(),
        utils.Prehashed(hash_algorithm.hash_algorithm()),
    )
