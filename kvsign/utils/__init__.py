"""Utility modules for common operations."""

from kvsign.utils.crypto import certificate_der, load_der_certificate, verify_digest_signature
from kvsign.utils.hashing import compute_digest, compute_file_digest

__all__ = [
    "certificate_der",
    "compute_digest",
    "compute_file_digest",
    "load_der_certificate",
    "verify_digest_signature",
]
