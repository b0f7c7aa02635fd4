"""Hashing utilities for package content and signature digests."""

from pathlib import Path

from cryptography.hazmat.primitives import hashes

from kvsign.app.ports.request import HashAlgorithmName


def compute_digest(content: bytes, algorithm: HashAlgorithmName) -> bytes:
    """Compute the raw digest of ``content``.

    Args:
        content: Bytes to hash
        algorithm: Hash algorithm to apply

    Returns:
        Digest bytes
    """
    digest = hashes.Hash(algorithm.hash_algorithm())
    digest.update(content)
    return digest.finalize()


def compute_file_digest(
    file_path: Path,
    algorithm: HashAlgorithmName,
    chunk_size: int = 65536,
) -> bytes:
    """Compute the raw digest of a file.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm to apply
        chunk_size: Size of chunks to read (default 64KB)

    Returns:
        Digest bytes

    Raises:
        FileNotFoundError: If file does not exist
        PermissionError: If file cannot be read
    """
    digest = hashes.Hash(algorithm.hash_algorithm())

    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)

    return digest.finalize()
