"""Concrete adapters wiring application ports to vault, TSA and filesystem implementations."""

from __future__ import annotations

from .credentials import KeyVaultCredentialBroker
from .key_vault import KeyVaultClient, KeyVaultSigningHandle
from .rfc3161 import Rfc3161TimestampClient
from .storage import FileSystemStorageAdapter
from .zip_engine import ZipPackageSigningEngine

__all__ = [
    "FileSystemStorageAdapter",
    "KeyVaultClient",
    "KeyVaultCredentialBroker",
    "KeyVaultSigningHandle",
    "Rfc3161TimestampClient",
    "ZipPackageSigningEngine",
]
