"""Port interfaces for the kvsign application layer.

These protocol interfaces define contracts for adapters.
Signing logic depends on these ports, never on concrete implementations.
"""

__all__ = [
    "CredentialBrokerPort",
    "SigningCredentials",
    "HashAlgorithmName",
    "SignatureOptions",
    "SignatureType",
    "SigningRequest",
    "build_signing_request",
    "SigningHandlePort",
    "SignatureProviderPort",
    "SigningIdentity",
    "TimestampPort",
    "PackageSigningEnginePort",
    "StoragePort",
]

from kvsign.app.ports.credentials import CredentialBrokerPort, SigningCredentials
from kvsign.app.ports.engine import PackageSigningEnginePort
from kvsign.app.ports.request import (
    HashAlgorithmName,
    SignatureOptions,
    SignatureType,
    SigningRequest,
    build_signing_request,
)
from kvsign.app.ports.signature import SignatureProviderPort, SigningHandlePort, SigningIdentity
from kvsign.app.ports.storage import StoragePort
from kvsign.app.ports.timestamp import TimestampPort
