"""Application layer for kvsign.

This layer orchestrates signing without direct filesystem or network I/O.
All side effects are delegated to adapters via port interfaces.
"""

__all__ = [
    "PackageSigningService",
    "RemoteSignatureProvider",
    "SignResult",
    "WorkingCopy",
    "working_copy",
]

from kvsign.app.sign_service import PackageSigningService, SignResult
from kvsign.app.signature_provider import RemoteSignatureProvider
from kvsign.app.working_copy import WorkingCopy, working_copy
