"""Package signing engine port."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from kvsign.app.ports.request import SigningRequest
from kvsign.app.ports.signature import SignatureProviderPort


class PackageSigningEnginePort(Protocol):
    """Port interface for embedding a signature into a package archive.

    Implementations must leave ``output_path`` either fully written or untouched.

    Side effects: Reads ``input_path`` and writes ``output_path`` (offline); calls
    back into ``signature_provider`` for the remote parts.
    """

    def sign(
        self,
        input_path: Path,
        output_path: Path,
        *,
        overwrite: bool,
        request: SigningRequest,
        signature_provider: SignatureProviderPort,
        logger: logging.Logger | logging.LoggerAdapter,
    ) -> None:
        """Sign ``input_path`` into ``output_path``.

        Raises:
            PackageSigningError: If the package is rejected
        """
        ...
