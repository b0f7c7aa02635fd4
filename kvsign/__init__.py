"""kvsign - Sign NuGet packages with certificates held in Azure Key Vault.

The private key never leaves the vault: digests are signed remotely and the
resulting signature is embedded and timestamped locally.
"""

__version__ = "0.1.0"
__author__ = "kvsign Contributors"

from kvsign.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
