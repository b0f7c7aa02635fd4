"""Pytest configuration and fixtures."""

from __future__ import annotations

import gc
import shutil
import tempfile
import time
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from kvsign.config import Settings
from tests.fakes import CERTIFICATE_NAME, TSA_URL, VAULT_URL, FakeAzure


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    try:
        yield Path(tmpdir)
    finally:
        # Force garbage collection to release any file handles
        gc.collect()
        # Small delay to allow OS to release file locks
        time.sleep(0.1)
        # Retry cleanup with ignore_errors for better cross-platform support
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    """RSA key standing in for the key held by the vault."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signing_certificate(signing_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """Self-signed certificate for ``signing_key``."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "kvsign test signer")])
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(signing_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(signing_key, hashes.SHA256())
    )


@pytest.fixture
def fake_azure(signing_key: rsa.RSAPrivateKey, signing_certificate: x509.Certificate) -> FakeAzure:
    """In-memory Azure identity, key vault and TSA."""
    return FakeAzure(signing_key, signing_certificate)


@pytest.fixture
def sample_package(temp_dir: Path) -> Path:
    """Create a small unsigned ``.nupkg`` archive."""
    package_path = temp_dir / "Contoso.Utilities.1.0.0.nupkg"
    with ZipFile(package_path, "w", compression=ZIP_DEFLATED) as archive:
        archive.writestr(
            "Contoso.Utilities.nuspec",
            '<?xml version="1.0"?><package><metadata><id>Contoso.Utilities</id>'
            "<version>1.0.0</version></metadata></package>",
        )
        archive.writestr("lib/net8.0/Contoso.Utilities.dll", b"\x4d\x5a" + b"\x00" * 256)
        archive.writestr("[Content_Types].xml", "<Types/>")
    return package_path


@pytest.fixture
def scratch_dir(temp_dir: Path) -> Path:
    """Directory used for working copies so tests can assert it ends up empty."""
    path = temp_dir / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def override_settings(temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide isolated kvsign settings scoped to tests."""

    import kvsign.config as config_module

    original_settings = getattr(config_module, "_settings", None)

    settings = config_module.Settings(
        timestamp_url=TSA_URL,
        key_vault_url=VAULT_URL,
        key_vault_certificate_name=CERTIFICATE_NAME,
    )

    config_module._settings = settings

    try:
        yield settings
    finally:
        config_module._settings = original_settings
