"""End-to-end tests for the package signing service."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any
from zipfile import ZipFile

import pytest

from kvsign.app.adapters import FileSystemStorageAdapter
from kvsign.app.adapters.zip_engine import SIGNATURE_ENTRY_NAME, is_signed_package
from kvsign.app.ports import SigningCredentials
from kvsign.bootstrap import ApplicationContainer, bootstrap_application
from kvsign.config import Settings
from kvsign.errors import CleanupError
from tests.fakes import (
    CERTIFICATE_NAME,
    CLIENT_ID,
    CLIENT_SECRET,
    ISSUED_TOKEN,
    TSA_URL,
    VAULT_URL,
    FakeAzure,
)

CLIENT_CREDENTIALS = SigningCredentials(client_id=CLIENT_ID, client_secret=CLIENT_SECRET)


class _FailingDeleteStorage(FileSystemStorageAdapter):
    """Remove the working copy, then report the delete as failed."""

    def __init__(self, temp_dir: Path, error: Exception) -> None:
        super().__init__(temp_dir)
        self.error = error
        self.deleted: list[Path] = []

    def delete(self, path: Path) -> None:
        super().delete(path)
        self.deleted.append(path)
        raise self.error


@pytest.fixture
def container(fake_azure: FakeAzure, scratch_dir: Path) -> ApplicationContainer:
    return bootstrap_application(Settings(), temp_dir=scratch_dir, **fake_azure.bootstrap_kwargs())


def _sign(container: ApplicationContainer, package: Path, output: Path, **overrides: Any) -> bool:
    options: dict[str, Any] = {
        "timestamp_url": TSA_URL,
        "signature_hash_algorithm": "sha256",
        "timestamp_hash_algorithm": "sha256",
        "signature_type": "author",
        "overwrite": False,
        "key_vault_url": VAULT_URL,
        "certificate_name": CERTIFICATE_NAME,
        "credentials": CLIENT_CREDENTIALS,
    }
    options.update(overrides)
    return container.signing_service.sign_with_key_vault(package, output, **options)


def test_author_signing_succeeds(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
) -> None:
    original_bytes = sample_package.read_bytes()
    original_mtime = sample_package.stat().st_mtime_ns
    output = temp_dir / "signed" / sample_package.name

    assert _sign(container, sample_package, output) is True

    with ZipFile(sample_package) as original, ZipFile(output) as signed:
        assert set(signed.namelist()) - set(original.namelist()) == {SIGNATURE_ENTRY_NAME}
    assert sample_package.read_bytes() == original_bytes
    assert sample_package.stat().st_mtime_ns == original_mtime
    assert list(scratch_dir.iterdir()) == []
    assert len(fake_azure.token_requests) == 1
    assert len(fake_azure.sign_requests) == 1
    assert len(fake_azure.timestamp_requests) == 1


def test_missing_certificate_fails_without_output(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
) -> None:
    output = temp_dir / "signed.nupkg"

    assert _sign(container, sample_package, output, certificate_name="unknown-cert") is False

    assert not output.exists()
    assert list(scratch_dir.iterdir()) == []
    assert fake_azure.sign_requests == []


def test_unreachable_timestamp_authority_fails(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
) -> None:
    fake_azure.tsa_available = False
    original_bytes = sample_package.read_bytes()
    output = temp_dir / "signed.nupkg"

    assert _sign(container, sample_package, output) is False

    assert not output.exists()
    assert list(scratch_dir.iterdir()) == []
    assert sorted(path.name for path in temp_dir.iterdir()) == sorted([sample_package.name, "scratch"])
    assert sample_package.read_bytes() == original_bytes


def test_rejected_timestamp_fails(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
) -> None:
    fake_azure.tsa_rejects = True

    assert _sign(container, sample_package, temp_dir / "signed.nupkg") is False
    assert not (temp_dir / "signed.nupkg").exists()


def test_signed_package_in_place_without_overwrite_is_rejected(
    container: ApplicationContainer,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
) -> None:
    signed = temp_dir / "already-signed.nupkg"
    assert _sign(container, sample_package, signed) is True
    signed_bytes = signed.read_bytes()

    assert _sign(container, signed, signed) is False

    assert signed.read_bytes() == signed_bytes
    assert is_signed_package(signed)
    assert list(scratch_dir.iterdir()) == []


def test_unsigned_package_signed_in_place_with_overwrite(
    container: ApplicationContainer,
    sample_package: Path,
    temp_dir: Path,
) -> None:
    target = temp_dir / "in-place.nupkg"
    shutil.copyfile(sample_package, target)

    assert _sign(container, target, target, overwrite=True) is True
    assert is_signed_package(target)


def test_invalid_signature_type_has_no_side_effects(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
) -> None:
    assert _sign(container, sample_package, temp_dir / "signed.nupkg", signature_type="notary") is False

    assert fake_azure.calls == []
    assert list(scratch_dir.iterdir()) == []
    assert not (temp_dir / "signed.nupkg").exists()


@pytest.mark.parametrize(
    ("service_index", "owners"),
    [(None, ["contoso"]), ("https://api.example.test/v3/index.json", []), ("  ", ["contoso"])],
)
def test_incomplete_repository_options_make_no_network_call(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    service_index: str | None,
    owners: list[str],
) -> None:
    result = _sign(
        container,
        sample_package,
        temp_dir / "signed.nupkg",
        signature_type="repository",
        v3_service_index_url=service_index,
        package_owners=owners,
    )

    assert result is False
    assert fake_azure.calls == []
    assert fake_azure.token_requests == []


def test_repository_signing_succeeds(
    container: ApplicationContainer,
    sample_package: Path,
    temp_dir: Path,
) -> None:
    output = temp_dir / "signed.nupkg"

    assert _sign(
        container,
        sample_package,
        output,
        signature_type="repository",
        v3_service_index_url="https://api.example.test/v3/index.json",
        package_owners=["contoso"],
    )
    assert is_signed_package(output)


def test_access_token_is_used_for_every_vault_call(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
) -> None:
    credentials = SigningCredentials(access_token=ISSUED_TOKEN, client_id=CLIENT_ID, client_secret="ignored")

    assert _sign(container, sample_package, temp_dir / "signed.nupkg", credentials=credentials)

    assert fake_azure.token_requests == []
    assert fake_azure.authorization_headers
    assert set(fake_azure.authorization_headers) == {f"Bearer {ISSUED_TOKEN}"}


def test_failed_authentication_returns_false(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
) -> None:
    credentials = SigningCredentials(client_id=CLIENT_ID, client_secret="wrong-secret")

    assert _sign(container, sample_package, temp_dir / "signed.nupkg", credentials=credentials) is False

    assert len(fake_azure.token_requests) == 1
    assert not any(url.endswith("/sign") for _, url in fake_azure.calls)
    assert list(scratch_dir.iterdir()) == []


def test_missing_credentials_return_false(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
) -> None:
    assert _sign(
        container, sample_package, temp_dir / "signed.nupkg", credentials=SigningCredentials()
    ) is False
    assert fake_azure.calls == []


def test_sign_many_shares_one_identity(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
) -> None:
    second = temp_dir / "Second.1.0.0.nupkg"
    shutil.copyfile(sample_package, second)
    out_dir = temp_dir / "out"

    results = container.signing_service.sign_many(
        [(sample_package, out_dir / sample_package.name), (second, out_dir / second.name)],
        timestamp_url=TSA_URL,
        signature_hash_algorithm="sha384",
        timestamp_hash_algorithm="sha512",
        signature_type="author",
        overwrite=False,
        key_vault_url=VAULT_URL,
        certificate_name=CERTIFICATE_NAME,
        credentials=CLIENT_CREDENTIALS,
    )

    assert [result.success for result in results] == [True, True]
    assert [method for method, url in fake_azure.calls if "/certificates/" in url] == ["GET"]
    assert [request["alg"] for request in fake_azure.sign_requests] == ["RS384", "RS384"]
    assert all(is_signed_package(result.output_path) for result in results)
    assert list(scratch_dir.iterdir()) == []


def test_begin_and_end_are_logged_with_file_name(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    fake_azure.tsa_available = False

    with caplog.at_level(logging.INFO, logger="kvsign"):
        _sign(container, sample_package, temp_dir / "signed.nupkg")

    messages = [record.getMessage() for record in caplog.records]
    assert any(f"sign [{sample_package.name}]: Begin signing" in message for message in messages)
    assert any(f"sign [{sample_package.name}]: End signing" in message for message in messages)
    assert any(
        record.levelno == logging.ERROR and "unreachable" in record.getMessage()
        for record in caplog.records
    )


@pytest.mark.parametrize(
    "error",
    [CleanupError("disk went away"), RuntimeError("unexpected"), PermissionError("denied")],
)
def test_cleanup_failure_does_not_change_result(
    container: ApplicationContainer,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
    error: Exception,
) -> None:
    storage = _FailingDeleteStorage(scratch_dir, error)
    container.signing_service.storage = storage
    output = temp_dir / "signed.nupkg"

    assert _sign(container, sample_package, output) is True

    assert is_signed_package(output)
    assert len(storage.deleted) == 1
    assert list(scratch_dir.iterdir()) == []


def test_staging_failure_returns_false_and_leaves_scratch_empty(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _fail_copy(*args: Any, **kwargs: Any) -> None:
        raise OSError("No space left on device")

    monkeypatch.setattr("kvsign.app.adapters.storage.shutil.copyfileobj", _fail_copy)
    output = temp_dir / "signed.nupkg"

    assert _sign(container, sample_package, output) is False

    assert not output.exists()
    assert list(scratch_dir.iterdir()) == []
    assert fake_azure.sign_requests == []


def test_remote_sign_failure_returns_false_without_output(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
) -> None:
    fake_azure.sign_fails = True
    output = temp_dir / "signed.nupkg"

    assert _sign(container, sample_package, output) is False

    assert not output.exists()
    assert list(scratch_dir.iterdir()) == []
    assert any(url.endswith("/sign") for _, url in fake_azure.calls)
    assert fake_azure.timestamp_requests == []


@pytest.mark.parametrize("owners", ["contoso", ["contoso", 42]])
def test_malformed_package_owners_return_false(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    owners: Any,
) -> None:
    result = _sign(
        container,
        sample_package,
        temp_dir / "signed.nupkg",
        signature_type="repository",
        v3_service_index_url="https://api.example.test/v3/index.json",
        package_owners=owners,
    )

    assert result is False
    assert fake_azure.calls == []


def test_malformed_owners_passed_to_sign_return_false(
    container: ApplicationContainer,
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
) -> None:
    broker = container.signing_service.broker_factory(SigningCredentials(access_token=ISSUED_TOKEN))
    identity = container.signing_service.identity_factory(broker, VAULT_URL, CERTIFICATE_NAME)

    result = container.signing_service.sign(
        sample_package,
        temp_dir / "signed.nupkg",
        timestamp_url=TSA_URL,
        signature_hash_algorithm="sha256",
        timestamp_hash_algorithm="sha256",
        signature_type="repository",
        overwrite=False,
        identity=identity,
        v3_service_index_url="https://api.example.test/v3/index.json",
        package_owners=[object()],
    )

    assert result is False
    assert fake_azure.sign_requests == []


def test_invocations_share_no_session_or_token(
    fake_azure: FakeAzure,
    sample_package: Path,
    temp_dir: Path,
    scratch_dir: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr("kvsign.app.adapters.rfc3161.requests.post", fake_azure.post)
    wiring = fake_azure.bootstrap_kwargs()
    del wiring["session"]
    container = bootstrap_application(Settings(), temp_dir=scratch_dir, **wiring)

    assert _sign(container, sample_package, temp_dir / "first.nupkg") is True
    assert _sign(container, sample_package, temp_dir / "second.nupkg") is True

    assert len(fake_azure.timestamp_requests) == 2
    # A fresh broker per invocation means a fresh token exchange per invocation.
    assert len(fake_azure.token_requests) == 2
