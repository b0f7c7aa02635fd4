"""Package signing engine for zip-based (``.nupkg``) packages."""

from __future__ import annotations

import base64
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from zipfile import ZIP_STORED, BadZipFile, ZipFile, ZipInfo, is_zipfile

from asn1crypto import algos, cms, core
from asn1crypto import x509 as asn1_x509
from cryptography.exceptions import InvalidSignature

from kvsign.app.ports import (
    PackageSigningEnginePort,
    SignatureProviderPort,
    SignatureType,
    SigningRequest,
)
from kvsign.errors import PackageSigningError
from kvsign.utils.crypto import certificate_der, verify_digest_signature
from kvsign.utils.hashing import compute_digest, compute_file_digest

SIGNATURE_ENTRY_NAME = ".signature.p7s"
SIGNATURE_FORMAT_VERSION = 1


def build_signature_content(request: SigningRequest, package_digest: bytes) -> bytes:
    """Render the signed content embedded in the CMS envelope.

    Repository signatures additionally carry the service index and owner list.
    """
    algorithm = request.signature_hash_algorithm
    sections = [
        [f"Version:{SIGNATURE_FORMAT_VERSION}"],
        [f"{algorithm.oid}-Hash:{base64.b64encode(package_digest).decode('ascii')}"],
    ]
    if request.signature_type is SignatureType.REPOSITORY:
        sections.append(
            [
                f"Signature-Type:{SignatureType.REPOSITORY.value}",
                f"V3-Service-Index-Url:{request.v3_service_index_url}",
                f"Package-Owners:{','.join(request.package_owners)}",
            ]
        )
    return "".join("\n".join(section) + "\n\n" for section in sections).encode("utf-8")


def is_signed_package(path: Path) -> bool:
    """Return True when ``path`` already carries a package signature."""
    with ZipFile(path) as archive:
        return SIGNATURE_ENTRY_NAME in archive.namelist()


class ZipPackageSigningEngine(PackageSigningEnginePort):
    """Embed a timestamped CMS signature into a zip package.

    The output is assembled in a temporary file beside ``output_path`` and moved
    into place with ``os.replace``, so a failure never leaves a partially
    signed package behind.
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
        source = Path(input_path)
        destination = Path(output_path)

        if destination.exists() and not overwrite:
            raise PackageSigningError(
                f"Output file already exists: {destination}. Enable overwrite to replace it."
            )
        if not is_zipfile(source):
            raise PackageSigningError(f"Not a package archive: {source}")
        if is_signed_package(source):
            raise PackageSigningError("Package is already signed.")

        algorithm = request.signature_hash_algorithm
        logger.info("Computing %s package hash", algorithm.value)
        package_digest = compute_file_digest(source, algorithm)
        content = build_signature_content(request, package_digest)

        logger.info("Requesting %s signature from key vault", request.signature_type.value)
        signature = self._create_signature(content, request, signature_provider, logger)

        logger.info("Writing signed package to %s", destination)
        self._write_signed_package(source, destination, signature)

    def _create_signature(
        self,
        content: bytes,
        request: SigningRequest,
        signature_provider: SignatureProviderPort,
        logger: logging.Logger | logging.LoggerAdapter,
    ) -> bytes:
        algorithm = request.signature_hash_algorithm
        certificate = asn1_x509.Certificate.load(certificate_der(request.certificate))

        signed_attrs = cms.CMSAttributes(
            [
                cms.CMSAttribute({"type": "content_type", "values": ["data"]}),
                cms.CMSAttribute(
                    {
                        "type": "signing_time",
                        "values": [cms.Time({"utc_time": core.UTCTime(datetime.now(UTC))})],
                    }
                ),
                cms.CMSAttribute(
                    {"type": "message_digest", "values": [compute_digest(content, algorithm)]}
                ),
            ]
        )
        attrs_digest = compute_digest(signed_attrs.dump(), algorithm)

        signature = signature_provider.sign_digest(attrs_digest, algorithm)
        try:
            verify_digest_signature(request.certificate, signature, attrs_digest, algorithm)
        except (InvalidSignature, TypeError) as exc:
            raise PackageSigningError(
                "Signature returned by the key vault does not match the signing certificate."
            ) from exc

        logger.info("Requesting timestamp")
        token = signature_provider.timestamp(signature, request.timestamp_hash_algorithm)

        signer_info = cms.SignerInfo(
            {
                "version": "v1",
                "sid": cms.SignerIdentifier(
                    {
                        "issuer_and_serial_number": cms.IssuerAndSerialNumber(
                            {
                                "issuer": certificate.issuer,
                                "serial_number": certificate.serial_number,
                            }
                        )
                    }
                ),
                "digest_algorithm": algos.DigestAlgorithm({"algorithm": algorithm.value}),
                "signed_attrs": signed_attrs,
                "signature_algorithm": algos.SignedDigestAlgorithm({"algorithm": "rsassa_pkcs1v15"}),
                "signature": signature,
                "unsigned_attrs": cms.CMSAttributes(
                    [cms.CMSAttribute({"type": "signature_time_stamp_token", "values": [token]})]
                ),
            }
        )

        signed_data = cms.SignedData(
            {
                "version": "v1",
                "digest_algorithms": [algos.DigestAlgorithm({"algorithm": algorithm.value})],
                "encap_content_info": {"content_type": "data", "content": content},
                "certificates": [certificate],
                "signer_infos": [signer_info],
            }
        )
        return cms.ContentInfo({"content_type": "signed_data", "content": signed_data}).dump()

    def _write_signed_package(self, source: Path, destination: Path, signature: bytes) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)

        fd: int | None = None
        tmp_path: str | None = None

        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=str(destination.parent),
                prefix=destination.name,
                suffix=".tmp",
            )

            with os.fdopen(fd, "wb") as handle:
                fd = None  # Ownership transferred to file object
                with ZipFile(source) as original, ZipFile(handle, "w") as signed:
                    for info in original.infolist():
                        signed.writestr(info, original.read(info.filename))
                    signature_info = ZipInfo(SIGNATURE_ENTRY_NAME, date_time=_zip_timestamp())
                    signature_info.compress_type = ZIP_STORED
                    signed.writestr(signature_info, signature)
                handle.flush()
                os.fsync(handle.fileno())

            os.replace(tmp_path, destination)
            tmp_path = None
        except BadZipFile as exc:
            raise PackageSigningError(f"Package archive is corrupt: {source}") from exc
        finally:
            if fd is not None:
                os.close(fd)
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass


def _zip_timestamp() -> tuple[int, int, int, int, int, int]:
    now = datetime.now()
    return (now.year, now.month, now.day, now.hour, now.minute, now.second)
