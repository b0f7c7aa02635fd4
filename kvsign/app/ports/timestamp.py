"""Timestamp authority port."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from asn1crypto import cms

    from kvsign.app.ports.request import HashAlgorithmName


class TimestampPort(Protocol):
    """Port interface for trusted timestamping of a digest.

    Side effects: Calls the configured timestamp authority (online).
    """

    @property
    def url(self) -> str:
        ...

    def request_timestamp(self, digest: bytes, hash_algorithm: "HashAlgorithmName") -> "cms.ContentInfo":
        """Return the timestamp token issued for ``digest``.

        Raises:
            TimestampError: If the authority is unreachable or rejects the request
        """
        ...
