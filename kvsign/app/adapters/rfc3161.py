"""RFC 3161 timestamp client."""

from __future__ import annotations

import logging
import secrets

import requests
from asn1crypto import algos, cms, core, tsp

from kvsign.app.ports import HashAlgorithmName, TimestampPort
from kvsign.errors import TimestampError

logger = logging.getLogger(__name__)

TIMESTAMP_QUERY_CONTENT_TYPE = "application/timestamp-query"

_GRANTED_STATUSES = {"granted", "granted_with_mods"}


class _TimeStampResponse(core.Sequence):
    """``TimeStampResp`` with the token optional, as RFC 3161 defines it.

    Rejections carry only a status, which ``tsp.TimeStampResp`` fails to load.
    """

    _fields = [
        ("status", tsp.PKIStatusInfo),
        ("time_stamp_token", cms.ContentInfo, {"optional": True}),
    ]


class Rfc3161TimestampClient(TimestampPort):
    """Request timestamp tokens from a single timestamp authority.

    Without a ``session`` each request goes through a one-off ``requests.post``.
    """

    def __init__(
        self,
        url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        if not url:
            raise TimestampError("A timestamp authority URL is required.")
        self._url = url
        self._session = session
        self._timeout = timeout

    @property
    def url(self) -> str:
        return self._url

    def request_timestamp(self, digest: bytes, hash_algorithm: HashAlgorithmName) -> cms.ContentInfo:
        nonce = secrets.randbits(63)
        request = tsp.TimeStampReq(
            {
                "version": "v1",
                "message_imprint": tsp.MessageImprint(
                    {
                        "hash_algorithm": algos.DigestAlgorithm({"algorithm": hash_algorithm.value}),
                        "hashed_message": digest,
                    }
                ),
                "nonce": nonce,
                "cert_req": True,
            }
        )

        logger.debug("Requesting %s timestamp from %s", hash_algorithm.value, self._url)
        post = self._session.post if self._session is not None else requests.post
        try:
            response = post(
                self._url,
                data=request.dump(),
                headers={"Content-Type": TIMESTAMP_QUERY_CONTENT_TYPE},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TimestampError(f"Timestamp authority {self._url} is unreachable: {exc}") from exc

        if response.status_code != 200:
            raise TimestampError(
                f"Timestamp authority {self._url} returned status {response.status_code}"
            )

        return self._parse_response(response.content, digest, nonce)

    def _parse_response(self, content: bytes, digest: bytes, nonce: int) -> cms.ContentInfo:
        try:
            timestamp_response = _TimeStampResponse.load(content)
            status_info = timestamp_response["status"]
            status = status_info["status"].native
            failure = status_info["fail_info"].native
        except (ValueError, TypeError) as exc:
            raise TimestampError(f"Timestamp authority {self._url} sent a malformed response") from exc

        if status not in _GRANTED_STATUSES:
            raise TimestampError(
                f"Timestamp authority {self._url} rejected the request (status={status}, failure={failure})"
            )

        token = timestamp_response["time_stamp_token"]
        if isinstance(token, core.Void):
            raise TimestampError(f"Timestamp authority {self._url} returned no token")

        try:
            tst_info = token["content"]["encap_content_info"]["content"].parsed
            imprint = tst_info["message_imprint"]["hashed_message"].native
            token_nonce = tst_info["nonce"].native
        except (KeyError, ValueError, TypeError) as exc:
            raise TimestampError(f"Timestamp token from {self._url} could not be parsed") from exc

        if imprint != digest:
            raise TimestampError(f"Timestamp token from {self._url} covers a different digest")
        # RFC 3161 2.4.2: a nonce sent in the request must be echoed in the token.
        if token_nonce != nonce:
            raise TimestampError(f"Timestamp token from {self._url} has a missing or mismatched nonce")

        return token
