"""
Request signing for the vendor cloud.

Every REST call and the WebSocket upgrade carry four headers: the installation
id, a millisecond timestamp, a random nonce and an ECDSA signature. The signed
message embeds a "request proof", a keyed byte scramble of the id, nonce and
timestamp followed by SHA-256. The scramble is order dependent and must match
the vendor byte for byte, so it lives in ``lionlink.crypto.scramble``.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from lionlink.core.binary import b64encode_str
from lionlink.crypto import ecdsa_sign_der, request_proof, sha256
from lionlink.errors import SigningError
from lionlink.identity.store import InstallationIdentity

HEADER_INSTALLATION_ID = "X-App-Installation-Id"
HEADER_TIMESTAMP = "X-Timestamp"
HEADER_NONCE = "X-Nonce"
HEADER_SIGNATURE = "X-Request-Signature"
HEADER_PROOF = "X-Request-Proof"


@dataclass(frozen=True)
class SignedHeaders:
    installation_id: str
    timestamp_ms: str
    nonce: str
    signature: str

    def as_dict(self) -> dict[str, str]:
        return {
            HEADER_INSTALLATION_ID: self.installation_id,
            HEADER_TIMESTAMP: self.timestamp_ms,
            HEADER_NONCE: self.nonce,
            HEADER_SIGNATURE: self.signature,
        }

    def as_list(self) -> list[str]:
        return [f"{name}: {value}" for name, value in self.as_dict().items()]

    def as_block(self) -> str:
        # CRLF between headers, none after the last one.
        return "\r\n".join(self.as_list())


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class RequestSigner:
    def __init__(
        self,
        clock_ms: Callable[[], int] = _wall_clock_ms,
        nonce_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._clock_ms = clock_ms
        self._nonce_factory = nonce_factory

    @staticmethod
    def sign(identity: InstallationIdentity, base_string: str) -> str:
        return request_proof(base_string, identity.secret)

    @staticmethod
    def base_string(identity: InstallationIdentity) -> str:
        return f"{identity.installation_id}.{b64encode_str(sha256(identity.public_key_der))}"

    def build_headers(self, identity: InstallationIdentity, nonce: Optional[str] = None) -> SignedHeaders:
        nonce = nonce or self._nonce_factory()
        timestamp = str(self._clock_ms())
        proof_input = f"{identity.installation_id}.{nonce}.{timestamp}"
        proof = self.sign(identity, proof_input)
        message = f"{proof_input}.{proof}".encode("utf-8")
        try:
            signature = ecdsa_sign_der(identity.private_key_der, message)
        except (ValueError, TypeError, IndexError) as exc:
            raise SigningError(f"ECDSA signing failed: {exc}") from exc
        if not signature:
            raise SigningError("ECDSA signing produced an empty signature")
        return SignedHeaders(
            installation_id=identity.installation_id,
            timestamp_ms=timestamp,
            nonce=nonce,
            signature=b64encode_str(signature),
        )
