"""
Installation identity persistence.

The identity is the device-bound SECP256R1 keypair plus a secret derived from
it and the installation id. It is created once during provisioning and then
only ever read back. Storage itself is delegated to a small key/value backend
so that the host can put the record wherever its configuration lives.
"""
from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

from lionlink.core.binary import b64decode_str, b64encode_str
from lionlink.crypto import SECRET_SIZE, generate_keypair, sha256
from lionlink.errors import CryptoError, StorageError

logger = logging.getLogger(__name__)

KEY_ID = "INST_ID"
KEY_SECRET = "INST_SECRET"
KEY_PRIVATE = "INST_PRIVKEY"
KEY_PUBLIC = "INST_PUBKEY"
RECORD_KEYS = (KEY_ID, KEY_SECRET, KEY_PRIVATE, KEY_PUBLIC)

MAX_PRIVATE_KEY_DER = 121
MAX_PUBLIC_KEY_DER = 91


def derive_secret(installation_id: str, public_key_der: bytes) -> bytes:
    """
    Bind a 32-byte secret to the installation id and public key.

    ``SHA256(id + "." + b64(public_key_der) + "." + b64(SHA256(id)))``.
    Changing either input yields a different secret; there is no migration
    path, so a new keypair always comes with a new secret.
    """
    id_hash_b64 = b64encode_str(sha256(installation_id.encode("utf-8")))
    triple = f"{installation_id}.{b64encode_str(public_key_der)}.{id_hash_b64}"
    return sha256(triple.encode("utf-8"))


@dataclass(frozen=True)
class InstallationIdentity:
    """
    Long-lived credentials of one installation.

    Attributes:
        installation_id: UUID string registered with the cloud.
        private_key_der: SEC1 DER encoding of the EC private key.
        public_key_der: SubjectPublicKeyInfo DER encoding of the public key.
        secret: 32 bytes derived with ``derive_secret``.
    """
    installation_id: str
    private_key_der: bytes
    public_key_der: bytes
    secret: bytes

    def __repr__(self) -> str:
        return f"InstallationIdentity(installation_id={self.installation_id!r})"


class StorageBackend(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str) -> None:
        ...


class MemoryBackend:
    """Dictionary backed storage, mostly useful for tests and ephemeral runs."""

    def __init__(self, data: Optional[dict[str, str]] = None) -> None:
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def put(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileBackend:
    """Stores the record as a flat JSON object; rewritten atomically on every put."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Cannot read identity file {self.path}: {exc}") from exc
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Identity file {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Identity file {self.path} must contain a JSON object")
        return data

    def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return None if value is None else str(value)

    def put(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"Cannot write identity file {self.path}: {exc}") from exc


class IdentityStore:
    def __init__(self, backend: StorageBackend) -> None:
        self.backend = backend

    @staticmethod
    def generate(installation_id: Optional[str] = None) -> InstallationIdentity:
        installation_id = installation_id or str(uuid.uuid4())
        try:
            private_der, public_der = generate_keypair()
        except Exception as exc:
            raise CryptoError(f"EC key generation failed: {exc}") from exc
        if len(private_der) > MAX_PRIVATE_KEY_DER or len(public_der) > MAX_PUBLIC_KEY_DER:
            raise CryptoError(
                f"Unexpected DER sizes: private={len(private_der)} public={len(public_der)}"
            )
        return InstallationIdentity(
            installation_id=installation_id,
            private_key_der=private_der,
            public_key_der=public_der,
            secret=derive_secret(installation_id, public_der),
        )

    def load(self) -> Optional[InstallationIdentity]:
        values = {key: self.backend.get(key) for key in RECORD_KEYS}
        missing = [key for key, value in values.items() if not value]
        if len(missing) == len(RECORD_KEYS):
            return None
        if missing:
            logger.warning("identity_record_incomplete", extra={"details": {"missing": missing}})
            return None

        try:
            secret = b64decode_str(values[KEY_SECRET])
            private_der = b64decode_str(values[KEY_PRIVATE])
            public_der = b64decode_str(values[KEY_PUBLIC])
        except ValueError as exc:
            raise StorageError(f"Corrupt identity record: {exc}") from exc

        if len(secret) != SECRET_SIZE:
            raise StorageError(f"Corrupt identity record: secret is {len(secret)} bytes")
        if not private_der or len(private_der) > MAX_PRIVATE_KEY_DER:
            raise StorageError(f"Corrupt identity record: private key is {len(private_der)} bytes")
        if not public_der or len(public_der) > MAX_PUBLIC_KEY_DER:
            raise StorageError(f"Corrupt identity record: public key is {len(public_der)} bytes")

        return InstallationIdentity(
            installation_id=values[KEY_ID],
            private_key_der=private_der,
            public_key_der=public_der,
            secret=secret,
        )

    def save(self, identity: InstallationIdentity) -> None:
        self.backend.put(KEY_ID, identity.installation_id)
        self.backend.put(KEY_SECRET, b64encode_str(identity.secret))
        self.backend.put(KEY_PRIVATE, b64encode_str(identity.private_key_der))
        self.backend.put(KEY_PUBLIC, b64encode_str(identity.public_key_der))
        logger.info("identity_saved", extra={"details": {"installation_id": identity.installation_id}})

    def load_or_create(self, installation_id: Optional[str] = None) -> InstallationIdentity:
        identity = self.load()
        if identity is not None:
            return identity
        identity = self.generate(installation_id)
        self.save(identity)
        logger.info("identity_generated", extra={"details": {"installation_id": identity.installation_id}})
        return identity
