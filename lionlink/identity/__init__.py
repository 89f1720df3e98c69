"""
Installation identity and request signing.

- ``store``: keypair generation, secret derivation and record persistence.
- ``signer``: request proof and signed header construction.
"""
from lionlink.identity.signer import RequestSigner, SignedHeaders
from lionlink.identity.store import (
    IdentityStore,
    InstallationIdentity,
    JsonFileBackend,
    MemoryBackend,
    derive_secret,
)

__all__ = [
    "IdentityStore",
    "InstallationIdentity",
    "JsonFileBackend",
    "MemoryBackend",
    "RequestSigner",
    "SignedHeaders",
    "derive_secret",
]
