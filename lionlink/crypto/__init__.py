from Crypto.Hash import SHA256
from Crypto.PublicKey import ECC
from Crypto.Signature import DSS

from lionlink.core.binary import b64encode_str, rotate_left8

CURVE = "P-256"
SECRET_SIZE = 32


def sha256(data: bytes) -> bytes:
    return SHA256.new(data).digest()


def generate_keypair() -> tuple[bytes, bytes]:
    key = ECC.generate(curve=CURVE)
    private_der = key.export_key(format="DER", use_pkcs8=False)
    public_der = key.public_key().export_key(format="DER")
    return private_der, public_der


def scramble(data: bytes, secret: bytes) -> bytes:
    if len(secret) != SECRET_SIZE:
        raise ValueError(f"secret must be {SECRET_SIZE} bytes")
    work = bytearray(secret)
    for byte in data:
        idx = byte % SECRET_SIZE
        shift = work[(idx + 1) % SECRET_SIZE] & 7
        work[idx] = rotate_left8(byte ^ work[idx], shift)
    return bytes(work)


def request_proof(base_string: str, secret: bytes) -> str:
    return b64encode_str(sha256(scramble(base_string.encode("utf-8"), secret)))


def ecdsa_sign_der(private_key_der: bytes, message: bytes) -> bytes:
    key = ECC.import_key(private_key_der)
    signer = DSS.new(key, "fips-186-3", encoding="der")
    return signer.sign(SHA256.new(message))


def ecdsa_verify_der(public_key_der: bytes, message: bytes, signature: bytes) -> bool:
    key = ECC.import_key(public_key_der)
    verifier = DSS.new(key, "fips-186-3", encoding="der")
    try:
        verifier.verify(SHA256.new(message), signature)
    except ValueError:
        return False
    return True


__all__ = [
    "CURVE",
    "SECRET_SIZE",
    "ecdsa_sign_der",
    "ecdsa_verify_der",
    "generate_keypair",
    "request_proof",
    "scramble",
    "sha256",
]
