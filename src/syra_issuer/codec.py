from __future__ import annotations

import unicodedata
from hashlib import sha256
from typing import Optional, Union

from py_ecc.bls.hash import expand_message_xmd

USK_DST = b"SYRA-V1-USK_XMD:SHA-256_"
JWT_SUB_DST = b"SYRA-V1-JWT-SUB_XMD:SHA-256_"
GENERATOR_DST = b"SYRA-V1-GENERATOR_"
IVK_W_DST = b"SYRA-V1-IVK-W_XMD:SHA-256_"

SCALAR_LEN = 32
# ceil((ceil(log2 r) + k) / 8) with k = 128, for both BLS12-381 and BN254.
_H2F_LEN = 48


def normalize_identifier(identifier: Union[str, bytes]) -> bytes:
    """NFC-normalize text identifiers; byte identifiers are taken verbatim."""
    if isinstance(identifier, bytes):
        return identifier
    return unicodedata.normalize("NFC", identifier).encode("utf-8")


def hash_to_field(data: bytes, order: int, dst: bytes) -> int:
    """RFC 9380 hash_to_field (count=1) into Z_order using expand_message_xmd/SHA-256."""
    uniform = expand_message_xmd(data, dst, _H2F_LEN, sha256)
    return int.from_bytes(uniform, "big") % order


def scalar_to_bytes(x: int) -> bytes:
    return int(x).to_bytes(SCALAR_LEN, "big")


def scalar_from_bytes(buf: bytes, order: int) -> Optional[int]:
    """Decode a canonical 32-byte big-endian scalar. Returns None as ⊥."""
    if len(buf) != SCALAR_LEN:
        return None
    x = int.from_bytes(buf, "big")
    if x >= order:
        return None
    return x


def to_hex(buf: bytes) -> str:
    return buf.hex()


def from_hex(text: str) -> Optional[bytes]:
    try:
        return bytes.fromhex(text.strip().removeprefix("0x"))
    except (ValueError, AttributeError):
        return None
