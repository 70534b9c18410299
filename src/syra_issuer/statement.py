"""The fixed statement of the JWT circuit and the proof gate built on it.

Public-input layout (19 signals)::

    [ sub, n_0, n_1, ..., n_16, sub ]

``sub`` is the subject as a BN254 scalar and ``n_i`` are the 121-bit
little-endian limbs of the identity provider's RSA modulus. The circuit
repeats ``sub`` as its ``subStatement`` output.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import requests

from .codec import JWT_SUB_DST, hash_to_field, normalize_identifier
from .errors import JwkUnavailable
from .groth16 import MAX_PROOF_LEN, ProofVerifier
from .interfaces import JwkProvider

logger = logging.getLogger(__name__)

CHUNK_BITS = 121
NUM_LIMBS = 17
N_PUBLIC = NUM_LIMBS + 2

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"

SUBJECT_ENCODINGS = ("hash", "decimal")

MAX_PROOF_B64_LEN = 4 * ((MAX_PROOF_LEN + 2) // 3)


def modulus_limbs(modulus: int, chunk_bits: int = CHUNK_BITS, num_limbs: int = NUM_LIMBS) -> List[int]:
    """Split an RSA modulus into little-endian limbs, zero-padded to num_limbs."""
    if modulus <= 0:
        raise ValueError("modulus must be positive")
    if modulus.bit_length() > chunk_bits * num_limbs:
        raise ValueError("modulus does not fit the circuit's limb layout")
    mask = (1 << chunk_bits) - 1
    return [(modulus >> (chunk_bits * i)) & mask for i in range(num_limbs)]


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def decode_jwk_modulus(n_b64url: str) -> int:
    return int.from_bytes(_b64url_decode(n_b64url), "big")


def subject_to_field(user_id: str, order: int, encoding: str = "hash") -> int:
    """Map the JWT subject to the scalar the circuit exposes.

    "hash" hashes the NFC-normalized subject into Z_order; "decimal" takes a
    numeric subject (Google's ``sub``) verbatim, reduced mod order.
    """
    if encoding == "hash":
        return hash_to_field(normalize_identifier(user_id), order, JWT_SUB_DST)
    if encoding == "decimal":
        if not user_id.isascii() or not user_id.isdigit():
            raise ValueError("subject is not a decimal string")
        return int(user_id, 10) % order
    raise ValueError(f"unknown subject encoding {encoding!r}")


def build_public_inputs(user_id: str, modulus: int, order: int, encoding: str = "hash") -> List[int]:
    sub = subject_to_field(user_id, order, encoding)
    return [sub] + [limb % order for limb in modulus_limbs(modulus)] + [sub]


# ----------------------------
# JWK providers
# ----------------------------

def _moduli_from_jwks(doc: Mapping[str, Any]) -> Dict[str, int]:
    moduli: Dict[str, int] = {}
    for key in doc.get("keys", []):
        if key.get("kty") != "RSA" or "kid" not in key or "n" not in key:
            continue
        moduli[str(key["kid"])] = decode_jwk_modulus(key["n"])
    return moduli


@dataclass
class StaticJwkProvider:
    """Fixed kid → modulus map (tests, pinned keys, offline deployments)."""

    moduli: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_jwks(cls, doc: Mapping[str, Any]) -> "StaticJwkProvider":
        return cls(moduli=_moduli_from_jwks(doc))

    @classmethod
    def from_file(cls, path: str) -> "StaticJwkProvider":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_jwks(json.load(f))

    def modulus_for(self, kid: str) -> int:
        try:
            return self.moduli[kid]
        except KeyError:
            raise JwkUnavailable(f"kid {kid!r} not found") from None


class HttpJwkProvider:
    """Fetches the identity provider's JWKS on every lookup."""

    def __init__(self, url: str = GOOGLE_JWKS_URL, timeout: float = 10.0,
                 session: Optional[requests.Session] = None) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def modulus_for(self, kid: str) -> int:
        try:
            resp = self._session.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
            doc = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise JwkUnavailable(f"could not fetch JWKS from {self.url}: {e}") from e
        moduli = _moduli_from_jwks(doc)
        if kid not in moduli:
            raise JwkUnavailable(f"kid {kid!r} not found")
        return moduli[kid]


# ----------------------------
# Gate
# ----------------------------

class ProofGate:
    """Authorizes a (user_id, kid, proof) triple against the circuit.

    Every failure mode collapses into a False verdict; the reason is only
    logged.
    """

    def __init__(self, verifier: ProofVerifier, jwks: JwkProvider, order: int,
                 subject_encoding: str = "hash") -> None:
        if subject_encoding not in SUBJECT_ENCODINGS:
            raise ValueError(f"unknown subject encoding {subject_encoding!r}")
        if verifier.n_public != N_PUBLIC:
            raise ValueError(
                f"verifying key expects {verifier.n_public} public inputs, circuit has {N_PUBLIC}"
            )
        self._verifier = verifier
        self._jwks = jwks
        self._order = order
        self._encoding = subject_encoding

    def authorize(self, user_id: str, kid: str, proof_b64: str) -> bool:
        try:
            modulus = self._jwks.modulus_for(kid)
        except JwkUnavailable as e:
            logger.warning(f"[GATE] JWK lookup failed: {e}")
            return False

        try:
            public_inputs = build_public_inputs(user_id, modulus, self._order, self._encoding)
        except ValueError as e:
            logger.warning(f"[GATE] cannot build public inputs: {e}")
            return False

        if len(proof_b64) > MAX_PROOF_B64_LEN:
            logger.warning(f"[GATE] oversized proof ({len(proof_b64)} chars) rejected")
            return False
        try:
            proof = base64.b64decode(proof_b64.strip(), validate=True)
        except (binascii.Error, ValueError):
            logger.warning("[GATE] proof is not valid base64")
            return False

        ok = self._verifier.verify(public_inputs, proof)
        if not ok:
            logger.warning(f"[GATE] proof rejected for kid={kid}")
        return ok
