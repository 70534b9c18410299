"""Groth16 verification for the fixed JWT circuit.

The verifying key is the ``verification_key.json`` exported by snarkjs. Proofs
are accepted either as snarkjs ``proof.json`` documents or as 256 raw bytes in
the EIP-197 layout (the calldata order used by Solidity verifiers)::

    A.x | A.y | B.x.c1 | B.x.c0 | B.y.c1 | B.y.c0 | C.x | C.y    (32-byte BE each)

Verification is a pure predicate: malformed input is a failed verification,
never an exception.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, Sequence, Tuple, TypeVar, Union

from .interfaces import Groth16Curve

logger = logging.getLogger(__name__)

P1 = TypeVar("P1")
P2 = TypeVar("P2")

_COORD_LEN = 32
PROOF_BYTES_LEN = 8 * _COORD_LEN
# snarkjs proof.json is well under 1 KiB; anything larger is not parsed at all.
MAX_PROOF_LEN = 8 * 1024


@dataclass(frozen=True)
class VerifyingKey(Generic[P1, P2]):
    alpha_g1: P1
    beta_g2: P2
    gamma_g2: P2
    delta_g2: P2
    ic: Tuple[P1, ...]

    @property
    def n_public(self) -> int:
        return len(self.ic) - 1


@dataclass(frozen=True)
class Proof(Generic[P1, P2]):
    a: P1
    b: P2
    c: P1


@dataclass(frozen=True)
class ProofBundle:
    public_inputs: Tuple[int, ...]
    proof: bytes


def _parse_int(value: Any) -> int:
    """Decimal or 0x-hex string (or int) to int."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ValueError(f"expected integer string, got {type(value).__name__}")
    text = value.strip()
    if text.lower().startswith("0x"):
        return int(text[2:], 16)
    if not text.isdigit():
        raise ValueError("invalid integer")
    return int(text, 10)


def _g1_from_json(curve: Groth16Curve, coords: Sequence[Any]):
    if len(coords) not in (2, 3):
        raise ValueError("G1 point needs 2 or 3 coordinates")
    xs = [_parse_int(c) for c in coords]
    P = curve.g1_from_coords(*xs)
    if P is None:
        raise ValueError("G1 point is not on the curve")
    return P


def _g2_from_json(curve: Groth16Curve, coords: Sequence[Sequence[Any]]):
    if len(coords) not in (2, 3) or any(len(c) != 2 for c in coords):
        raise ValueError("G2 point needs 2 or 3 coordinate pairs")
    pairs = [(_parse_int(c[0]), _parse_int(c[1])) for c in coords]
    Q = curve.g2_from_coords(*pairs)
    if Q is None:
        raise ValueError("G2 point is not in the prime-order subgroup")
    return Q


def _g1_to_json(curve: Groth16Curve, P) -> list:
    x, y = curve.g1_to_coords(P)
    return [str(x), str(y), "1"]


def _g2_to_json(curve: Groth16Curve, Q) -> list:
    (x0, x1), (y0, y1) = curve.g2_to_coords(Q)
    return [[str(x0), str(x1)], [str(y0), str(y1)], ["1", "0"]]


# ----------------------------
# Verifying key
# ----------------------------

def load_verifying_key(
    source: Union[str, "os.PathLike[str]", Mapping[str, Any]],
    curve: Groth16Curve,
) -> VerifyingKey:
    """Parse a snarkjs verification key from a path or an already-loaded mapping.

    Raises ValueError on a malformed artifact: a broken verifying key is a
    deployment error, not a verification outcome.
    """
    if isinstance(source, Mapping):
        doc = source
    else:
        with open(source, "r", encoding="utf-8") as f:
            doc = json.load(f)

    protocol = doc.get("protocol", "groth16")
    if protocol != "groth16":
        raise ValueError(f"unsupported proof system {protocol!r}")
    try:
        ic = tuple(_g1_from_json(curve, p) for p in doc["IC"])
        vk = VerifyingKey(
            alpha_g1=_g1_from_json(curve, doc["vk_alpha_1"]),
            beta_g2=_g2_from_json(curve, doc["vk_beta_2"]),
            gamma_g2=_g2_from_json(curve, doc["vk_gamma_2"]),
            delta_g2=_g2_from_json(curve, doc["vk_delta_2"]),
            ic=ic,
        )
    except KeyError as e:
        raise ValueError(f"verification key is missing {e.args[0]!r}") from e
    if vk.n_public < 0:
        raise ValueError("verification key has no IC points")
    n_public = doc.get("nPublic")
    if n_public is not None and int(n_public) != vk.n_public:
        raise ValueError("nPublic does not match the number of IC points")
    return vk


def verifying_key_to_json(vk: VerifyingKey, curve: Groth16Curve) -> dict:
    return {
        "protocol": "groth16",
        "curve": "bn128",
        "nPublic": vk.n_public,
        "vk_alpha_1": _g1_to_json(curve, vk.alpha_g1),
        "vk_beta_2": _g2_to_json(curve, vk.beta_g2),
        "vk_gamma_2": _g2_to_json(curve, vk.gamma_g2),
        "vk_delta_2": _g2_to_json(curve, vk.delta_g2),
        "IC": [_g1_to_json(curve, p) for p in vk.ic],
    }


# ----------------------------
# Proof encodings
# ----------------------------

def proof_from_json(doc: Mapping[str, Any], curve: Groth16Curve) -> Optional[Proof]:
    try:
        return Proof(
            a=_g1_from_json(curve, doc["pi_a"]),
            b=_g2_from_json(curve, doc["pi_b"]),
            c=_g1_from_json(curve, doc["pi_c"]),
        )
    except Exception:
        return None


def proof_to_json(proof: Proof, curve: Groth16Curve) -> dict:
    return {
        "pi_a": _g1_to_json(curve, proof.a),
        "pi_b": _g2_to_json(curve, proof.b),
        "pi_c": _g1_to_json(curve, proof.c),
        "protocol": "groth16",
        "curve": "bn128",
    }


def proof_from_bytes(raw: bytes, curve: Groth16Curve) -> Optional[Proof]:
    if len(raw) != PROOF_BYTES_LEN:
        return None
    w = [
        int.from_bytes(raw[i:i + _COORD_LEN], "big")
        for i in range(0, PROOF_BYTES_LEN, _COORD_LEN)
    ]
    a = curve.g1_from_coords(w[0], w[1])
    b = curve.g2_from_coords((w[3], w[2]), (w[5], w[4]))
    c = curve.g1_from_coords(w[6], w[7])
    if a is None or b is None or c is None:
        return None
    return Proof(a=a, b=b, c=c)


def proof_to_bytes(proof: Proof, curve: Groth16Curve) -> bytes:
    ax, ay = curve.g1_to_coords(proof.a)
    (bx0, bx1), (by0, by1) = curve.g2_to_coords(proof.b)
    cx, cy = curve.g1_to_coords(proof.c)
    return b"".join(
        v.to_bytes(_COORD_LEN, "big") for v in (ax, ay, bx1, bx0, by1, by0, cx, cy)
    )


def decode_proof(raw: bytes, curve: Groth16Curve) -> Optional[Proof]:
    """snarkjs JSON if the bytes look like a JSON object, EIP-197 binary otherwise."""
    if len(raw) > MAX_PROOF_LEN:
        return None
    try:
        text = raw.decode("utf-8").lstrip()
    except UnicodeDecodeError:
        text = ""
    if text.startswith("{"):
        try:
            doc = json.loads(text)
        except ValueError:
            return None
        if not isinstance(doc, dict):
            return None
        return proof_from_json(doc, curve)
    return proof_from_bytes(raw, curve)


# ----------------------------
# Verifier
# ----------------------------

class ProofVerifier(Generic[P1, P2]):
    """Holds one verifying key; ``verify`` is referentially transparent."""

    def __init__(self, vk: VerifyingKey[P1, P2], curve: Groth16Curve[P1, P2]) -> None:
        self._vk = vk
        self._curve = curve

    @property
    def n_public(self) -> int:
        return self._vk.n_public

    def verify(self, public_inputs: Sequence[int], proof: bytes) -> bool:
        vk, curve = self._vk, self._curve
        if len(public_inputs) != vk.n_public:
            logger.debug("[GROTH16] wrong number of public inputs")
            return False
        if any(not isinstance(x, int) or not 0 <= x < curve.order for x in public_inputs):
            logger.debug("[GROTH16] non-canonical public input")
            return False

        decoded = decode_proof(proof, curve)
        if decoded is None:
            logger.debug("[GROTH16] undecodable proof")
            return False

        try:
            vk_x = vk.ic[0]
            for x, point in zip(public_inputs, vk.ic[1:]):
                if x:
                    vk_x = curve.g1_add(vk_x, curve.g1_mul(point, x))
            # e(-A, B) · e(α, β) · e(vk_x, γ) · e(C, δ) == 1
            return curve.pairing_check(
                [
                    (curve.g1_neg(decoded.a), decoded.b),
                    (vk.alpha_g1, vk.beta_g2),
                    (vk_x, vk.gamma_g2),
                    (decoded.c, vk.delta_g2),
                ]
            )
        except Exception:
            logger.exception("[GROTH16] verification raised; treating as failure")
            return False

    def verify_bundle(self, bundle: ProofBundle) -> bool:
        return self.verify(bundle.public_inputs, bundle.proof)
