# src/instantiations/bls/inst.py
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from hashlib import sha256
from typing import Callable, Optional, Sequence, Tuple

import secrets

from syra_issuer.codec import GENERATOR_DST, USK_DST, hash_to_field
from syra_issuer.core import Params

# py_ecc for BLS12-381 G1/G2 arithmetic, pairing and point compression.
# Install: pip install py-ecc
try:
    from py_ecc.optimized_bls12_381 import (
        FQ12,
        Z2,
        add,
        curve_order,
        eq,
        final_exponentiate,
        multiply,
        neg,
        pairing,
    )
    from py_ecc.bls.g2_primitives import (
        G1_to_pubkey,
        G2_to_signature,
        pubkey_to_G1,
        signature_to_G2,
        subgroup_check,
    )
    from py_ecc.bls.hash_to_curve import hash_to_G1, hash_to_G2
except Exception as e:  # pragma: no cover
    raise ImportError(
        "BLS12-381 instantiation requires 'py-ecc'. Install via: pip install py-ecc"
    ) from e


G1_LEN = 48  # compressed
G2_LEN = 96  # compressed


# ----------------------------
# Generators
# g1 = hash_to_G1("syra-generator"), g2 = hash_to_G2("syra-generator-2").
# Nobody knows log_{G1}(g1) or log_{G2}(g2).
# ----------------------------

@lru_cache(maxsize=None)
def syra_generators():
    g1 = hash_to_G1(b"syra-generator", GENERATOR_DST, sha256)
    g2 = hash_to_G2(b"syra-generator-2", GENERATOR_DST, sha256)
    return g1, g2


# ----------------------------
# Encode/Decode (ZCash / IETF compressed form)
# Decoders return None as ⊥ on malformed, off-curve or out-of-subgroup input.
# ----------------------------

def _g1_to_bytes_compressed(P) -> bytes:
    return bytes(G1_to_pubkey(P))


def _g1_from_bytes_compressed(buf: bytes):
    if len(buf) != G1_LEN:
        return None
    try:
        P = pubkey_to_G1(buf)
        if not subgroup_check(P):
            return None
    except Exception:
        return None
    return P


def _g2_to_bytes_compressed(Q) -> bytes:
    return bytes(G2_to_signature(Q))


def _g2_from_bytes_compressed(buf: bytes):
    if len(buf) != G2_LEN:
        return None
    try:
        Q = signature_to_G2(buf)
        if not subgroup_check(Q):
            return None
    except Exception:
        return None
    return Q


# ----------------------------
# (G1, G2, GT) with the SyRA generators
# ----------------------------

@dataclass(frozen=True)
class BlsPairingGroup:
    order: int = int(curve_order)

    def g1(self):
        return syra_generators()[0]

    def g2(self):
        return syra_generators()[1]

    def g1_mul(self, P, k: int):
        return multiply(P, int(k) % self.order)

    def g2_mul(self, Q, k: int):
        return multiply(Q, int(k) % self.order)

    def g1_neg(self, P):
        return neg(P)

    def g2_add(self, Q, R):
        return add(Q, R)

    def g1_eq(self, P, R) -> bool:
        return eq(P, R)

    def g2_eq(self, Q, R) -> bool:
        return eq(Q, R)

    def pairing_check(self, pairs: Sequence[Tuple[object, object]]) -> bool:
        # Multi-pairing: one final exponentiation for the whole product.
        acc = FQ12.one()
        for P, Q in pairs:
            acc = acc * pairing(Q, P, final_exponentiate=False)
        return final_exponentiate(acc) == FQ12.one()

    def encode_g1(self, P) -> bytes:
        return _g1_to_bytes_compressed(P)

    def decode_g1(self, data: bytes):
        return _g1_from_bytes_compressed(data)

    def encode_g2(self, Q) -> bytes:
        return _g2_to_bytes_compressed(Q)

    def decode_g2(self, data: bytes):
        return _g2_from_bytes_compressed(data)


# ----------------------------
# Feldman commitments live in G2 with generator g2, so the joint
# public key of a DKG round is directly the joint ivk_hat.
# ----------------------------

@dataclass(frozen=True)
class G2CommitmentGroup:
    order: int = int(curve_order)

    def generator(self):
        return syra_generators()[1]

    def identity(self):
        return Z2

    def combine(self, A, B):
        return add(A, B)

    def exp(self, A, k: int):
        return multiply(A, int(k) % self.order)

    def eq(self, A, B) -> bool:
        return eq(A, B)

    def encode(self, A) -> bytes:
        return _g2_to_bytes_compressed(A)

    def decode(self, data: bytes) -> Optional[object]:
        return _g2_from_bytes_compressed(data)


# ----------------------------
# Sampler for secret keys in Z_q^*
# ----------------------------

def make_sampler_zq(q: int) -> Callable[[], int]:
    def sample() -> int:
        return secrets.randbelow(q - 1) + 1
    return sample


# ----------------------------
# Params factory
# ----------------------------

def make_bls_params() -> Params[object, object]:
    """
    Return Params for SyRA over BLS12-381.

    - G1/G2: hash-to-curve generators, compressed 48/96-byte encodings
    - H(id): RFC 9380 hash_to_field into Z_r with the USK DST
    - sampler: uniform Z_r^*
    """
    q = int(curve_order)
    return Params(
        group=BlsPairingGroup(order=q),
        hash_to_scalar=lambda data: hash_to_field(data, q, USK_DST),
        sample_scalar=make_sampler_zq(q),
    )
