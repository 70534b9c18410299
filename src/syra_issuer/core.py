from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Generic, Optional, Tuple, TypeVar, Union

from .codec import normalize_identifier
from .errors import DerivationFailure
from .interfaces import PairingGroup

P1 = TypeVar("P1")
P2 = TypeVar("P2")

Identifier = Union[str, bytes]


@dataclass(frozen=True)
class Params(Generic[P1, P2]):
    group: PairingGroup[P1, P2]
    hash_to_scalar: Callable[[bytes], int]  # H(id) -> s in Z_r
    sample_scalar: Callable[[], int]  # uniform in Z_r^*


@dataclass(frozen=True)
class IssuerVerificationKey(Generic[P1, P2]):
    ivk_hat: P2
    w: P1
    w_hat: P2


@dataclass(frozen=True)
class UserKey(Generic[P1, P2]):
    usk: P1
    usk_hat: P2


@dataclass(frozen=True)
class IssuerKeyPair(Generic[P1, P2]):
    isk: int = field(repr=False)
    ivk: IssuerVerificationKey[P1, P2]


def user_scalar(params: Params[P1, P2], user_identifier: Identifier) -> int:
    """s := H(NFC(id)) in Z_r."""
    return params.hash_to_scalar(normalize_identifier(user_identifier))


def make_ivk(params: Params[P1, P2], isk: int, omega: int) -> IssuerVerificationKey[P1, P2]:
    """ivk := (g2^isk, g1^ω, g2^ω)."""
    G = params.group
    return IssuerVerificationKey(
        ivk_hat=G.g2_mul(G.g2(), isk % G.order),
        w=G.g1_mul(G.g1(), omega % G.order),
        w_hat=G.g2_mul(G.g2(), omega % G.order),
    )


def IKGen(params: Params[P1, P2], isk: Optional[int] = None) -> IssuerKeyPair[P1, P2]:
    """Issuer key generation.

      isk ←$ Z_r^*   (unless a fixed scalar is supplied)
      ω   ←$ Z_r^*
      ivk := (ivk_hat = g2^isk, W = g1^ω, W_hat = g2^ω)
    """
    G = params.group
    if isk is None:
        isk = params.sample_scalar()
    isk = int(isk) % G.order
    if isk == 0:
        raise ValueError("Issuer secret must be nonzero in Z_r")
    omega = params.sample_scalar()
    return IssuerKeyPair(isk=isk, ivk=make_ivk(params, isk, omega))


def UKGen(params: Params[P1, P2], isk: int, user_identifier: Identifier) -> UserKey[P1, P2]:
    """User key derivation.

      s       := H(id)
      inv     := (s + isk)^-1 mod r      (⊥ if s + isk ≡ 0)
      usk     := g1^inv
      usk_hat := g2^inv
    """
    G = params.group
    s = user_scalar(params, user_identifier)
    denom = (s + isk) % G.order
    if denom == 0:
        raise DerivationFailure("s + isk is not invertible for this identity")
    inv = pow(denom, -1, G.order)
    return UserKey(usk=G.g1_mul(G.g1(), inv), usk_hat=G.g2_mul(G.g2(), inv))


def ivk_is_well_formed(params: Params[P1, P2], ivk: IssuerVerificationKey[P1, P2]) -> bool:
    """e(W, g2) = e(g1, W_hat)."""
    G = params.group
    return G.pairing_check([(ivk.w, G.g2()), (G.g1_neg(G.g1()), ivk.w_hat)])


def UKVerify(
    params: Params[P1, P2],
    ivk: IssuerVerificationKey[P1, P2],
    user_identifier: Identifier,
    key: UserKey[P1, P2],
) -> bool:
    """Check a user key against the issuer verification key.

      e(usk, ivk_hat · g2^s) = e(g1, g2)
      e(usk, g2)             = e(g1, usk_hat)
      e(W, usk_hat)          = e(usk, W_hat)
    """
    G = params.group
    s = user_scalar(params, user_identifier)
    g1, g2 = G.g1(), G.g2()
    neg_g1 = G.g1_neg(g1)

    shifted = G.g2_add(ivk.ivk_hat, G.g2_mul(g2, s))
    if not G.pairing_check([(key.usk, shifted), (neg_g1, g2)]):
        return False
    if not G.pairing_check([(key.usk, g2), (neg_g1, key.usk_hat)]):
        return False
    return G.pairing_check([(ivk.w, key.usk_hat), (G.g1_neg(key.usk), ivk.w_hat)])


# ----------------------------
# Wire forms
#   ivk  = ivk_hat (G2) || W (G1) || W_hat (G2)
#   usk  = G1 encoding, usk_hat = G2 encoding
# ----------------------------

def serialize_ivk(params: Params[P1, P2], ivk: IssuerVerificationKey[P1, P2]) -> bytes:
    G = params.group
    return G.encode_g2(ivk.ivk_hat) + G.encode_g1(ivk.w) + G.encode_g2(ivk.w_hat)


def _encoded_lengths(params: Params[P1, P2]) -> Tuple[int, int]:
    G = params.group
    return len(G.encode_g1(G.g1())), len(G.encode_g2(G.g2()))


def parse_ivk(params: Params[P1, P2], data: bytes) -> Optional[IssuerVerificationKey[P1, P2]]:
    """Inverse of serialize_ivk. Returns None on malformed input."""
    G = params.group
    n1, n2 = _encoded_lengths(params)
    if len(data) != n2 + n1 + n2:
        return None
    ivk_hat = G.decode_g2(data[:n2])
    w = G.decode_g1(data[n2:n2 + n1])
    w_hat = G.decode_g2(data[n2 + n1:])
    if ivk_hat is None or w is None or w_hat is None:
        return None
    return IssuerVerificationKey(ivk_hat=ivk_hat, w=w, w_hat=w_hat)


def serialize_user_key(params: Params[P1, P2], key: UserKey[P1, P2]) -> Tuple[bytes, bytes]:
    G = params.group
    return G.encode_g1(key.usk), G.encode_g2(key.usk_hat)


def verify_user_key_bytes(
    params: Params[P1, P2],
    ivk_bytes: bytes,
    user_identifier: Identifier,
    usk_bytes: bytes,
    usk_hat_bytes: bytes,
) -> bool:
    """UKVerify over wire encodings; anything undecodable is a failed check."""
    G = params.group
    ivk = parse_ivk(params, ivk_bytes)
    usk = G.decode_g1(usk_bytes)
    usk_hat = G.decode_g2(usk_hat_bytes)
    if ivk is None or usk is None or usk_hat is None:
        return False
    return UKVerify(params, ivk, user_identifier, UserKey(usk=usk, usk_hat=usk_hat))
