"""Interface definitions for issuer components."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, Tuple, TypeVar

P1 = TypeVar("P1")
P2 = TypeVar("P2")
C = TypeVar("C")
M = TypeVar("M")


class PairingGroup(Protocol[P1, P2]):
    """Bilinear group (G1, G2, GT) with fixed generators g1, g2."""

    order: int

    def g1(self) -> P1:
        ...

    def g2(self) -> P2:
        ...

    def g1_mul(self, point: P1, scalar: int) -> P1:
        ...

    def g2_mul(self, point: P2, scalar: int) -> P2:
        ...

    def g1_neg(self, point: P1) -> P1:
        ...

    def g2_add(self, left: P2, right: P2) -> P2:
        ...

    def g1_eq(self, left: P1, right: P1) -> bool:
        ...

    def g2_eq(self, left: P2, right: P2) -> bool:
        ...

    def pairing_check(self, pairs: Sequence[Tuple[P1, P2]]) -> bool:
        """True iff the product of e(P_i, Q_i) is the identity of GT."""
        ...

    def encode_g1(self, point: P1) -> bytes:
        ...

    def decode_g1(self, data: bytes) -> Optional[P1]:
        ...

    def encode_g2(self, point: P2) -> bytes:
        ...

    def decode_g2(self, data: bytes) -> Optional[P2]:
        ...


class CommitmentGroup(Protocol[C]):
    """Prime-order group used for Feldman commitments, written multiplicatively."""

    order: int

    def generator(self) -> C:
        ...

    def identity(self) -> C:
        ...

    def combine(self, left: C, right: C) -> C:
        ...

    def exp(self, element: C, scalar: int) -> C:
        ...

    def eq(self, left: C, right: C) -> bool:
        ...

    def encode(self, element: C) -> bytes:
        ...

    def decode(self, data: bytes) -> Optional[C]:
        ...


class Groth16Curve(Protocol[P1, P2]):
    """Curve operations the Groth16 verifier needs."""

    order: int
    field_modulus: int

    def g1_from_coords(self, x: int, y: int, z: int = 1) -> Optional[P1]:
        ...

    def g2_from_coords(
        self, x: Tuple[int, int], y: Tuple[int, int], z: Tuple[int, int] = (1, 0)
    ) -> Optional[P2]:
        ...

    def g1_to_coords(self, point: P1) -> Tuple[int, int]:
        ...

    def g2_to_coords(self, point: P2) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        ...

    def g1_add(self, left: P1, right: P1) -> P1:
        ...

    def g1_mul(self, point: P1, scalar: int) -> P1:
        ...

    def g1_neg(self, point: P1) -> P1:
        ...

    def pairing_check(self, pairs: Sequence[Tuple[P1, P2]]) -> bool:
        ...


class JwkProvider(Protocol):
    """Resolves an identity provider key id to its RSA modulus."""

    def modulus_for(self, kid: str) -> int:
        ...


class Transport(Protocol[M]):
    """Reliable, authenticated point-to-point delivery between issuers."""

    async def send(self, recipient: int, message: M) -> None:
        ...

    async def receive(self) -> M:
        ...
