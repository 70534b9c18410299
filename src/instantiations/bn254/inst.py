# src/instantiations/bn254/inst.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

# py_ecc for BN254 (alt_bn128) arithmetic and pairing; this is the curve
# circom/snarkjs circuits are compiled for.
# Install: pip install py-ecc
try:
    from py_ecc.optimized_bn128 import (
        FQ,
        FQ2,
        FQ12,
        Z1,
        Z2,
        add,
        b,
        b2,
        curve_order,
        field_modulus,
        final_exponentiate,
        is_inf,
        is_on_curve,
        multiply,
        neg,
        normalize,
        pairing,
    )
except Exception as e:  # pragma: no cover
    raise ImportError(
        "BN254 instantiation requires 'py-ecc'. Install via: pip install py-ecc"
    ) from e


def _as_int(c) -> int:
    # FQ2 coefficients are plain ints in the optimized fields, FQ elsewhere.
    return c if isinstance(c, int) else int(c.n)


def _in_field(*vals: int) -> bool:
    return all(0 <= v < field_modulus for v in vals)


# ----------------------------
# Coordinates arrive Jacobian (x, y, z) as in snarkjs / arkworks exports;
# z = 1 in practice. We convert to py_ecc's (x, y, 1) form and validate.
# ----------------------------

@dataclass(frozen=True)
class Bn254Curve:
    order: int = int(curve_order)
    field_modulus: int = int(field_modulus)

    def g1_from_coords(self, x: int, y: int, z: int = 1):
        if not _in_field(x, y, z):
            return None
        if z == 0:
            return Z1
        Z = FQ(z)
        P = (FQ(x) / (Z * Z), FQ(y) / (Z * Z * Z), FQ.one())
        if not is_on_curve(P, b):
            return None
        return P

    def g2_from_coords(
        self,
        x: Tuple[int, int],
        y: Tuple[int, int],
        z: Tuple[int, int] = (1, 0),
    ):
        if not _in_field(*x, *y, *z):
            return None
        Z = FQ2(list(z))
        if Z == FQ2.zero():
            return Z2
        Q = (FQ2(list(x)) / (Z * Z), FQ2(list(y)) / (Z * Z * Z), FQ2.one())
        if not is_on_curve(Q, b2):
            return None
        # G2 has a large cofactor on BN254; reject points outside the r-torsion.
        if not is_inf(multiply(Q, self.order)):
            return None
        return Q

    def g1_to_coords(self, P) -> Tuple[int, int]:
        if is_inf(P):
            raise ValueError("cannot export point at infinity")
        x, y = normalize(P)
        return _as_int(x), _as_int(y)

    def g2_to_coords(self, Q) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        if is_inf(Q):
            raise ValueError("cannot export point at infinity")
        x, y = normalize(Q)
        return (
            (_as_int(x.coeffs[0]), _as_int(x.coeffs[1])),
            (_as_int(y.coeffs[0]), _as_int(y.coeffs[1])),
        )

    def g1_add(self, P, R):
        return add(P, R)

    def g1_mul(self, P, k: int):
        return multiply(P, int(k) % self.order)

    def g1_neg(self, P):
        return neg(P)

    def pairing_check(self, pairs: Sequence[Tuple[object, object]]) -> bool:
        acc = FQ12.one()
        for P, Q in pairs:
            acc = acc * pairing(Q, P, final_exponentiate=False)
        return final_exponentiate(acc) == FQ12.one()


def make_bn254_curve() -> Bn254Curve:
    return Bn254Curve()
